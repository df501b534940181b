"""
conftest.py — Shared pytest fixtures for the Facade Estimator backend test suite.

No database or external service fixtures are defined here. Store contracts
are satisfied by the small in-memory fakes below, so the engines and the
pipeline run exactly as they do against PostgreSQL.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``estimator.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import copy
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any estimator imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from estimator.models.domain import Detection, LineItem, Page  # noqa: E402
from estimator.services.errors import (  # noqa: E402
    ConcurrencyConflictError,
    NotFoundError,
    UpstreamUnavailableError,
)


# ---------------------------------------------------------------------------
# In-memory stores
# ---------------------------------------------------------------------------

class FakeDetectionStore:
    """
    One detection tier. ``fail=True`` makes every read raise
    UpstreamUnavailableError; ``error`` makes every read raise that exception.
    """

    def __init__(self, detections=None, fail=False, error=None):
        self.detections = list(detections or [])
        self.fail = fail
        self.error = error
        self.calls = 0

    async def list_by_page_ids(self, page_ids, exclude_deleted=True):
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.fail:
            raise UpstreamUnavailableError("fake", "tier offline")
        wanted = set(page_ids)
        return [
            copy.deepcopy(d) for d in self.detections
            if d.page_id in wanted and not (exclude_deleted and d.is_deleted)
        ]


class FakeDraftStore(FakeDetectionStore):
    async def soft_delete_page_drafts(self, page_id):
        marked = 0
        for d in self.detections:
            if d.page_id == page_id and not d.is_deleted:
                d.status = "deleted"
                marked += 1
        return marked

    async def insert_drafts(self, detections):
        self.detections.extend(copy.deepcopy(d) for d in detections)
        return list(detections)


class FakePageStore:
    def __init__(self, pages=None, job_ids=None):
        self.pages = list(pages or [])
        self.job_ids = set(job_ids or []) | {p.job_id for p in self.pages}

    async def job_exists(self, job_id):
        return job_id in self.job_ids

    async def get_pages_by_job(self, job_id, page_type=None):
        return [
            p for p in self.pages
            if p.job_id == job_id and (page_type is None or p.page_type == page_type)
        ]

    async def get_page(self, page_id):
        return next((p for p in self.pages if p.id == page_id), None)


class FakeDerivedStore:
    def __init__(self):
        self.elevation_calcs = {}
        self.job_totals = {}

    async def save_elevation_calcs(self, calcs):
        for calc in calcs:
            self.elevation_calcs[calc.page_id] = calc

    async def get_job_totals(self, job_id):
        return self.job_totals.get(job_id)

    async def save_job_totals(self, totals):
        self.job_totals[totals.job_id] = totals


class FakeTakeoffStore:
    """Takeoffs keyed by id, with the same version contract as SqlTakeoffStore."""

    def __init__(self, org_settings=None):
        self.takeoffs = {}
        self.line_items = {}
        self.org_settings = dict(org_settings or {})

    def add_takeoff(self, takeoff_id, job_id, markup_percent=None, methodology=None, items=()):
        self.takeoffs[takeoff_id] = {
            "id": takeoff_id,
            "job_id": job_id,
            "markup_percent": markup_percent,
            "methodology": methodology,
            "version": 1,
            "final_price": 0.0,
        }
        self.line_items[takeoff_id] = list(items)

    async def get_takeoff(self, takeoff_id):
        header = self.takeoffs.get(takeoff_id)
        return dict(header) if header else None

    async def get_or_create_for_job(self, job_id):
        for header in self.takeoffs.values():
            if header["job_id"] == job_id:
                return dict(header)
        takeoff_id = f"takeoff-{job_id}"
        self.add_takeoff(takeoff_id, job_id)
        return dict(self.takeoffs[takeoff_id])

    async def get_organization_settings(self, job_id):
        return dict(self.org_settings)

    async def list_line_items(self, takeoff_id, include_deleted=False):
        items = self.line_items.get(takeoff_id, [])
        return [i for i in items if include_deleted or not i.is_deleted]

    async def save_line_items(self, takeoff_id, items, expected_version, totals):
        header = self.takeoffs.get(takeoff_id)
        if header is None:
            raise NotFoundError("takeoff", takeoff_id)
        if header["version"] != expected_version:
            raise ConcurrencyConflictError(takeoff_id, expected_version, header["version"])
        kept = {i.id for i in items}
        dropped = [
            LineItem(**{**i.__dict__, "is_deleted": True})
            for i in self.line_items.get(takeoff_id, []) if i.id not in kept
        ]
        self.line_items[takeoff_id] = list(items) + dropped
        header["version"] += 1
        header["final_price"] = totals.grand_total
        return header["version"]


# ---------------------------------------------------------------------------
# Sample records
# ---------------------------------------------------------------------------

def make_detection(det_id, page_id, detection_class, width=None, height=None, **kwargs):
    """Rectangle-mode detection; pixel size in pixels."""
    return Detection(
        id=det_id,
        page_id=page_id,
        job_id=kwargs.pop("job_id", "job-1"),
        detection_class=detection_class,
        pixel_width=width,
        pixel_height=height,
        **kwargs,
    )


@pytest.fixture
def page_a():
    """Front elevation, 0.1 ft per pixel."""
    return Page(id="page-a", job_id="job-1", page_number=1, scale_ratio=0.1, dpi=100, elevation_name="Front")


@pytest.fixture
def page_b():
    """Rear elevation, 0.1 ft per pixel."""
    return Page(id="page-b", job_id="job-1", page_number=2, scale_ratio=0.1, dpi=100, elevation_name="Rear")


@pytest.fixture
def front_detections():
    """
    Front elevation at 0.1 ft/px:
      siding  400×200 px → 40×20 ft = 800 SF
      window   30×40 px →  3×4 ft  =  12 SF  (×2)
      door     30×70 px →  3×7 ft  =  21 SF
    """
    return [
        make_detection("d-siding", "page-a", "siding", 400, 200, detection_index=0, confidence=0.9),
        make_detection("d-win-1", "page-a", "window", 30, 40, detection_index=1, confidence=0.8),
        make_detection("d-win-2", "page-a", "window", 30, 40, detection_index=2, confidence=0.7),
        make_detection("d-door", "page-a", "door", 30, 70, detection_index=3, confidence=0.6),
    ]


@pytest.fixture
def scenario_a_item():
    """100 SF siding @ material $1.20/SF, labor $0.80/SF."""
    return LineItem(
        id="li-siding",
        description="Lap siding",
        item_type="material",
        quantity=100.0,
        unit="SF",
        material_unit_cost=1.20,
        labor_unit_cost=0.80,
    )


@pytest.fixture
def scenario_b_item():
    """10 hrs of labor @ $45/hr."""
    return LineItem(
        id="li-labor",
        description="Install labor",
        item_type="labor",
        quantity=10.0,
        unit="HR",
        labor_unit_cost=45.0,
    )


@pytest.fixture
def mixed_items(scenario_a_item, scenario_b_item):
    """Material + labor + overhead + paint, one of each."""
    return [
        scenario_a_item,
        scenario_b_item,
        LineItem(id="li-dumpster", description="Dumpster", item_type="overhead", equipment_unit_cost=450.0),
        LineItem(
            id="li-paint", description="Paint trim", item_type="paint",
            quantity=20.0, unit="LF", material_unit_cost=2.0, labor_unit_cost=3.0,
        ),
    ]
