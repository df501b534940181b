"""
TakeoffPipeline — reads through the stores, runs the pure engines, writes back.

Job recalculation fans out one worker-thread task per elevation page
(geometry + elevation aggregation), joins on all of them, then performs the
single job-totals reduction. Store reads happen before the compute step and
writes after it; nothing in between touches I/O.
"""
import time
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from estimator.models.domain import Detection, ElevationCalc, JobTotals, LineItem, Page
from estimator.services.detection_resolver import DetectionSource, DetectionSourceResolver
from estimator.services.elevation_engine import compute_elevation_calc
from estimator.services.errors import NotFoundError
from estimator.services.geometry_engine import convert_page_detections
from estimator.services.job_totals_engine import compute_job_totals
from estimator.services.perf_monitor import tracker
from estimator.services.pricing_config import resolve_pricing_config
from estimator.services.pricing_engine import EstimateTotals, PricingEngine
from estimator.services.redetect_client import RedetectClient
from estimator.services.stores import DerivedStore, DraftWriter, PageStore, TakeoffStore

logger = logging.getLogger("estimator-pipeline")

DEFAULT_FANOUT_LIMIT = 8


@dataclass
class JobRecalculation:
    job_id: str
    detection_source: DetectionSource
    unavailable_tiers: List[str]
    elevation_calcs: List[ElevationCalc]
    job_totals: JobTotals
    takeoff_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "detection_source": self.detection_source.value,
            "unavailable_tiers": list(self.unavailable_tiers),
            "elevation_calcs": [c.to_dict() for c in self.elevation_calcs],
            "job_totals": self.job_totals.to_dict(),
            "takeoff_id": self.takeoff_id,
        }


@dataclass
class RedetectResult:
    page_id: str
    superseded: int
    detections: List[Detection] = field(default_factory=list)
    recalculation: Optional[JobRecalculation] = None


@dataclass
class PricedTakeoff:
    takeoff: Dict[str, Any]
    totals: EstimateTotals
    version: int
    siding_squares: Optional[float] = None


def _page_calc(page: Page, detections: Sequence[Detection]) -> ElevationCalc:
    return compute_elevation_calc(page, detections)


class TakeoffPipeline:
    def __init__(
        self,
        resolver: DetectionSourceResolver,
        derived_store: DerivedStore,
        takeoff_store: Optional[TakeoffStore] = None,
        draft_writer: Optional[DraftWriter] = None,
        redetect_client: Optional[RedetectClient] = None,
        fanout_limit: int = DEFAULT_FANOUT_LIMIT,
    ) -> None:
        self.resolver = resolver
        self.page_store: PageStore = resolver.page_store
        self.derived_store = derived_store
        self.takeoff_store = takeoff_store
        self.draft_writer = draft_writer
        self.redetect_client = redetect_client
        self.fanout_limit = max(1, fanout_limit)

    # ------------------------------------------------------------------
    # Quantities
    # ------------------------------------------------------------------

    async def compute_elevations(self, pages: Sequence[Page], detections_by_page: Dict[str, List[Detection]]):
        """Fan out per page and wait for every page before returning."""
        semaphore = asyncio.Semaphore(self.fanout_limit)

        async def one(page: Page) -> ElevationCalc:
            async with semaphore:
                start = time.perf_counter()
                calc = await asyncio.to_thread(_page_calc, page, detections_by_page.get(page.id, []))
                tracker.record_stage_duration("elevation", (time.perf_counter() - start) * 1000)
                return calc

        return list(await asyncio.gather(*(one(p) for p in pages)))

    async def recalculate_job(self, job_id: str) -> JobRecalculation:
        """Resolve detections, rebuild every elevation calc, then rebuild job totals from scratch."""
        start = time.perf_counter()
        try:
            resolved = await self.resolver.resolve_detections(job_id, "elevation")
            pages = [p.page for p in resolved.pages]
            calcs = await self.compute_elevations(pages, {p.page.id: p.detections for p in resolved.pages})

            # Full page set recomputed; totals start empty so dropped pages contribute nothing
            totals = compute_job_totals(None, calcs, job_id=job_id)

            await self.derived_store.save_elevation_calcs(calcs)
            await self.derived_store.save_job_totals(totals)

            takeoff_id = None
            if self.takeoff_store is not None:
                takeoff_id = (await self.takeoff_store.get_or_create_for_job(job_id))["id"]
        except Exception:
            tracker.record_stage_error("recalculate_job")
            raise

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        tracker.record_job_recalculated(duration_ms)
        logger.info(
            "job recalculated",
            extra={
                "job_id": job_id,
                "tier": resolved.detection_source.value,
                "elevations": len(calcs),
                "duration_ms": duration_ms,
            },
        )
        return JobRecalculation(
            job_id=job_id,
            detection_source=resolved.detection_source,
            unavailable_tiers=resolved.unavailable_tiers,
            elevation_calcs=calcs,
            job_totals=totals,
            takeoff_id=takeoff_id,
        )

    # ------------------------------------------------------------------
    # Re-detection
    # ------------------------------------------------------------------

    async def redetect_page(self, page_id: str, min_confidence: float = 0.0) -> RedetectResult:
        """
        Re-run detection for one page. A non-empty result supersedes the
        page's drafts (soft delete, then insert) and the whole job is
        recalculated, since a new draft set changes resolution for every page.
        """
        if self.redetect_client is None or self.draft_writer is None:
            raise RuntimeError("redetect_page requires a redetect client and a draft writer")
        page = await self.page_store.get_page(page_id)
        if page is None:
            raise NotFoundError("page", page_id)

        fresh = await self.redetect_client.redetect(page, min_confidence)
        if not fresh:
            logger.info("re-detection returned no detections", extra={"page_id": page_id})
            return RedetectResult(page_id=page_id, superseded=0)

        superseded = await self.draft_writer.soft_delete_page_drafts(page_id)
        inserted = await self.draft_writer.insert_drafts(convert_page_detections(page, fresh))
        logger.info(
            "page re-detected",
            extra={"page_id": page_id, "job_id": page.job_id, "superseded": superseded, "inserted": len(inserted)},
        )
        recalculation = await self.recalculate_job(page.job_id)
        return RedetectResult(
            page_id=page_id, superseded=superseded, detections=inserted, recalculation=recalculation
        )

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    async def _takeoff_context(self, takeoff_id: str):
        if self.takeoff_store is None:
            raise RuntimeError("pricing requires a takeoff store")
        header = await self.takeoff_store.get_takeoff(takeoff_id)
        if header is None:
            raise NotFoundError("takeoff", takeoff_id)
        org_settings = await self.takeoff_store.get_organization_settings(header["job_id"])
        config = resolve_pricing_config(org_settings, header.get("markup_percent"), header.get("methodology"))
        job_totals = await self.derived_store.get_job_totals(header["job_id"])
        squares = job_totals.siding_squares if job_totals else None
        return header, PricingEngine.from_config(config), squares

    async def price_takeoff(self, takeoff_id: str) -> PricedTakeoff:
        """Price the takeoff's current live line items without writing anything."""
        header, engine, squares = await self._takeoff_context(takeoff_id)
        items = await self.takeoff_store.list_line_items(takeoff_id)
        totals = engine.calculate(items, squares=squares)
        return PricedTakeoff(takeoff=header, totals=totals, version=header["version"], siding_squares=squares)

    async def save_line_items(
        self, takeoff_id: str, items: Sequence[LineItem], expected_version: int
    ) -> PricedTakeoff:
        """Recompute totals from ``items`` and persist both under an optimistic version check."""
        header, engine, squares = await self._takeoff_context(takeoff_id)
        totals = engine.calculate(items, squares=squares)
        new_version = await self.takeoff_store.save_line_items(takeoff_id, items, expected_version, totals)
        tracker.record_takeoff_priced()
        logger.info(
            "takeoff saved",
            extra={"takeoff_id": takeoff_id, "version": new_version, "line_count": totals.line_count},
        )
        header = {**header, "version": new_version, "final_price": totals.grand_total}
        return PricedTakeoff(takeoff=header, totals=totals, version=new_version, siding_squares=squares)
