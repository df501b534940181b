"""SQLAlchemy implementations of the store contracts in ``stores``."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Type

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from estimator.models.domain import Detection, ElevationCalc, JobTotals, LineItem, Page
from estimator.models.orm_models import (
    AiOriginalDetection,
    DetectionColumns,
    DraftDetection,
    ElevationCalcRow,
    ExtractionJob,
    ExtractionPage,
    JobTotalsRow,
    Organization,
    Takeoff,
    TakeoffLineItem,
    ValidatedDetection,
)
from estimator.services.errors import ConcurrencyConflictError, NotFoundError, UpstreamUnavailableError

logger = logging.getLogger("estimator-db.stores")

_DETECTION_FIELDS = (
    "id", "job_id", "page_id", "detection_class", "detection_index", "confidence",
    "pixel_x", "pixel_y", "pixel_width", "pixel_height", "polygon_points", "is_triangle",
    "status", "real_width_in", "real_height_in", "real_width_ft", "real_height_ft",
    "area_sf", "perimeter_lf", "markup_type", "notes",
)

_LINE_ITEM_FIELDS = (
    "description", "item_type", "quantity", "unit", "material_unit_cost", "labor_unit_cost",
    "equipment_unit_cost", "section_id", "presentation_group", "sort_order",
)


def _detection_from_row(row: DetectionColumns) -> Detection:
    return Detection(**{name: getattr(row, name) for name in _DETECTION_FIELDS})


def _page_from_row(row: ExtractionPage) -> Page:
    return Page(
        id=row.id,
        job_id=row.job_id,
        page_number=row.page_number or 0,
        page_type=row.page_type,
        scale_ratio=row.scale_ratio,
        dpi=row.dpi,
        elevation_name=row.elevation_name,
        image_url=row.image_url,
        original_image_url=row.original_image_url,
    )


def _takeoff_header(row: Takeoff) -> Dict[str, Any]:
    return {
        "id": row.id,
        "job_id": row.job_id,
        "markup_percent": row.markup_percent,
        "methodology": row.methodology,
        "version": row.version,
        "material_cost": row.material_cost,
        "labor_cost": row.labor_cost,
        "overhead_cost": row.overhead_cost,
        "subtotal": row.subtotal,
        "markup_amount": row.markup_amount,
        "insurance_amount": row.insurance_amount,
        "final_price": row.final_price,
    }


# ── Detections ───────────────────────────────────────────────────────────────

class SqlDetectionStore:
    def __init__(self, session: AsyncSession, model: Type[DetectionColumns], tier: str):
        self.session = session
        self.model = model
        self.tier = tier

    async def list_by_page_ids(self, page_ids: Sequence[str], exclude_deleted: bool = True) -> List[Detection]:
        """
        Live rows for the page batch. Runs inside a savepoint so a failed tier
        query leaves the request transaction usable for the next tier.
        """
        if not page_ids:
            return []
        stmt = select(self.model).where(self.model.page_id.in_(list(page_ids)))
        if exclude_deleted:
            stmt = stmt.where(self.model.status != "deleted")
        try:
            async with self.session.begin_nested():
                result = await self.session.execute(stmt)
                rows = result.scalars().all()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Detection tier {self.tier} query failed: {e}")
            raise UpstreamUnavailableError(self.tier, str(e)) from e
        return [_detection_from_row(r) for r in rows]


class SqlDraftStore(SqlDetectionStore):
    """Draft tier plus the append-only write path used by re-detection."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DraftDetection, "draft")

    async def soft_delete_page_drafts(self, page_id: str) -> int:
        result = await self.session.execute(
            update(DraftDetection)
            .where(DraftDetection.page_id == page_id, DraftDetection.status != "deleted")
            .values(status="deleted")
        )
        return result.rowcount or 0

    async def insert_drafts(self, detections: Sequence[Detection]) -> List[Detection]:
        rows = [
            DraftDetection(**{name: getattr(d, name) for name in _DETECTION_FIELDS})
            for d in detections
        ]
        self.session.add_all(rows)
        await self.session.flush()
        return [_detection_from_row(r) for r in rows]


def detection_stores(session: AsyncSession):
    """(draft, validated, ai_original) stores bound to one session."""
    return (
        SqlDraftStore(session),
        SqlDetectionStore(session, ValidatedDetection, "validated"),
        SqlDetectionStore(session, AiOriginalDetection, "ai_original"),
    )


# ── Pages ────────────────────────────────────────────────────────────────────

class SqlPageStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def job_exists(self, job_id: str) -> bool:
        return await self.session.get(ExtractionJob, job_id) is not None

    async def get_pages_by_job(self, job_id: str, page_type: Optional[str] = None) -> List[Page]:
        stmt = select(ExtractionPage).where(ExtractionPage.job_id == job_id)
        if page_type:
            stmt = stmt.where(ExtractionPage.page_type == page_type)
        stmt = stmt.order_by(ExtractionPage.page_number, ExtractionPage.id)
        result = await self.session.execute(stmt)
        return [_page_from_row(r) for r in result.scalars().all()]

    async def get_page(self, page_id: str) -> Optional[Page]:
        row = await self.session.get(ExtractionPage, page_id)
        return _page_from_row(row) if row else None


# ── Derived rows ─────────────────────────────────────────────────────────────

class SqlDerivedStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def save_elevation_calcs(self, calcs: Sequence[ElevationCalc]) -> None:
        for calc in calcs:
            await self.session.merge(ElevationCalcRow(
                page_id=calc.page_id,
                job_id=calc.job_id,
                calc_json=calc.to_dict(),
                net_siding_sf=calc.net_siding_sf,
                confidence_avg=calc.confidence_avg,
            ))
        await self.session.flush()

    async def get_job_totals(self, job_id: str) -> Optional[JobTotals]:
        row = await self.session.get(JobTotalsRow, job_id)
        return JobTotals.from_dict(row.totals_json) if row else None

    async def save_job_totals(self, totals: JobTotals) -> None:
        await self.session.merge(JobTotalsRow(
            job_id=totals.job_id,
            totals_json=totals.to_dict(),
            elevations_processed=list(totals.elevations_processed),
            siding_squares=totals.siding_squares,
            calculation_version=totals.calculation_version,
        ))
        await self.session.flush()


# ── Takeoffs ─────────────────────────────────────────────────────────────────

class SqlTakeoffStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_takeoff(self, takeoff_id: str) -> Optional[Dict[str, Any]]:
        row = await self.session.get(Takeoff, takeoff_id)
        return _takeoff_header(row) if row else None

    async def get_or_create_for_job(self, job_id: str) -> Dict[str, Any]:
        job = await self.session.get(ExtractionJob, job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        result = await self.session.execute(select(Takeoff).where(Takeoff.job_id == job_id))
        row = result.scalar_one_or_none()
        if row is None:
            row = Takeoff(job_id=job_id)
            self.session.add(row)
            job.status = "extracted"
            await self.session.flush()
            logger.info("takeoff created", extra={"job_id": job_id, "takeoff_id": row.id})
        return _takeoff_header(row)

    async def get_organization_settings(self, job_id: str) -> Dict[str, Any]:
        result = await self.session.execute(
            select(Organization.settings)
            .join(ExtractionJob, ExtractionJob.organization_id == Organization.id)
            .where(ExtractionJob.id == job_id)
        )
        return result.scalar_one_or_none() or {}

    async def list_line_items(self, takeoff_id: str, include_deleted: bool = False) -> List[LineItem]:
        stmt = select(TakeoffLineItem).where(TakeoffLineItem.takeoff_id == takeoff_id)
        if not include_deleted:
            stmt = stmt.where(TakeoffLineItem.is_deleted.is_(False))
        stmt = stmt.order_by(TakeoffLineItem.sort_order, TakeoffLineItem.id)
        result = await self.session.execute(stmt)
        return [
            LineItem(
                id=r.id,
                is_deleted=r.is_deleted,
                **{name: getattr(r, name) for name in _LINE_ITEM_FIELDS},
            )
            for r in result.scalars().all()
        ]

    async def save_line_items(
        self,
        takeoff_id: str,
        items: Sequence[LineItem],
        expected_version: int,
        totals: Any,
    ) -> int:
        takeoff = await self.session.get(Takeoff, takeoff_id)
        if takeoff is None:
            raise NotFoundError("takeoff", takeoff_id)
        if takeoff.version != expected_version:
            raise ConcurrencyConflictError(takeoff_id, expected_version, takeoff.version)

        result = await self.session.execute(
            select(TakeoffLineItem).where(
                TakeoffLineItem.takeoff_id == takeoff_id,
                TakeoffLineItem.is_deleted.is_(False),
            )
        )
        live = {r.id: r for r in result.scalars().all()}
        extended = {line.line_item_id: line for line in totals.lines}

        for item in items:
            row = live.pop(item.id, None)
            if row is None:
                row = TakeoffLineItem(id=item.id, takeoff_id=takeoff_id)
                self.session.add(row)
            for name in _LINE_ITEM_FIELDS:
                setattr(row, name, getattr(item, name))
            row.is_deleted = item.is_deleted
            line = extended.get(item.id)
            row.material_extended = line.material_extended if line else 0.0
            row.labor_extended = (line.labor_extended + line.loaded_labor) if line else 0.0
            row.line_total = line.line_total if line else 0.0

        # Rows the caller dropped are soft-deleted, never removed
        for row in live.values():
            row.is_deleted = True

        takeoff.material_cost = totals.material_cost
        takeoff.labor_cost = totals.labor_cost
        takeoff.overhead_cost = totals.overhead_cost
        takeoff.subtotal = totals.subtotal
        takeoff.markup_amount = totals.markup_amount
        takeoff.insurance_amount = totals.insurance_amount
        takeoff.final_price = totals.grand_total
        takeoff.updated_at = datetime.now(timezone.utc)
        try:
            await self.session.flush()
        except StaleDataError:
            raise ConcurrencyConflictError(takeoff_id, expected_version)
        return takeoff.version
