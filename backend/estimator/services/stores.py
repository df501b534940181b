"""
Persistence contracts consumed by the takeoff pipeline.

The engines never touch a database. Callers hand them rows read through these
interfaces and write results back through them; ``sql_stores`` provides the
SQLAlchemy implementations and the tests provide in-memory ones.
"""
from typing import Any, Dict, List, Optional, Protocol, Sequence

from estimator.models.domain import Detection, ElevationCalc, JobTotals, LineItem, Page


class DetectionStore(Protocol):
    async def list_by_page_ids(
        self, page_ids: Sequence[str], exclude_deleted: bool = True
    ) -> List[Detection]:
        """Rows for the pages; raises UpstreamUnavailableError when the tier cannot be read."""
        ...


class DraftWriter(Protocol):
    async def soft_delete_page_drafts(self, page_id: str) -> int:
        """Mark the page's live drafts deleted; returns the number marked."""
        ...

    async def insert_drafts(self, detections: Sequence[Detection]) -> List[Detection]:
        ...


class PageStore(Protocol):
    async def get_pages_by_job(self, job_id: str, page_type: Optional[str] = None) -> List[Page]:
        ...

    async def get_page(self, page_id: str) -> Optional[Page]:
        ...

    async def job_exists(self, job_id: str) -> bool:
        ...


class DerivedStore(Protocol):
    async def save_elevation_calcs(self, calcs: Sequence[ElevationCalc]) -> None:
        ...

    async def get_job_totals(self, job_id: str) -> Optional[JobTotals]:
        ...

    async def save_job_totals(self, totals: JobTotals) -> None:
        ...


class TakeoffStore(Protocol):
    async def get_takeoff(self, takeoff_id: str) -> Optional[Dict[str, Any]]:
        """Takeoff header: id, job_id, markup_percent, methodology, version and cached totals."""
        ...

    async def get_or_create_for_job(self, job_id: str) -> Dict[str, Any]:
        """Return the job's takeoff, creating it (and marking the job extracted) if absent."""
        ...

    async def get_organization_settings(self, job_id: str) -> Dict[str, Any]:
        ...

    async def list_line_items(self, takeoff_id: str, include_deleted: bool = False) -> List[LineItem]:
        ...

    async def save_line_items(
        self,
        takeoff_id: str,
        items: Sequence[LineItem],
        expected_version: int,
        totals: Any,
    ) -> int:
        """Replace live line items and cached totals; returns the new version.

        ``totals`` is the EstimateTotals computed from ``items``. Items missing
        from ``items`` are soft-deleted. Raises ConcurrencyConflictError when
        the stored version differs from ``expected_version``.
        """
        ...
