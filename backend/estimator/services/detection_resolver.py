"""
DetectionSourceResolver — pick the authoritative detection tier for a job.

Three stores are consulted in fixed priority order for the whole batch of
page ids belonging to one job:

    draft  →  validated  →  ai_original  →  none

The first tier returning any live row wins for the entire batch. Pages with
no rows in the winning tier resolve to an empty list; they do not fall back
to a lower tier on their own. A tier whose store raises
``UpstreamUnavailableError`` is logged, recorded in ``unavailable_tiers`` and
treated as empty; any other exception propagates.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from estimator.models.domain import Detection, Page
from estimator.services.errors import NotFoundError, UpstreamUnavailableError
from estimator.services.perf_monitor import timed_async
from estimator.services.stores import DetectionStore, PageStore

logger = logging.getLogger("estimator-resolver")


class DetectionSource(str, Enum):
    DRAFT = "draft"
    VALIDATED = "validated"
    AI_ORIGINAL = "ai_original"
    NONE = "none"


TIER_ORDER: Tuple[DetectionSource, ...] = (
    DetectionSource.DRAFT,
    DetectionSource.VALIDATED,
    DetectionSource.AI_ORIGINAL,
)


@dataclass
class PageDetections:
    page: Page
    detections: List[Detection] = field(default_factory=list)


@dataclass
class ResolvedDetections:
    detection_source: DetectionSource
    pages: List[PageDetections] = field(default_factory=list)
    unavailable_tiers: List[str] = field(default_factory=list)

    @property
    def detection_count(self) -> int:
        return sum(len(p.detections) for p in self.pages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detection_source": self.detection_source.value,
            "unavailable_tiers": list(self.unavailable_tiers),
            "pages": [
                {
                    "page": p.page.to_dict(),
                    "detections": [d.to_dict() for d in p.detections],
                }
                for p in self.pages
            ],
        }


def _detection_sort_key(det: Detection):
    return (det.page_id, det.detection_index, det.id)


def _page_sort_key(page: Page):
    return (page.page_number, page.id)


class DetectionSourceResolver:
    """Resolves detections for a page batch against the three tier stores."""

    def __init__(
        self,
        page_store: PageStore,
        draft_store: DetectionStore,
        validated_store: DetectionStore,
        ai_original_store: DetectionStore,
    ) -> None:
        self.page_store = page_store
        self._stores: Dict[DetectionSource, DetectionStore] = {
            DetectionSource.DRAFT: draft_store,
            DetectionSource.VALIDATED: validated_store,
            DetectionSource.AI_ORIGINAL: ai_original_store,
        }

    async def _query_tier(
        self, tier: DetectionSource, page_ids: Sequence[str]
    ) -> Optional[List[Detection]]:
        """Return live rows for the batch, or None when the store is unreachable."""
        try:
            rows = await self._stores[tier].list_by_page_ids(list(page_ids), exclude_deleted=True)
        except UpstreamUnavailableError as e:
            logger.warning(
                "detection tier unavailable, treating as empty",
                extra={"tier": tier.value, "reason": e.message, "page_count": len(page_ids)},
            )
            return None
        wanted = set(page_ids)
        return [r for r in rows if not r.is_deleted and r.page_id in wanted]

    async def resolve_batch(
        self, page_ids: Sequence[str]
    ) -> Tuple[DetectionSource, List[Detection], List[str]]:
        """
        Resolve one batch of page ids.

        Returns (source, detections sorted by page/index/id, unavailable tiers).
        """
        unavailable: List[str] = []
        if not page_ids:
            return DetectionSource.NONE, [], unavailable

        for tier in TIER_ORDER:
            rows = await self._query_tier(tier, page_ids)
            if rows is None:
                unavailable.append(tier.value)
                continue
            if rows:
                logger.info(
                    "detections resolved",
                    extra={"tier": tier.value, "detection_count": len(rows), "page_count": len(page_ids)},
                )
                return tier, sorted(rows, key=_detection_sort_key), unavailable

        return DetectionSource.NONE, [], unavailable

    @timed_async
    async def resolve_detections(self, job_id: str, page_type: Optional[str] = "elevation") -> ResolvedDetections:
        """
        Resolve detections for every page of ``page_type`` in a job.

        Raises NotFoundError when the job does not exist. A job with no
        matching pages resolves to source ``none``.
        """
        if not await self.page_store.job_exists(job_id):
            raise NotFoundError("job", job_id)

        pages = sorted(await self.page_store.get_pages_by_job(job_id, page_type), key=_page_sort_key)
        source, rows, unavailable = await self.resolve_batch([p.id for p in pages])

        by_page: Dict[str, List[Detection]] = {p.id: [] for p in pages}
        for det in rows:
            by_page[det.page_id].append(det)

        return ResolvedDetections(
            detection_source=source,
            pages=[PageDetections(page=p, detections=by_page[p.id]) for p in pages],
            unavailable_tiers=unavailable,
        )
