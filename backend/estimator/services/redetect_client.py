"""Client for the external extraction service's re-detection endpoint."""
import logging
import uuid
from typing import Any, Dict, List, Optional

import httpx

from estimator.config import get_settings
from estimator.models.domain import Detection, Page
from estimator.services.errors import ErrorCode, RedetectionError

logger = logging.getLogger("estimator-redetect")


class RedetectClient:
    """POSTs a page image to ``{base_url}/redetect`` and returns fresh draft detections."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.extraction_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.redetect_timeout_seconds
        self._transport = transport

    async def redetect(self, page: Page, min_confidence: float = 0.0) -> List[Detection]:
        if not self.base_url:
            raise RedetectionError(
                "extraction service URL is not configured", page.id, ErrorCode.REDETECTION_UNAVAILABLE
            )
        payload = {
            "page_id": page.id,
            "job_id": page.job_id,
            "image_url": page.original_image_url or page.image_url,
            "min_confidence": min_confidence or 0.0,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(f"{self.base_url}/redetect", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Re-detection request failed for page {page.id}: {e}")
            raise RedetectionError(f"re-detection request failed: {e}", page.id)

        if resp.status_code == 404:
            raise RedetectionError(
                "re-detection endpoint not available on extraction service",
                page.id,
                ErrorCode.REDETECTION_UNAVAILABLE,
            )
        if resp.status_code >= 400:
            logger.error(
                "re-detection service error",
                extra={"page_id": page.id, "http_status": resp.status_code},
            )
            raise RedetectionError(f"extraction service returned {resp.status_code}", page.id)

        try:
            body: Dict[str, Any] = resp.json()
        except ValueError:
            raise RedetectionError("extraction service returned invalid JSON", page.id)
        if not body.get("success", False):
            raise RedetectionError(body.get("error") or "re-detection unsuccessful", page.id)

        return [self._to_detection(page, raw, idx) for idx, raw in enumerate(body.get("detections") or [])]

    @staticmethod
    def _to_detection(page: Page, raw: Dict[str, Any], index: int) -> Detection:
        return Detection(
            id=str(uuid.uuid4()),
            page_id=page.id,
            job_id=page.job_id,
            detection_class=raw.get("class"),
            detection_index=index,
            confidence=raw.get("confidence"),
            pixel_x=raw.get("pixel_x"),
            pixel_y=raw.get("pixel_y"),
            pixel_width=raw.get("pixel_width"),
            pixel_height=raw.get("pixel_height"),
            polygon_points=raw.get("polygon_points"),
            is_triangle=bool(raw.get("is_triangle", False)),
            status="auto",
        )
