"""
Detection & quantity routes

GET  /api/jobs/{job_id}/detections   — resolved detections with their source tier
POST /api/jobs/{job_id}/recalculate  — rebuild elevation calcs and job totals
GET  /api/jobs/{job_id}/totals       — cached job totals
POST /api/pages/{page_id}/redetect   — re-run detection and supersede the page's drafts
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from estimator.api.deps import get_pipeline, get_resolver, http_error
from estimator.models.takeoff_schema import DetectionsResponse, RedetectRequest
from estimator.services.confidence_filter import classify_confidence
from estimator.services.detection_resolver import DetectionSourceResolver
from estimator.services.errors import EstimatorError
from estimator.services.takeoff_pipeline import TakeoffPipeline

router = APIRouter(prefix="/api", tags=["Detections"])
logger = logging.getLogger("estimator-detection-routes")


@router.get("/jobs/{job_id}/detections", response_model=DetectionsResponse)
async def get_job_detections(
    job_id: str,
    page_type: Optional[str] = "elevation",
    min_confidence: Optional[float] = Query(None, ge=0.0, le=1.0),
    show_low_confidence: bool = True,
    resolver: DetectionSourceResolver = Depends(get_resolver),
):
    try:
        resolved = await resolver.resolve_detections(job_id, page_type)
    except EstimatorError as e:
        raise http_error(e)

    body = resolved.to_dict()
    if min_confidence is not None:
        for page in body["pages"]:
            for det in page["detections"]:
                det["confidence_level"] = classify_confidence(
                    det.get("confidence"), min_confidence, show_low_confidence
                ).value
    return DetectionsResponse(job_id=job_id, **body)


@router.post("/jobs/{job_id}/recalculate")
async def recalculate_job(job_id: str, pipeline: TakeoffPipeline = Depends(get_pipeline)):
    try:
        result = await pipeline.recalculate_job(job_id)
    except EstimatorError as e:
        raise http_error(e)
    return result.to_dict()


@router.get("/jobs/{job_id}/totals")
async def get_job_totals(job_id: str, pipeline: TakeoffPipeline = Depends(get_pipeline)):
    totals = await pipeline.derived_store.get_job_totals(job_id)
    if totals is None:
        raise HTTPException(status_code=404, detail=f"No totals for job {job_id}; recalculate first")
    return totals.to_dict()


@router.post("/pages/{page_id}/redetect")
async def redetect_page(
    page_id: str,
    req: RedetectRequest,
    pipeline: TakeoffPipeline = Depends(get_pipeline),
):
    try:
        result = await pipeline.redetect_page(page_id, req.min_confidence)
    except EstimatorError as e:
        logger.warning(f"Re-detection failed for page {page_id}: {e.message}")
        raise http_error(e)
    return {
        "success": True,
        "page_id": page_id,
        "superseded": result.superseded,
        "detection_count": len(result.detections),
        "detections": [d.to_dict() for d in result.detections],
        "recalculation": result.recalculation.to_dict() if result.recalculation else None,
    }
