"""
Celery tasks wrapping the async takeoff pipeline.

Each task opens its own session, runs the pipeline on a fresh event loop and
commits on success.
"""
import logging
import asyncio

from estimator.workers.celery_app import celery_app

logger = logging.getLogger("estimator-celery")


def _run_async(coro):
    """Run an async coroutine in a sync Celery task context (new event loop)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _build_pipeline(session):
    from estimator.config import get_settings
    from estimator.services.detection_resolver import DetectionSourceResolver
    from estimator.services.redetect_client import RedetectClient
    from estimator.services.sql_stores import (
        SqlDerivedStore, SqlPageStore, SqlTakeoffStore, detection_stores,
    )
    from estimator.services.takeoff_pipeline import TakeoffPipeline

    draft, validated, ai_original = detection_stores(session)
    return TakeoffPipeline(
        resolver=DetectionSourceResolver(SqlPageStore(session), draft, validated, ai_original),
        derived_store=SqlDerivedStore(session),
        takeoff_store=SqlTakeoffStore(session),
        draft_writer=draft,
        redetect_client=RedetectClient(),
        fanout_limit=get_settings().page_fanout_limit,
    )


@celery_app.task(bind=True, name="tasks.recalculate_job")
def recalculate_job(self, job_id: str):
    """Rebuild every elevation calc and the job totals for one job."""
    self.update_state(state="PROGRESS", meta={"step": "Resolving detections", "pct": 10})

    async def _run():
        from estimator.db import AsyncSessionLocal
        async with AsyncSessionLocal() as session:
            result = await _build_pipeline(session).recalculate_job(job_id)
            await session.commit()
            return result.to_dict()

    try:
        result = _run_async(_run())
    except Exception as e:
        logger.error(f"Recalculation failed for job {job_id}: {e}")
        raise
    self.update_state(state="PROGRESS", meta={"step": "Complete", "pct": 100})
    return {"status": "success", "job_id": job_id, "job_totals": result["job_totals"]}


@celery_app.task(bind=True, name="tasks.redetect_page")
def redetect_page(self, page_id: str, min_confidence: float = 0.0):
    """Re-run detection for a page, supersede its drafts and recalculate the job."""
    self.update_state(state="PROGRESS", meta={"step": "Calling extraction service", "pct": 10})

    async def _run():
        from estimator.db import AsyncSessionLocal
        async with AsyncSessionLocal() as session:
            result = await _build_pipeline(session).redetect_page(page_id, min_confidence)
            await session.commit()
            return {
                "page_id": page_id,
                "superseded": result.superseded,
                "detection_count": len(result.detections),
            }

    try:
        result = _run_async(_run())
    except Exception as e:
        logger.error(f"Re-detection failed for page {page_id}: {e}")
        raise
    self.update_state(state="PROGRESS", meta={"step": "Complete", "pct": 100})
    return {"status": "success", **result}
