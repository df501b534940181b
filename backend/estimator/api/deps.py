"""FastAPI dependencies wiring request-scoped stores into the pipeline."""
from fastapi import Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from estimator.config import get_settings
from estimator.db import get_db
from estimator.services.detection_resolver import DetectionSourceResolver
from estimator.services.errors import EstimatorError
from estimator.services.redetect_client import RedetectClient
from estimator.services.sql_stores import (
    SqlDerivedStore,
    SqlPageStore,
    SqlTakeoffStore,
    detection_stores,
)
from estimator.services.takeoff_pipeline import TakeoffPipeline


def http_error(e: EstimatorError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_dict())


async def get_resolver(db: AsyncSession = Depends(get_db)) -> DetectionSourceResolver:
    draft, validated, ai_original = detection_stores(db)
    return DetectionSourceResolver(SqlPageStore(db), draft, validated, ai_original)


def get_redetect_client() -> RedetectClient:
    return RedetectClient()


async def get_pipeline(
    db: AsyncSession = Depends(get_db),
    redetect_client: RedetectClient = Depends(get_redetect_client),
) -> TakeoffPipeline:
    draft, validated, ai_original = detection_stores(db)
    resolver = DetectionSourceResolver(SqlPageStore(db), draft, validated, ai_original)
    return TakeoffPipeline(
        resolver=resolver,
        derived_store=SqlDerivedStore(db),
        takeoff_store=SqlTakeoffStore(db),
        draft_writer=draft,
        redetect_client=redetect_client,
        fanout_limit=get_settings().page_fanout_limit,
    )
