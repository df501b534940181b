"""
Takeoff pricing routes

POST /api/takeoffs/calculate              — price an ad-hoc line item list (stateless)
GET  /api/takeoffs/{takeoff_id}           — current takeoff priced from its live line items
PUT  /api/takeoffs/{takeoff_id}/line-items — save edits and recompute (409 on stale version)
GET  /api/takeoffs/{takeoff_id}/export    — xlsx with the exact priced figures
"""
import uuid
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from estimator.api.deps import get_pipeline, http_error
from estimator.models.takeoff_schema import CalculateRequest, SaveLineItemsRequest
from estimator.services.errors import ConcurrencyConflictError, EstimatorError
from estimator.services.estimate_export import build_export_payload, write_estimate_workbook
from estimator.services.pricing_engine import compute_estimate_totals
from estimator.services.takeoff_pipeline import PricedTakeoff, TakeoffPipeline

router = APIRouter(prefix="/api/takeoffs", tags=["Takeoffs"])
logger = logging.getLogger("estimator-takeoff-routes")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _priced_response(priced: PricedTakeoff) -> dict:
    return {
        "takeoff": priced.takeoff,
        "version": priced.version,
        "totals": priced.totals.to_dict(),
        "export": build_export_payload(priced.totals, priced.siding_squares),
    }


@router.post("/calculate")
async def calculate(req: CalculateRequest):
    items = [item.to_domain(f"line-{i}") for i, item in enumerate(req.line_items)]
    totals = compute_estimate_totals(
        items,
        markup_percent=req.markup_percent,
        burden_rates=req.burden_rates,
        methodology=req.methodology,
        squares=req.squares,
        labor_markup_percent=req.labor_markup_percent,
        insurance_rate_per_1000=req.insurance_rate_per_1000,
    )
    return totals.to_dict()


@router.get("/{takeoff_id}")
async def get_takeoff(takeoff_id: str, pipeline: TakeoffPipeline = Depends(get_pipeline)):
    try:
        priced = await pipeline.price_takeoff(takeoff_id)
    except EstimatorError as e:
        raise http_error(e)
    return _priced_response(priced)


@router.put("/{takeoff_id}/line-items")
async def save_line_items(
    takeoff_id: str,
    req: SaveLineItemsRequest,
    pipeline: TakeoffPipeline = Depends(get_pipeline),
):
    items = [item.to_domain(str(uuid.uuid4())) for item in req.line_items]
    try:
        priced = await pipeline.save_line_items(takeoff_id, items, req.expected_version)
    except ConcurrencyConflictError as e:
        logger.info(f"Stale takeoff save rejected: {e.message}")
        raise http_error(e)
    except EstimatorError as e:
        raise http_error(e)
    return _priced_response(priced)


@router.get("/{takeoff_id}/export")
async def export_takeoff(takeoff_id: str, pipeline: TakeoffPipeline = Depends(get_pipeline)):
    try:
        priced = await pipeline.price_takeoff(takeoff_id)
    except EstimatorError as e:
        raise http_error(e)
    content = write_estimate_workbook(priced.totals, priced.siding_squares)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="takeoff_{takeoff_id[:8]}.xlsx"'},
    )
