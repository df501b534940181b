"""
JobTotalsEngine — fold elevation calcs into one job-level totals row.

Each elevation's contribution is kept under its page id. Folding a calc for a
page that is already in ``elevations_processed`` replaces that page's old
contribution instead of adding to it, and every total is re-summed from the
contributions, so folding the same calcs twice changes nothing.
"""
import math
import logging
from typing import Dict, Iterable, Optional

from estimator.models.domain import ElevationCalc, JobTotals
from estimator.services.perf_monitor import timed

logger = logging.getLogger("estimator-job-totals")

# Bump when any elevation or totals formula changes
CALCULATION_VERSION = "2.1"

SF_PER_SQUARE: float = 100.0

# JobTotals field -> ElevationCalc field
_TOTAL_FIELDS: Dict[str, str] = {
    "total_windows": "window_count",
    "total_doors": "door_count",
    "total_garages": "garage_count",
    "total_gables": "gable_count",
    "total_gross_facade_sf": "gross_facade_sf",
    "total_openings_sf": "total_openings_sf",
    "total_net_siding_sf": "net_siding_sf",
    "total_window_head_lf": "window_head_lf",
    "total_window_jamb_lf": "window_jamb_lf",
    "total_window_sill_lf": "window_sill_lf",
    "total_window_perimeter_lf": "window_perimeter_lf",
    "total_door_head_lf": "door_head_lf",
    "total_door_jamb_lf": "door_jamb_lf",
    "total_door_perimeter_lf": "door_perimeter_lf",
    "total_garage_head_lf": "garage_head_lf",
    "total_gable_rake_lf": "gable_rake_lf",
    "total_roof_eave_lf": "roof_eave_lf",
}

_COUNT_FIELDS = frozenset({"total_windows", "total_doors", "total_garages", "total_gables"})


def _contribution(calc: ElevationCalc) -> Dict[str, float]:
    return {total: float(getattr(calc, source) or 0.0) for total, source in _TOTAL_FIELDS.items()}


def _carried_contributions(existing: Optional[JobTotals]) -> Dict[str, Dict[str, float]]:
    if existing is None:
        return {}
    if existing.calculation_version != CALCULATION_VERSION:
        logger.warning(
            "discarding job totals from another calculation version",
            extra={
                "job_id": existing.job_id,
                "stored_version": existing.calculation_version,
                "current_version": CALCULATION_VERSION,
            },
        )
        return {}
    missing = set(existing.elevations_processed) - set(existing.contributions)
    if missing:
        logger.warning(
            "job totals missing per-elevation contributions, dropping them",
            extra={"job_id": existing.job_id, "elevations": sorted(missing)},
        )
    return {k: dict(v) for k, v in existing.contributions.items()}


@timed
def compute_job_totals(
    existing_totals: Optional[JobTotals],
    new_elevation_calcs: Iterable[ElevationCalc],
    job_id: Optional[str] = None,
) -> JobTotals:
    """
    Fold ``new_elevation_calcs`` into ``existing_totals`` (which may be None).

    Replace-then-add: a calc for an already-processed elevation swaps out that
    elevation's previous contribution. Raises ValueError if a calc belongs to
    another job.
    """
    calcs = list(new_elevation_calcs)
    if job_id is None:
        if existing_totals is not None:
            job_id = existing_totals.job_id
        elif calcs:
            job_id = calcs[0].job_id
        else:
            raise ValueError("job_id is required when there are no totals or calcs")

    contributions = _carried_contributions(existing_totals)
    replaced = 0
    for calc in calcs:
        if calc.job_id != job_id:
            raise ValueError(f"elevation {calc.page_id} belongs to job {calc.job_id}, not {job_id}")
        if calc.page_id in contributions:
            replaced += 1
        contributions[calc.page_id] = _contribution(calc)

    processed = sorted(contributions)
    totals = JobTotals(
        job_id=job_id,
        elevation_count=len(processed),
        elevations_processed=processed,
        calculation_version=CALCULATION_VERSION,
        contributions={page_id: contributions[page_id] for page_id in processed},
    )
    for name in _TOTAL_FIELDS:
        value = math.fsum(contributions[page_id][name] for page_id in processed)
        setattr(totals, name, int(value) if name in _COUNT_FIELDS else value)
    totals.siding_squares = totals.total_net_siding_sf / SF_PER_SQUARE

    logger.info(
        "job totals recomputed",
        extra={"job_id": job_id, "elevations": len(processed), "replaced": replaced},
    )
    return totals
