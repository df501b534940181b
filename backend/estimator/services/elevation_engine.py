"""
ElevationEngine — roll one elevation page's detections into quantities.

Covers:
  - Counts by detection class
  - Gross facade, opening and net siding areas (SF)
  - Head / jamb / sill linear footage for windows and doors
  - Garage head, gable rake, roof eave and roof rake footage
  - Mean detection confidence

The calc is rebuilt from scratch on every call. Measurements are derived from
the page scale here rather than trusted from stored detection columns, and
all sums go through ``math.fsum`` so the result does not depend on the
order detections arrive in.
"""
import math
import logging
from collections import Counter
from typing import Dict, Iterable, List

from estimator.models.domain import Detection, ElevationCalc, Page
from estimator.services.confidence_filter import effective_confidence
from estimator.services.geometry_engine import Measurements, convert
from estimator.services.perf_monitor import timed

logger = logging.getLogger("estimator-elevation")

FACADE_CLASSES = ("siding", "exterior_wall")
OPENING_CLASSES = ("window", "door", "garage")


def _width(m: Measurements) -> float:
    return m.real_width_ft or 0.0


def _height(m: Measurements) -> float:
    return m.real_height_ft or 0.0


def _area(m: Measurements) -> float:
    return m.area_sf or 0.0


def _rake(m: Measurements) -> float:
    """Both sloped edges of a triangle spanning the measured width and height."""
    if m.real_width_ft is None or m.real_height_ft is None:
        return 0.0
    return 2.0 * math.hypot(m.real_width_ft / 2.0, m.real_height_ft)


def _sum(values: Iterable[float]) -> float:
    return math.fsum(values)


@timed
def compute_elevation_calc(page: Page, detections: Iterable[Detection]) -> ElevationCalc:
    """
    Build the ElevationCalc for ``page`` from its detections.

    Deleted detections are ignored. ``net_siding_sf`` is floored at zero when
    openings exceed the gross facade area.
    """
    live: List[Detection] = [d for d in detections if not d.is_deleted]
    measured = [(d, convert(d, page.scale_ratio, page.dpi)) for d in live]

    by_class: Dict[str, List[Measurements]] = {}
    for det, m in measured:
        by_class.setdefault(det.detection_class, []).append(m)

    def of(*classes: str) -> List[Measurements]:
        out: List[Measurements] = []
        for cls in classes:
            out.extend(by_class.get(cls, []))
        return out

    windows, doors, garages = of("window"), of("door"), of("garage")
    gables, roofs = of("gable"), of("roof")

    gross_facade_sf = _sum(_area(m) for m in of(*FACADE_CLASSES))
    window_area_sf = _sum(_area(m) for m in windows)
    door_area_sf = _sum(_area(m) for m in doors)
    garage_area_sf = _sum(_area(m) for m in garages)
    total_openings_sf = _sum((window_area_sf, door_area_sf, garage_area_sf))

    triangle_roofs = [m for det, m in measured if det.detection_class == "roof" and det.is_triangle]

    counts = Counter(d.detection_class for d in live)

    calc = ElevationCalc(
        page_id=page.id,
        job_id=page.job_id,
        elevation_name=page.elevation_name,
        window_count=counts.get("window", 0),
        door_count=counts.get("door", 0),
        garage_count=counts.get("garage", 0),
        gable_count=counts.get("gable", 0),
        roof_count=counts.get("roof", 0),
        exterior_wall_count=sum(counts.get(c, 0) for c in FACADE_CLASSES),
        class_counts=dict(sorted(counts.items())),
        gross_facade_sf=gross_facade_sf,
        window_area_sf=window_area_sf,
        door_area_sf=door_area_sf,
        garage_area_sf=garage_area_sf,
        total_openings_sf=total_openings_sf,
        net_siding_sf=max(0.0, gross_facade_sf - total_openings_sf),
        window_perimeter_lf=_sum(m.perimeter_lf or 0.0 for m in windows),
        window_head_lf=_sum(_width(m) for m in windows),
        window_jamb_lf=_sum(2.0 * _height(m) for m in windows),
        window_sill_lf=_sum(_width(m) for m in windows),
        door_perimeter_lf=_sum(m.perimeter_lf or 0.0 for m in doors),
        door_head_lf=_sum(_width(m) for m in doors),
        door_jamb_lf=_sum(2.0 * _height(m) for m in doors),
        door_sill_lf=_sum(_width(m) for m in doors),
        garage_head_lf=_sum(_width(m) for m in garages),
        gable_rake_lf=_sum(_rake(m) for m in gables),
        roof_eave_lf=_sum(_width(m) for m in roofs),
        roof_rake_lf=_sum(_rake(m) for m in triangle_roofs),
        scale_ratio=page.scale_ratio,
        dpi=page.dpi,
        confidence_avg=(
            _sum(effective_confidence(d.confidence) for d in live) / len(live) if live else None
        ),
        detection_count=len(live),
    )

    unmeasured = sum(1 for _, m in measured if m.is_empty)
    if unmeasured:
        logger.warning(
            "detections without measurable geometry",
            extra={"page_id": page.id, "unmeasured": unmeasured, "detection_count": len(live)},
        )
    return calc

