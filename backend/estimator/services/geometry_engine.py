"""
GeometryEngine — pixel annotations to real-world measurements.

Covers:
  - Rectangle mode (centre/size bounding box)
  - Polygon mode (shapely area and exterior length, optional holes)
  - Triangle heuristic (half the bounding-box area)

``scale_ratio`` is real feet per pixel, so pixel lengths are multiplied by it
and pixel areas by its square. Every function here is pure; a detection whose
inputs are missing, zero or non-finite gets null measurements instead of an
exception so one bad record cannot abort a page.
"""
import math
import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from shapely.geometry import LineString, Polygon

from estimator.models.domain import Detection, Page
from estimator.services.errors import MalformedGeometryError

logger = logging.getLogger("estimator-geometry")

Point = Tuple[float, float]

_INCHES_PER_FOOT: float = 12.0
_MIN_POLYGON_VERTICES: int = 3


@dataclass(frozen=True)
class Measurements:
    real_width_in: Optional[float] = None
    real_height_in: Optional[float] = None
    real_width_ft: Optional[float] = None
    real_height_ft: Optional[float] = None
    area_sf: Optional[float] = None
    perimeter_lf: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.area_sf is None and self.perimeter_lf is None


EMPTY_MEASUREMENTS = Measurements()


# ---------------------------------------------------------------------------
# Input coercion
# ---------------------------------------------------------------------------

def _positive(value: Any) -> Optional[float]:
    """Return value as a finite float > 0, else None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def _point(raw: Any) -> Point:
    if isinstance(raw, dict):
        x, y = raw.get("x"), raw.get("y")
    elif isinstance(raw, (list, tuple)) and len(raw) == 2:
        x, y = raw
    else:
        raise MalformedGeometryError(f"unrecognised vertex {raw!r}")
    try:
        px, py = float(x), float(y)
    except (TypeError, ValueError):
        raise MalformedGeometryError(f"non-numeric vertex {raw!r}")
    if not (math.isfinite(px) and math.isfinite(py)):
        raise MalformedGeometryError(f"non-finite vertex {raw!r}")
    return px, py


def _ring(raw: Any) -> List[Point]:
    if not isinstance(raw, (list, tuple)):
        raise MalformedGeometryError("polygon ring must be a vertex list")
    points = [_point(p) for p in raw]
    if len(points) < _MIN_POLYGON_VERTICES:
        raise MalformedGeometryError(
            f"polygon ring has {len(points)} vertices, need at least {_MIN_POLYGON_VERTICES}"
        )
    return points


def parse_polygon(raw: Any) -> Tuple[List[Point], List[List[Point]]]:
    """
    Parse stored polygon points into (outer_ring, holes).

    Accepts either a plain vertex list or ``{"outer": [...], "holes": [[...]]}``.
    Vertices may be ``{"x": .., "y": ..}`` dicts or ``(x, y)`` pairs.
    Raises MalformedGeometryError for rings with fewer than 3 vertices.
    """
    if isinstance(raw, dict):
        outer = _ring(raw.get("outer") or [])
        holes = [_ring(h) for h in (raw.get("holes") or [])]
        return outer, holes
    return _ring(raw), []


# ---------------------------------------------------------------------------
# Pixel-space primitives
# ---------------------------------------------------------------------------

def polygon_area(points: Sequence[Point]) -> float:
    """Absolute area in pixel², 0 for fewer than 3 points."""
    if len(points) < _MIN_POLYGON_VERTICES:
        return 0.0
    return Polygon(points).area


def polygon_perimeter(points: Sequence[Point]) -> float:
    """Closed-ring perimeter in pixels."""
    if len(points) < 2:
        return 0.0
    return LineString([*points, points[0]]).length


def triangle_perimeter(width: float, height: float) -> float:
    """Perimeter of the isosceles triangle whose base and apex span a bbox."""
    return width + 2.0 * math.hypot(width / 2.0, height)


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------

def _scaled(width_px: float, height_px: float, area_px: float,
            perimeter_px: float, scale: float) -> Measurements:
    width_ft = width_px * scale
    height_ft = height_px * scale
    return Measurements(
        real_width_in=width_ft * _INCHES_PER_FOOT,
        real_height_in=height_ft * _INCHES_PER_FOOT,
        real_width_ft=width_ft,
        real_height_ft=height_ft,
        area_sf=max(0.0, area_px * scale * scale),
        perimeter_lf=max(0.0, perimeter_px * scale),
    )


def convert(detection: Detection, scale_ratio: Any, dpi: Any = None) -> Measurements:
    """
    Convert one detection's pixel geometry to feet/inches/SF/LF.

    Rectangle:  area = w·h·scale², perimeter = 2·(w+h)·scale
    Polygon:    ring area (minus holes)·scale², outer-ring perimeter·scale,
                width/height from the polygon bounding box
    Triangle:   area = bbox_w·bbox_h / 2 · scale²
    """
    scale = _positive(scale_ratio)
    if scale is None:
        return EMPTY_MEASUREMENTS
    if dpi is not None and _positive(dpi) is None:
        return EMPTY_MEASUREMENTS

    if detection.polygon_points:
        try:
            outer, holes = parse_polygon(detection.polygon_points)
        except MalformedGeometryError as e:
            logger.warning(
                "malformed polygon, measurements cleared",
                extra={"detection_id": detection.id, "reason": e.message},
            )
            return EMPTY_MEASUREMENTS
        shape = Polygon(outer, holes)
        min_x, min_y, max_x, max_y = shape.bounds
        width_px, height_px = max_x - min_x, max_y - min_y
        if _positive(width_px) is None or _positive(height_px) is None:
            return EMPTY_MEASUREMENTS
        if detection.is_triangle:
            area_px = width_px * height_px / 2.0
        else:
            area_px = max(0.0, polygon_area(outer) - sum(polygon_area(h) for h in holes))
        return _scaled(width_px, height_px, area_px, shape.exterior.length, scale)

    width_px = _positive(detection.pixel_width)
    height_px = _positive(detection.pixel_height)
    if width_px is None or height_px is None:
        return EMPTY_MEASUREMENTS
    if detection.is_triangle:
        area_px = width_px * height_px / 2.0
        perimeter_px = triangle_perimeter(width_px, height_px)
    else:
        area_px = width_px * height_px
        perimeter_px = 2.0 * (width_px + height_px)
    return _scaled(width_px, height_px, area_px, perimeter_px, scale)


def apply_measurements(detection: Detection, page: Page) -> Detection:
    """Return a copy of the detection with derived fields set from the page scale."""
    m = convert(detection, page.scale_ratio, page.dpi)
    return replace(
        detection,
        real_width_in=m.real_width_in,
        real_height_in=m.real_height_in,
        real_width_ft=m.real_width_ft,
        real_height_ft=m.real_height_ft,
        area_sf=m.area_sf,
        perimeter_lf=m.perimeter_lf,
    )


def convert_page_detections(page: Page, detections: Iterable[Detection]) -> List[Detection]:
    return [apply_measurements(d, page) for d in detections]
