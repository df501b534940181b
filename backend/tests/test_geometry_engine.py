"""
test_geometry_engine.py — Unit tests for pixel → real-world conversion.

Tests cover:
  - Rectangle mode area / perimeter / feet / inches
  - Polygon mode (shoelace area, closed-ring perimeter, holes, bbox width/height)
  - Triangle heuristic in both modes
  - Invalid scale / dpi / malformed polygons → null measurements, never an exception
  - apply_measurements / convert_page_detections copy derived fields onto detections

All tests are pure unit tests; no database or external services required.
"""

import math
import pytest

from estimator.models.domain import Detection, Page
from estimator.services.errors import MalformedGeometryError
from estimator.services.geometry_engine import (
    EMPTY_MEASUREMENTS,
    apply_measurements,
    convert,
    convert_page_detections,
    parse_polygon,
    polygon_area,
    polygon_perimeter,
    triangle_perimeter,
)


def _det(**kwargs):
    return Detection(id="d1", page_id="p1", **kwargs)


# ===========================================================================
# Class 1: Rectangle mode
# ===========================================================================

class TestRectangleMode:

    def test_area_and_perimeter(self):
        """
        100×50 px at 0.1 ft/px:
            10 ft × 5 ft → area 50 SF, perimeter 2·(10+5) = 30 LF
        """
        m = convert(_det(pixel_width=100, pixel_height=50), 0.1)
        assert m.area_sf == pytest.approx(50.0)
        assert m.perimeter_lf == pytest.approx(30.0)
        assert m.real_width_ft == pytest.approx(10.0)
        assert m.real_height_ft == pytest.approx(5.0)

    def test_inches_are_feet_times_twelve(self):
        m = convert(_det(pixel_width=100, pixel_height=50), 0.1)
        assert m.real_width_in == pytest.approx(120.0)
        assert m.real_height_in == pytest.approx(60.0)

    def test_area_scales_with_square_of_scale(self):
        """Doubling scale_ratio quadruples area and doubles perimeter."""
        det = _det(pixel_width=40, pixel_height=30)
        small, large = convert(det, 0.05), convert(det, 0.1)
        assert large.area_sf == pytest.approx(small.area_sf * 4)
        assert large.perimeter_lf == pytest.approx(small.perimeter_lf * 2)

    def test_triangle_area_is_half_bbox(self):
        """
        Triangle 100×50 px at 0.1 ft/px: area = 10·5 / 2 = 25 SF.
        Perimeter: base 10 + two sides hypot(5, 5) each.
        """
        m = convert(_det(pixel_width=100, pixel_height=50, is_triangle=True), 0.1)
        assert m.area_sf == pytest.approx(25.0)
        assert m.perimeter_lf == pytest.approx(10.0 + 2 * math.hypot(5.0, 5.0))

    def test_dpi_does_not_change_result(self):
        det = _det(pixel_width=100, pixel_height=50)
        assert convert(det, 0.1, dpi=72) == convert(det, 0.1, dpi=300)


# ===========================================================================
# Class 2: Polygon mode
# ===========================================================================

class TestPolygonMode:

    def test_square_polygon_matches_rectangle(self):
        pts = [{"x": 0, "y": 0}, {"x": 100, "y": 0}, {"x": 100, "y": 50}, {"x": 0, "y": 50}]
        poly = convert(_det(polygon_points=pts), 0.1)
        rect = convert(_det(pixel_width=100, pixel_height=50), 0.1)
        assert poly.area_sf == pytest.approx(rect.area_sf)
        assert poly.perimeter_lf == pytest.approx(rect.perimeter_lf)

    def test_polygon_takes_precedence_over_bbox(self):
        """When polygon points exist the stored pixel box is ignored."""
        pts = [(0, 0), (10, 0), (10, 10), (0, 10)]
        m = convert(_det(polygon_points=pts, pixel_width=999, pixel_height=999), 1.0)
        assert m.area_sf == pytest.approx(100.0)
        assert m.real_width_ft == pytest.approx(10.0)

    def test_l_shape_uses_shoelace_not_bbox(self):
        """
        L-shape inside a 20×20 box with a 10×10 notch removed:
            area = 400 − 100 = 300 px², perimeter = 80 px
        """
        pts = [(0, 0), (20, 0), (20, 10), (10, 10), (10, 20), (0, 20)]
        m = convert(_det(polygon_points=pts), 1.0)
        assert m.area_sf == pytest.approx(300.0)
        assert m.perimeter_lf == pytest.approx(80.0)
        assert m.real_width_ft == pytest.approx(20.0)
        assert m.real_height_ft == pytest.approx(20.0)

    def test_holes_are_subtracted(self):
        """20×20 outer ring minus a 5×5 hole = 375 px²; perimeter is the outer ring only."""
        polygon = {
            "outer": [(0, 0), (20, 0), (20, 20), (0, 20)],
            "holes": [[(5, 5), (10, 5), (10, 10), (5, 10)]],
        }
        m = convert(_det(polygon_points=polygon), 1.0)
        assert m.area_sf == pytest.approx(375.0)
        assert m.perimeter_lf == pytest.approx(80.0)

    def test_vertex_order_does_not_change_area(self):
        cw = [(0, 0), (0, 10), (10, 10), (10, 0)]
        ccw = list(reversed(cw))
        assert polygon_area(cw) == pytest.approx(100.0)
        assert polygon_area(ccw) == pytest.approx(100.0)

    def test_triangle_polygon_uses_half_bbox(self):
        pts = [(0, 0), (10, 0), (7, 10)]
        m = convert(_det(polygon_points=pts, is_triangle=True), 1.0)
        assert m.area_sf == pytest.approx(50.0)

    def test_primitives_on_degenerate_input(self):
        assert polygon_area([(0, 0), (1, 1)]) == 0.0
        assert polygon_perimeter([(0, 0)]) == 0.0
        assert triangle_perimeter(6.0, 4.0) == pytest.approx(6.0 + 2 * 5.0)


# ===========================================================================
# Class 3: Invalid input
# ===========================================================================

class TestInvalidInput:

    @pytest.mark.parametrize("scale", [None, 0, -0.1, float("nan"), float("inf"), "abc"])
    def test_bad_scale_gives_null_measurements(self, scale):
        m = convert(_det(pixel_width=100, pixel_height=50), scale)
        assert m == EMPTY_MEASUREMENTS
        assert m.is_empty

    @pytest.mark.parametrize("dpi", [0, -72, float("nan")])
    def test_bad_dpi_gives_null_measurements(self, dpi):
        assert convert(_det(pixel_width=100, pixel_height=50), 0.1, dpi=dpi).is_empty

    def test_missing_dimensions(self):
        assert convert(_det(pixel_width=100), 0.1).is_empty
        assert convert(_det(pixel_width=0, pixel_height=10), 0.1).is_empty

    def test_two_vertex_polygon_is_null_not_error(self):
        m = convert(_det(polygon_points=[(0, 0), (10, 10)]), 0.1)
        assert m.is_empty
        assert m.perimeter_lf is None

    def test_collinear_polygon_is_null(self):
        """Zero-height bbox → nothing measurable."""
        assert convert(_det(polygon_points=[(0, 0), (5, 0), (10, 0)]), 1.0).is_empty

    def test_parse_polygon_raises_for_short_ring(self):
        with pytest.raises(MalformedGeometryError):
            parse_polygon([{"x": 0, "y": 0}, {"x": 1, "y": 1}])

    def test_parse_polygon_raises_for_non_numeric_vertex(self):
        with pytest.raises(MalformedGeometryError):
            parse_polygon([{"x": "a", "y": 0}, {"x": 1, "y": 1}, {"x": 2, "y": 0}])

    def test_parse_polygon_accepts_dict_and_pairs(self):
        outer, holes = parse_polygon([{"x": 0, "y": 0}, [4, 0], (4, 3)])
        assert outer == [(0.0, 0.0), (4.0, 0.0), (4.0, 3.0)]
        assert holes == []


# ===========================================================================
# Class 4: Applying measurements to detections
# ===========================================================================

class TestApplyMeasurements:

    def test_apply_sets_derived_fields_without_mutating(self):
        page = Page(id="p1", job_id="j1", scale_ratio=0.1)
        det = _det(pixel_width=100, pixel_height=50)
        measured = apply_measurements(det, page)
        assert measured.area_sf == pytest.approx(50.0)
        assert measured.perimeter_lf == pytest.approx(30.0)
        assert det.area_sf is None

    def test_apply_clears_stale_values_when_scale_missing(self):
        page = Page(id="p1", job_id="j1", scale_ratio=None)
        det = _det(pixel_width=100, pixel_height=50, area_sf=999.0)
        assert apply_measurements(det, page).area_sf is None

    def test_convert_page_detections_preserves_order(self):
        page = Page(id="p1", job_id="j1", scale_ratio=1.0)
        dets = [
            Detection(id="a", page_id="p1", pixel_width=1, pixel_height=1),
            Detection(id="b", page_id="p1", pixel_width=2, pixel_height=2),
        ]
        out = convert_page_detections(page, dets)
        assert [d.id for d in out] == ["a", "b"]
        assert [d.area_sf for d in out] == pytest.approx([1.0, 4.0])
