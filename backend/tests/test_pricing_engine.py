"""
test_pricing_engine.py — Unit tests for the takeoff pricing pipeline.

Tests cover:
  - Line extension for material / labor / overhead / paint items
  - Labor burden applied exactly once
  - Legacy blended markup and V2 split markup + project insurance
  - grand_total = subtotal + markup_amount + insurance_amount, always
  - Zero, negative and non-finite quantities
  - Item type inference, soft-deleted items, section totals, price per square

All tests are pure unit tests; no database or external services required.
"""

import math
import pytest

from estimator.models.domain import LineItem
from estimator.services.pricing_config import BurdenRates, PricingMethodology, resolve_pricing_config
from estimator.services.pricing_engine import PricingEngine, compute_estimate_totals, detect_item_type


def _legacy(items, markup=35.0, **kwargs):
    return compute_estimate_totals(items, markup, BurdenRates(), **kwargs)


def _v2(items, markup=26.0, labor_markup=26.0, insurance=24.38, **kwargs):
    return compute_estimate_totals(
        items, markup, BurdenRates(),
        methodology=PricingMethodology.V2,
        labor_markup_percent=labor_markup,
        insurance_rate_per_1000=insurance,
        **kwargs,
    )


# ===========================================================================
# Class 1: Reference scenarios
# ===========================================================================

class TestReferenceScenarios:

    def test_material_line_with_markup(self, scenario_a_item):
        """
        100 SF @ $1.20 material, $0.80 labor, 35 % markup:
            material 120, labor 80, line 200, markup 70, total 270
        """
        totals = _legacy([scenario_a_item])
        line = totals.lines[0]
        assert line.material_extended == pytest.approx(120.0)
        assert line.labor_extended == pytest.approx(80.0)
        assert line.line_total == pytest.approx(200.0)
        assert totals.markup_amount == pytest.approx(70.0)
        assert totals.grand_total == pytest.approx(270.0)

    def test_labor_line_is_burdened_once(self, scenario_b_item):
        """
        10 hrs @ $45 with L&I 12.65 % and unemployment 6.60 %:
            loaded_labor = 10 × 45 × 1.1925 = 536.625
        """
        totals = _legacy([scenario_b_item])
        line = totals.lines[0]
        assert line.loaded_labor == pytest.approx(536.625)
        assert line.line_total == pytest.approx(536.625)
        assert totals.labor_cost == pytest.approx(536.625)

    def test_custom_burden_rates(self, scenario_b_item):
        totals = compute_estimate_totals(
            [scenario_b_item], 0, BurdenRates(li_rate_percent=10, unemployment_rate_percent=0)
        )
        assert totals.labor_cost == pytest.approx(495.0)


# ===========================================================================
# Class 2: Subtotals and methodologies
# ===========================================================================

class TestMethodologies:

    def test_legacy_mixed_subtotals(self, mixed_items):
        """
        material = 120 + paint (40 + 60) = 220
        labor    = 80 + 536.625          = 616.625
        overhead = 450
        subtotal = 1286.625, markup 35 % = 450.31875
        """
        totals = _legacy(mixed_items)
        assert totals.material_cost == pytest.approx(220.0)
        assert totals.labor_cost == pytest.approx(616.625)
        assert totals.overhead_cost == pytest.approx(450.0)
        assert totals.subtotal == pytest.approx(1286.625)
        assert totals.markup_amount == pytest.approx(450.31875)
        assert totals.insurance_amount == 0.0
        assert totals.grand_total == pytest.approx(1736.94375)

    def test_v2_split_markup_and_insurance(self, mixed_items):
        """
        material markup = 220 × 26 %              = 57.2
        labor markup    = (616.625 + 450) × 26 %  = 277.3225
        insurance       = (1286.625 + 334.5225) / 1000 × 24.38
        """
        totals = _v2(mixed_items)
        assert totals.material_markup_amount == pytest.approx(57.2)
        assert totals.labor_markup_amount == pytest.approx(277.3225)
        assert totals.markup_amount == pytest.approx(334.5225)
        assert totals.insurance_amount == pytest.approx((1286.625 + 334.5225) / 1000 * 24.38)
        assert totals.methodology == "v2"

    @pytest.mark.parametrize("runner", [_legacy, _v2])
    def test_grand_total_identity(self, runner, mixed_items):
        totals = runner(mixed_items)
        assert totals.grand_total == totals.subtotal + totals.markup_amount + totals.insurance_amount
        assert totals.subtotal == pytest.approx(
            totals.material_cost + totals.labor_cost + totals.overhead_cost
        )

    def test_v2_labor_markup_defaults_to_material_markup(self, mixed_items):
        totals = compute_estimate_totals(
            mixed_items, 20.0, BurdenRates(), methodology="v2", insurance_rate_per_1000=0.0
        )
        assert totals.labor_markup_percent == 20.0
        assert totals.markup_amount == pytest.approx(totals.subtotal * 0.20)

    def test_paint_labor_folds_into_material(self):
        paint = LineItem(id="p", item_type="paint", quantity=10, material_unit_cost=1.0, labor_unit_cost=2.0)
        totals = _legacy([paint], markup=0)
        assert totals.material_cost == pytest.approx(30.0)
        assert totals.labor_cost == 0.0

    def test_overhead_is_flat_amount(self):
        """Equipment cost on an overhead row is not multiplied by quantity."""
        item = LineItem(id="o", item_type="overhead", quantity=3, equipment_unit_cost=450.0)
        assert _legacy([item], markup=0).overhead_cost == pytest.approx(450.0)


# ===========================================================================
# Class 3: Quantities and validation
# ===========================================================================

class TestQuantities:

    def test_zero_quantity_prices_to_zero_without_warning(self, scenario_a_item):
        scenario_a_item.quantity = 0.0
        totals = _legacy([scenario_a_item])
        assert totals.grand_total == 0.0
        assert totals.warnings == []

    def test_negative_quantity_is_accepted_with_warning(self, scenario_a_item):
        """A credit line: −100 SF → −270 total."""
        scenario_a_item.quantity = -100.0
        totals = _legacy([scenario_a_item])
        assert totals.grand_total == pytest.approx(-270.0)
        assert len(totals.warnings) == 1
        assert totals.warnings[0].field == "quantity"
        assert totals.warnings[0].line_item_id == "li-siding"

    def test_nan_quantity_priced_as_zero(self, scenario_a_item):
        scenario_a_item.quantity = float("nan")
        totals = _legacy([scenario_a_item])
        assert totals.grand_total == 0.0
        assert totals.warnings[0].value == "nan"
        assert math.isfinite(totals.subtotal)

    def test_deleted_items_skipped(self, scenario_a_item):
        deleted = LineItem(id="gone", item_type="material", quantity=1000, material_unit_cost=100, is_deleted=True)
        totals = _legacy([scenario_a_item, deleted])
        assert totals.line_count == 1
        assert totals.grand_total == pytest.approx(270.0)

    def test_empty_takeoff(self):
        totals = _legacy([])
        assert totals.grand_total == 0.0
        assert totals.line_count == 0


# ===========================================================================
# Class 4: Item type inference, sections, defaults
# ===========================================================================

class TestItemType:

    @pytest.mark.parametrize(
        "costs, expected",
        [
            ({"equipment_unit_cost": 10}, "overhead"),
            ({"labor_unit_cost": 10}, "labor"),
            ({"material_unit_cost": 5, "labor_unit_cost": 10}, "material"),
            ({}, "material"),
        ],
    )
    def test_inferred_when_missing(self, costs, expected):
        assert detect_item_type(LineItem(id="x", **costs)) == expected

    def test_stored_type_wins(self):
        assert detect_item_type(LineItem(id="x", item_type="paint", labor_unit_cost=5)) == "paint"


class TestSectionsAndSquares:

    def test_section_totals(self, scenario_a_item, scenario_b_item):
        scenario_a_item.section_id = "siding"
        scenario_b_item.section_id = "labor"
        totals = _legacy([scenario_a_item, scenario_b_item])
        assert totals.section_totals["siding"]["subtotal"] == pytest.approx(200.0)
        assert totals.section_totals["labor"]["labor_cost"] == pytest.approx(536.625)

    def test_price_per_square(self, scenario_a_item):
        totals = _legacy([scenario_a_item], squares=2.0)
        assert totals.price_per_square == pytest.approx(135.0)

    @pytest.mark.parametrize("squares", [None, 0.0, -1.0])
    def test_no_price_per_square_without_positive_squares(self, scenario_a_item, squares):
        assert _legacy([scenario_a_item], squares=squares).price_per_square is None


class TestDefaults:

    def test_missing_rates_recorded(self, scenario_a_item):
        totals = compute_estimate_totals([scenario_a_item], None, None)
        assert totals.markup_percent == 35.0
        assert "markup_percent=35.0" in totals.defaults_applied
        assert "burden_rates=default" in totals.defaults_applied

    def test_engine_from_config_carries_config_defaults(self, scenario_a_item):
        engine = PricingEngine.from_config(resolve_pricing_config(None))
        totals = engine.calculate([scenario_a_item])
        assert "markup_percent=35.0" in totals.defaults_applied
        assert totals.grand_total == pytest.approx(270.0)

    def test_v2_default_markup_same_on_every_entry_point(self, scenario_a_item):
        """Unset V2 markup is 26 % whether priced ad hoc or from a stored takeoff."""
        ad_hoc = compute_estimate_totals([scenario_a_item], None, None, "v2")
        stored = PricingEngine.from_config(resolve_pricing_config({}, None, "v2")).calculate([scenario_a_item])
        assert ad_hoc.markup_percent == stored.markup_percent == 26.0
        assert ad_hoc.labor_markup_percent == stored.labor_markup_percent == 26.0
        assert ad_hoc.grand_total == pytest.approx(stored.grand_total)
        assert "markup_percent=26.0" in ad_hoc.defaults_applied

    def test_to_dict_without_lines(self, scenario_a_item):
        body = _legacy([scenario_a_item]).to_dict(include_lines=False)
        assert "lines" not in body
        assert body["grand_total"] == pytest.approx(270.0)
