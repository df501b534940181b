"""
PricingEngine — takeoff line items to a priced estimate.

Stages (each a pure function of the previous stage's output):
  1. Extend     — per-line material / labor / burdened labor / overhead amounts
  2. Subtotal   — material, labor and overhead cost across the takeoff
  3. Markup     — LEGACY: one blended markup on the whole subtotal
                  V2:     material markup on material, labor markup on
                          labor + overhead, plus project insurance
  4. Total      — grand_total = subtotal + markup_amount + insurance_amount

All sums use ``math.fsum`` and nothing is rounded here; rounding is a
presentation concern. Stored totals are a cache of this computation.
"""
import math
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Optional, Union

from estimator.models.domain import LINE_ITEM_TYPES, LineItem
from estimator.services.errors import ValidationFailure
from estimator.services.perf_monitor import timed
from estimator.services.pricing_config import (
    DEFAULT_INSURANCE_RATE_PER_1000,
    BurdenRates,
    PricingConfig,
    PricingMethodology,
    default_markup_for,
)

logger = logging.getLogger("estimator-pricing")


def detect_item_type(item: LineItem) -> str:
    """
    Use the stored item_type, or infer it from which unit costs are set:
    equipment only → overhead, labor without material → labor, else material.
    """
    if item.item_type in LINE_ITEM_TYPES:
        return item.item_type
    has_material = item.material_unit_cost > 0
    has_labor = item.labor_unit_cost > 0
    has_equipment = item.equipment_unit_cost > 0
    if has_equipment and not has_material and not has_labor:
        return "overhead"
    if has_labor and not has_material:
        return "labor"
    return "material"


@dataclass
class ExtendedLine:
    line_item_id: str
    item_type: str
    description: str = ""
    quantity: float = 0.0
    unit: str = "EA"
    material_unit_cost: float = 0.0
    labor_unit_cost: float = 0.0
    equipment_unit_cost: float = 0.0
    material_extended: float = 0.0
    labor_extended: float = 0.0
    loaded_labor: float = 0.0
    overhead_amount: float = 0.0
    line_total: float = 0.0
    section_id: Optional[str] = None
    presentation_group: Optional[str] = None
    sort_order: int = 0


@dataclass
class CategorySubtotals:
    material_cost: float = 0.0
    labor_cost: float = 0.0
    overhead_cost: float = 0.0
    subtotal: float = 0.0


@dataclass
class EstimateTotals:
    methodology: str
    material_cost: float
    labor_cost: float
    overhead_cost: float
    subtotal: float
    markup_percent: float
    labor_markup_percent: float
    material_markup_amount: float
    labor_markup_amount: float
    markup_amount: float
    insurance_rate_per_1000: float
    insurance_amount: float
    grand_total: float
    squares: Optional[float] = None
    price_per_square: Optional[float] = None
    line_count: int = 0
    lines: List[ExtendedLine] = field(default_factory=list)
    section_totals: Dict[str, Dict[str, float]] = field(default_factory=dict)
    warnings: List[ValidationFailure] = field(default_factory=list)
    defaults_applied: List[str] = field(default_factory=list)

    def to_dict(self, include_lines: bool = True) -> Dict[str, Any]:
        out = asdict(self)
        if not include_lines:
            out.pop("lines")
        return out


class PricingEngine:
    """Runs the four pricing stages for one methodology and rate set."""

    def __init__(
        self,
        markup_percent: Optional[float] = None,
        burden_rates: Optional[BurdenRates] = None,
        methodology: Union[PricingMethodology, str] = PricingMethodology.LEGACY,
        labor_markup_percent: Optional[float] = None,
        insurance_rate_per_1000: Optional[float] = None,
    ) -> None:
        self.defaults_applied: List[str] = []
        self.methodology = PricingMethodology(methodology)

        if markup_percent is None:
            markup_percent = default_markup_for(self.methodology)
            self.defaults_applied.append(f"markup_percent={markup_percent}")
        self.markup_percent: float = float(markup_percent)
        self.labor_markup_percent: float = float(
            self.markup_percent if labor_markup_percent is None else labor_markup_percent
        )

        if burden_rates is None:
            self.defaults_applied.append("burden_rates=default")
            burden_rates = BurdenRates()
        self.burden: BurdenRates = burden_rates

        if insurance_rate_per_1000 is None:
            if self.methodology == PricingMethodology.V2:
                self.defaults_applied.append(f"insurance_rate_per_1000={DEFAULT_INSURANCE_RATE_PER_1000}")
            insurance_rate_per_1000 = DEFAULT_INSURANCE_RATE_PER_1000
        self.insurance_rate_per_1000: float = float(insurance_rate_per_1000)

    @classmethod
    def from_config(cls, config: PricingConfig) -> "PricingEngine":
        engine = cls(
            markup_percent=config.markup_percent,
            burden_rates=config.burden,
            methodology=config.methodology,
            labor_markup_percent=config.labor_markup_percent,
            insurance_rate_per_1000=config.insurance_rate_per_1000,
        )
        engine.defaults_applied = list(config.defaults_applied) + engine.defaults_applied
        return engine

    # ------------------------------------------------------------------
    # 1. Extend
    # ------------------------------------------------------------------

    def extend_line(self, item: LineItem, warnings: List[ValidationFailure]) -> ExtendedLine:
        item_type = detect_item_type(item)
        qty = item.quantity
        if not math.isfinite(qty):
            warnings.append(ValidationFailure(item.id, "quantity", "non-finite quantity priced as 0", str(qty)))
            qty = 0.0
        elif qty < 0:
            warnings.append(ValidationFailure(item.id, "quantity", "negative quantity accepted", qty))

        line = ExtendedLine(
            line_item_id=item.id,
            item_type=item_type,
            description=item.description,
            quantity=qty,
            unit=item.unit,
            material_unit_cost=item.material_unit_cost,
            labor_unit_cost=item.labor_unit_cost,
            equipment_unit_cost=item.equipment_unit_cost,
            section_id=item.section_id,
            presentation_group=item.presentation_group,
            sort_order=item.sort_order,
        )
        if item_type in ("material", "paint"):
            line.material_extended = qty * item.material_unit_cost
            line.labor_extended = qty * item.labor_unit_cost
        elif item_type == "labor":
            line.loaded_labor = qty * item.labor_unit_cost * self.burden.burden_factor
        else:
            # Overhead rows carry a flat dollar amount, not a unit rate
            line.overhead_amount = item.equipment_unit_cost
        line.line_total = math.fsum(
            (line.material_extended, line.labor_extended, line.loaded_labor, line.overhead_amount)
        )
        return line

    def extend(self, items: Iterable[LineItem]):
        """Stage 1. Soft-deleted items are skipped."""
        warnings: List[ValidationFailure] = []
        lines = [self.extend_line(i, warnings) for i in items if not i.is_deleted]
        return lines, warnings

    # ------------------------------------------------------------------
    # 2. Subtotal
    # ------------------------------------------------------------------

    @staticmethod
    def subtotal(lines: Iterable[ExtendedLine]) -> CategorySubtotals:
        material: List[float] = []
        labor: List[float] = []
        overhead: List[float] = []
        for line in lines:
            if line.item_type == "material":
                material.append(line.material_extended)
                labor.append(line.labor_extended)
            elif line.item_type == "paint":
                # Paint is priced as one material+labor unit
                material.append(line.material_extended)
                material.append(line.labor_extended)
            elif line.item_type == "labor":
                labor.append(line.loaded_labor)
            else:
                overhead.append(line.overhead_amount)
        result = CategorySubtotals(
            material_cost=math.fsum(material),
            labor_cost=math.fsum(labor),
            overhead_cost=math.fsum(overhead),
        )
        result.subtotal = math.fsum((result.material_cost, result.labor_cost, result.overhead_cost))
        return result

    # ------------------------------------------------------------------
    # 3. Markup
    # ------------------------------------------------------------------

    def markup(self, sub: CategorySubtotals) -> Dict[str, float]:
        if self.methodology == PricingMethodology.LEGACY:
            blended = sub.subtotal * self.markup_percent / 100.0
            return {
                "material_markup_amount": 0.0,
                "labor_markup_amount": 0.0,
                "markup_amount": blended,
                "insurance_amount": 0.0,
            }
        material_markup = sub.material_cost * self.markup_percent / 100.0
        labor_markup = (sub.labor_cost + sub.overhead_cost) * self.labor_markup_percent / 100.0
        markup_amount = material_markup + labor_markup
        insurance = (sub.subtotal + markup_amount) / 1000.0 * self.insurance_rate_per_1000
        return {
            "material_markup_amount": material_markup,
            "labor_markup_amount": labor_markup,
            "markup_amount": markup_amount,
            "insurance_amount": insurance,
        }

    # ------------------------------------------------------------------
    # 4. Full rollup
    # ------------------------------------------------------------------

    @timed
    def calculate(self, items: Iterable[LineItem], squares: Optional[float] = None) -> EstimateTotals:
        lines, warnings = self.extend(items)
        sub = self.subtotal(lines)
        marks = self.markup(sub)
        grand_total = sub.subtotal + marks["markup_amount"] + marks["insurance_amount"]

        section_totals: Dict[str, Dict[str, float]] = {}
        section_ids = sorted({l.section_id for l in lines if l.section_id is not None})
        for section_id in section_ids:
            s = self.subtotal(l for l in lines if l.section_id == section_id)
            section_totals[section_id] = asdict(s)

        price_per_square = None
        if squares is not None and math.isfinite(squares) and squares > 0:
            price_per_square = grand_total / squares

        if warnings:
            logger.warning(
                "line items priced with warnings",
                extra={"warning_count": len(warnings)},
            )

        return EstimateTotals(
            methodology=self.methodology.value,
            material_cost=sub.material_cost,
            labor_cost=sub.labor_cost,
            overhead_cost=sub.overhead_cost,
            subtotal=sub.subtotal,
            markup_percent=self.markup_percent,
            labor_markup_percent=(
                self.labor_markup_percent if self.methodology == PricingMethodology.V2 else self.markup_percent
            ),
            material_markup_amount=marks["material_markup_amount"],
            labor_markup_amount=marks["labor_markup_amount"],
            markup_amount=marks["markup_amount"],
            insurance_rate_per_1000=(
                self.insurance_rate_per_1000 if self.methodology == PricingMethodology.V2 else 0.0
            ),
            insurance_amount=marks["insurance_amount"],
            grand_total=grand_total,
            squares=squares,
            price_per_square=price_per_square,
            line_count=len(lines),
            lines=lines,
            section_totals=section_totals,
            warnings=warnings,
            defaults_applied=list(self.defaults_applied),
        )


def compute_estimate_totals(
    line_items: Iterable[LineItem],
    markup_percent: Optional[float],
    burden_rates: Optional[BurdenRates],
    methodology: Union[PricingMethodology, str] = PricingMethodology.LEGACY,
    squares: Optional[float] = None,
    labor_markup_percent: Optional[float] = None,
    insurance_rate_per_1000: Optional[float] = None,
) -> EstimateTotals:
    """Price ``line_items``; missing rates fall back to documented defaults (see defaults_applied)."""
    engine = PricingEngine(
        markup_percent=markup_percent,
        burden_rates=burden_rates,
        methodology=methodology,
        labor_markup_percent=labor_markup_percent,
        insurance_rate_per_1000=insurance_rate_per_1000,
    )
    return engine.calculate(line_items, squares=squares)
