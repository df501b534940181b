"""
Estimate export — hands the priced totals to a spreadsheet unchanged.

The workbook carries the exact floats produced by the pricing engine; nothing
is re-derived or rounded here. Two unstyled sheets: Summary and Line Items.
"""
import io
import logging
from typing import Any, Dict, List, Optional

import xlsxwriter

from estimator.services.pricing_engine import EstimateTotals, ExtendedLine

logger = logging.getLogger("estimator-export")

# Summary rows in display order: (label, payload key)
SUMMARY_ROWS = (
    ("Material Cost", "material_cost"),
    ("Labor Cost", "labor_cost"),
    ("Overhead Cost", "overhead_cost"),
    ("Subtotal", "subtotal"),
    ("Material Markup", "material_markup_amount"),
    ("Labor Markup", "labor_markup_amount"),
    ("Markup", "markup_amount"),
    ("Project Insurance", "insurance_amount"),
    ("Grand Total", "grand_total"),
    ("Siding Squares", "siding_squares"),
    ("Price per Square", "price_per_square"),
)

LINE_COLUMNS = (
    "presentation_group", "description", "item_type", "quantity", "unit",
    "material_unit_cost", "labor_unit_cost", "equipment_unit_cost",
    "material_extended", "labor_extended", "loaded_labor", "overhead_amount", "line_total",
)


def build_export_payload(totals: EstimateTotals, siding_squares: Optional[float] = None) -> Dict[str, Any]:
    """The numeric contract handed to any exporter."""
    return {
        "methodology": totals.methodology,
        "material_cost": totals.material_cost,
        "labor_cost": totals.labor_cost,
        "overhead_cost": totals.overhead_cost,
        "subtotal": totals.subtotal,
        "markup_percent": totals.markup_percent,
        "material_markup_amount": totals.material_markup_amount,
        "labor_markup_amount": totals.labor_markup_amount,
        "markup_amount": totals.markup_amount,
        "insurance_amount": totals.insurance_amount,
        "grand_total": totals.grand_total,
        "siding_squares": siding_squares if siding_squares is not None else totals.squares,
        "price_per_square": totals.price_per_square,
        "defaults_applied": list(totals.defaults_applied),
    }


def group_lines(lines: List[ExtendedLine]) -> List[ExtendedLine]:
    """Order lines by presentation group (ungrouped last), then sort order."""
    return sorted(
        lines,
        key=lambda l: (l.presentation_group is None, l.presentation_group or "", l.sort_order, l.line_item_id),
    )


def write_estimate_workbook(totals: EstimateTotals, siding_squares: Optional[float] = None) -> bytes:
    payload = build_export_payload(totals, siding_squares)
    buf = io.BytesIO()
    wb = xlsxwriter.Workbook(buf, {"in_memory": True})

    ws = wb.add_worksheet("Summary")
    ws.set_column("A:A", 24)
    ws.set_column("B:B", 18)
    ws.write_row(0, 0, ["Methodology", payload["methodology"]])
    row = 1
    for label, key in SUMMARY_ROWS:
        value = payload[key]
        if value is None:
            continue
        ws.write_row(row, 0, [label, value])
        row += 1
    for note in payload["defaults_applied"]:
        ws.write_row(row, 0, ["Default applied", note])
        row += 1

    items = wb.add_worksheet("Line Items")
    items.write_row(0, 0, list(LINE_COLUMNS))
    row = 1
    for line in group_lines(totals.lines):
        items.write_row(row, 0, [
            "" if getattr(line, col) is None else getattr(line, col) for col in LINE_COLUMNS
        ])
        row += 1

    wb.close()
    logger.info("estimate workbook written", extra={"line_count": len(totals.lines)})
    return buf.getvalue()
