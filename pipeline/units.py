"""
Quantity-unit conversion for purchase order lines.

A product has a master unit (e.g. kg) and zero or more child units, each a
fixed multiple of the master unit (e.g. "bag 50kg" = 50 kg).  Line
quantities are entered in the product's first child unit when it has one,
otherwise in the master unit.  Everything here is pure.
"""
from typing import Iterable, Optional

from models.template import ChildUnit, SelectedProduct


def to_master_unit(quantity: float, conversion_value: float) -> float:
    """Convert a quantity in a child unit to the master unit."""
    if conversion_value <= 0:
        raise ValueError(f"conversion_value must be positive, got {conversion_value}")
    return quantity * conversion_value


def from_master_unit(master_quantity: float, conversion_value: float) -> float:
    """Convert a master-unit quantity to a child unit (may be fractional)."""
    if conversion_value <= 0:
        raise ValueError(f"conversion_value must be positive, got {conversion_value}")
    return master_quantity / conversion_value


def line_master_quantity(line: SelectedProduct) -> float:
    """The line's quantity expressed in the master unit."""
    unit = line.primary_child_unit
    if unit is None:
        return line.quantity
    return to_master_unit(line.quantity, unit.conversion_value)


def aggregate_by_child_unit(lines: Iterable[SelectedProduct]) -> dict[str, float]:
    """
    Sum line quantities per child-unit label.

    Only the first child unit of each line counts.  Lines without child units
    are left out here but still contribute to total_master_unit().
    """
    totals: dict[str, float] = {}
    for line in lines:
        unit: Optional[ChildUnit] = line.primary_child_unit
        if unit is None:
            continue
        totals[unit.unit] = totals.get(unit.unit, 0) + line.quantity
    return totals


def total_master_unit(lines: Iterable[SelectedProduct]) -> float:
    return sum(line_master_quantity(line) for line in lines)


def format_quantity(value: float) -> str:
    """Whole numbers without decimals, anything else rounded to 2 places."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"


def format_breakdown(lines: Iterable[SelectedProduct], master_unit: str = "kg") -> str:
    """
    Human-readable total, e.g. "160 kg = 2 bag50 + 1 bag60".

    Returns just the master total when no line has a child unit, and an empty
    string when there are no lines.
    """
    lines = list(lines)
    if not lines:
        return ""
    total = f"{format_quantity(total_master_unit(lines))} {master_unit}"
    per_unit = aggregate_by_child_unit(lines)
    if not per_unit:
        return total
    parts = " + ".join(f"{format_quantity(qty)} {label}" for label, qty in per_unit.items())
    return f"{total} = {parts}"
