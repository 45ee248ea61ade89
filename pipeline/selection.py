"""
Selection state for the purchase order being drafted.

Maps product_id -> SelectedProduct for the current supplier only.  Every
entry has quantity >= 1: non-positive edits are rejected and fractional
edits below one are raised to one.  NaN and infinities are never stored.
"""
import logging
import math
from typing import Iterable, Optional

from models.template import SelectedProduct, TemplateProduct

logger = logging.getLogger(__name__)

MIN_QUANTITY = 1


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def default_quantity(template: TemplateProduct) -> int:
    return max(MIN_QUANTITY, round_half_up(template.avg_quantity or 0))


def new_line(template: TemplateProduct) -> SelectedProduct:
    """A SelectedProduct seeded from the template's averages."""
    return SelectedProduct(
        **template.model_dump(exclude={"quantity", "price"}),
        quantity=default_quantity(template),
        price=template.avg_price,
    )


class SelectionState:
    """Single-writer container; every operation is synchronous."""

    def __init__(self) -> None:
        self.products: dict[int, SelectedProduct] = {}

    def __len__(self) -> int:
        return len(self.products)

    def __contains__(self, product_id: int) -> bool:
        return product_id in self.products

    def get(self, product_id: int) -> Optional[SelectedProduct]:
        return self.products.get(product_id)

    def selected_list(self) -> list[SelectedProduct]:
        return list(self.products.values())

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def auto_select_all(self, templates: Iterable[TemplateProduct]) -> None:
        """Replace the whole selection with one line per template."""
        self.products = {t.product_id: new_line(t) for t in templates if t.product_id}
        logger.debug("Auto-selected %d products", len(self.products))

    def select_all(self, templates: Iterable[TemplateProduct], checked: bool) -> None:
        if checked:
            self.auto_select_all(templates)
        else:
            self.remove_all()

    def is_select_all(self, templates: Iterable[TemplateProduct]) -> bool:
        templates = list(templates)
        return bool(templates) and all(t.product_id in self.products for t in templates)

    def remove_all(self) -> None:
        self.products = {}

    # ------------------------------------------------------------------
    # Per-product operations
    # ------------------------------------------------------------------

    def add_product(self, template: TemplateProduct) -> None:
        if not template.product_id or template.product_id in self.products:
            return
        self.products[template.product_id] = new_line(template)

    def remove_product(self, template: TemplateProduct) -> None:
        self.products.pop(template.product_id, None)

    def toggle_product(self, template: TemplateProduct, checked: bool) -> None:
        if checked:
            self.add_product(template)
        else:
            self.remove_product(template)

    def update_quantity(self, product_id: int, value: float) -> bool:
        """
        Set the quantity of a selected product.

        Returns False (and changes nothing) for non-positive or non-finite
        values and for products that are not selected.
        """
        line = self.products.get(product_id)
        if line is None:
            return False
        if value is None or not math.isfinite(value) or value <= 0:
            logger.debug("Rejected quantity %s for product %s", value, product_id)
            return False
        self.products[product_id] = line.model_copy(update={"quantity": max(MIN_QUANTITY, value)})
        return True

    def update_price(self, product_id: int, value: Optional[float]) -> bool:
        line = self.products.get(product_id)
        if line is None:
            return False
        if value is not None and (not math.isfinite(value) or value < 0):
            return False
        self.products[product_id] = line.model_copy(update={"price": value})
        return True
