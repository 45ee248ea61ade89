"""
Filter composition for the purchase order listing.

With no status chosen the listing shows completed orders only (status 3),
which also hides cancelled ones (status 4).  Choosing a status replaces
that base filter; choosing a supplier narrows either.
"""
import logging
from typing import Optional

from pydantic import ValidationError

from models.purchase_order import PurchaseOrderSummary
from .data_source import Filter, RestDataSource

logger = logging.getLogger(__name__)

PURCHASE_ORDERS_TABLE = "kv_purchase_orders"

STATUS_COMPLETED = 3
STATUS_CANCELLED = 4


def base_filters(status: Optional[int]) -> list[Filter]:
    if status is None:
        return [("status", "eq", STATUS_COMPLETED)]
    return []


def dynamic_filters(status: Optional[int], supplier_id: Optional[int]) -> list[Filter]:
    filters: list[Filter] = []
    if status is not None:
        filters.append(("status", "eq", status))
    if supplier_id is not None:
        filters.append(("supplier_id", "eq", supplier_id))
    return filters


def all_filters(status: Optional[int] = None, supplier_id: Optional[int] = None) -> list[Filter]:
    return base_filters(status) + dynamic_filters(status, supplier_id)


class PurchaseOrderListing:
    """Reads purchase orders, newest first, with the composed filters."""

    def __init__(self, data_source: RestDataSource, limit: int = 100) -> None:
        self.data_source = data_source
        self.limit = limit

    async def fetch(
        self,
        status: Optional[int] = None,
        supplier_id: Optional[int] = None,
    ) -> list[PurchaseOrderSummary]:
        rows = await self.data_source.select(
            PURCHASE_ORDERS_TABLE,
            filters=all_filters(status, supplier_id),
            order=[("purchase_date", False, True)],
            limit=self.limit,
        )
        orders = []
        for row in rows:
            try:
                orders.append(PurchaseOrderSummary.model_validate(row))
            except ValidationError as e:
                logger.warning("Skipping malformed purchase order row %s: %s", row.get("kiotviet_id"), e)
        return orders
