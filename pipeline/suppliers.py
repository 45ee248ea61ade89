"""
Supplier listing for the purchase-order wizard.

Suppliers come from the v_suppliers_admin view (which also embeds
pre-aggregated order templates).  Deployments that have not created the
view yet fall back to the kv_supplier_stats table.  Transient failures are
retried a few times with a linear back-off before giving up.
"""
import asyncio
import logging
from typing import Any, Optional

from pydantic import ValidationError

from models.supplier import SupplierOption
from .data_source import CODE_RELATION_NOT_FOUND, RestDataSource
from .errors import DataSourceError, FetchError

logger = logging.getLogger(__name__)

SUPPLIERS_VIEW = "v_suppliers_admin"
SUPPLIERS_FALLBACK_TABLE = "kv_supplier_stats"

SUPPLIER_ORDER = [
    ("total_invoice", False, False),
    ("last_purchase_date", False, True),
]

DEFAULT_FETCH_ERROR = "could not load suppliers, please retry"


class SupplierDirectory:
    """Fetches the ordered supplier list, with view fallback and retries."""

    def __init__(
        self,
        data_source: RestDataSource,
        attempts: int = 3,
        retry_delay_seconds: float = 0.5,
        limit: int = 100,
        session_manager: Optional[Any] = None,
    ) -> None:
        self.data_source = data_source
        self.attempts = max(1, attempts)
        self.retry_delay_seconds = retry_delay_seconds
        self.limit = limit
        self.session_manager = session_manager

    async def _query(self) -> list[dict]:
        try:
            return await self.data_source.select(
                SUPPLIERS_VIEW, order=SUPPLIER_ORDER, limit=self.limit
            )
        except DataSourceError as e:
            if e.code != CODE_RELATION_NOT_FOUND:
                raise
            logger.info("%s not found, falling back to %s", SUPPLIERS_VIEW, SUPPLIERS_FALLBACK_TABLE)
            return await self.data_source.select(
                SUPPLIERS_FALLBACK_TABLE, order=SUPPLIER_ORDER, limit=self.limit
            )

    async def fetch_suppliers(self) -> list[SupplierOption]:
        """
        Return suppliers ordered by invoice count then recency.

        Raises FetchError once every attempt has failed.
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, self.attempts + 1):
            try:
                if self.session_manager is not None:
                    self.data_source.session = await self.session_manager.ensure_active()
                rows = await self._query()
                logger.info("Loaded %d suppliers (attempt %d)", len(rows), attempt)
                return _to_suppliers(rows)
            except DataSourceError as e:
                last_error = e
                logger.warning("Supplier fetch attempt %d failed: %s", attempt, e)
                if attempt < self.attempts:
                    await asyncio.sleep(self.retry_delay_seconds * attempt)

        logger.error("Supplier fetch failed after %d attempts: %s", self.attempts, last_error)
        raise FetchError(str(last_error) if last_error else DEFAULT_FETCH_ERROR)


def _to_suppliers(rows: list[dict]) -> list[SupplierOption]:
    suppliers = []
    for row in rows:
        try:
            suppliers.append(SupplierOption.model_validate(row))
        except ValidationError as e:
            logger.warning("Skipping malformed supplier row %s: %s", row.get("kiotviet_id"), e)
    return suppliers


class SupplierListState:
    """
    Loader wrapper for UIs: holds suppliers / loading / error and never raises.
    """

    def __init__(self, directory: SupplierDirectory) -> None:
        self.directory = directory
        self.suppliers: list[SupplierOption] = []
        self.loading = False
        self.error: Optional[str] = None

    async def load(self) -> list[SupplierOption]:
        self.loading = True
        self.error = None
        try:
            self.suppliers = await self.directory.fetch_suppliers()
        except FetchError as e:
            self.suppliers = []
            self.error = str(e) or DEFAULT_FETCH_ERROR
        finally:
            self.loading = False
        return self.suppliers

    def get(self, supplier_id: int) -> Optional[SupplierOption]:
        return next((s for s in self.suppliers if s.kiotviet_id == supplier_id), None)
