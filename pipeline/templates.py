"""
Order-template aggregation for a chosen supplier.

A template is a supplier's historical ordering pattern for one product
(how often it was ordered, average quantity and price, child units).
Templates come from one of two places:

  1. po_template_products embedded in the supplier row (v_suppliers_admin)
  2. the kv_supplier_product_templates table, queried per supplier

Upstream occasionally yields the same product twice; only the first row
(in frequency/recency order) is kept.  Master units are looked up from
kv_products afterwards; a failure there is not fatal.

TemplateLoader wraps the aggregator with per-supplier state, a timeout,
and cancellation so a superseded request never overwrites newer state.
"""
import asyncio
import logging
from typing import Iterable, Optional

from pydantic import ValidationError

from models.result import TemplateLoadState
from models.supplier import SupplierOption
from models.template import TemplateProduct
from .data_source import RestDataSource
from .errors import DataSourceError, FetchError

logger = logging.getLogger(__name__)

TEMPLATES_TABLE = "kv_supplier_product_templates"
PRODUCTS_TABLE = "kv_products"

TEMPLATE_COLUMNS = (
    "product_id,product_code,product_name,order_count,avg_quantity,"
    "avg_price,last_purchase_date,child_units"
)
TEMPLATE_ORDER = [
    ("order_count", False, False),
    ("last_purchase_date", False, True),
]

TEMPLATE_FETCH_ERROR = "could not load product templates, please retry"


def dedupe_templates(templates: Iterable[TemplateProduct]) -> list[TemplateProduct]:
    """Drop templates with a zero product_id and every repeat of an already-seen product_id."""
    seen: set = set()
    kept = []
    for template in templates:
        if not template.product_id:
            continue
        if template.product_id in seen:
            logger.warning("Duplicate product_id %s found in templates, skipping", template.product_id)
            continue
        seen.add(template.product_id)
        kept.append(template)
    return kept


def _to_templates(rows: list[dict]) -> list[TemplateProduct]:
    templates = []
    for row in rows:
        if not row.get("product_id"):
            continue
        try:
            templates.append(TemplateProduct.model_validate(row))
        except ValidationError as e:
            logger.warning("Skipping malformed template row %s: %s", row.get("product_id"), e)
    return templates


class TemplateAggregator:
    """Reads and normalises order templates for one supplier at a time."""

    def __init__(self, data_source: RestDataSource) -> None:
        self.data_source = data_source

    async def fetch_templates(
        self,
        supplier_id: Optional[int],
        embedded: Optional[list[dict]] = None,
    ) -> list[TemplateProduct]:
        """
        Return deduplicated templates for *supplier_id*.

        An absent supplier yields an empty list.  Embedded rows, when given
        and non-empty, are used instead of querying.  Query failures raise
        FetchError with a user-facing message.
        """
        if not supplier_id:
            return []

        if embedded:
            logger.debug("Using %d embedded templates for supplier %s", len(embedded), supplier_id)
            rows = embedded
        else:
            try:
                rows = await self.data_source.select(
                    TEMPLATES_TABLE,
                    columns=TEMPLATE_COLUMNS,
                    filters=[("supplier_id", "eq", supplier_id)],
                    order=TEMPLATE_ORDER,
                )
            except DataSourceError as e:
                logger.error("Template query failed for supplier %s: %s", supplier_id, e)
                raise FetchError(TEMPLATE_FETCH_ERROR) from e

        templates = dedupe_templates(_to_templates(rows))
        await self._fill_master_units(templates)
        logger.info("Loaded %d templates for supplier %s", len(templates), supplier_id)
        return templates

    async def _fill_master_units(self, templates: list[TemplateProduct]) -> None:
        if not templates:
            return
        try:
            rows = await self.data_source.select(
                PRODUCTS_TABLE,
                columns="kiotviet_id,unit",
                filters=[("kiotviet_id", "in", [t.product_id for t in templates])],
            )
        except DataSourceError as e:
            logger.warning("Error fetching master units: %s", e)
            return
        units = {r["kiotviet_id"]: r["unit"] for r in rows if r.get("kiotviet_id") and r.get("unit")}
        for template in templates:
            template.master_unit = units.get(template.product_id)


class TemplateLoader:
    """
    Per-supplier loading state: idle -> loading -> loaded | error.

    Only one supplier is current at a time.  Starting a load for another
    supplier cancels the in-flight task; a result whose supplier is no
    longer current is discarded.
    """

    def __init__(self, aggregator: TemplateAggregator, timeout_seconds: float = 10.0) -> None:
        self.aggregator = aggregator
        self.timeout_seconds = timeout_seconds
        self.state = TemplateLoadState()
        self.templates: list[TemplateProduct] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def loading(self) -> bool:
        return self.state.status == "loading"

    @property
    def error(self) -> Optional[str]:
        return self.state.error

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            logger.debug("Aborting pending template request for supplier %s", self.state.supplier_id)
            self._task.cancel()
        self._task = None

    def reset(self) -> None:
        self._cancel()
        self.state = TemplateLoadState()
        self.templates = []

    def start(self, supplier: Optional[SupplierOption]) -> asyncio.Task:
        """Begin loading templates for *supplier*; must run inside an event loop."""
        self._cancel()
        self.templates = []
        supplier_id = supplier.kiotviet_id if supplier else None
        self.state = TemplateLoadState(status="loading", supplier_id=supplier_id)
        self._task = asyncio.ensure_future(self._run(supplier))
        return self._task

    async def wait(self) -> None:
        """Wait for the in-flight request, if any, to finish or be cancelled."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def load(self, supplier: Optional[SupplierOption]) -> list[TemplateProduct]:
        """Load and wait; returns [] if the request was superseded or failed."""
        task = self.start(supplier)
        await asyncio.gather(task, return_exceptions=True)
        if task.cancelled():
            return []
        return self.templates

    async def _run(self, supplier: Optional[SupplierOption]) -> None:
        supplier_id = supplier.kiotviet_id if supplier else None
        embedded = supplier.po_template_products if supplier else None
        try:
            templates = await asyncio.wait_for(
                self.aggregator.fetch_templates(supplier_id, embedded),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Template query timed out after %ss, aborting", self.timeout_seconds)
            self._commit(supplier_id, error=TEMPLATE_FETCH_ERROR)
            return
        except FetchError as e:
            self._commit(supplier_id, error=str(e))
            return
        except Exception:
            logger.exception("Unexpected error loading templates for supplier %s", supplier_id)
            self._commit(supplier_id, error=TEMPLATE_FETCH_ERROR)
            return
        self._commit(supplier_id, templates=templates)

    def _commit(
        self,
        supplier_id: Optional[int],
        templates: Optional[list[TemplateProduct]] = None,
        error: Optional[str] = None,
    ) -> None:
        if supplier_id != self.state.supplier_id:
            logger.info("Discarding stale template result for supplier %s", supplier_id)
            return
        if error:
            self.templates = []
            self.state = TemplateLoadState(status="error", supplier_id=supplier_id, error=error)
        else:
            self.templates = templates or []
            self.state = TemplateLoadState(status="loaded", supplier_id=supplier_id)
