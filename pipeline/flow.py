"""
Two-step purchase order wizard: choose a supplier, then adjust the
auto-selected template products and submit.

Selecting a supplier synchronously clears the selection and the
auto-select marker before the new templates are requested.  Auto-select
fires at most once per supplier selection, so manual edits are never
overwritten.  Failures end up in `error` / SubmissionResult, never as
exceptions to the caller.
"""
import logging
from typing import Literal, Optional

from models.result import OrderTotals, SubmissionResult
from models.supplier import SupplierOption
from models.template import TemplateProduct
from .errors import ConfigurationError, SubmissionError, SubmissionValidationError
from .selection import SelectionState
from .submission import LoggingNotifier, Notifier, SubmissionBuilder, WebhookDispatcher
from .templates import TemplateLoader
from .units import aggregate_by_child_unit, format_breakdown, total_master_unit

logger = logging.getLogger(__name__)

Step = Literal[1, 2]


class PurchaseOrderFlow:
    """State for one drafting session (one operator, one order)."""

    def __init__(
        self,
        loader: TemplateLoader,
        builder: SubmissionBuilder,
        dispatcher: WebhookDispatcher,
        notifier: Optional[Notifier] = None,
        master_unit: str = "kg",
    ) -> None:
        self.loader = loader
        self.builder = builder
        self.dispatcher = dispatcher
        self.notifier = notifier or LoggingNotifier()
        self.master_unit = master_unit

        self.step: Step = 1
        self.selected_supplier: Optional[SupplierOption] = None
        self.selection = SelectionState()
        self.auto_selected_for: Optional[int] = None
        self.submitting = False
        self.error_message: Optional[str] = None

    # ------------------------------------------------------------------
    # Supplier / templates
    # ------------------------------------------------------------------

    @property
    def templates(self) -> list[TemplateProduct]:
        return self.loader.templates

    def set_selected_supplier(self, supplier: Optional[SupplierOption]) -> None:
        """
        Switch supplier.  State is cleared before the new request starts;
        the template load runs in the background (call load_templates() to
        wait for it).
        """
        self.selection.remove_all()
        self.auto_selected_for = None
        self.error_message = None
        self.selected_supplier = supplier
        if supplier is None:
            self.loader.reset()
            self.step = 1
            return
        self.step = 2
        self.loader.start(supplier)

    async def load_templates(self) -> list[TemplateProduct]:
        """Wait for the current template request, then run auto-select."""
        await self.loader.wait()
        self.on_templates_loaded()
        return self.templates

    async def choose_supplier(self, supplier: SupplierOption) -> list[TemplateProduct]:
        self.set_selected_supplier(supplier)
        return await self.load_templates()

    def on_templates_loaded(self) -> bool:
        """
        Auto-select every template the first time templates arrive for the
        current supplier.  Returns True when it fired.
        """
        supplier = self.selected_supplier
        if supplier is None:
            self.auto_selected_for = None
            return False
        if (
            self.templates
            and not self.loader.loading
            and self.loader.state.supplier_id == supplier.kiotviet_id
            and len(self.selection) == 0
            and self.auto_selected_for != supplier.kiotviet_id
        ):
            self.selection.auto_select_all(self.templates)
            self.auto_selected_for = supplier.kiotviet_id
            return True
        return False

    def find_template(self, product_id: int) -> Optional[TemplateProduct]:
        return next((t for t in self.templates if t.product_id == product_id), None)

    def add_product(self, product_id: int) -> bool:
        """Add a template of the current supplier by id; False if unknown."""
        template = self.find_template(product_id)
        if template is None:
            return False
        self.selection.add_product(template)
        return True

    def remove_product(self, product_id: int) -> None:
        line = self.selection.get(product_id)
        if line is not None:
            self.selection.remove_product(line)

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def totals(self) -> OrderTotals:
        lines = self.selection.selected_list()
        return OrderTotals(
            line_count=len(lines),
            total_master=total_master_unit(lines),
            child_unit_totals=aggregate_by_child_unit(lines),
            breakdown=format_breakdown(lines, self.master_unit),
        )

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, branch_id: Optional[int] = None) -> SubmissionResult:
        """
        Validate, build and send the order.  The selection is kept intact
        on failure so the operator can retry.
        """
        self.error_message = None
        try:
            payload = self.builder.build(
                self.selection.selected_list(), self.selected_supplier, branch_id
            )
        except SubmissionValidationError as e:
            self.error_message = str(e)
            return SubmissionResult(status="invalid", message=str(e), errors=[str(e)])

        self.submitting = True
        try:
            status_code = await self.dispatcher.send(payload)
        except (SubmissionError, ConfigurationError) as e:
            message = str(e)
            self.error_message = message
            self.notifier.notify("error", "Purchase order creation failed", message)
            return SubmissionResult(
                status="failed",
                message=message,
                status_code=getattr(e, "status_code", None),
                payload=payload,
                errors=[message],
            )
        finally:
            self.submitting = False

        self.notifier.notify("success", "Purchase order created", "The draft is being processed.")
        return SubmissionResult(
            status="success",
            message="Purchase order created",
            status_code=status_code,
            payload=payload,
        )

    def reset(self) -> None:
        self.loader.reset()
        self.selection.remove_all()
        self.selected_supplier = None
        self.auto_selected_for = None
        self.error_message = None
        self.step = 1
