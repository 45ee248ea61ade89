"""
Purchase order submission to the workflow webhook.

SubmissionBuilder turns the selection plus supplier/branch metadata into
the webhook payload, normalising every quantity to the master unit.
WebhookDispatcher POSTs it as JSON to <N8N_WEBHOOK_URL>/handle-frontend,
which creates the draft order upstream.

There is no idempotency key: re-submitting after an ambiguous failure
sends the full payload again.
"""
import base64
import logging
from typing import Any, Iterable, Optional, Protocol

import httpx
from jinja2 import BaseLoader
from jinja2.sandbox import SandboxedEnvironment

from models.purchase_order import PurchaseOrderDetail, SubmissionPayload, SupplierRef
from models.supplier import SupplierOption
from models.template import SelectedProduct
from .errors import ConfigurationError, SubmissionError, SubmissionValidationError
from .units import aggregate_by_child_unit, format_breakdown, line_master_quantity, total_master_unit

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Could not create the purchase order. Please retry or check the workflow logs."


class Notifier(Protocol):
    def notify(self, kind: str, message: str, description: str = "") -> None: ...


class LoggingNotifier:
    """Default notifier: writes notifications to the log."""

    def notify(self, kind: str, message: str, description: str = "") -> None:
        level = logging.ERROR if kind == "error" else logging.INFO
        logger.log(level, "[%s] %s %s", kind, message, description)


class SubmissionBuilder:
    """Builds SubmissionPayload objects from the current selection."""

    def __init__(self, config: Any) -> None:
        self.config = config
        self.jinja_env = SandboxedEnvironment(loader=BaseLoader(), autoescape=False)

    def render_description(self, supplier: SupplierOption, lines: list[SelectedProduct]) -> str:
        """Render the order description from the configured Jinja2 template."""
        context = {
            "supplier": supplier.model_dump(exclude={"po_template_products"}),
            "lines": [line.model_dump() for line in lines],
            "total_master": total_master_unit(lines),
            "child_unit_totals": aggregate_by_child_unit(lines),
            "breakdown": format_breakdown(lines, self.config.master_unit_label),
        }
        try:
            template = self.jinja_env.from_string(self.config.description_template)
            return template.render(**context).strip()
        except Exception as e:
            logger.warning("Failed to render order description: %s", e)
            return ""

    def build(
        self,
        lines: Iterable[SelectedProduct],
        supplier: Optional[SupplierOption],
        branch_id: Optional[int] = None,
    ) -> SubmissionPayload:
        """
        Assemble the payload.  Raises SubmissionValidationError when there is
        no supplier or nothing is selected.
        """
        lines = list(lines)
        if supplier is None:
            raise SubmissionValidationError("Please choose a supplier")
        if not lines:
            raise SubmissionValidationError("Please select at least one product")

        details = [
            PurchaseOrderDetail(
                product_id=line.product_id,
                product_code=line.product_code,
                product_name=line.product_name,
                quantity=line_master_quantity(line),
                price=line.price,
            )
            for line in lines
        ]
        return SubmissionPayload(
            branch_id=branch_id or supplier.branch_id or self.config.default_branch_id,
            supplier=SupplierRef(
                id=supplier.kiotviet_id,
                code=supplier.code,
                name=supplier.name,
                contact_number=supplier.contact_number,
                address=supplier.address,
            ),
            purchase_order_details=details,
            description=self.render_description(supplier, lines),
            is_draft=True,
        )


def _encode_basic_auth(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


class WebhookDispatcher:
    """Sends a SubmissionPayload to the configured workflow webhook."""

    def __init__(self, config: Any, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.config = config
        self.transport = transport

    def build_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "PO-Drafter-Webhook/1.0",
        }
        token = _encode_basic_auth(self.config.webhook_basic_auth)
        if token:
            headers["Authorization"] = f"Basic {token}"
        key, value = self.config.webhook_header_key, self.config.webhook_header_value
        if key and value:
            headers[key] = value
        return headers

    async def send(self, payload: SubmissionPayload) -> int:
        """
        POST the payload; returns the HTTP status on success.

        Raises ConfigurationError when no webhook URL is configured and
        SubmissionError for non-2xx responses or network failures.
        """
        url = self.config.webhook_url
        if not url:
            raise ConfigurationError("N8N_WEBHOOK_URL is not configured")

        body = payload.to_json_dict()
        try:
            async with httpx.AsyncClient(
                timeout=self.config.request_timeout_seconds, transport=self.transport
            ) as client:
                response = await client.post(url, json=body, headers=self.build_headers())
        except httpx.HTTPError as e:
            logger.error("Webhook request error for supplier %s: %s", payload.supplier.id, e)
            raise SubmissionError(str(e) or DEFAULT_ERROR_MESSAGE) from e

        if not response.is_success:
            text = response.text
            logger.error("Webhook failed for supplier %s: HTTP %d - %s",
                         payload.supplier.id, response.status_code, text[:500])
            raise SubmissionError(text or DEFAULT_ERROR_MESSAGE, status_code=response.status_code)

        logger.info("Purchase order sent for supplier %s: HTTP %d (%d lines)",
                    payload.supplier.id, response.status_code, len(payload.purchase_order_details))
        return response.status_code
