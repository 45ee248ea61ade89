"""
Main pipeline orchestrator.

PurchaseOrderProcessor wires the data source, supplier directory, template
aggregator, submission builder and webhook dispatcher from a Config, and
hands out PurchaseOrderFlow objects, one per drafting session.

  1. SupplierDirectory   -- list suppliers with purchase history
  2. TemplateAggregator  -- per-supplier order templates (deduplicated)
  3. SelectionState      -- auto-selected, then edited by the operator
  4. SubmissionBuilder   -- payload with quantities in the master unit
  5. WebhookDispatcher   -- POST to the workflow webhook
"""
import logging
from typing import Optional

import httpx

from config import Config
from models.session import AuthSession
from .auth import SessionManager, can_create_purchase_orders
from .data_source import RestDataSource
from .errors import AuthorizationError, DataSourceError
from .filters import PurchaseOrderListing
from .flow import PurchaseOrderFlow
from .submission import Notifier, SubmissionBuilder, WebhookDispatcher
from .suppliers import SupplierDirectory
from .templates import TemplateAggregator, TemplateLoader

logger = logging.getLogger(__name__)


class PurchaseOrderProcessor:
    """Shared collaborators for every purchase-order flow in this process."""

    def __init__(
        self,
        config: Optional[Config] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        webhook_transport: Optional[httpx.AsyncBaseTransport] = None,
        session_manager: Optional[SessionManager] = None,
    ) -> None:
        self.config = config or Config()

        self.data_source = RestDataSource(
            self.config.data_api_url,
            self.config.data_api_key,
            timeout=self.config.request_timeout_seconds,
            transport=transport,
        )
        self.session_manager = session_manager or SessionManager(
            self.config.data_api_url,
            self.config.data_api_key,
            refresh_threshold_seconds=self.config.session_refresh_threshold_seconds,
            timeout=self.config.request_timeout_seconds,
            transport=transport,
        )
        self.suppliers = SupplierDirectory(
            self.data_source,
            attempts=self.config.supplier_fetch_attempts,
            retry_delay_seconds=self.config.supplier_retry_delay_seconds,
            limit=self.config.supplier_list_limit,
            session_manager=self.session_manager,
        )
        self.aggregator = TemplateAggregator(self.data_source)
        self.listing = PurchaseOrderListing(self.data_source, limit=self.config.supplier_list_limit)
        self.builder = SubmissionBuilder(self.config)
        self.dispatcher = WebhookDispatcher(self.config, transport=webhook_transport)

    def new_flow(self, notifier: Optional[Notifier] = None) -> PurchaseOrderFlow:
        loader = TemplateLoader(self.aggregator, timeout_seconds=self.config.template_timeout_seconds)
        return PurchaseOrderFlow(
            loader,
            self.builder,
            self.dispatcher,
            notifier=notifier,
            master_unit=self.config.master_unit_label,
        )

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @property
    def session(self) -> Optional[AuthSession]:
        return self.session_manager.session

    async def sign_in(self, email: str, password: str) -> AuthSession:
        """Sign in; subsequent queries run with the user's access token."""
        session = await self.session_manager.sign_in(email, password)
        self.data_source.session = session
        return session

    def sign_out(self) -> None:
        self.session_manager.sign_out()
        self.data_source.session = None

    async def authorize_purchase_orders(self) -> AuthSession:
        """
        Return the active session if it may create purchase orders.

        Raises AuthorizationError when nobody is signed in, the session can
        no longer be refreshed, or the role is not allowed.
        """
        try:
            session = await self.session_manager.ensure_active()
        except DataSourceError as e:
            self.sign_out()
            raise AuthorizationError("Session expired, please sign in again") from e
        self.data_source.session = session
        if session is None:
            raise AuthorizationError("Please sign in to create purchase orders")
        if not can_create_purchase_orders(session):
            raise AuthorizationError(f"Role '{session.role}' may not create purchase orders")
        return session

    async def check_setup(self) -> dict:
        """
        Report whether the data API answers and the webhook is configured.
        Never raises.
        """
        status: dict = {
            "data_api": {"url": self.config.data_api_url, "ok": False},
            "webhook": {"url": self.config.webhook_url, "configured": bool(self.config.webhook_url)},
        }
        try:
            rows = await self.data_source.select("v_suppliers_admin", columns="kiotviet_id", limit=1)
            status["data_api"].update(ok=True, sample_rows=len(rows))
        except DataSourceError as e:
            status["data_api"]["error"] = str(e)
        return status

    async def aclose(self) -> None:
        await self.data_source.aclose()
        await self.session_manager.aclose()
