from .data_source import RestDataSource
from .auth import SessionManager
from .suppliers import SupplierDirectory, SupplierListState
from .templates import TemplateAggregator, TemplateLoader
from .selection import SelectionState
from .submission import SubmissionBuilder, WebhookDispatcher
from .flow import PurchaseOrderFlow
from .filters import PurchaseOrderListing
from .processor import PurchaseOrderProcessor

__all__ = [
    "RestDataSource", "SessionManager",
    "SupplierDirectory", "SupplierListState",
    "TemplateAggregator", "TemplateLoader",
    "SelectionState", "SubmissionBuilder", "WebhookDispatcher",
    "PurchaseOrderFlow", "PurchaseOrderListing", "PurchaseOrderProcessor",
]
