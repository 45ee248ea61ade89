from .template import ChildUnit, TemplateProduct, SelectedProduct
from .supplier import SupplierOption
from .purchase_order import SupplierRef, PurchaseOrderDetail, SubmissionPayload, PurchaseOrderSummary
from .session import AuthSession
from .result import TemplateLoadState, OrderTotals, SubmissionResult

__all__ = [
    "ChildUnit", "TemplateProduct", "SelectedProduct",
    "SupplierOption",
    "SupplierRef", "PurchaseOrderDetail", "SubmissionPayload", "PurchaseOrderSummary",
    "AuthSession",
    "TemplateLoadState", "OrderTotals", "SubmissionResult",
]
