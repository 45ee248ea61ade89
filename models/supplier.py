from pydantic import BaseModel, Field, field_validator
from typing import Optional, List


class SupplierOption(BaseModel):
    """
    A supplier with prior purchase history, as listed by the suppliers view.
    kiotviet_id is the upstream POS identifier and the key used everywhere else.
    """
    kiotviet_id: int
    name: Optional[str] = None
    code: Optional[str] = None
    contact_number: Optional[str] = None
    address: Optional[str] = None
    branch_id: Optional[int] = None
    total_invoice: int = 0
    last_purchase_date: Optional[str] = None         # ISO 8601
    last_master_unit_quantity: Optional[float] = None  # master-unit total of the latest PO
    # Pre-aggregated templates embedded by the admin view (may be absent)
    po_template_products: Optional[List[dict]] = Field(default=None, repr=False)

    @field_validator("total_invoice", mode="before")
    @classmethod
    def _default_invoice_count(cls, v):
        return v or 0

    @field_validator("last_master_unit_quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, v):
        if v in (None, ""):
            return None
        return float(v)

    @property
    def display_name(self) -> str:
        return self.name or self.code or f"#{self.kiotviet_id}"

    @property
    def has_embedded_templates(self) -> bool:
        return bool(self.po_template_products)
