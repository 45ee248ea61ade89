from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List


class _CamelModel(BaseModel):
    """Payload models serialise with the webhook's camelCase keys."""
    model_config = ConfigDict(populate_by_name=True)


class SupplierRef(_CamelModel):
    id: int
    code: Optional[str] = None
    name: Optional[str] = None
    contact_number: Optional[str] = Field(default=None, alias="contactNumber")
    address: Optional[str] = None


class PurchaseOrderDetail(_CamelModel):
    """One line of the submitted order. quantity is always in the master unit."""
    product_id: int = Field(alias="productId")
    product_code: Optional[str] = Field(default=None, alias="productCode")
    product_name: Optional[str] = Field(default=None, alias="productName")
    quantity: float
    price: Optional[float] = None
    discount: Optional[float] = None


class SubmissionPayload(_CamelModel):
    """
    The JSON body POSTed to the workflow webhook.
    Built once at submit time; never stored.
    """
    branch_id: int = Field(alias="branchId")
    supplier: SupplierRef
    purchase_order_details: List[PurchaseOrderDetail] = Field(alias="purchaseOrderDetails")
    description: str = ""
    is_draft: bool = Field(default=True, alias="isDraft")

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class PurchaseOrderSummary(BaseModel):
    """A row of the purchase order listing."""
    kiotviet_id: int
    code: Optional[str] = None
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    branch_id: Optional[int] = None
    purchase_date: Optional[str] = None
    status: Optional[int] = None
    total: Optional[float] = None
    description: Optional[str] = None
