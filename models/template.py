from pydantic import BaseModel, Field, field_validator
from typing import Optional, List


class ChildUnit(BaseModel):
    """
    An alternate packaging unit for a product, e.g. "bag 50kg".
    conversion_value is how many master units one child unit represents.
    """
    unit: str
    code: Optional[str] = None
    name: Optional[str] = None
    full_name: Optional[str] = None
    base_price: Optional[float] = None
    kiotviet_id: Optional[int] = None
    conversion_value: float = Field(gt=0)
    base_price_per_masterunit: Optional[float] = None


class TemplateProduct(BaseModel):
    """
    Historical ordering pattern for one product from one supplier.
    avg_quantity seeds the default quantity of a new order line.
    """
    product_id: int
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    order_count: int = 0
    avg_quantity: float = 0.0
    avg_price: Optional[float] = None
    last_purchase_date: Optional[str] = None
    order_template: Optional[str] = None
    images: Optional[List[str]] = None
    child_units: List[ChildUnit] = Field(default_factory=list)
    master_unit: Optional[str] = None   # e.g. "kg", filled from the products table

    @field_validator("child_units", mode="before")
    @classmethod
    def _null_child_units(cls, v):
        return v or []

    @field_validator("order_count", "avg_quantity", mode="before")
    @classmethod
    def _null_numbers(cls, v):
        return v or 0

    @property
    def primary_child_unit(self) -> Optional[ChildUnit]:
        """The first declared child unit; used for all display and conversion."""
        return self.child_units[0] if self.child_units else None


class SelectedProduct(TemplateProduct):
    """A template chosen for the order being drafted, with editable quantity/price."""
    quantity: float = Field(ge=1)   # in primary child unit if present, else master unit
    price: Optional[float] = None
