"""
Pydantic models for dashboard API requests.
"""
from pydantic import BaseModel
from typing import Optional


class DraftCreate(BaseModel):
    supplier_id: int


class LineUpdate(BaseModel):
    quantity: Optional[float] = None
    price: Optional[float] = None


class DraftSubmit(BaseModel):
    branch_id: Optional[int] = None


class Login(BaseModel):
    email: str
    password: str
