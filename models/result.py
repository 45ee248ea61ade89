from pydantic import BaseModel, Field
from typing import Optional, List, Literal, Dict

from .purchase_order import SubmissionPayload


LoadStatus = Literal["idle", "loading", "loaded", "error"]
SubmissionStatus = Literal["success", "invalid", "failed"]


class TemplateLoadState(BaseModel):
    """Snapshot of the template loader for one supplier selection."""
    status: LoadStatus = "idle"
    supplier_id: Optional[int] = None
    error: Optional[str] = None


class OrderTotals(BaseModel):
    """Aggregate quantities across all selected lines."""
    line_count: int = 0
    total_master: float = 0.0
    child_unit_totals: Dict[str, float] = Field(default_factory=dict)
    breakdown: str = ""


class SubmissionResult(BaseModel):
    """
    Outcome of a submit attempt, suitable for showing to the operator.
    The selection is never cleared by a failed submission.
    """
    status: SubmissionStatus
    message: str
    status_code: Optional[int] = None
    payload: Optional[SubmissionPayload] = None
    errors: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "success"
