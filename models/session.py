from pydantic import BaseModel
from typing import Optional, Literal

Role = Literal["admin", "staff", "viewer"]


class AuthSession(BaseModel):
    """
    An authenticated session against the hosted backend.
    Produced by SessionManager and passed explicitly to whatever needs it.
    """
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None    # epoch seconds
    user_id: Optional[str] = None
    email: Optional[str] = None
    role: Role = "staff"
