"""
Session handling and role checks.

The session is an explicit AuthSession object: SessionManager signs in and
refreshes it against the hosted auth endpoint, and consumers receive it as
an argument.  Role checks are plain functions over that object.
"""
import logging
import time
from typing import Optional

import httpx
from pydantic import ValidationError

from models.session import AuthSession
from .errors import ConfigurationError, DataSourceError

logger = logging.getLogger(__name__)

AUTH_TOKEN_PATH = "/auth/v1/token"


def should_refresh(
    session: Optional[AuthSession],
    threshold_seconds: float,
    now: Optional[float] = None,
) -> bool:
    """True when the session is missing, has no expiry, or expires within the threshold."""
    if session is None or session.expires_at is None:
        return True
    now = time.time() if now is None else now
    return session.expires_at - now <= threshold_seconds


def is_admin(session: Optional[AuthSession]) -> bool:
    return session is not None and session.role == "admin"


def can_create_purchase_orders(session: Optional[AuthSession]) -> bool:
    return session is not None and session.role in ("admin", "staff")


def _session_from_token_response(body: dict) -> AuthSession:
    user = body.get("user") or {}
    metadata = user.get("app_metadata") or {}
    role = metadata.get("role") if metadata.get("role") in ("admin", "staff", "viewer") else "staff"
    expires_at = body.get("expires_at")
    if expires_at is None and body.get("expires_in") is not None:
        expires_at = int(time.time()) + int(body["expires_in"])
    return AuthSession(
        access_token=body["access_token"],
        refresh_token=body.get("refresh_token"),
        expires_at=expires_at,
        user_id=user.get("id"),
        email=user.get("email"),
        role=role,
    )


class SessionManager:
    """Obtains and keeps fresh an AuthSession for the hosted backend."""

    def __init__(
        self,
        url: Optional[str],
        api_key: Optional[str],
        refresh_threshold_seconds: float = 60,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not url or not api_key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_ANON_KEY must be configured")
        self.api_key = api_key
        self.refresh_threshold_seconds = refresh_threshold_seconds
        self.session: Optional[AuthSession] = None
        self._client = httpx.AsyncClient(
            base_url=url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"apikey": api_key},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _token_request(self, grant_type: str, body: dict) -> AuthSession:
        try:
            response = await self._client.post(AUTH_TOKEN_PATH, params={"grant_type": grant_type}, json=body)
        except httpx.HTTPError as e:
            raise DataSourceError(f"Auth request failed: {e}") from e
        if response.is_error:
            raise DataSourceError(
                f"Auth request rejected: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            self.session = _session_from_token_response(response.json())
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise DataSourceError(f"Unexpected auth response: {e}") from e
        return self.session

    async def sign_in(self, email: str, password: str) -> AuthSession:
        session = await self._token_request("password", {"email": email, "password": password})
        logger.info("Signed in as %s (%s)", session.email, session.role)
        return session

    async def refresh(self) -> AuthSession:
        if not self.session or not self.session.refresh_token:
            raise DataSourceError("No session to refresh")
        session = await self._token_request(
            "refresh_token", {"refresh_token": self.session.refresh_token}
        )
        logger.debug("Session refreshed, expires at %s", session.expires_at)
        return session

    def sign_out(self) -> None:
        if self.session is not None:
            logger.info("Signed out %s", self.session.email)
        self.session = None

    async def ensure_active(self) -> Optional[AuthSession]:
        """
        Refresh the session if it is close to expiry and return it.
        Returns None when nobody is signed in (anonymous key access).
        """
        if self.session is None:
            return None
        if should_refresh(self.session, self.refresh_threshold_seconds):
            try:
                return await self.refresh()
            except DataSourceError as e:
                logger.error("Failed to refresh session: %s", e)
                raise
        return self.session
