"""
Async client for the hosted Postgres REST API (PostgREST / Supabase style).

Only the read path the purchase-order flow needs is implemented: select
with equality / IN filters, multi-column ordering, and a row limit.

  GET {url}/rest/v1/{table}?select=...&col=eq.value&order=a.desc,b.desc.nullslast&limit=N

Errors come back as JSON objects with "code" / "message" keys; they are
raised as DataSourceError so callers can react to specific codes
(e.g. PGRST205 when a view does not exist).
"""
import logging
from typing import Any, Optional, Sequence

import httpx

from models.session import AuthSession
from .errors import ConfigurationError, DataSourceError

logger = logging.getLogger(__name__)

REST_PATH = "/rest/v1"
CODE_RELATION_NOT_FOUND = "PGRST205"

Filter = tuple[str, str, Any]           # (column, operator, value)
Ordering = tuple[str, bool, bool]       # (column, ascending, nulls_last)


def _format_filter(operator: str, value: Any) -> str:
    if operator == "eq":
        return f"eq.{value}"
    if operator == "in":
        return "in.(" + ",".join(str(v) for v in value) + ")"
    raise ValueError(f"Unsupported filter operator: {operator}")


def _format_order(order: Sequence[Ordering]) -> str:
    parts = []
    for column, ascending, nulls_last in order:
        part = f"{column}.{'asc' if ascending else 'desc'}"
        if nulls_last:
            part += ".nullslast"
        parts.append(part)
    return ",".join(parts)


def build_query_params(
    columns: str = "*",
    filters: Optional[Sequence[Filter]] = None,
    order: Optional[Sequence[Ordering]] = None,
    limit: Optional[int] = None,
) -> list[tuple[str, str]]:
    """Translate a select call into PostgREST query parameters."""
    params: list[tuple[str, str]] = [("select", columns)]
    for column, operator, value in filters or []:
        params.append((column, _format_filter(operator, value)))
    if order:
        params.append(("order", _format_order(order)))
    if limit is not None:
        params.append(("limit", str(limit)))
    return params


class RestDataSource:
    """
    Thin async wrapper around httpx.AsyncClient for table/view reads.

    An AuthSession may be attached; its access token then replaces the
    anonymous key in the Authorization header.
    """

    def __init__(
        self,
        url: Optional[str],
        api_key: Optional[str],
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not url or not api_key:
            raise ConfigurationError(
                "SUPABASE_URL and SUPABASE_ANON_KEY must be configured"
            )
        self.base_url = url.rstrip("/")
        self.api_key = api_key
        self.session: Optional[AuthSession] = None
        self._client = httpx.AsyncClient(
            base_url=self.base_url + REST_PATH,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "RestDataSource":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        token = self.session.access_token if self.session else self.api_key
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Optional[Sequence[Filter]] = None,
        order: Optional[Sequence[Ordering]] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Return the rows of *table* matching the given filters."""
        params = build_query_params(columns, filters, order, limit)
        try:
            response = await self._client.get(f"/{table}", params=params, headers=self._headers())
        except httpx.TimeoutException as e:
            raise DataSourceError(f"Query on {table} timed out") from e
        except httpx.TransportError as e:
            raise DataSourceError(f"Query on {table} failed: {e}") from e

        if response.is_error:
            code, message = None, response.text
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                code = body.get("code")
                message = body.get("message") or message
            logger.debug("Query on %s failed: HTTP %d %s", table, response.status_code, message)
            raise DataSourceError(message, code=code, status_code=response.status_code)

        try:
            rows = response.json()
        except ValueError as e:
            logger.debug("Query on %s returned a non-JSON body: %s", table, response.text[:200])
            raise DataSourceError(
                f"Query on {table} returned a non-JSON body", status_code=response.status_code
            ) from e
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise DataSourceError(f"Unexpected response shape from {table}")
        return rows
