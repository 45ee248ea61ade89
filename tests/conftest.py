"""
Pytest configuration and shared fixtures for the purchase-order test suite.

HTTP collaborators (the hosted REST API and the workflow webhook) are
replaced by httpx.MockTransport handlers backed by in-memory rows.
"""
import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Generator, Optional

import httpx
import pytest
import pytest_asyncio

PROJECT_ROOT = Path(__file__).parent.parent
os.chdir(PROJECT_ROOT)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for test files."""
    tmp_path = tempfile.mkdtemp(prefix="po_drafter_test_")
    yield Path(tmp_path)
    shutil.rmtree(tmp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path, monkeypatch) -> "Config":
    """Provide a configuration isolated from the host environment."""
    from config import Config

    monkeypatch.setenv("CONFIG_DIR", str(temp_dir / "config"))
    config = Config()
    config.data_api_url = "https://db.example.test"
    config.data_api_key = "anon-key"
    config.webhook_base_url = "https://hooks.example.test/webhook/"
    config.webhook_basic_auth = None
    config.webhook_header_key = None
    config.webhook_header_value = None
    config.default_branch_id = 15132
    config.template_timeout_seconds = 10.0
    config.supplier_retry_delay_seconds = 0
    config.auth_email = "ops@example.test"
    config.auth_password = "secret"
    return config


# ---------------------------------------------------------------------------
# Sample rows
# ---------------------------------------------------------------------------

BAG50 = {"unit": "bag50", "code": "GAO-50", "name": "Rice bag 50kg", "base_price": 900000,
         "kiotviet_id": 9050, "conversion_value": 50, "base_price_per_masterunit": 18000}
BAG60 = {"unit": "bag60", "code": "GAO-60", "name": "Rice bag 60kg", "base_price": 1050000,
         "kiotviet_id": 9060, "conversion_value": 60, "base_price_per_masterunit": 17500}


@pytest.fixture
def sample_template_rows() -> list[dict]:
    """P1 without child units, P2 sold in 50kg bags, P3 in 60kg bags."""
    return [
        {"product_id": 1, "product_code": "P1", "product_name": "Fish sauce", "order_count": 12,
         "avg_quantity": 3, "avg_price": 45000, "last_purchase_date": "2024-05-01",
         "child_units": None},
        {"product_id": 2, "product_code": "P2", "product_name": "Jasmine rice", "order_count": 9,
         "avg_quantity": 2, "avg_price": 18000, "last_purchase_date": "2024-05-03",
         "child_units": [BAG50]},
        {"product_id": 3, "product_code": "P3", "product_name": "Sticky rice", "order_count": 4,
         "avg_quantity": 0.4, "avg_price": 17500, "last_purchase_date": "2024-04-20",
         "child_units": [BAG60]},
    ]


@pytest.fixture
def sample_supplier_rows() -> list[dict]:
    return [
        {"kiotviet_id": 1001, "name": "Lam Thuy Rice", "code": "NCC001",
         "contact_number": "0909000111", "address": "12 Market St", "branch_id": 77,
         "total_invoice": 42, "last_purchase_date": "2024-05-03",
         "last_master_unit_quantity": "1250.5"},
        {"kiotviet_id": 1002, "name": None, "code": "NCC002", "contact_number": None,
         "address": None, "branch_id": None, "total_invoice": None,
         "last_purchase_date": None, "last_master_unit_quantity": None},
    ]


@pytest.fixture
def sample_product_units() -> list[dict]:
    return [{"kiotviet_id": 1, "unit": "bottle"}, {"kiotviet_id": 2, "unit": "kg"},
            {"kiotviet_id": 3, "unit": "kg"}]


# ---------------------------------------------------------------------------
# Fake HTTP collaborators
# ---------------------------------------------------------------------------

class FakeRestBackend:
    """
    Minimal PostgREST stand-in.  Serves rows per table, honours
    `supplier_id=eq.N`, and can be told to fail a table with an error code
    or answer it with a non-JSON body.  Also issues tokens on /auth/v1/token.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = {}
        self.failures: dict[str, tuple[int, dict]] = {}
        self.requests: list[httpx.Request] = []
        self.flaky: dict[str, int] = {}
        self.garbled: set[str] = set()
        self.password = "secret"
        self.token_role = "staff"
        self.fail_auth = False

    def fail(self, table: str, status: int = 500, code: Optional[str] = None,
             message: str = "boom") -> None:
        self.failures[table] = (status, {"code": code, "message": message})

    def calls_to(self, table: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/" + table)]

    def token(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if self.fail_auth:
            return httpx.Response(500, text="auth unavailable")
        if request.url.params.get("grant_type") == "password" and body.get("password") != self.password:
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"})
        return httpx.Response(200, json={
            "access_token": "user-token",
            "refresh_token": "refresh-1",
            "expires_in": 3600,
            "user": {"id": "u-1", "email": body.get("email", "ops@example.test"),
                     "app_metadata": {"role": self.token_role}},
        })

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/auth/v1/token":
            return self.token(request)
        table = request.url.path.rsplit("/", 1)[-1]
        if self.flaky.get(table):
            self.flaky[table] -= 1
            return httpx.Response(503, json={"message": "service unavailable"})
        if table in self.garbled:
            return httpx.Response(200, text="<html>502 Bad Gateway</html>")
        if table in self.failures:
            status, body = self.failures[table]
            return httpx.Response(status, json=body)
        if table not in self.tables:
            return httpx.Response(404, json={"code": "PGRST205", "message": f"relation {table} not found"})
        rows = self.tables[table]
        supplier_filter = request.url.params.get("supplier_id")
        if supplier_filter and supplier_filter.startswith("eq."):
            wanted = int(supplier_filter[3:])
            rows = [r for r in rows if r.get("supplier_id") == wanted]
        return httpx.Response(200, json=rows)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeWebhook:
    """Records POSTed payloads and answers with a configurable status."""

    def __init__(self, status: int = 200, body: str = '{"ok": true}') -> None:
        self.status = status
        self.body = body
        self.requests: list[httpx.Request] = []
        self.raise_error: Optional[Exception] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_error is not None:
            raise self.raise_error
        return httpx.Response(self.status, text=self.body)

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def rest_backend(sample_supplier_rows, sample_template_rows, sample_product_units) -> FakeRestBackend:
    backend = FakeRestBackend()
    backend.tables["v_suppliers_admin"] = sample_supplier_rows
    backend.tables["kv_supplier_product_templates"] = [
        {**row, "supplier_id": 1001} for row in sample_template_rows
    ]
    backend.tables["kv_products"] = sample_product_units
    return backend


@pytest.fixture
def webhook() -> FakeWebhook:
    return FakeWebhook()


@pytest_asyncio.fixture
async def processor(test_config, rest_backend, webhook):
    from pipeline.processor import PurchaseOrderProcessor

    proc = PurchaseOrderProcessor(
        test_config,
        transport=rest_backend.transport,
        webhook_transport=webhook.transport,
    )
    yield proc
    await proc.aclose()


@pytest.fixture
def templates(sample_template_rows):
    from models.template import TemplateProduct
    return [TemplateProduct.model_validate(r) for r in sample_template_rows]


@pytest.fixture
def supplier(sample_supplier_rows):
    from models.supplier import SupplierOption
    return SupplierOption.model_validate(sample_supplier_rows[0])


# Configure pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: API tests")
