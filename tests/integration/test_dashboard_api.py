"""
Integration tests for the dashboard JSON API.

The FastAPI app runs in-process over ASGITransport; the data API and the
workflow webhook are the mock transports from conftest.
"""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from dashboard import app as dashboard_app
from dashboard.drafts import DraftStore


@pytest_asyncio.fixture
async def anon_client(processor, monkeypatch):
    monkeypatch.setattr(dashboard_app, "_processor", processor)
    monkeypatch.setattr(dashboard_app, "_drafts", DraftStore())
    transport = ASGITransport(app=dashboard_app.app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def client(anon_client):
    response = await anon_client.post(
        "/api/auth/login", json={"email": "ops@example.test", "password": "secret"}
    )
    assert response.status_code == 200
    yield anon_client


async def _start_draft(client, supplier_id=1001) -> dict:
    response = await client.post("/api/drafts", json={"supplier_id": supplier_id})
    assert response.status_code == 201
    return response.json()


@pytest.mark.integration
@pytest.mark.api
class TestDashboardAPI:
    """End-to-end tests for the draft lifecycle."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_list_suppliers(self, client):
        response = await client.get("/api/suppliers")
        body = response.json()
        assert response.status_code == 200
        assert [s["kiotviet_id"] for s in body["suppliers"]] == [1001, 1002]
        assert body["error"] is None

    @pytest.mark.asyncio
    async def test_list_suppliers_reports_error(self, client, rest_backend):
        rest_backend.fail("v_suppliers_admin", status=500, message="db down")
        response = await client.get("/api/suppliers")
        assert response.status_code == 200
        assert response.json() == {"suppliers": [], "error": "db down"}

    @pytest.mark.asyncio
    async def test_create_draft_auto_selects(self, client):
        draft = await _start_draft(client)

        assert draft["step"] == 2
        assert draft["templates_state"]["status"] == "loaded"
        assert len(draft["selected"]) == 3
        assert draft["is_select_all"] is True
        assert draft["totals"]["breakdown"] == "163 kg = 2 bag50 + 1 bag60"

    @pytest.mark.asyncio
    async def test_create_draft_unknown_supplier(self, client):
        response = await client.post("/api/drafts", json={"supplier_id": 4242})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_create_draft_when_suppliers_fail(self, client, rest_backend):
        rest_backend.fail("v_suppliers_admin", status=500)
        response = await client.post("/api/drafts", json={"supplier_id": 1001})
        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_unknown_draft(self, client):
        response = await client.get("/api/drafts/nope")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_edit_quantity_and_price(self, client):
        draft = await _start_draft(client)
        url = f"/api/drafts/{draft['id']}/products/2"

        response = await client.patch(url, json={"quantity": 4, "price": 17000})
        line = next(p for p in response.json()["selected"] if p["product_id"] == 2)
        assert line["quantity"] == 4
        assert line["price"] == 17000

        response = await client.patch(url, json={"quantity": 0.4})
        line = next(p for p in response.json()["selected"] if p["product_id"] == 2)
        assert line["quantity"] == 1
        assert line["price"] == 17000

    @pytest.mark.asyncio
    async def test_non_positive_quantity_rejected(self, client):
        draft = await _start_draft(client)
        response = await client.patch(f"/api/drafts/{draft['id']}/products/2", json={"quantity": 0})
        assert response.status_code == 422

        view = (await client.get(f"/api/drafts/{draft['id']}")).json()
        line = next(p for p in view["selected"] if p["product_id"] == 2)
        assert line["quantity"] == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ['{"quantity": Infinity}', '{"quantity": NaN}', '{"price": Infinity}'])
    async def test_non_finite_values_rejected(self, client, raw):
        draft = await _start_draft(client)
        url = f"/api/drafts/{draft['id']}/products/2"

        response = await client.patch(url, content=raw, headers={"Content-Type": "application/json"})

        assert response.status_code == 422
        view = (await client.get(f"/api/drafts/{draft['id']}")).json()
        line = next(p for p in view["selected"] if p["product_id"] == 2)
        assert line["quantity"] == 2
        assert line["price"] == 18000

    @pytest.mark.asyncio
    async def test_edit_unselected_product(self, client):
        draft = await _start_draft(client)
        await client.delete(f"/api/drafts/{draft['id']}/products/2")
        response = await client.patch(f"/api/drafts/{draft['id']}/products/2", json={"quantity": 3})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_remove_and_add_product(self, client):
        draft = await _start_draft(client)
        base = f"/api/drafts/{draft['id']}/products"

        view = (await client.delete(f"{base}/1")).json()
        assert [p["product_id"] for p in view["selected"]] == [2, 3]
        assert view["is_select_all"] is False

        view = (await client.put(f"{base}/1")).json()
        assert {p["product_id"] for p in view["selected"]} == {1, 2, 3}

        response = await client.put(f"{base}/999")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_remove_all_then_submit_is_invalid(self, client, webhook):
        draft = await _start_draft(client)
        await client.delete(f"/api/drafts/{draft['id']}/products")

        response = await client.post(f"/api/drafts/{draft['id']}/submit")

        assert response.status_code == 400
        assert response.json()["status"] == "invalid"
        assert webhook.requests == []

    @pytest.mark.asyncio
    async def test_submit_success_closes_draft(self, client, webhook):
        draft = await _start_draft(client)

        response = await client.post(f"/api/drafts/{draft['id']}/submit", json={"branch_id": 9})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["payload"]["branchId"] == 9
        assert webhook.payloads[0]["isDraft"] is True
        assert (await client.get(f"/api/drafts/{draft['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_submit_failure_keeps_draft(self, client, webhook):
        webhook.status = 500
        webhook.body = "workflow exploded"
        draft = await _start_draft(client)

        response = await client.post(f"/api/drafts/{draft['id']}/submit")

        assert response.status_code == 502
        assert response.json()["message"] == "workflow exploded"
        view = (await client.get(f"/api/drafts/{draft['id']}")).json()
        assert len(view["selected"]) == 3
        assert view["error"] == "workflow exploded"

    @pytest.mark.asyncio
    async def test_discard_draft(self, client):
        draft = await _start_draft(client)
        response = await client.delete(f"/api/drafts/{draft['id']}")
        assert response.json() == {"deleted": draft["id"]}
        assert (await client.delete(f"/api/drafts/{draft['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_list_purchase_orders(self, client, rest_backend):
        rest_backend.tables["kv_purchase_orders"] = [
            {"kiotviet_id": 1, "code": "PN0001", "supplier_id": 1001, "status": 3},
        ]
        response = await client.get("/api/purchase-orders", params={"supplier_id": 1001})

        assert response.status_code == 200
        assert response.json()["purchase_orders"][0]["code"] == "PN0001"
        params = rest_backend.calls_to("kv_purchase_orders")[0].url.params
        assert params["status"] == "eq.3"
        assert params["supplier_id"] == "eq.1001"

    @pytest.mark.asyncio
    async def test_list_purchase_orders_error(self, client, rest_backend):
        rest_backend.fail("kv_purchase_orders", status=500)
        response = await client.get("/api/purchase-orders")
        assert response.status_code == 502


@pytest.mark.integration
@pytest.mark.api
class TestDashboardAuth:
    """Sign-in and role gating for draft creation and submission."""

    @pytest.mark.asyncio
    async def test_session_when_signed_out(self, anon_client):
        response = await anon_client.get("/api/auth/session")
        assert response.json() == {"signed_in": False}

    @pytest.mark.asyncio
    async def test_login_reports_role(self, anon_client):
        response = await anon_client.post(
            "/api/auth/login", json={"email": "ops@example.test", "password": "secret"}
        )
        body = response.json()
        assert response.status_code == 200
        assert body["signed_in"] is True
        assert body["role"] == "staff"
        assert body["is_admin"] is False

    @pytest.mark.asyncio
    async def test_admin_login(self, anon_client, rest_backend):
        rest_backend.token_role = "admin"
        response = await anon_client.post(
            "/api/auth/login", json={"email": "ops@example.test", "password": "secret"}
        )
        assert response.json()["is_admin"] is True

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, anon_client):
        response = await anon_client.post(
            "/api/auth/login", json={"email": "ops@example.test", "password": "nope"}
        )
        assert response.status_code == 401
        assert (await anon_client.get("/api/auth/session")).json() == {"signed_in": False}

    @pytest.mark.asyncio
    async def test_create_draft_requires_sign_in(self, anon_client, rest_backend):
        response = await anon_client.post("/api/drafts", json={"supplier_id": 1001})
        assert response.status_code == 401
        assert rest_backend.calls_to("kv_supplier_product_templates") == []

    @pytest.mark.asyncio
    async def test_create_draft_refused_for_viewer(self, anon_client, rest_backend):
        rest_backend.token_role = "viewer"
        await anon_client.post("/api/auth/login", json={"email": "v@example.test", "password": "secret"})

        response = await anon_client.post("/api/drafts", json={"supplier_id": 1001})

        assert response.status_code == 403
        assert "viewer" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_submit_after_logout_is_refused(self, client, webhook):
        draft = await _start_draft(client)
        await client.post("/api/auth/logout")

        response = await client.post(f"/api/drafts/{draft['id']}/submit")

        assert response.status_code == 401
        assert webhook.requests == []
        assert (await client.get(f"/api/drafts/{draft['id']}")).status_code == 200

    @pytest.mark.asyncio
    async def test_drafts_use_signed_in_token(self, client, rest_backend):
        await _start_draft(client)
        request = rest_backend.calls_to("kv_supplier_product_templates")[-1]
        assert request.headers["Authorization"] == "Bearer user-token"


@pytest.mark.integration
@pytest.mark.api
class TestDraftEviction:
    """Idle and overflow eviction through the API."""

    @pytest.mark.asyncio
    async def test_idle_draft_is_evicted(self, client, monkeypatch):
        now = [1000.0]
        monkeypatch.setattr(dashboard_app, "_drafts", DraftStore(ttl_seconds=60, clock=lambda: now[0]))
        draft = await _start_draft(client)

        now[0] += 61

        assert (await client.get(f"/api/drafts/{draft['id']}")).status_code == 404
        assert (await client.get("/api/health")).json()["drafts"] == 0

    @pytest.mark.asyncio
    async def test_store_never_exceeds_cap(self, client, monkeypatch):
        monkeypatch.setattr(dashboard_app, "_drafts", DraftStore(max_drafts=2))
        first = await _start_draft(client)
        await _start_draft(client)
        await _start_draft(client)

        assert (await client.get("/api/health")).json()["drafts"] == 2
        assert (await client.get(f"/api/drafts/{first['id']}")).status_code == 404
