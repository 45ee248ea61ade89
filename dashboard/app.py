"""
Purchase Order Dashboard: FastAPI backend.

JSON API behind the purchase order wizard.  Each operator session works on
a draft (one PurchaseOrderFlow) held in memory and addressed by draft id.

Endpoints
---------
  GET    /api/health                                  → liveness check
  POST   /api/auth/login                              → sign in (email + password)
  POST   /api/auth/logout                             → sign out
  GET    /api/auth/session                            → current user and role
  GET    /api/suppliers                               → suppliers with purchase history
  POST   /api/drafts                                  → start a draft for a supplier (signed-in staff/admin)
  GET    /api/drafts/{draft_id}                       → draft view (templates, selection, totals)
  PUT    /api/drafts/{draft_id}/products/{product_id} → add a template product
  PATCH  /api/drafts/{draft_id}/products/{product_id} → edit quantity / price
  DELETE /api/drafts/{draft_id}/products/{product_id} → remove a product
  DELETE /api/drafts/{draft_id}/products              → remove all products
  POST   /api/drafts/{draft_id}/submit                → send to the workflow webhook (signed-in staff/admin)
  DELETE /api/drafts/{draft_id}                       → discard the draft
  GET    /api/purchase-orders                         → listing (supports ?status= and ?supplier_id=)

Drafts untouched for draft_idle_ttl_seconds are evicted, and at most
max_drafts are held at once.
"""
import logging
import math
import uuid
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from config import Config
from dashboard.drafts import DraftStore
from dashboard.models import DraftCreate, DraftSubmit, LineUpdate, Login
from pipeline.auth import is_admin
from pipeline.errors import AuthorizationError, DataSourceError
from pipeline.flow import PurchaseOrderFlow
from pipeline.processor import PurchaseOrderProcessor
from pipeline.suppliers import SupplierListState

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Processor (lazy, so startup doesn't fail before the env is configured)
# ---------------------------------------------------------------------------
_processor: Optional[PurchaseOrderProcessor] = None


def get_processor() -> PurchaseOrderProcessor:
    global _processor
    if _processor is None:
        _processor = PurchaseOrderProcessor(Config())
    return _processor


# ---------------------------------------------------------------------------
# In-memory drafts  {draft_id: PurchaseOrderFlow}
# ---------------------------------------------------------------------------
_drafts: Optional[DraftStore] = None


def get_drafts() -> DraftStore:
    global _drafts
    if _drafts is None:
        config = get_processor().config
        _drafts = DraftStore(config.draft_idle_ttl_seconds, config.max_drafts)
    return _drafts


app = FastAPI(title="Purchase Order Dashboard", docs_url=None, redoc_url=None)


def _get_draft(draft_id: str) -> PurchaseOrderFlow:
    flow = get_drafts().get(draft_id)
    if flow is None:
        raise HTTPException(status_code=404, detail="Draft not found")
    return flow


async def _authorize(processor: PurchaseOrderProcessor) -> None:
    try:
        await processor.authorize_purchase_orders()
    except AuthorizationError as e:
        status = 403 if processor.session is not None else 401
        raise HTTPException(status_code=status, detail=str(e))


def _draft_view(draft_id: str, flow: PurchaseOrderFlow) -> dict:
    supplier = flow.selected_supplier
    return {
        "id": draft_id,
        "step": flow.step,
        "supplier": supplier.model_dump(exclude={"po_template_products"}) if supplier else None,
        "templates_state": flow.loader.state.model_dump(),
        "templates": [t.model_dump() for t in flow.templates],
        "selected": [line.model_dump() for line in flow.selection.selected_list()],
        "is_select_all": flow.selection.is_select_all(flow.templates),
        "totals": flow.totals().model_dump(),
        "error": flow.error_message,
    }


@app.get("/api/health")
def health():
    return {"status": "ok", "drafts": len(get_drafts())}


@app.post("/api/auth/login")
async def login(body: Login):
    processor = get_processor()
    try:
        await processor.sign_in(body.email, body.password)
    except DataSourceError as e:
        logger.warning("Sign-in failed for %s: %s", body.email, e)
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return session_info()


@app.post("/api/auth/logout")
async def logout():
    get_processor().sign_out()
    return {"signed_in": False}


@app.get("/api/auth/session")
def session_info():
    session = get_processor().session
    if session is None:
        return {"signed_in": False}
    return {
        "signed_in": True,
        "email": session.email,
        "role": session.role,
        "is_admin": is_admin(session),
        "expires_at": session.expires_at,
    }


@app.get("/api/suppliers")
async def list_suppliers():
    state = SupplierListState(get_processor().suppliers)
    await state.load()
    return {
        "suppliers": [s.model_dump(exclude={"po_template_products"}) for s in state.suppliers],
        "error": state.error,
    }


@app.post("/api/drafts", status_code=201)
async def create_draft(body: DraftCreate):
    processor = get_processor()
    await _authorize(processor)
    state = SupplierListState(processor.suppliers)
    await state.load()
    if state.error:
        raise HTTPException(status_code=502, detail=state.error)
    supplier = state.get(body.supplier_id)
    if supplier is None:
        raise HTTPException(status_code=404, detail=f"Supplier {body.supplier_id} not found")

    flow = processor.new_flow()
    await flow.choose_supplier(supplier)
    draft_id = uuid.uuid4().hex
    get_drafts().put(draft_id, flow)
    logger.info("Draft %s started for supplier %s", draft_id, supplier.kiotviet_id)
    return _draft_view(draft_id, flow)


@app.get("/api/drafts/{draft_id}")
async def get_draft(draft_id: str):
    return _draft_view(draft_id, _get_draft(draft_id))


@app.put("/api/drafts/{draft_id}/products/{product_id}")
async def add_product(draft_id: str, product_id: int):
    flow = _get_draft(draft_id)
    if not flow.add_product(product_id):
        raise HTTPException(status_code=404, detail=f"Product {product_id} is not a template of this supplier")
    return _draft_view(draft_id, flow)


@app.patch("/api/drafts/{draft_id}/products/{product_id}")
async def update_product(draft_id: str, product_id: int, body: LineUpdate):
    flow = _get_draft(draft_id)
    if product_id not in flow.selection:
        raise HTTPException(status_code=404, detail=f"Product {product_id} is not selected")
    if body.quantity is not None and not (math.isfinite(body.quantity) and body.quantity > 0):
        raise HTTPException(status_code=422, detail="Quantity must be a positive number")
    if body.price is not None and not (math.isfinite(body.price) and body.price >= 0):
        raise HTTPException(status_code=422, detail="Price must be a non-negative number")

    if body.quantity is not None and not flow.selection.update_quantity(product_id, body.quantity):
        raise HTTPException(status_code=422, detail="Quantity rejected")
    if "price" in body.model_fields_set and not flow.selection.update_price(product_id, body.price):
        raise HTTPException(status_code=422, detail="Price rejected")
    return _draft_view(draft_id, flow)


@app.delete("/api/drafts/{draft_id}/products/{product_id}")
async def remove_product(draft_id: str, product_id: int):
    flow = _get_draft(draft_id)
    flow.remove_product(product_id)
    return _draft_view(draft_id, flow)


@app.delete("/api/drafts/{draft_id}/products")
async def remove_all_products(draft_id: str):
    flow = _get_draft(draft_id)
    flow.selection.remove_all()
    return _draft_view(draft_id, flow)


@app.post("/api/drafts/{draft_id}/submit")
async def submit_draft(draft_id: str, body: Optional[DraftSubmit] = None):
    processor = get_processor()
    flow = _get_draft(draft_id)
    await _authorize(processor)
    result = await flow.submit(body.branch_id if body else None)
    content = result.model_dump(mode="json", by_alias=True)
    if result.status == "invalid":
        return JSONResponse(status_code=400, content=content)
    if result.status == "failed":
        return JSONResponse(status_code=502, content=content)
    get_drafts().pop(draft_id)
    return content


@app.delete("/api/drafts/{draft_id}")
async def discard_draft(draft_id: str):
    flow = get_drafts().pop(draft_id)
    if flow is None:
        raise HTTPException(status_code=404, detail="Draft not found")
    flow.reset()
    return {"deleted": draft_id}


@app.get("/api/purchase-orders")
async def list_purchase_orders(
    status: Optional[int] = Query(None),
    supplier_id: Optional[int] = Query(None),
):
    try:
        orders = await get_processor().listing.fetch(status=status, supplier_id=supplier_id)
    except DataSourceError as e:
        logger.error("Purchase order listing failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    return {"purchase_orders": [o.model_dump() for o in orders]}
