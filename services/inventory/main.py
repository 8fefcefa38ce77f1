"""Inventory service API built with FastAPI.

Exposes stock counters per product: creation and administrative stock
updates, low-stock alerts, and the reserve / release / confirm / deduct operations
the storefront calls while placing, cancelling and shipping orders.
Validation is done with Pydantic models; persistence is delegated to the
SQLAlchemy-backed ``repo.InventoryRepo``.
"""

import logging
import time
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field, constr
from pythonjsonlogger import jsonlogger
from sqlalchemy import text

from .repo import DEFAULT_REORDER_POINT, InventoryItem, InventoryRepo, engine, init_db

app = FastAPI(title="Inventory Service")

ProductId = constr(pattern=r"^[A-Za-z0-9_-]{3,64}$")

# logger JSON
logger = logging.getLogger("inventory")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # wait briefly until the database accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


class Item(BaseModel):
    """A product and a positive quantity."""

    product_id: ProductId
    quantity: int = Field(gt=0)


class ItemsRequest(BaseModel):
    items: List[Item] = Field(min_length=1)

    def pairs(self):
        return [(it.product_id, it.quantity) for it in self.items]


class ReserveResponse(BaseModel):
    """Response body for the reserve endpoint.

    Attributes:
        reserved: Whether the reservation succeeded for all items.
        detail: Optional error code when reservation fails.
    """

    reserved: bool
    detail: Optional[str] = None


class CreateInventoryRequest(BaseModel):
    product_id: ProductId
    stock_quantity: int = Field(ge=0)
    reorder_point: int = Field(default=DEFAULT_REORDER_POINT, ge=0)


class StockUpdateRequest(BaseModel):
    stock_quantity: int = Field(ge=0)


class InventoryOut(BaseModel):
    product_id: str
    stock_quantity: int
    reserved_quantity: int
    available: int
    reorder_point: int
    last_restocked: Optional[datetime] = None

    @classmethod
    def of(cls, item: InventoryItem) -> "InventoryOut":
        return cls(
            product_id=item.product_id,
            stock_quantity=item.stock_quantity,
            reserved_quantity=item.reserved_quantity,
            available=item.available,
            reorder_point=item.reorder_point,
            last_restocked=item.last_restocked,
        )


def _not_found(missing):
    return HTTPException(status_code=404, detail={"detail": "INVENTORY_NOT_FOUND", "product_ids": missing})


@app.get("/health")
def health():
    """Liveness check."""
    return {"ok": True}


@app.post("/inventory", response_model=InventoryOut, status_code=201)
def create_inventory(req: CreateInventoryRequest):
    item = InventoryRepo().create(req.product_id, req.stock_quantity, req.reorder_point)
    if item is None:
        raise HTTPException(status_code=409, detail={"detail": "INVENTORY_EXISTS"})
    return InventoryOut.of(item)


@app.get("/inventory/{product_id}", response_model=InventoryOut)
def get_inventory(product_id: str):
    item = InventoryRepo().get(product_id)
    if item is None:
        raise _not_found([product_id])
    return InventoryOut.of(item)


@app.put("/inventory/{product_id}/stock", response_model=InventoryOut)
def update_stock(product_id: str, req: StockUpdateRequest):
    item = InventoryRepo().update_stock(product_id, req.stock_quantity)
    if item is None:
        raise _not_found([product_id])
    logger.info("stock updated", extra={"product_id": product_id, "stock_quantity": req.stock_quantity})
    return InventoryOut.of(item)


@app.get("/inventory-alerts/low-stock")
def low_stock():
    items = InventoryRepo().low_stock()
    return {"count": len(items), "items": [InventoryOut.of(i).model_dump(mode="json") for i in items]}


@app.post("/reserve", response_model=ReserveResponse)
def reserve(req: ItemsRequest):
    """Reserve stock for a batch of items, all or nothing.

    Raises:
        HTTPException: 422 when any item has insufficient available stock.
    """
    if not InventoryRepo().reserve(req.pairs()):
        raise HTTPException(status_code=422, detail={"reserved": False, "detail": "INSUFFICIENT_STOCK"})
    return ReserveResponse(reserved=True)


@app.post("/release")
def release(req: ItemsRequest):
    missing = InventoryRepo().release(req.pairs())
    if missing:
        raise _not_found(missing)
    return {"released": True}


@app.post("/confirm")
def confirm(req: ItemsRequest):
    missing = InventoryRepo().confirm(req.pairs())
    if missing:
        raise _not_found(missing)
    return {"confirmed": True}


@app.post("/deduct")
def deduct(req: ItemsRequest):
    """Deduct shipped units that were never reserved; reservations are left alone."""
    missing = InventoryRepo().deduct(req.pairs())
    if missing:
        raise _not_found(missing)
    return {"deducted": True}


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
