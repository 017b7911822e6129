"""Catalog/inventory service API built with FastAPI.

This service owns the authoritative product data and stock counters used by
the order gateway when ``USE_HTTP_ADAPTERS`` is enabled. Validation is
performed with Pydantic models; persistence and the atomic stock updates are
delegated to the SQLAlchemy-backed ``repo.CatalogRepo``.
"""

import logging
import time
import uuid
from decimal import Decimal
from typing import List

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from pythonjsonlogger import jsonlogger
from sqlalchemy import text

from repo import INSUFFICIENT, NOT_FOUND, CatalogRepo, engine, init_db

app = FastAPI(title="Inventory Service")

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


class ProductOut(BaseModel):
    id: str
    sku: str
    name: str
    price: Decimal
    images: List[str] = []
    specifications: dict = {}
    stock_quantity: int
    low_stock_threshold: int
    stock_status: str


class StockChange(BaseModel):
    """Request body for stock adjustments.

    Attributes:
        quantity: Positive number of units to debit or credit.
    """
    quantity: int = Field(gt=0)


class StockChangeResult(BaseModel):
    ok: bool
    product_id: str
    quantity: int


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/products/by-sku/{sku}", response_model=ProductOut)
def get_product_by_sku(sku: str):
    product = CatalogRepo().get_by_sku(sku)
    if product is None:
        raise HTTPException(status_code=404, detail="PRODUCT_NOT_FOUND")
    return product


@app.get("/products/{product_id}", response_model=ProductOut)
def get_product(product_id: str):
    product = CatalogRepo().get(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="PRODUCT_NOT_FOUND")
    return product


@app.post("/products/{product_id}/decrement", response_model=StockChangeResult)
def decrement_stock(product_id: str, req: StockChange, request: Request):
    """Debit stock for one product.

    The debit is a single conditional update, so two concurrent requests for
    the last units cannot both succeed.

    Raises:
        HTTPException: 409 ``INSUFFICIENT_STOCK`` when fewer than
            ``quantity`` units are available; 404 for an unknown product.
    """
    outcome = CatalogRepo().decrement(product_id, req.quantity)
    if outcome == NOT_FOUND:
        raise HTTPException(status_code=404, detail="PRODUCT_NOT_FOUND")
    if outcome == INSUFFICIENT:
        logger.info(
            "insufficient stock",
            extra={"request_id": request.state.request_id, "product_id": product_id, "quantity": req.quantity},
        )
        raise HTTPException(status_code=409, detail="INSUFFICIENT_STOCK")
    return StockChangeResult(ok=True, product_id=product_id, quantity=req.quantity)


@app.post("/products/{product_id}/increment", response_model=StockChangeResult)
def increment_stock(product_id: str, req: StockChange):
    if not CatalogRepo().increment(product_id, req.quantity):
        raise HTTPException(status_code=404, detail="PRODUCT_NOT_FOUND")
    return StockChangeResult(ok=True, product_id=product_id, quantity=req.quantity)


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
