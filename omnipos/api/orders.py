from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from omnipos.infrastructure.db import get_db
from omnipos.application.order_service import OrderService
from omnipos.application.order_queries import OrderQueryService
from omnipos.application.schemas import OrderCreate, OrderRead, OrderSummary, OrderLineRead, RefundRequest
from omnipos.core.errors import (
    CONFIGURATION,
    CONTENTION,
    INTEGRITY,
    InsufficientStockError,
    OrderCommitError,
    OverRedemptionError,
    RefundRejectedError,
)

router = APIRouter(prefix="/api/orders", tags=["orders"])

def error_status(exc: OrderCommitError) -> int:
    if isinstance(exc, (InsufficientStockError, OverRedemptionError, RefundRejectedError)):
        return 409
    if exc.kind in (CONFIGURATION, CONTENTION):
        return 503
    if exc.kind == INTEGRITY:
        return 500
    return 404

def raise_http(exc: OrderCommitError):
    headers = {"Retry-After": "1"} if exc.retryable else None
    raise HTTPException(status_code=error_status(exc), detail=exc.to_dict(), headers=headers) from exc

@router.get("/", response_model=list[OrderSummary])
def list_orders(db: Session = Depends(get_db)):
    """Order history, newest first."""
    return OrderQueryService(db).list_orders()

@router.post("/", response_model=OrderRead, status_code=201)
def create_order(payload: OrderCreate, db: Session = Depends(get_db)):
    """Place an order. Not idempotent: resubmitting the same payload creates a second order."""
    try:
        return OrderService(db).place_order(payload)
    except OrderCommitError as exc:
        raise_http(exc)

@router.get("/{order_id}", response_model=OrderRead)
def get_order(order_id: int, db: Session = Depends(get_db)):
    order = OrderQueryService(db).get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order

@router.get("/{order_id}/items", response_model=list[OrderLineRead])
def get_order_items(order_id: int, db: Session = Depends(get_db)):
    try:
        return OrderQueryService(db).get_line_items(order_id)
    except OrderCommitError as exc:
        raise_http(exc)

@router.post("/{order_id}/refund", response_model=OrderRead)
def refund_order(order_id: int, payload: RefundRequest, db: Session = Depends(get_db)):
    try:
        return OrderService(db).refund(order_id, payload)
    except OrderCommitError as exc:
        raise_http(exc)
