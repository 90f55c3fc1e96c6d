from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
import uuid

from app.api.deps import dump, get_current_user, ok, require_pro
from app.db import get_session
from app.models import User
from app.schemas.order import OrderCreateIn, OrderResponse, OrderStatus, OrderStatusIn, OrderTrackingIn
from app.services import order_service

router = APIRouter()


@router.get("")
def list_orders(
    store_id: uuid.UUID | None = Query(default=None, alias="storeId"),
    status: OrderStatus | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    orders, total = order_service.list_orders(session, user.id, store_id=store_id, status=status, page=page, limit=limit)
    return ok(
        {
            "orders": [dump(OrderResponse, o) for o in orders],
            "pagination": {"page": page, "limit": limit, "total": total},
        }
    )


@router.post("", status_code=201)
def create_order(
    payload: OrderCreateIn,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    order = order_service.create_order(session, user, payload)
    return ok({"order": dump(OrderResponse, order)})


@router.get("/{order_id}")
def get_order(order_id: uuid.UUID, session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    return ok({"order": dump(OrderResponse, order_service.get_order(session, user.id, order_id))})


@router.get("/{order_id}/track")
def track_order(order_id: uuid.UUID, session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    return ok({"tracking": order_service.get_tracking_info(session, user.id, order_id)})


@router.put("/{order_id}/status")
def update_status(
    order_id: uuid.UUID,
    payload: OrderStatusIn,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    order = order_service.update_order_status(session, user.id, order_id, payload.status)
    return ok({"order": dump(OrderResponse, order)})


@router.put("/{order_id}/tracking")
def update_tracking(
    order_id: uuid.UUID,
    payload: OrderTrackingIn,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    order = order_service.update_tracking(session, user.id, order_id, payload)
    return ok({"order": dump(OrderResponse, order)})


@router.post("/{order_id}/fulfill")
def fulfill_order(order_id: uuid.UUID, session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    order = order_service.fulfill_order(session, user.id, order_id)
    return ok({"order": dump(OrderResponse, order)}, message="Order sent for fulfillment")


@router.post("/{order_id}/auto-fulfill")
def auto_fulfill_order(order_id: uuid.UUID, session: Session = Depends(get_session), user: User = Depends(require_pro)):
    order = order_service.auto_fulfill_order(session, user.id, order_id)
    return ok({"order": dump(OrderResponse, order)}, message="Auto-fulfillment completed")
