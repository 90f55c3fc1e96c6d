"""
Order bookkeeping for sales recorded against imported products.

Profit is derived on every write (see app.models); fulfillment here only moves the
order through its states and leaves an in-app notification, no supplier purchase is placed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.exceptions import InvalidStatusError, NotFoundError
from app.models import Order, User
from app.schemas.order import OrderCreateIn, OrderTrackingIn
from app.services import notification_service
from app.services.import_service import get_owned_import
from app.services.store_service import get_store

logger = logging.getLogger(__name__)

FULFILLABLE_STATUSES = ("pending", "processing")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_order(session: Session, user_id: uuid.UUID, order_id: uuid.UUID) -> Order:
    order = session.get(Order, order_id)
    if order is None or order.user_id != user_id:
        raise NotFoundError("Order not found", error_code="ORDER_NOT_FOUND")
    return order


def list_orders(
    session: Session,
    user_id: uuid.UUID,
    store_id: uuid.UUID | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Order], int]:
    conditions = [Order.user_id == user_id]
    if store_id is not None:
        conditions.append(Order.store_id == store_id)
    if status:
        conditions.append(Order.status == status)

    total = session.scalar(select(func.count()).select_from(Order).where(*conditions)) or 0
    rows = session.scalars(
        select(Order)
        .where(*conditions)
        .order_by(Order.created_at.desc(), Order.id)
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(rows), int(total)


def create_order(session: Session, user: User, payload: OrderCreateIn) -> Order:
    get_store(session, user.id, payload.store_id)

    cost_of_goods = payload.cost_of_goods
    if payload.imported_product_id is not None:
        imported = get_owned_import(session, user.id, payload.imported_product_id)
        if imported.store_id != payload.store_id:
            raise InvalidStatusError("Imported product belongs to a different store")
        if cost_of_goods is None:
            quantity = sum(int(item.get("quantity") or 1) for item in payload.line_items) or 1
            cost_of_goods = round(imported.cost_price * quantity, 2)

    order = Order(
        user_id=user.id,
        store_id=payload.store_id,
        imported_product_id=payload.imported_product_id,
        external_order_id=payload.external_order_id,
        order_number=payload.order_number,
        customer_name=payload.customer_name,
        customer_email=payload.customer_email,
        shipping_address=payload.shipping_address,
        line_items=list(payload.line_items),
        subtotal=payload.subtotal,
        shipping_cost=payload.shipping_cost,
        tax_amount=payload.tax_amount,
        total_amount=payload.total_amount,
        cost_of_goods=cost_of_goods,
        currency=payload.currency,
        notes=payload.notes,
        status="pending",
        fulfillment_status="unfulfilled",
    )
    session.add(order)
    session.flush()
    logger.info(f"Recorded order {order.id} for store {payload.store_id} (profit={order.profit})")
    return order


def update_order_status(
    session: Session, user_id: uuid.UUID, order_id: uuid.UUID, status: str, now: datetime | None = None
) -> Order:
    order = get_order(session, user_id, order_id)
    order.status = status
    if status == "delivered":
        order.delivered_at = now or _utcnow()
        order.fulfillment_status = "fulfilled"
    session.flush()
    return order


def update_tracking(
    session: Session, user_id: uuid.UUID, order_id: uuid.UUID, tracking: OrderTrackingIn, now: datetime | None = None
) -> Order:
    order = get_order(session, user_id, order_id)
    order.tracking_number = tracking.tracking_number
    order.tracking_carrier = tracking.tracking_carrier
    order.tracking_url = tracking.tracking_url
    order.status = "shipped"
    order.shipped_at = now or _utcnow()
    session.flush()
    return order


def fulfill_order(session: Session, user_id: uuid.UUID, order_id: uuid.UUID) -> Order:
    order = get_order(session, user_id, order_id)
    if order.status not in FULFILLABLE_STATUSES:
        raise InvalidStatusError(f"Order cannot be fulfilled from status '{order.status}'")
    order.status = "processing"
    order.fulfillment_status = "processing"
    session.flush()
    notification_service.create_notification(
        session,
        user_id,
        "order",
        "Order Fulfillment Started",
        f"Order {order.order_number or order.id} is being processed",
        action_url=f"/orders/{order.id}",
        metadata={"orderId": str(order.id)},
    )
    logger.info(f"Order {order.id} moved to processing")
    return order


def auto_fulfill_order(session: Session, user_id: uuid.UUID, order_id: uuid.UUID, now: datetime | None = None) -> Order:
    """
    Marks the order fulfilled and hands it to shipping. The supplier reference is a
    generated AUTO-<epoch ms> placeholder since no supplier API is called.
    """
    order = get_order(session, user_id, order_id)
    if order.status not in FULFILLABLE_STATUSES:
        raise InvalidStatusError(f"Order cannot be fulfilled from status '{order.status}'")
    stamp = now or _utcnow()
    order.status = "awaiting_shipment"
    order.fulfillment_status = "fulfilled"
    order.supplier_order_id = f"AUTO-{int(stamp.timestamp() * 1000)}"
    session.flush()
    notification_service.create_notification(
        session,
        user_id,
        "order",
        "Order Auto-Fulfilled",
        f"Order {order.order_number or order.id} was fulfilled automatically",
        action_url=f"/orders/{order.id}",
        metadata={"orderId": str(order.id), "supplierOrderId": order.supplier_order_id},
    )
    logger.info(f"Order {order.id} auto-fulfilled as {order.supplier_order_id}")
    return order


def get_tracking_info(session: Session, user_id: uuid.UUID, order_id: uuid.UUID) -> dict[str, Any]:
    """Tracking summary built from the recorded timestamps; no carrier lookup."""
    order = get_order(session, user_id, order_id)
    events: list[dict[str, Any]] = []
    if order.shipped_at:
        events.append({"date": order.shipped_at.isoformat(), "status": "shipped", "description": "Package shipped"})
    if order.delivered_at:
        events.append({"date": order.delivered_at.isoformat(), "status": "delivered", "description": "Package delivered"})
    return {
        "trackingNumber": order.tracking_number,
        "carrier": order.tracking_carrier,
        "trackingUrl": order.tracking_url,
        "status": order.status,
        "events": events,
    }
