"""
Seller dashboard figures computed from the order and import tables.

Money sums treat a missing amount or profit as 0. Periods are trailing windows
ending at `now`, keyed by the order's created_at.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import uuid
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy import func, inspect, select
from sqlalchemy.orm import Session

from app.exceptions import ValidationFailedError
from app.models import ImportedProduct, Order, Product, Store

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_PERIOD = "30d"
RECENT_ORDERS = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def period_start(period: str, now: datetime | None = None) -> datetime:
    """Unknown periods fall back to 30 days."""
    days = PERIOD_DAYS.get(period, PERIOD_DAYS[DEFAULT_PERIOD])
    return (now or _utcnow()) - timedelta(days=days)


def _money(value: float | None) -> float:
    return float(value or 0.0)


def _percent(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0.0


def _orders_since(session: Session, user_id: uuid.UUID, start: datetime) -> list[Order]:
    return list(
        session.scalars(
            select(Order).where(Order.user_id == user_id, Order.created_at >= start).order_by(Order.created_at, Order.id)
        ).all()
    )


def get_dashboard(session: Session, user_id: uuid.UUID, period: str = DEFAULT_PERIOD, now: datetime | None = None) -> dict[str, Any]:
    orders = _orders_since(session, user_id, period_start(period, now))

    revenue = round(sum(_money(o.total_amount) for o in orders), 2)
    profit = round(sum(_money(o.profit) for o in orders), 2)
    total = len(orders)

    store_count = session.scalar(select(func.count()).select_from(Store).where(Store.user_id == user_id)) or 0
    product_count = (
        session.scalar(
            select(func.count())
            .select_from(ImportedProduct)
            .where(ImportedProduct.user_id == user_id, ImportedProduct.status == "active")
        )
        or 0
    )

    recent = session.execute(
        select(Order, Store.store_name)
        .join(Store, Store.id == Order.store_id)
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id)
        .limit(RECENT_ORDERS)
    ).all()

    return {
        "overview": {
            "totalRevenue": revenue,
            "totalProfit": profit,
            "totalOrders": total,
            "pendingOrders": sum(1 for o in orders if o.status == "pending"),
            "completedOrders": sum(1 for o in orders if o.status == "delivered"),
            "averageOrderValue": round(revenue / total, 2) if total else 0.0,
            "profitMargin": _percent(profit, revenue),
        },
        "counts": {"stores": int(store_count), "products": int(product_count)},
        "recentOrders": [
            {
                "id": str(order.id),
                "orderNumber": order.order_number,
                "totalAmount": order.total_amount,
                "profit": order.profit,
                "status": order.status,
                "createdAt": order.created_at.isoformat() if order.created_at else None,
                "storeName": store_name,
            }
            for order, store_name in recent
        ],
    }


def get_sales_chart(session: Session, user_id: uuid.UUID, period: str = DEFAULT_PERIOD, now: datetime | None = None) -> list[dict[str, Any]]:
    """One point per calendar day that has orders, oldest first."""
    buckets: dict[date, dict[str, Any]] = defaultdict(lambda: {"revenue": 0.0, "profit": 0.0, "orders": 0})
    for order in _orders_since(session, user_id, period_start(period, now)):
        bucket = buckets[order.created_at.date()]
        bucket["revenue"] += _money(order.total_amount)
        bucket["profit"] += _money(order.profit)
        bucket["orders"] += 1

    return [
        {"date": day.isoformat(), "revenue": round(b["revenue"], 2), "profit": round(b["profit"], 2), "orders": b["orders"]}
        for day, b in sorted(buckets.items())
    ]


def get_top_products(session: Session, user_id: uuid.UUID, limit: int = 10) -> list[dict[str, Any]]:
    """Active imports ranked by how many orders reference them."""
    order_counts = (
        select(Order.imported_product_id.label("imported_product_id"), func.count(Order.id).label("order_count"))
        .where(Order.user_id == user_id, Order.imported_product_id.is_not(None))
        .group_by(Order.imported_product_id)
        .subquery()
    )
    rows = session.execute(
        select(ImportedProduct, Product.main_image, Product.ai_score, func.coalesce(order_counts.c.order_count, 0))
        .outerjoin(Product, Product.id == ImportedProduct.product_id)
        .outerjoin(order_counts, order_counts.c.imported_product_id == ImportedProduct.id)
        .where(ImportedProduct.user_id == user_id, ImportedProduct.status == "active")
        .order_by(func.coalesce(order_counts.c.order_count, 0).desc(), ImportedProduct.created_at.desc(), ImportedProduct.id)
        .limit(limit)
    ).all()

    return [
        {
            "id": str(imported.id),
            "customTitle": imported.custom_title,
            "customPrice": imported.custom_price,
            "costPrice": imported.cost_price,
            "profitMargin": imported.profit_margin,
            "status": imported.status,
            "mainImage": main_image or imported.main_image,
            "aiScore": ai_score,
            "orderCount": int(order_count),
        }
        for imported, main_image, ai_score, order_count in rows
    ]


def get_roi(session: Session, user_id: uuid.UUID) -> dict[str, float]:
    """Return on cost of goods over delivered orders."""
    delivered = session.scalars(select(Order).where(Order.user_id == user_id, Order.status == "delivered")).all()
    revenue = round(sum(_money(o.total_amount) for o in delivered), 2)
    cost = round(sum(_money(o.cost_of_goods) for o in delivered), 2)
    profit = round(sum(_money(o.profit) for o in delivered), 2)
    return {
        "totalRevenue": revenue,
        "totalCost": cost,
        "totalProfit": profit,
        "roi": _percent(profit, cost),
        "profitMargin": _percent(profit, revenue),
    }


def _row_dict(obj: Any) -> dict[str, Any]:
    # column names as stored, not ORM attribute names (metadata_ and friends)
    return {attr.columns[0].name: getattr(obj, attr.key) for attr in inspect(obj).mapper.column_attrs}


def export_rows(session: Session, user_id: uuid.UUID, export_type: str) -> list[dict[str, Any]]:
    if export_type == "orders":
        orders = session.scalars(
            select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc(), Order.id)
        ).all()
        logger.info(f"Exporting {len(orders)} orders for user {user_id}")
        return [_row_dict(o) for o in orders]

    if export_type == "products":
        rows = session.execute(
            select(ImportedProduct, Product)
            .outerjoin(Product, Product.id == ImportedProduct.product_id)
            .where(ImportedProduct.user_id == user_id)
            .order_by(ImportedProduct.created_at.desc(), ImportedProduct.id)
        ).all()
        return [{**_row_dict(imported), "product": _row_dict(product) if product else None} for imported, product in rows]

    raise ValidationFailedError("Invalid export type", field="type")


def _csv_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def to_csv(rows: Iterable[dict[str, Any]]) -> str:
    """Header from the first row's keys; nested values are JSON encoded."""
    rows = list(rows)
    if not rows:
        return ""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(rows[0]), lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({key: _csv_value(value) for key, value in row.items()})
    return buffer.getvalue()
