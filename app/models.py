from typing import Any
from datetime import date, datetime
import uuid

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint, Uuid, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class DropshipBase(DeclarativeBase):
    pass


# JSONB on Postgres, plain JSON on SQLite (local runs and tests)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


PRODUCT_SOURCES = ("amazon", "aliexpress", "temu", "ebay")
SUBSCRIPTION_TIERS = ("free", "pro")
STORE_PLATFORMS = ("shopify", "woocommerce", "ebay")
IMPORTED_PRODUCT_STATUSES = ("draft", "active", "paused", "deleted")
ORDER_STATUSES = ("pending", "processing", "awaiting_shipment", "shipped", "delivered", "cancelled", "refunded")
NOTIFICATION_TYPES = ("order", "product", "store", "system", "alert")


class User(DropshipBase):
    """
    Account rows are provisioned by the external auth service; this backend only reads them.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    full_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    subscription_tier: Mapped[str] = mapped_column(Text, nullable=False, default="free")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Store(DropshipBase):
    __tablename__ = "stores"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    platform: Mapped[str] = mapped_column(Text, nullable=False)  # shopify, woocommerce, ebay
    store_name: Mapped[str] = mapped_column(Text, nullable=False)
    store_url: Mapped[str] = mapped_column(Text, nullable=False)
    api_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    api_secret: Mapped[str | None] = mapped_column(Text, nullable=True)
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    settings: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Product(DropshipBase):
    """
    Marketplace search hit cache. One row per (source, external_id), overwritten on every search hit.
    AI fields are owned by the analyzer and survive refreshes.
    """
    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("source", "external_id", name="uq_products_source_external_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    source: Mapped[str] = mapped_column(Text, nullable=False)  # amazon, aliexpress, temu, ebay
    external_id: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    original_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="USD")
    images: Mapped[list[str]] = mapped_column(JSONDocument, nullable=False, default=list)
    main_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    reviews_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sales_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    supplier_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    ai_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ai_analysis: Mapped[dict | None] = mapped_column(JSONDocument, nullable=True)
    ai_analyzed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_winning: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    cached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ImportedProduct(DropshipBase):
    __tablename__ = "imported_products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    store_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    source: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_title: Mapped[str] = mapped_column(Text, nullable=False)
    custom_title: Mapped[str] = mapped_column(Text, nullable=False)
    custom_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    main_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    images: Mapped[list[str]] = mapped_column(JSONDocument, nullable=False, default=list)
    supplier_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    cost_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    custom_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    markup_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=30.0)
    profit_margin: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    reviews_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sales_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft")  # draft, active, paused, deleted
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    store: Mapped["Store"] = relationship()


class Order(DropshipBase):
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    store_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False)
    imported_product_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("imported_products.id", ondelete="SET NULL"), nullable=True
    )

    external_order_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    shipping_address: Mapped[dict | None] = mapped_column(JSONDocument, nullable=True)
    line_items: Mapped[list[Any]] = mapped_column(JSONDocument, nullable=False, default=list)

    subtotal: Mapped[float | None] = mapped_column(Float, nullable=True)
    shipping_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tax_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    cost_of_goods: Mapped[float | None] = mapped_column(Float, nullable=True)
    profit: Mapped[float | None] = mapped_column(Float, nullable=True)
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="USD")

    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    fulfillment_status: Mapped[str] = mapped_column(Text, nullable=False, default="unfulfilled")
    tracking_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    tracking_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    tracking_carrier: Mapped[str | None] = mapped_column(Text, nullable=True)
    supplier_order_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    ordered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class UsageLog(DropshipBase):
    __tablename__ = "usage_logs"
    __table_args__ = (UniqueConstraint("user_id", "action", "date", name="uq_usage_logs_user_action_date"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)  # search, import, ai_analysis
    day: Mapped[date] = mapped_column("date", Date, nullable=False)  # UTC day
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Notification(DropshipBase):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)  # order, product, store, system, alert
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    action_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONDocument, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


def compute_order_profit(order: Order) -> float | None:
    if order.total_amount is None or order.cost_of_goods is None:
        return order.profit
    return round(order.total_amount - order.cost_of_goods - (order.shipping_cost or 0.0), 2)


@event.listens_for(Order, "before_insert")
@event.listens_for(Order, "before_update")
def _calculate_order_profit(mapper, connection, target: Order) -> None:
    target.profit = compute_order_profit(target)
