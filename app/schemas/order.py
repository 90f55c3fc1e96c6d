"""
Store and order request/response schemas.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Literal, Optional
from datetime import datetime
import uuid

from app.schemas.product import CamelModel

StorePlatform = Literal["shopify", "woocommerce", "ebay"]
OrderStatus = Literal["pending", "processing", "awaiting_shipment", "shipped", "delivered", "cancelled", "refunded"]


class StoreConnectIn(CamelModel):
    platform: StorePlatform
    store_name: str = Field(min_length=1)
    store_url: str = Field(min_length=1)
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    access_token: Optional[str] = None


class StoreUpdateIn(CamelModel):
    store_name: Optional[str] = Field(default=None, min_length=1)
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    access_token: Optional[str] = None
    is_active: Optional[bool] = None
    settings: Optional[dict[str, Any]] = None


class StoreResponse(BaseModel):
    """
    Credentials are never echoed back.
    """
    id: uuid.UUID
    platform: str
    store_name: str
    store_url: str
    is_active: bool
    settings: dict[str, Any] = {}
    last_sync_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderCreateIn(CamelModel):
    store_id: uuid.UUID
    imported_product_id: Optional[uuid.UUID] = None
    external_order_id: Optional[str] = None
    order_number: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    shipping_address: Optional[dict[str, Any]] = None
    line_items: list[dict[str, Any]] = []
    subtotal: Optional[float] = Field(default=None, ge=0)
    shipping_cost: float = Field(default=0.0, ge=0)
    tax_amount: float = Field(default=0.0, ge=0)
    total_amount: float = Field(ge=0)
    cost_of_goods: Optional[float] = Field(default=None, ge=0)
    currency: str = "USD"
    notes: Optional[str] = None


class OrderStatusIn(BaseModel):
    status: OrderStatus


class OrderTrackingIn(CamelModel):
    tracking_number: str = Field(min_length=1)
    tracking_carrier: Optional[str] = None
    tracking_url: Optional[str] = None


class OrderResponse(BaseModel):
    id: uuid.UUID
    store_id: uuid.UUID
    imported_product_id: Optional[uuid.UUID] = None
    external_order_id: Optional[str] = None
    order_number: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    line_items: list[Any] = []
    subtotal: Optional[float] = None
    shipping_cost: float
    tax_amount: float
    total_amount: Optional[float] = None
    cost_of_goods: Optional[float] = None
    profit: Optional[float] = None
    currency: str
    status: str
    fulfillment_status: str
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    tracking_carrier: Optional[str] = None
    supplier_order_id: Optional[str] = None
    ordered_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
