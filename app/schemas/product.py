from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, List, Literal, Optional
from datetime import datetime
import uuid

ProductSource = Literal["amazon", "aliexpress", "temu", "ebay"]
ImportedProductStatus = Literal["draft", "active", "paused", "deleted"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductItem(CamelModel):
    """A single marketplace search hit as returned by an adapter."""

    source: ProductSource
    external_id: str
    title: str
    description: str = ""
    price: float = 0.0
    original_price: Optional[float] = None
    currency: str = "USD"
    main_image: str = ""
    images: List[str] = []
    rating: Optional[float] = None
    reviews_count: int = 0
    sales_count: int = 0
    category: str = ""
    supplier_url: str = ""
    extra: dict[str, Any] = {}


class SourceStatus(CamelModel):
    source: ProductSource
    count: int
    degraded: bool = False
    reason: Optional[str] = None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    has_more: bool


class SearchData(CamelModel):
    products: List[ProductItem]
    pagination: Pagination
    sources: List[SourceStatus]


class ProductResponse(BaseModel):
    id: uuid.UUID
    source: str
    external_id: str
    title: str
    description: Optional[str] = None
    price: float
    original_price: Optional[float] = None
    currency: str
    images: List[str] = []
    main_image: Optional[str] = None
    rating: Optional[float] = None
    reviews_count: int
    sales_count: int
    category: Optional[str] = None
    supplier_url: Optional[str] = None
    ai_score: Optional[int] = None
    ai_analysis: Optional[dict] = None
    is_winning: bool
    cached_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProductImportIn(CamelModel):
    product_data: ProductItem
    store_id: uuid.UUID
    custom_title: Optional[str] = None
    custom_description: Optional[str] = None
    custom_price: Optional[float] = Field(default=None, ge=0)
    markup_percentage: float = Field(default=30.0, ge=0, le=500)


class ImportedProductUpdateIn(CamelModel):
    custom_title: Optional[str] = None
    custom_description: Optional[str] = None
    custom_price: Optional[float] = Field(default=None, ge=0)
    markup_percentage: Optional[float] = Field(default=None, ge=0, le=500)
    status: Optional[ImportedProductStatus] = None


class ImportedProductResponse(BaseModel):
    id: uuid.UUID
    store_id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    source: Optional[str] = None
    external_id: Optional[str] = None
    original_title: str
    custom_title: str
    custom_description: Optional[str] = None
    main_image: Optional[str] = None
    images: List[str] = []
    supplier_url: Optional[str] = None
    cost_price: float
    custom_price: float
    markup_percentage: float
    profit_margin: float
    status: str
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DescriptionRequestIn(CamelModel):
    product_id: uuid.UUID
    style: Literal["professional", "casual", "luxury", "minimal"] = "professional"
