from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Literal
import uuid
import logging

from app.api.deps import (
    dump,
    get_current_user,
    get_product_ai_service,
    get_search_service,
    ok,
)
from app.db import get_session
from app.exceptions import NotFoundError
from app.models import Product, User
from app.schemas.product import (
    ImportedProductResponse,
    ImportedProductStatus,
    ImportedProductUpdateIn,
    ProductImportIn,
    ProductResponse,
)
from app.services import import_service
from app.services.ai.service import ProductAIService
from app.services.product_search_service import ProductSearchService, SearchQuery
from app.services.usage_service import enforce_usage_limit, track_usage

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/search")
async def search_products(
    q: str = Query(min_length=1),
    source: Literal["amazon", "aliexpress", "temu", "ebay", "all"] = Query(default="all"),
    min_price: float | None = Query(default=None, ge=0, alias="minPrice"),
    max_price: float | None = Query(default=None, ge=0, alias="maxPrice"),
    min_rating: float | None = Query(default=None, ge=0, le=5, alias="minRating"),
    category: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=50),
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    service: ProductSearchService = Depends(get_search_service),
):
    query = SearchQuery(
        q=q.strip(),
        source=source,
        min_price=min_price,
        max_price=max_price,
        min_rating=min_rating,
        category=(category or "").strip() or None,
        page=page,
        limit=limit,
    )
    return await service.search(session, user, query)


@router.get("/winning")
async def get_winning_products(
    category: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    ai: ProductAIService = Depends(get_product_ai_service),
):
    if (user.subscription_tier or "free") == "free":
        products = ai.get_cached_winners(session, limit=10)
        return ok(
            {
                "products": [dump(ProductResponse, p) for p in products],
                "isLimited": True,
                "message": "Upgrade to Pro for personalized AI recommendations",
            }
        )

    products = await ai.get_winning_products(session, category=category, limit=limit)
    return ok({"products": [dump(ProductResponse, p) for p in products], "isLimited": False})


@router.post("/import", status_code=201)
def import_product(
    payload: ProductImportIn,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    imported = import_service.import_product(session, user, payload)
    return ok(
        {
            "importedProduct": dump(ImportedProductResponse, imported),
            "message": "Product imported as draft. Publish to sync with store.",
        }
    )


@router.get("/imported/list")
def list_imported_products(
    store_id: uuid.UUID | None = Query(default=None, alias="storeId"),
    status: ImportedProductStatus | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    rows, total = import_service.list_imported_products(
        session, user.id, store_id=store_id, status=status, page=page, limit=limit
    )
    return ok(
        {
            "products": [dump(ImportedProductResponse, row) for row in rows],
            "pagination": {"page": page, "limit": limit, "total": total},
        }
    )


@router.patch("/imported/{imported_id}")
def update_imported_product(
    imported_id: uuid.UUID,
    payload: ImportedProductUpdateIn,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    imported = import_service.update_imported_product(session, user.id, imported_id, payload)
    return ok({"importedProduct": dump(ImportedProductResponse, imported)})


@router.delete("/imported/{imported_id}")
def delete_imported_product(
    imported_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    import_service.delete_imported_product(session, user.id, imported_id)
    return ok(message="Product deleted successfully")


@router.get("/ebay/{item_id}")
async def get_ebay_item(
    item_id: str,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    service: ProductSearchService = Depends(get_search_service),
):
    product = await service.get_ebay_item(session, item_id)
    if product is None:
        raise NotFoundError("eBay item not found")
    return ok({"product": dump(ProductResponse, product)})


@router.get("/{product_id}")
def get_product(
    product_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return ok({"product": dump(ProductResponse, product)})


@router.post("/{product_id}/analyze")
async def analyze_product(
    product_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    ai: ProductAIService = Depends(get_product_ai_service),
):
    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    enforce_usage_limit(session, user.id, "ai_analysis", user.subscription_tier)

    analysis = await ai.analyze_and_store(session, product)
    track_usage(session, user.id, "ai_analysis")
    return ok({"product": dump(ProductResponse, product), "analysis": analysis})
