from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.exceptions import InvalidStatusError, NotFoundError
from app.models import ImportedProduct, Product, Store, User
from app.schemas.product import ImportedProductUpdateIn, ProductImportIn
from app.services.pricing import resolve_pricing
from app.services.usage_service import enforce_usage_limit, track_usage

logger = logging.getLogger(__name__)


def get_owned_store(session: Session, user_id: uuid.UUID, store_id: uuid.UUID) -> Store:
    store = session.get(Store, store_id)
    if store is None or store.user_id != user_id:
        raise NotFoundError("Store not found", error_code="STORE_NOT_FOUND")
    return store


def get_owned_import(session: Session, user_id: uuid.UUID, imported_id: uuid.UUID) -> ImportedProduct:
    imported = session.get(ImportedProduct, imported_id)
    if imported is None or imported.user_id != user_id:
        raise NotFoundError("Product not found", error_code="PRODUCT_NOT_FOUND")
    return imported


def find_cached_product(session: Session, source: str, external_id: str) -> Product | None:
    return session.scalars(
        select(Product).where(Product.source == source, Product.external_id == external_id)
    ).one_or_none()


def import_product(session: Session, user: User, payload: ProductImportIn) -> ImportedProduct:
    enforce_usage_limit(session, user.id, "import", user.subscription_tier)
    get_owned_store(session, user.id, payload.store_id)

    data = payload.product_data
    cached = find_cached_product(session, data.source, data.external_id)
    pricing = resolve_pricing(data.price, payload.markup_percentage, payload.custom_price)

    main_image = data.main_image or (data.images[0] if data.images else None)
    imported = ImportedProduct(
        user_id=user.id,
        store_id=payload.store_id,
        product_id=cached.id if cached else None,
        source=data.source,
        external_id=data.external_id,
        original_title=data.title,
        custom_title=payload.custom_title or data.title,
        custom_description=payload.custom_description or data.description,
        main_image=main_image,
        images=list(data.images) or ([main_image] if main_image else []),
        supplier_url=data.supplier_url or None,
        rating=data.rating,
        reviews_count=data.reviews_count,
        sales_count=data.sales_count,
        status="draft",
        **pricing,
    )
    session.add(imported)
    session.flush()

    track_usage(session, user.id, "import")
    logger.info(f"Imported {data.source}:{data.external_id} into store {payload.store_id} for user {user.id}")
    return imported


def list_imported_products(
    session: Session,
    user_id: uuid.UUID,
    store_id: uuid.UUID | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[ImportedProduct], int]:
    conditions = [ImportedProduct.user_id == user_id]
    if store_id is not None:
        conditions.append(ImportedProduct.store_id == store_id)
    if status:
        conditions.append(ImportedProduct.status == status)

    total = session.scalar(select(func.count()).select_from(ImportedProduct).where(*conditions)) or 0
    rows = session.scalars(
        select(ImportedProduct)
        .where(*conditions)
        .order_by(ImportedProduct.created_at.desc(), ImportedProduct.id)
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(rows), int(total)


def update_imported_product(
    session: Session,
    user_id: uuid.UUID,
    imported_id: uuid.UUID,
    changes: ImportedProductUpdateIn,
    now: datetime | None = None,
) -> ImportedProduct:
    imported = get_owned_import(session, user_id, imported_id)
    if imported.status == "deleted":
        raise InvalidStatusError("Deleted products cannot be edited")

    if changes.custom_title is not None:
        imported.custom_title = changes.custom_title
    if changes.custom_description is not None:
        imported.custom_description = changes.custom_description

    if changes.custom_price is not None or changes.markup_percentage is not None:
        markup = changes.markup_percentage if changes.markup_percentage is not None else imported.markup_percentage
        # a new markup alone reprices from cost; an explicit price always wins
        pricing = resolve_pricing(imported.cost_price, markup, changes.custom_price)
        imported.custom_price = pricing["custom_price"]
        imported.markup_percentage = pricing["markup_percentage"]
        imported.profit_margin = pricing["profit_margin"]

    if changes.status is not None and changes.status != imported.status:
        if imported.status == "draft" and changes.status == "active":
            imported.published_at = now or datetime.now(timezone.utc)
        imported.status = changes.status

    session.flush()
    return imported


def delete_imported_product(session: Session, user_id: uuid.UUID, imported_id: uuid.UUID) -> None:
    imported = get_owned_import(session, user_id, imported_id)
    session.delete(imported)
    session.flush()
