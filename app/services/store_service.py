from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.exceptions import AppError, NotFoundError
from app.models import ImportedProduct, Order, Store, User
from app.schemas.order import StoreConnectIn, StoreUpdateIn

logger = logging.getLogger(__name__)

FREE_TIER_STORE_LIMIT = 1


def list_stores(session: Session, user_id: uuid.UUID) -> list[Store]:
    return list(
        session.scalars(select(Store).where(Store.user_id == user_id).order_by(Store.created_at.desc(), Store.id)).all()
    )


def get_store(session: Session, user_id: uuid.UUID, store_id: uuid.UUID) -> Store:
    store = session.get(Store, store_id)
    if store is None or store.user_id != user_id:
        raise NotFoundError("Store not found", error_code="STORE_NOT_FOUND")
    return store


def get_store_stats(session: Session, store_id: uuid.UUID) -> dict[str, int]:
    product_count = session.scalar(
        select(func.count()).select_from(ImportedProduct).where(ImportedProduct.store_id == store_id)
    )
    order_count = session.scalar(select(func.count()).select_from(Order).where(Order.store_id == store_id))
    return {"productCount": int(product_count or 0), "orderCount": int(order_count or 0)}


def connect_store(session: Session, user: User, payload: StoreConnectIn) -> Store:
    if (user.subscription_tier or "free") == "free":
        existing_count = session.scalar(select(func.count()).select_from(Store).where(Store.user_id == user.id)) or 0
        if existing_count >= FREE_TIER_STORE_LIMIT:
            raise AppError(
                "Free tier limited to 1 store. Upgrade to Pro for unlimited stores.",
                status_code=403,
                error_code="LIMIT_REACHED",
            )

    duplicate = session.scalars(
        select(Store.id).where(Store.user_id == user.id, Store.store_url == payload.store_url)
    ).first()
    if duplicate is not None:
        raise AppError("Store already connected", status_code=400, error_code="DUPLICATE_STORE")

    store = Store(
        user_id=user.id,
        platform=payload.platform,
        store_name=payload.store_name.strip(),
        store_url=payload.store_url.strip(),
        api_key=payload.api_key,
        api_secret=payload.api_secret,
        access_token=payload.access_token,
        settings={},
        is_active=True,
    )
    session.add(store)
    session.flush()
    logger.info(f"Connected {payload.platform} store {store.id} for user {user.id}")
    return store


def update_store(session: Session, user_id: uuid.UUID, store_id: uuid.UUID, payload: StoreUpdateIn) -> Store:
    """Partial update; omitted fields keep their stored values."""
    store = get_store(session, user_id, store_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("store_name") is not None:
        changes["store_name"] = changes["store_name"].strip()
    for field, value in changes.items():
        if field in ("store_name", "is_active", "settings") and value is None:
            continue
        setattr(store, field, value)
    session.flush()
    logger.info(f"Updated store {store.id} ({', '.join(sorted(changes)) or 'no changes'})")
    return store


def disconnect_store(session: Session, user_id: uuid.UUID, store_id: uuid.UUID) -> None:
    store = get_store(session, user_id, store_id)
    session.delete(store)
    session.flush()
