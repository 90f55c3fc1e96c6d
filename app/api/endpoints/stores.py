from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import uuid

from app.api.deps import dump, get_current_user, ok
from app.db import get_session
from app.models import User
from app.schemas.order import StoreConnectIn, StoreResponse, StoreUpdateIn
from app.services import store_service

router = APIRouter()


@router.get("")
def list_stores(session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    stores = store_service.list_stores(session, user.id)
    return ok({"stores": [dump(StoreResponse, s) for s in stores]})


@router.post("/connect", status_code=201)
def connect_store(
    payload: StoreConnectIn,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    store = store_service.connect_store(session, user, payload)
    return ok({"store": dump(StoreResponse, store)}, message="Store connected successfully")


@router.get("/{store_id}")
def get_store(store_id: uuid.UUID, session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    store = store_service.get_store(session, user.id, store_id)
    return ok({"store": dump(StoreResponse, store), "stats": store_service.get_store_stats(session, store.id)})


@router.put("/{store_id}")
def update_store(
    store_id: uuid.UUID,
    payload: StoreUpdateIn,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    store = store_service.update_store(session, user.id, store_id, payload)
    return ok({"store": dump(StoreResponse, store)}, message="Store updated successfully")


@router.delete("/{store_id}")
def disconnect_store(
    store_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    store_service.disconnect_store(session, user.id, store_id)
    return ok(message="Store disconnected successfully")
