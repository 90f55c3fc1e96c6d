import uuid
from typing import Any

from fastapi import Depends, Header
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.db import get_session
from app.exceptions import AuthenticationError, SubscriptionRequiredError
from app.models import User
from app.services.ai.service import ProductAIService, get_ai_service
from app.services.product_search_service import ProductSearchService, product_search_service


def get_current_user(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    session: Session = Depends(get_session),
) -> User:
    """
    Caller identity comes from the X-User-Id header set by the auth gateway in front of this service.
    """
    if not x_user_id:
        raise AuthenticationError("Not authorized, no user", error_code="NO_USER")
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise AuthenticationError("User not found", error_code="USER_NOT_FOUND")

    user = session.get(User, user_id)
    if user is None:
        raise AuthenticationError("User not found", error_code="USER_NOT_FOUND")
    return user


def require_pro(user: User = Depends(get_current_user)) -> User:
    if (user.subscription_tier or "free") != "pro":
        raise SubscriptionRequiredError("pro")
    return user


def get_search_service() -> ProductSearchService:
    return product_search_service


def get_product_ai_service() -> ProductAIService:
    return get_ai_service()


def dump(schema: type[BaseModel], obj: Any) -> dict:
    return schema.model_validate(obj).model_dump(mode="json")


def ok(data: Any = None, **extra: Any) -> dict:
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body
