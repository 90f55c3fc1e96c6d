from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import uuid
import logging

from app.api.deps import get_current_user, get_product_ai_service, ok, require_pro
from app.db import get_session
from app.exceptions import NotFoundError
from app.models import Product, User
from app.schemas.product import CamelModel, DescriptionRequestIn
from app.services.ai.service import ProductAIService
from app.services.usage_service import enforce_usage_limit, track_usage

router = APIRouter()

logger = logging.getLogger(__name__)


class ProductRefIn(CamelModel):
    product_id: uuid.UUID


def _load_product(session: Session, product_id: uuid.UUID) -> Product:
    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


@router.post("/analyze")
async def analyze(
    payload: ProductRefIn,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    ai: ProductAIService = Depends(get_product_ai_service),
):
    enforce_usage_limit(session, user.id, "ai_analysis", user.subscription_tier)
    product = _load_product(session, payload.product_id)

    analysis = await ai.analyze_and_store(session, product)
    track_usage(session, user.id, "ai_analysis")
    return ok({"analysis": analysis})


@router.post("/description")
async def generate_description(
    payload: DescriptionRequestIn,
    session: Session = Depends(get_session),
    user: User = Depends(require_pro),
    ai: ProductAIService = Depends(get_product_ai_service),
):
    product = _load_product(session, payload.product_id)
    description = await ai.generate_product_description(product, payload.style)
    return ok({"description": description})


@router.post("/pricing")
async def pricing_suggestion(
    payload: ProductRefIn,
    session: Session = Depends(get_session),
    user: User = Depends(require_pro),
    ai: ProductAIService = Depends(get_product_ai_service),
):
    product = _load_product(session, payload.product_id)
    pricing = await ai.get_pricing_suggestion(product)
    return ok({"pricing": pricing})


@router.post("/marketing")
async def marketing_suggestions(
    payload: ProductRefIn,
    session: Session = Depends(get_session),
    user: User = Depends(require_pro),
    ai: ProductAIService = Depends(get_product_ai_service),
):
    product = _load_product(session, payload.product_id)
    marketing = await ai.get_marketing_suggestions(product)
    return ok({"marketing": marketing})
