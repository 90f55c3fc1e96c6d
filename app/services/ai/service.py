import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Product
from app.services.ai.base import AIProvider
from app.services.ai.providers.gemini import GeminiProvider
from app.settings import settings

logger = logging.getLogger(__name__)

DescriptionStyle = Literal["professional", "casual", "luxury", "minimal"]

ANALYSIS_PROMPT = """Analyze this dropshipping product and provide a detailed assessment:

Product Title: {title}
Description: {description}
Price: ${price} {currency}
Original Price: ${original_price}
Rating: {rating}/5 stars
Reviews: {reviews_count} reviews
Sales: {sales_count} units sold
Category: {category}
Source: {source}

Respond with JSON only, using this structure:
{{
  "score": <number 0-100>,
  "summary": "<brief 2-3 sentence summary>",
  "profitPotential": {{
    "rating": "<low|medium|high|excellent>",
    "suggestedMarkup": <number percentage>,
    "suggestedPrice": <number>,
    "estimatedProfit": <number per sale>
  }},
  "marketAnalysis": {{
    "demandLevel": "<low|medium|high>",
    "competitionLevel": "<low|medium|high>",
    "trendDirection": "<declining|stable|growing|hot>",
    "targetAudience": "<description>"
  }},
  "strengths": ["<strength>", "..."],
  "weaknesses": ["<weakness>", "..."],
  "recommendations": ["<recommendation>", "..."],
  "riskLevel": "<low|medium|high>",
  "isRecommended": <boolean>
}}

Be realistic and data-driven. Consider price competitiveness for dropshipping margins,
review quality, sales volume, competition in the niche and shipping/fulfillment."""

DESCRIPTION_PROMPT = """Generate a compelling product description for an e-commerce store.

Product: {title}
Original Description: {description}
Category: {category}
Style: {style}

The description should highlight benefits over features, open with a hook,
include 3-5 bullet points, be SEO friendly and run 150-200 words.

Respond with JSON only:
{{
  "title": "<optimized title>",
  "description": "<main description>",
  "bulletPoints": ["<point>", "..."],
  "seoKeywords": ["<keyword>", "..."]
}}"""

PRICING_PROMPT = """Analyze pricing strategy for this dropshipping product:

Product: {title}
Cost Price: ${price}
Category: {category}
Rating: {rating}/5
Sales Volume: {sales_count}

Consider standard dropshipping margins (25-50%), positioning, perceived value and competition.

Respond with JSON only:
{{
  "recommendedPrice": <number>,
  "minimumPrice": <number>,
  "maximumPrice": <number>,
  "optimalMarkup": <percentage as number>,
  "priceStrategy": "<penetration|competitive|premium>",
  "reasoning": "<brief explanation>"
}}"""


MARKETING_PROMPT = """Create marketing suggestions for this product:

Product: {title}
Category: {category}
Price Point: ${price}
Target Platform: E-commerce store

Respond with JSON only:
{{
  "adCopy": {{
    "headline": "<catchy headline>",
    "subheadline": "<supporting text>",
    "callToAction": "<CTA text>"
  }},
  "socialMedia": {{
    "instagram": "<post suggestion>",
    "facebook": "<ad text>",
    "tiktok": "<video idea>"
  }},
  "targetAudiences": [
    {{"name": "<audience name>", "demographics": "<age, interests>", "approach": "<marketing approach>"}}
  ],
  "hashtags": ["<hashtag>", "..."],
  "emailSubjectLines": ["<subject>", "..."]
}}"""

DEFAULT_MARKETING: Dict[str, Any] = {
    "adCopy": {
        "headline": "Discover Your New Favorite Product",
        "subheadline": "Quality meets affordability",
        "callToAction": "Shop Now",
    },
    "socialMedia": {
        "instagram": "Check out this amazing find! Link in bio.",
        "facebook": "Limited time offer on this trending product.",
        "tiktok": "POV: You find the perfect product online",
    },
    "targetAudiences": [
        {
            "name": "General Shoppers",
            "demographics": "25-45, interested in online shopping",
            "approach": "Value-focused messaging",
        }
    ],
    "hashtags": ["#shopping", "#deals", "#musthave"],
    "emailSubjectLines": ["You need to see this!", "Just dropped: New arrival", "Your cart is waiting"],
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _facts(product: Any) -> Dict[str, Any]:
    return {
        "title": getattr(product, "title", "") or "",
        "description": getattr(product, "description", None) or "Not provided",
        "price": float(getattr(product, "price", 0.0) or 0.0),
        "original_price": getattr(product, "original_price", None) or "N/A",
        "currency": getattr(product, "currency", "USD") or "USD",
        "rating": getattr(product, "rating", None),
        "reviews_count": int(getattr(product, "reviews_count", 0) or 0),
        "sales_count": int(getattr(product, "sales_count", 0) or 0),
        "category": getattr(product, "category", None) or "General",
        "source": getattr(product, "source", "") or "",
    }


def heuristic_score(rating: Optional[float], reviews_count: int, sales_count: int) -> int:
    """Metric-only score used when the LLM is unavailable. Unknown rating counts as 3 stars."""
    rating_bonus = (rating if rating else 3) * 5
    reviews_bonus = min((reviews_count or 0) / 100, 10)
    sales_bonus = min((sales_count or 0) / 1000, 15)
    return min(round(50 + rating_bonus + reviews_bonus + sales_bonus), 100)


def default_analysis(product: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
    facts = _facts(product)
    score = heuristic_score(facts["rating"], facts["reviews_count"], facts["sales_count"])
    price = facts["price"]
    return {
        "score": score,
        "summary": "Analysis based on available metrics. Consider additional market research.",
        "profitPotential": {
            "rating": "high" if score >= 70 else "medium" if score >= 50 else "low",
            "suggestedMarkup": 35,
            "suggestedPrice": round(price * 1.35, 2),
            "estimatedProfit": round(price * 0.35, 2),
        },
        "marketAnalysis": {
            "demandLevel": "high" if facts["sales_count"] > 1000 else "medium",
            "competitionLevel": "medium",
            "trendDirection": "stable",
            "targetAudience": "General consumers",
        },
        "strengths": ["Competitive pricing", "Available for dropshipping"],
        "weaknesses": ["Limited differentiation"],
        "recommendations": ["Test with small ad spend", "Optimize product images", "Create compelling description"],
        "riskLevel": "medium",
        "isRecommended": score >= settings.winning_list_min_score,
        "source": "heuristic",
        "analyzedAt": (now or _utcnow()).isoformat(),
    }


def normalize_analysis(raw: Any, product: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Clamp the LLM score to 0..100; fall back to the heuristic when there is no usable score."""
    if not isinstance(raw, dict):
        return default_analysis(product, now)
    try:
        score = float(raw.get("score"))
    except (TypeError, ValueError):
        return default_analysis(product, now)

    analysis = dict(raw)
    analysis["score"] = int(round(max(0.0, min(100.0, score))))
    analysis.setdefault("isRecommended", analysis["score"] >= settings.winning_list_min_score)
    analysis["source"] = "llm"
    analysis["analyzedAt"] = (now or _utcnow()).isoformat()
    return analysis


class ProductAIService:
    def __init__(self, provider: Optional[AIProvider] = None):
        self.provider = provider or GeminiProvider(api_keys=settings.get_gemini_keys(), model_name=settings.gemini_model)

    async def analyze_product(self, product: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
        if not self.provider.available:
            return default_analysis(product, now)
        raw = await self.provider.generate_json(ANALYSIS_PROMPT.format(**_facts(product)))
        if not raw:
            provider_name = getattr(self.provider, "name", type(self.provider).__name__)
            logger.warning(f"[{provider_name}] No analysis for '{getattr(product, 'title', '')}', using heuristic score")
        return normalize_analysis(raw, product, now)

    def apply_analysis(self, product: Product, analysis: Dict[str, Any], now: Optional[datetime] = None) -> Product:
        product.ai_score = analysis["score"]
        product.ai_analysis = analysis
        product.ai_analyzed_at = now or _utcnow()
        product.is_winning = analysis["score"] >= settings.winning_score_threshold
        return product

    async def analyze_and_store(self, session: Session, product: Product, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or _utcnow()
        analysis = await self.analyze_product(product, now)
        self.apply_analysis(product, analysis, now)
        session.flush()
        return analysis

    def is_stale(self, product: Product, now: Optional[datetime] = None) -> bool:
        analyzed_at = _as_utc(product.ai_analyzed_at)
        if product.ai_score is None or analyzed_at is None:
            return True
        max_age = timedelta(hours=settings.ai_score_max_age_hours)
        return (now or _utcnow()) - analyzed_at > max_age

    async def get_winning_products(
        self,
        session: Session,
        category: Optional[str] = None,
        limit: int = 20,
        now: Optional[datetime] = None,
    ) -> List[Product]:
        """
        Scores up to `ai_batch_analyze_limit` recent products whose score is missing or
        stale, then returns everything at or above `winning_list_min_score`.
        """
        now = now or _utcnow()
        recent_stmt = select(Product).order_by(Product.cached_at.desc()).limit(100)
        if category:
            recent_stmt = recent_stmt.where(Product.category.ilike(f"%{category}%"))
        recent = session.scalars(recent_stmt).all()

        pending = [p for p in recent if self.is_stale(p, now)][: settings.ai_batch_analyze_limit]
        for product in pending:
            await self.analyze_and_store(session, product, now)
        if pending:
            logger.info(f"Winning products: analyzed {len(pending)} product(s)")

        stmt = (
            select(Product)
            .where(Product.ai_score >= settings.winning_list_min_score)
            .order_by(Product.ai_score.desc())
            .limit(limit)
        )
        if category:
            stmt = stmt.where(Product.category.ilike(f"%{category}%"))
        return list(session.scalars(stmt).all())

    def get_cached_winners(self, session: Session, limit: int = 10) -> List[Product]:
        stmt = (
            select(Product)
            .where(Product.is_winning.is_(True), Product.ai_score.is_not(None))
            .order_by(Product.ai_score.desc())
            .limit(limit)
        )
        return list(session.scalars(stmt).all())

    async def generate_product_description(self, product: Any, style: DescriptionStyle = "professional") -> Dict[str, Any]:
        fallback = {
            "title": getattr(product, "title", ""),
            "description": getattr(product, "description", None),
            "bulletPoints": [],
            "seoKeywords": [],
        }
        if not self.provider.available:
            return fallback
        facts = _facts(product)
        raw = await self.provider.generate_json(
            DESCRIPTION_PROMPT.format(title=facts["title"], description=facts["description"], category=facts["category"], style=style)
        )
        if not isinstance(raw, dict) or not raw.get("description"):
            return fallback
        return {
            "title": raw.get("title") or fallback["title"],
            "description": raw["description"],
            "bulletPoints": list(raw.get("bulletPoints") or []),
            "seoKeywords": list(raw.get("seoKeywords") or []),
        }

    async def get_pricing_suggestion(self, product: Any) -> Dict[str, Any]:
        price = float(getattr(product, "price", 0.0) or 0.0)
        fallback = {
            "recommendedPrice": round(price * 1.35, 2),
            "minimumPrice": round(price * 1.2, 2),
            "maximumPrice": round(price * 2.0, 2),
            "optimalMarkup": 35,
            "priceStrategy": "competitive",
            "reasoning": "Standard competitive pricing strategy",
        }
        if not self.provider.available:
            return fallback
        raw = await self.provider.generate_json(PRICING_PROMPT.format(**_facts(product)))
        if not isinstance(raw, dict) or "recommendedPrice" not in raw:
            return fallback
        return {**fallback, **raw}

    async def get_marketing_suggestions(self, product: Any) -> Dict[str, Any]:
        # imported products are priced at their custom price, cached hits at the marketplace price
        price = getattr(product, "custom_price", None) or getattr(product, "price", 0.0) or 0.0
        fallback = copy.deepcopy(DEFAULT_MARKETING)
        if not self.provider.available:
            return fallback
        raw = await self.provider.generate_json(
            MARKETING_PROMPT.format(
                title=getattr(product, "title", None) or getattr(product, "custom_title", "") or "",
                category=getattr(product, "category", None) or "General",
                price=round(float(price), 2),
            )
        )
        if not isinstance(raw, dict) or not isinstance(raw.get("adCopy"), dict):
            return fallback
        return {**fallback, **raw}


_service: Optional[ProductAIService] = None


def get_ai_service() -> ProductAIService:
    global _service
    if _service is None:
        _service = ProductAIService()
    return _service
