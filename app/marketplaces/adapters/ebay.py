from __future__ import annotations

import logging
import time
from typing import Any, Callable

from app.exceptions import MarketplaceError
from app.marketplaces.adapters.base import BaseMarketplaceAdapter, SearchFilters
from app.marketplaces.scraping import parse_price
from app.schemas.product import ProductItem
from app.settings import settings

logger = logging.getLogger(__name__)

OAUTH_SCOPE = "https://api.ebay.com/oauth/api_scope"

# refresh the application token a bit before eBay expires it
TOKEN_EXPIRY_MARGIN_SECONDS = 60


def build_price_filter(filters: SearchFilters) -> str | None:
    if filters.min_price is None and filters.max_price is None:
        return None
    low = "" if filters.min_price is None else f"{filters.min_price:g}"
    high = "" if filters.max_price is None else f"{filters.max_price:g}"
    return f"price:[{low}..{high}],priceCurrency:USD"


def _parse_summary(item: dict[str, Any], category: str | None = None) -> ProductItem | None:
    item_id = item.get("itemId")
    title = item.get("title")
    if not item_id or not title:
        return None

    price = parse_price((item.get("price") or {}).get("value"))
    main_image = (item.get("image") or {}).get("imageUrl") or ""
    thumbnails = [img.get("imageUrl") for img in item.get("thumbnailImages") or [] if img.get("imageUrl")]
    seller = item.get("seller") or {}
    shipping = (item.get("shippingOptions") or [{}])[0] or {}

    return ProductItem(
        source="ebay",
        external_id=item_id,
        title=title,
        description=item.get("shortDescription") or title,
        price=price,
        original_price=price,
        currency=(item.get("price") or {}).get("currency") or "USD",
        main_image=main_image or (thumbnails[0] if thumbnails else ""),
        images=thumbnails or ([main_image] if main_image else []),
        # the Browse API carries no product ratings
        rating=None,
        category=((item.get("categories") or [{}])[0] or {}).get("categoryName") or category or "General",
        supplier_url=item.get("itemWebUrl") or f"https://www.ebay.com/itm/{item_id}",
        extra={
            "condition": item.get("condition") or "New",
            "seller": {
                "username": seller.get("username"),
                "feedbackPercentage": seller.get("feedbackPercentage"),
                "feedbackScore": seller.get("feedbackScore"),
            },
            "shipping": {
                "cost": parse_price((shipping.get("shippingCost") or {}).get("value")),
                "type": shipping.get("shippingCostType"),
            },
        },
    )


def parse_search_response(data: dict[str, Any], filters: SearchFilters) -> list[ProductItem]:
    out: list[ProductItem] = []
    for item in data.get("itemSummaries") or []:
        parsed = _parse_summary(item, filters.category)
        if parsed is not None:
            out.append(parsed)
    return out


def parse_item_response(item: dict[str, Any]) -> ProductItem | None:
    parsed = _parse_summary(item)
    if parsed is None:
        return None
    additional = [img.get("imageUrl") for img in item.get("additionalImages") or [] if img.get("imageUrl")]
    return parsed.model_copy(
        update={
            "description": item.get("description") or item.get("shortDescription") or parsed.title,
            "images": ([parsed.main_image] if parsed.main_image else []) + additional,
            "category": item.get("categoryPath") or parsed.category,
        }
    )


class EbayAdapter(BaseMarketplaceAdapter):
    """
    eBay Browse API with an OAuth client-credentials token.
    There is no scraping path; without credentials the source is reported as unavailable.
    """

    source = "ebay"
    base_url = "https://www.ebay.com"
    supports_scraping = False

    def __init__(self, *args: Any, clock: Callable[[], float] = time.monotonic, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._clock = clock
        self._token: str | None = None
        self._token_expires_at = 0.0

    def has_api_credentials(self) -> bool:
        return bool(settings.ebay_app_id and settings.ebay_cert_id)

    async def get_access_token(self) -> str:
        if self._token and self._clock() < self._token_expires_at:
            return self._token

        data = await self.api_client.request_json(
            "POST",
            f"{settings.ebay_api_base_url}/identity/v1/oauth2/token",
            data={"grant_type": "client_credentials", "scope": OAUTH_SCOPE},
            auth=(settings.ebay_app_id, settings.ebay_cert_id),
        )
        token = data.get("access_token")
        if not token:
            raise MarketplaceError("eBay OAuth response had no access_token", source=self.source, reason="auth_failed")

        expires_in = float(data.get("expires_in") or 7200)
        self._token = token
        self._token_expires_at = self._clock() + max(0.0, expires_in - TOKEN_EXPIRY_MARGIN_SECONDS)
        return token

    async def _headers(self) -> dict[str, str]:
        token = await self.get_access_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "X-EBAY-C-MARKETPLACE-ID": settings.ebay_marketplace_id,
        }

    async def search_api(self, query: str, filters: SearchFilters) -> list[ProductItem]:
        params: dict[str, Any] = {"q": query, "limit": min(filters.limit, 200)}
        price_filter = build_price_filter(filters)
        if price_filter:
            params["filter"] = price_filter

        data = await self.api_client.request_json(
            "GET",
            f"{settings.ebay_api_base_url}/buy/browse/v1/item_summary/search",
            params=params,
            headers=await self._headers(),
        )
        return parse_search_response(data, filters)

    async def get_item(self, item_id: str) -> ProductItem | None:
        """Single listing detail. None when credentials are missing or the lookup fails."""
        if not self.has_api_credentials():
            logger.warning("eBay: missing API credentials, item lookup skipped")
            return None

        await self.limiter.acquire()
        try:
            data = await self.api_client.request_json(
                "GET",
                f"{settings.ebay_api_base_url}/buy/browse/v1/item/{item_id}",
                headers=await self._headers(),
            )
        except MarketplaceError as e:
            logger.error(f"eBay item lookup failed for {item_id}: {e}")
            return None
        return parse_item_response(data)
