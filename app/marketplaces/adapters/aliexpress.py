from __future__ import annotations

import hashlib
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote_plus

from bs4 import BeautifulSoup

from app.exceptions import MarketplaceError
from app.marketplaces.adapters.base import BaseMarketplaceAdapter, SearchFilters
from app.marketplaces.scraping import (
    build_browser_headers,
    normalize_url,
    parse_count,
    parse_price,
    select_all_first,
    select_first_attr,
    select_first_text,
)
from app.schemas.product import ProductItem
from app.settings import settings

logger = logging.getLogger(__name__)

SEARCH_URLS = [
    "https://www.aliexpress.com/wholesale?SearchText={query}",
    "https://www.aliexpress.us/wholesale?SearchText={query}",
]

EMBEDDED_JSON_PATTERNS = [
    re.compile(r"window\._init_data_\s*=\s*({[\s\S]*?});"),
    re.compile(r"window\.runParams\s*=\s*({[\s\S]*?});"),
    re.compile(r'"itemList"\s*:\s*(\[[\s\S]*?\])'),
]

CARD_SELECTORS = ['[class*="SearchProduct"]', '[class*="product-card"]', '[class*="ProductCard"]', ".list-item", "[data-product-id]"]
TITLE_SELECTORS = ['[class*="title"]', "h3", "h2"]
PRICE_SELECTORS = ['[class*="price"]', '[class*="Price"]', ".price"]
RATING_SELECTORS = ['[class*="rating"]', '[class*="star"]']
SALES_SELECTORS = ['[class*="sold"]', '[class*="order"]']


def sign_request(params: dict[str, Any], secret: str) -> str:
    """MD5 signature used by the AliExpress open platform (sign_method=md5)."""
    joined = "".join(f"{key}{params[key]}" for key in sorted(params))
    return hashlib.md5(f"{secret}{joined}{secret}".encode("utf-8")).hexdigest().upper()


def parse_api_response(data: dict[str, Any]) -> list[ProductItem]:
    result = (((data.get("aliexpress_affiliate_product_query_response") or {}).get("resp_result") or {}).get("result")) or {}
    items = ((result.get("products") or {}).get("product")) or []
    out: list[ProductItem] = []
    for item in items:
        product_id = str(item.get("product_id") or "").strip()
        title = item.get("product_title") or ""
        if not product_id or not title:
            continue
        price = parse_price(item.get("target_sale_price") or item.get("target_original_price"))
        rate = parse_price(str(item.get("evaluate_rate") or "").replace("%", ""))
        image = normalize_url(item.get("product_main_image_url"), "https://www.aliexpress.com")
        out.append(
            ProductItem(
                source="aliexpress",
                external_id=product_id,
                title=title,
                description=title,
                price=price,
                original_price=parse_price(item.get("target_original_price")) or price,
                currency=item.get("target_sale_price_currency") or "USD",
                main_image=image,
                images=[image] if image else [],
                # evaluate_rate is a positive-feedback percentage; mapped onto a 5 star scale
                rating=round(rate / 20, 2) if rate else None,
                sales_count=parse_count(item.get("lastest_volume")),
                category=item.get("first_level_category_name") or "",
                supplier_url=item.get("product_detail_url") or f"https://www.aliexpress.com/item/{product_id}.html",
            )
        )
    return out


def _first_list(candidates: list[Any]) -> list[Any]:
    for value in candidates:
        if isinstance(value, list) and value:
            return value
    return []


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def extract_items_from_json(data: Any) -> list[ProductItem]:
    if isinstance(data, list):
        items = data
    else:
        items = _first_list(
            [
                _dig(data, "data", "root", "fields", "mods", "itemList", "content"),
                _dig(data, "mods", "itemList", "content"),
                _dig(data, "itemList"),
                _dig(data, "data", "items"),
                _dig(data, "items"),
            ]
        )

    products: list[ProductItem] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        external_id = str(item.get("productId") or item.get("itemId") or item.get("id") or "").strip()
        title_field = item.get("title")
        title = (title_field.get("displayTitle") if isinstance(title_field, dict) else title_field) or item.get("name") or ""
        if not external_id or not title:
            continue

        image_field = item.get("image")
        image = (image_field.get("imgUrl") if isinstance(image_field, dict) else image_field) or item.get("imageUrl") or ""
        image = normalize_url(image, "https://www.aliexpress.com")

        price = parse_price(
            _dig(item, "prices", "salePrice", "minPrice")
            or (_dig(item, "price", "minPrice") if isinstance(item.get("price"), dict) else item.get("price"))
        )
        original = parse_price(_dig(item, "prices", "originalPrice", "minPrice") or item.get("originalPrice"))
        rating = parse_price(_dig(item, "evaluation", "starRating") or item.get("starRating"))

        products.append(
            ProductItem(
                source="aliexpress",
                external_id=external_id,
                title=str(title),
                description=str(title),
                price=price,
                original_price=original or price,
                main_image=image,
                images=[image] if image else [],
                rating=rating or None,
                reviews_count=parse_count(_dig(item, "evaluation", "totalCount") or item.get("reviews")),
                sales_count=parse_count(_dig(item, "trade", "tradeDesc") or item.get("orders")),
                category=str(item.get("category") or "General"),
                supplier_url=normalize_url(item.get("productDetailUrl"), "https://www.aliexpress.com")
                or f"https://www.aliexpress.com/item/{external_id}.html",
            )
        )
    return products


def extract_embedded_json(html: str) -> Any:
    soup = BeautifulSoup(html or "", "html.parser")
    for script in soup.find_all("script"):
        content = script.string or script.get_text() or ""
        if not content:
            continue
        for pattern in EMBEDDED_JSON_PATTERNS:
            match = pattern.search(content)
            if not match:
                continue
            try:
                return json.loads(match.group(1))
            except ValueError:
                continue
    return None


def parse_cards_html(html: str, filters: SearchFilters) -> list[ProductItem]:
    soup = BeautifulSoup(html or "", "html.parser")
    products: list[ProductItem] = []

    for card in select_all_first(soup, CARD_SELECTORS):
        title = select_first_text(card, TITLE_SELECTORS) or select_first_attr(card, ["a[title]"], ["title"])
        if not title:
            continue

        link = normalize_url(select_first_attr(card, ["a"], ["href"]), "https://www.aliexpress.com")
        id_match = re.search(r"/(\d+)\.html", link) or re.search(r"item/(\d+)", link)
        external_id = id_match.group(1) if id_match else (card.get("data-product-id") or "").strip()
        if not external_id:
            continue

        image = normalize_url(
            select_first_attr(card, ["img"], ["src", "data-src", "data-lazy-src"]),
            "https://www.aliexpress.com",
        )
        price = parse_price(select_first_text(card, PRICE_SELECTORS))
        rating_text = select_first_text(card, RATING_SELECTORS)

        products.append(
            ProductItem(
                source="aliexpress",
                external_id=external_id,
                title=title,
                description=title,
                price=price,
                original_price=price,
                main_image=image,
                images=[image] if image else [],
                rating=parse_price(rating_text) or None,
                sales_count=parse_count(select_first_text(card, SALES_SELECTORS)),
                category=filters.category or "General",
                supplier_url=link or f"https://www.aliexpress.com/item/{external_id}.html",
            )
        )
    return products


def parse_search_html(html: str, filters: SearchFilters) -> list[ProductItem]:
    """Embedded JSON first, DOM cards second."""
    embedded = extract_embedded_json(html)
    if embedded is not None:
        items = extract_items_from_json(embedded)
        if items:
            return items
    return parse_cards_html(html, filters)


class AliExpressAdapter(BaseMarketplaceAdapter):
    source = "aliexpress"
    base_url = "https://www.aliexpress.com"

    def has_api_credentials(self) -> bool:
        return bool(settings.aliexpress_app_key and settings.aliexpress_app_secret)

    async def search_api(self, query: str, filters: SearchFilters) -> list[ProductItem]:
        params: dict[str, Any] = {
            "app_key": settings.aliexpress_app_key,
            "timestamp": datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S"),
            "sign_method": "md5",
            "method": "aliexpress.affiliate.product.query",
            "keywords": query,
            "page_no": 1,
            "page_size": min(filters.limit, 50),
        }
        if settings.aliexpress_tracking_id:
            params["tracking_id"] = settings.aliexpress_tracking_id
        if filters.min_price is not None:
            params["min_sale_price"] = int(round(filters.min_price * 100))
        if filters.max_price is not None:
            params["max_sale_price"] = int(round(filters.max_price * 100))
        params["sign"] = sign_request(params, settings.aliexpress_app_secret)

        data = await self.api_client.request_json("GET", settings.aliexpress_api_url, params=params)
        if data.get("error_response"):
            raise MarketplaceError(f"AliExpress API error: {data['error_response']}", source=self.source, reason="api_error")
        return parse_api_response(data)

    async def scrape(self, query: str, filters: SearchFilters) -> list[ProductItem]:
        last_error: Exception | None = None
        for template in SEARCH_URLS:
            url = template.format(query=quote_plus(query))
            try:
                html = await self.fetcher.fetch(url, build_browser_headers(), self.timeout)
            except MarketplaceError as e:
                logger.warning(f"AliExpress search page failed ({url}): {e}")
                last_error = e
                continue
            if html:
                return parse_search_html(html, filters)

        if last_error is not None:
            raise last_error
        return []
