from __future__ import annotations

import hashlib
import hmac
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
    parse_count,
    parse_price,
    select_first_attr,
    select_first_text,
)
from app.schemas.product import ProductItem
from app.settings import settings

logger = logging.getLogger(__name__)

PAAPI_SERVICE = "ProductAdvertisingAPI"
PAAPI_PATH = "/paapi5/searchitems"
PAAPI_TARGET = "com.amazon.paapi5.v1.ProductAdvertisingAPIv1.SearchItems"

RESULT_SELECTORS = ['[data-component-type="s-search-result"]']
TITLE_SELECTORS = ["h2 a span", "h2 span", ".a-text-normal"]
OFFSCREEN_PRICE_SELECTORS = [".a-price:not(.a-text-price) .a-offscreen", ".a-price .a-offscreen"]
ORIGINAL_PRICE_SELECTORS = [".a-text-price .a-offscreen"]
RATING_SELECTORS = [".a-icon-star-small .a-icon-alt", ".a-icon-star .a-icon-alt", 'i[class*="a-star"] .a-icon-alt']
REVIEWS_SELECTORS = ['[aria-label*="stars"] + span', ".a-size-base.s-underline-text"]
IMAGE_SELECTORS = ["img.s-image"]


def sign_paapi_request(
    payload: str,
    access_key: str,
    secret_key: str,
    host: str,
    region: str,
    amz_date: str,
) -> dict[str, str]:
    """AWS Signature Version 4 headers for a PA-API 5 SearchItems call."""
    date_stamp = amz_date[:8]
    canonical_headers = f"host:{host}\nx-amz-date:{amz_date}\n"
    signed_headers = "host;x-amz-date"
    payload_hash = hashlib.sha256(payload.encode("utf-8")).hexdigest()

    canonical_request = "\n".join(["POST", PAAPI_PATH, "", canonical_headers, signed_headers, payload_hash])
    credential_scope = f"{date_stamp}/{region}/{PAAPI_SERVICE}/aws4_request"
    string_to_sign = "\n".join(
        [
            "AWS4-HMAC-SHA256",
            amz_date,
            credential_scope,
            hashlib.sha256(canonical_request.encode("utf-8")).hexdigest(),
        ]
    )

    def _hmac(key: bytes, msg: str) -> bytes:
        return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()

    k_date = _hmac(f"AWS4{secret_key}".encode("utf-8"), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, PAAPI_SERVICE)
    k_signing = _hmac(k_service, "aws4_request")
    signature = hmac.new(k_signing, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

    return {
        "Authorization": (
            f"AWS4-HMAC-SHA256 Credential={access_key}/{credential_scope}, "
            f"SignedHeaders={signed_headers}, Signature={signature}"
        ),
        "X-Amz-Date": amz_date,
        "X-Amz-Target": PAAPI_TARGET,
        "Content-Encoding": "amz-1.0",
        "Content-Type": "application/json; charset=utf-8",
        "Host": host,
    }


def parse_api_response(data: dict[str, Any]) -> list[ProductItem]:
    items = ((data.get("SearchResult") or {}).get("Items")) or []
    out: list[ProductItem] = []
    for item in items:
        asin = item.get("ASIN")
        if not asin:
            continue
        info = item.get("ItemInfo") or {}
        listing = (((item.get("Offers") or {}).get("Listings")) or [{}])[0] or {}
        reviews = item.get("CustomerReviews") or {}
        image = (((item.get("Images") or {}).get("Primary") or {}).get("Large") or {}).get("URL") or ""
        price = parse_price((listing.get("Price") or {}).get("Amount"))
        original = parse_price((listing.get("SavingBasis") or {}).get("Amount")) or price

        out.append(
            ProductItem(
                source="amazon",
                external_id=asin,
                title=(info.get("Title") or {}).get("DisplayValue") or "Unknown Product",
                description=" ".join((info.get("Features") or {}).get("DisplayValues") or []),
                price=price,
                original_price=original,
                currency=(listing.get("Price") or {}).get("Currency") or "USD",
                main_image=image,
                images=[image] if image else [],
                rating=parse_price((reviews.get("StarRating") or {}).get("Value")) or None,
                reviews_count=parse_count(reviews.get("Count")),
                category=((info.get("Classifications") or {}).get("ProductGroup") or {}).get("DisplayValue") or "",
                supplier_url=item.get("DetailPageURL") or f"https://www.amazon.com/dp/{asin}",
            )
        )
    return out


def _extract_price(node) -> float:
    whole = select_first_text(node, [".a-price-whole"])
    if whole:
        digits = re.sub(r"[^\d]", "", whole)
        fraction = re.sub(r"[^\d]", "", select_first_text(node, [".a-price-fraction"])) or "00"
        if digits:
            return float(f"{digits}.{fraction}")
    return parse_price(select_first_text(node, OFFSCREEN_PRICE_SELECTORS))


def parse_search_html(html: str, filters: SearchFilters) -> list[ProductItem]:
    soup = BeautifulSoup(html or "", "html.parser")
    products: list[ProductItem] = []

    for node in soup.select(", ".join(RESULT_SELECTORS)):
        asin = (node.get("data-asin") or "").strip()
        if not asin:
            continue
        title = select_first_text(node, TITLE_SELECTORS)
        if not title:
            continue

        price = _extract_price(node)
        original_price = parse_price(select_first_text(node, ORIGINAL_PRICE_SELECTORS)) or price
        image = select_first_attr(node, IMAGE_SELECTORS, ["src", "data-src"])

        rating_text = select_first_text(node, RATING_SELECTORS)
        rating = parse_price(rating_text) if rating_text else None

        products.append(
            ProductItem(
                source="amazon",
                external_id=asin,
                title=title,
                description=f"Amazon product: {title}",
                price=price,
                original_price=original_price,
                main_image=image,
                images=[image] if image else [],
                rating=rating,
                reviews_count=parse_count(select_first_text(node, REVIEWS_SELECTORS)),
                category=filters.category or "General",
                supplier_url=f"https://www.amazon.com/dp/{asin}",
            )
        )

    return products


def looks_like_captcha(html: str) -> bool:
    lowered = (html or "").lower()
    return "captcha" in lowered and "s-search-result" not in lowered


class AmazonAdapter(BaseMarketplaceAdapter):
    source = "amazon"
    base_url = "https://www.amazon.com"

    def has_api_credentials(self) -> bool:
        return bool(settings.amazon_access_key and settings.amazon_secret_key and settings.amazon_partner_tag)

    async def search_api(self, query: str, filters: SearchFilters) -> list[ProductItem]:
        request_params: dict[str, Any] = {
            "Keywords": query,
            "PartnerTag": settings.amazon_partner_tag,
            "PartnerType": "Associates",
            "Marketplace": settings.amazon_marketplace,
            "Resources": [
                "Images.Primary.Large",
                "ItemInfo.Title",
                "ItemInfo.Features",
                "ItemInfo.Classifications",
                "Offers.Listings.Price",
                "CustomerReviews.StarRating",
                "CustomerReviews.Count",
            ],
            # PA-API caps ItemCount at 10 per page
            "ItemCount": min(filters.limit, 10),
        }
        if filters.min_price is not None:
            request_params["MinPrice"] = int(round(filters.min_price * 100))
        if filters.max_price is not None:
            request_params["MaxPrice"] = int(round(filters.max_price * 100))

        payload = json.dumps(request_params)
        amz_date = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        headers = sign_paapi_request(
            payload,
            access_key=settings.amazon_access_key,
            secret_key=settings.amazon_secret_key,
            host=settings.amazon_api_host,
            region=settings.amazon_api_region,
            amz_date=amz_date,
        )
        data = await self.api_client.request_json(
            "POST",
            f"https://{settings.amazon_api_host}{PAAPI_PATH}",
            content=payload,
            headers=headers,
        )
        if data.get("Errors"):
            raise MarketplaceError(f"PA-API error: {data['Errors']}", source=self.source, reason="api_error")
        return parse_api_response(data)

    async def scrape(self, query: str, filters: SearchFilters) -> list[ProductItem]:
        url = f"{self.base_url}/s?k={quote_plus(query)}&ref=nb_sb_noss"
        html = await self.fetcher.fetch(url, build_browser_headers(), self.timeout)
        if looks_like_captcha(html):
            raise MarketplaceError("Amazon served a captcha page", source=self.source, url=url, reason="blocked")
        return parse_search_html(html, filters)
