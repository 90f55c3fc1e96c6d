"""
Canned marketplace results and fake collaborators for tests.

Synthetic products exist only here; production adapters never invent data.
"""

from __future__ import annotations

import asyncio
from typing import Any

from app.marketplaces.adapters.base import AdapterResult, SearchFilters, apply_filters
from app.schemas.product import ProductItem


def make_item(source: str = "amazon", external_id: str = "X1", price: float = 19.99, **overrides: Any) -> ProductItem:
    data: dict[str, Any] = {
        "source": source,
        "external_id": external_id,
        "title": f"{source} product {external_id}",
        "description": "Wireless earbuds with charging case",
        "price": price,
        "original_price": price,
        "main_image": f"https://img.example.com/{external_id}.jpg",
        "images": [f"https://img.example.com/{external_id}.jpg"],
        "rating": 4.4,
        "reviews_count": 1200,
        "sales_count": 3400,
        "category": "Electronics",
        "supplier_url": f"https://{source}.example.com/item/{external_id}",
    }
    data.update(overrides)
    return ProductItem(**data)


def make_items(source: str, prices: list[float], prefix: str | None = None) -> list[ProductItem]:
    prefix = prefix or source[:3].upper()
    return [make_item(source, f"{prefix}{i}", price) for i, price in enumerate(prices, start=1)]


class FakeAdapter:
    """Adapter stand-in: filters its canned items like a real adapter and counts calls."""

    def __init__(
        self,
        source: str,
        items: list[ProductItem] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
        result: AdapterResult | None = None,
    ) -> None:
        self.source = source
        self.items = items or []
        self.error = error
        self.delay = delay
        self.result = result
        self.calls: list[tuple[str, SearchFilters]] = []

    async def search(self, query: str, filters: SearchFilters) -> AdapterResult:
        self.calls.append((query, filters))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return AdapterResult(source=self.source, products=apply_filters(self.items, filters))

    async def get_item(self, item_id: str) -> ProductItem | None:
        self.calls.append((item_id, SearchFilters()))
        return next((item for item in self.items if item.external_id == item_id), None)


class FakeFetcher:
    """PageFetcher returning fixed HTML per URL prefix, or raising a configured error."""

    def __init__(self, pages: dict[str, str] | None = None, error: Exception | None = None) -> None:
        self.pages = pages or {}
        self.error = error
        self.urls: list[str] = []

    async def fetch(self, url: str, headers: dict[str, str], timeout: float) -> str:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        for prefix, html in self.pages.items():
            if url.startswith(prefix):
                return html
        return ""


class FakeAIProvider:
    def __init__(self, payload: Any = None, text: str = "", available: bool = True) -> None:
        self.payload = payload if payload is not None else {}
        self.text = text
        self._available = available
        self.prompts: list[str] = []

    @property
    def available(self) -> bool:
        return self._available

    async def generate_text(self, prompt: str, model: str | None = None) -> str:
        self.prompts.append(prompt)
        return self.text

    async def generate_json(self, prompt: str, model: str | None = None) -> Any:
        self.prompts.append(prompt)
        return self.payload


AMAZON_SEARCH_HTML = """
<html><body>
<div data-component-type="s-search-result" data-asin="B0EAR001">
  <h2><a><span>Wireless Earbuds Pro</span></a></h2>
  <span class="a-price"><span class="a-offscreen">$24.99</span><span class="a-price-whole">24.</span><span class="a-price-fraction">99</span></span>
  <span class="a-price a-text-price"><span class="a-offscreen">$39.99</span></span>
  <i class="a-icon a-icon-star-small"><span class="a-icon-alt">4.5 out of 5 stars</span></i>
  <span class="a-size-base s-underline-text">2,341</span>
  <img class="s-image" src="https://m.media-amazon.com/images/I/ear1.jpg"/>
</div>
<div data-component-type="s-search-result" data-asin="B0EAR002">
  <h2><a><span>Budget Earbuds</span></a></h2>
  <span class="a-price"><span class="a-offscreen">$8.49</span></span>
  <img class="s-image" src="https://m.media-amazon.com/images/I/ear2.jpg"/>
</div>
<div data-component-type="s-search-result" data-asin="B0EAR003">
  <h2><a><span>Studio Earbuds Max</span></a></h2>
  <span class="a-price"><span class="a-price-whole">129.</span><span class="a-price-fraction">00</span></span>
  <i class="a-icon a-icon-star-small"><span class="a-icon-alt">4.8 out of 5 stars</span></i>
  <img class="s-image" src="https://m.media-amazon.com/images/I/ear3.jpg"/>
</div>
<div data-component-type="s-search-result" data-asin="">
  <h2><a><span>Sponsored without ASIN</span></a></h2>
</div>
</body></html>
"""

ALIEXPRESS_EMBEDDED_HTML = """
<html><head>
<script>
window._init_data_ = { "data": { "root": { "fields": { "mods": { "itemList": { "content": [
  {"productId": "1005001", "title": {"displayTitle": "TWS Bluetooth Earbuds"},
   "image": {"imgUrl": "//ae01.alicdn.com/kf/a1.jpg"},
   "prices": {"salePrice": {"minPrice": 6.5}, "originalPrice": {"minPrice": 12.0}},
   "evaluation": {"starRating": 4.6}, "trade": {"tradeDesc": "5,000+ sold"}},
  {"productId": "1005002", "title": {"displayTitle": "Sport Earbuds"},
   "image": {"imgUrl": "https://ae01.alicdn.com/kf/a2.jpg"},
   "prices": {"salePrice": {"minPrice": 15.2}},
   "evaluation": {"starRating": 4.1}, "trade": {"tradeDesc": "320 sold"}}
] } } } } } };
</script>
</head><body></body></html>
"""

ALIEXPRESS_CARDS_HTML = """
<html><body>
<div class="search-item-card-wrapper-gallery">
  <div class="list-item">
    <a href="//www.aliexpress.com/item/1005777.html"><h3>Mini Earbuds</h3></a>
    <img src="//ae01.alicdn.com/kf/c1.jpg"/>
    <div class="price-current">US $3.99</div>
    <span class="rating-value">4.3</span>
    <span class="sold-count">2.5K sold</span>
  </div>
</div>
</body></html>
"""

EBAY_SEARCH_JSON = {
    "total": 2,
    "itemSummaries": [
        {
            "itemId": "v1|1111|0",
            "title": "Refurbished Earbuds",
            "price": {"value": "22.50", "currency": "USD"},
            "image": {"imageUrl": "https://i.ebayimg.com/1.jpg"},
            "categories": [{"categoryName": "Headphones"}],
            "itemWebUrl": "https://www.ebay.com/itm/1111",
            "condition": "Used",
            "seller": {"username": "seller1", "feedbackPercentage": "99.1", "feedbackScore": 1500},
            "shippingOptions": [{"shippingCost": {"value": "3.99"}, "shippingCostType": "FIXED"}],
        },
        {
            "itemId": "v1|2222|0",
            "title": "New Earbuds",
            "price": {"value": "35.00", "currency": "USD"},
            "thumbnailImages": [{"imageUrl": "https://i.ebayimg.com/2.jpg"}],
        },
    ],
}
