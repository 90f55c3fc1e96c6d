import json

import httpx
import pytest
from curl_cffi import CurlError

from app.exceptions import MarketplaceError
from app.marketplaces.adapters import aliexpress, amazon
from app.marketplaces.adapters.aliexpress import AliExpressAdapter, sign_request
from app.marketplaces.adapters.amazon import AmazonAdapter, looks_like_captcha, sign_paapi_request
from app.marketplaces.adapters.base import SearchFilters, apply_filters
from app.marketplaces.adapters.ebay import EbayAdapter, build_price_filter, parse_search_response
from app.marketplaces.adapters.temu import TemuAdapter
from app.marketplaces.api_client import MarketplaceApiClient
from app.marketplaces import scraping
from app.marketplaces.scraping import CurlPageFetcher, normalize_url, parse_count, parse_price
from app.services.rate_limiter import TokenBucket
from app.settings import settings
from tests.fixtures.mock_products import (
    ALIEXPRESS_CARDS_HTML,
    ALIEXPRESS_EMBEDDED_HTML,
    AMAZON_SEARCH_HTML,
    EBAY_SEARCH_JSON,
    FakeFetcher,
    make_item,
)


CREDENTIAL_FIELDS = [
    "amazon_access_key",
    "amazon_secret_key",
    "amazon_partner_tag",
    "aliexpress_app_key",
    "aliexpress_app_secret",
    "ebay_app_id",
    "ebay_cert_id",
]


@pytest.fixture(autouse=True)
def no_credentials(monkeypatch):
    for name in CREDENTIAL_FIELDS:
        monkeypatch.setattr(settings, name, "")


def fast_bucket():
    return TokenBucket(rate=1000, capacity=1000)


def api_client_for(source, handler, retry_count=1):
    return MarketplaceApiClient(source, timeout=5, retry_count=retry_count, transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# scraping helpers
# ---------------------------------------------------------------------------

@pytest.mark.unit
def test_parse_price_and_count():
    assert parse_price("$1,299.99") == 1299.99
    assert parse_price("US $3.99 - 5.00") == 3.99
    assert parse_price("no price") == 0.0
    assert parse_price(None) == 0.0
    assert parse_count("1,234 sold") == 1234
    assert parse_count("2.5K+") == 2500
    assert parse_count("3M") == 3_000_000
    assert parse_count("") == 0


@pytest.mark.unit
def test_normalize_url():
    assert normalize_url("//ae01.alicdn.com/a.jpg", "https://www.aliexpress.com") == "https://ae01.alicdn.com/a.jpg"
    assert normalize_url("/item/1.html", "https://www.aliexpress.com/") == "https://www.aliexpress.com/item/1.html"
    assert normalize_url(None, "https://x") == ""


@pytest.mark.unit
def test_apply_filters_bounds_dedup_and_limit():
    items = [
        make_item(external_id="A", price=5),
        make_item(external_id="B", price=20),
        make_item(external_id="B", price=21),
        make_item(external_id="C", price=0),
        make_item(external_id="D", price=45, rating=3.0),
        make_item(external_id="E", price=49, rating=None),
        make_item(external_id="F", price=60),
    ]
    out = apply_filters(items, SearchFilters(min_price=10, max_price=50, min_rating=4.0, limit=5))
    assert [i.external_id for i in out] == ["B"]

    limited = apply_filters(items, SearchFilters(limit=2))
    assert [i.external_id for i in limited] == ["A", "B"]


@pytest.mark.unit
def test_rating_floor_drops_unrated_items():
    items = [make_item(external_id="R", price=20, rating=4.6), make_item(external_id="U", price=20, rating=None)]

    assert [i.external_id for i in apply_filters(items, SearchFilters(min_rating=4.5))] == ["R"]
    assert [i.external_id for i in apply_filters(items, SearchFilters())] == ["R", "U"]


@pytest.mark.asyncio
async def test_curl_fetcher_wraps_transport_errors(monkeypatch):
    class DeadSession:
        def __init__(self, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc):
            return False

        async def get(self, url, **kwargs):
            raise CurlError("Failed to resolve host")

    monkeypatch.setattr(scraping, "AsyncSession", DeadSession)

    with pytest.raises(MarketplaceError) as excinfo:
        await CurlPageFetcher("aliexpress").fetch("https://www.aliexpress.com/w", {}, 5)

    assert excinfo.value.reason == "network_error"
    assert excinfo.value.url == "https://www.aliexpress.com/w"


# ---------------------------------------------------------------------------
# Amazon
# ---------------------------------------------------------------------------

@pytest.mark.unit
def test_amazon_parse_search_html():
    products = amazon.parse_search_html(AMAZON_SEARCH_HTML, SearchFilters(category="Audio"))
    assert [p.external_id for p in products] == ["B0EAR001", "B0EAR002", "B0EAR003"]

    first = products[0]
    assert first.title == "Wireless Earbuds Pro"
    assert first.price == 24.99
    assert first.original_price == 39.99
    assert first.rating == 4.5
    assert first.reviews_count == 2341
    assert first.category == "Audio"
    assert first.supplier_url == "https://www.amazon.com/dp/B0EAR001"

    assert products[1].price == 8.49
    assert products[1].rating is None
    assert products[2].price == 129.0


@pytest.mark.unit
def test_amazon_captcha_detection():
    assert looks_like_captcha("<html>Enter the characters you see below (captcha)</html>")
    assert not looks_like_captcha(AMAZON_SEARCH_HTML)


@pytest.mark.unit
def test_paapi_signature_headers():
    headers = sign_paapi_request(
        '{"Keywords": "earbuds"}',
        access_key="AKID",
        secret_key="secret",
        host="webservices.amazon.com",
        region="us-east-1",
        amz_date="20240101T000000Z",
    )
    assert headers["Authorization"].startswith(
        "AWS4-HMAC-SHA256 Credential=AKID/20240101/us-east-1/ProductAdvertisingAPI/aws4_request"
    )
    assert "SignedHeaders=host;x-amz-date" in headers["Authorization"]
    assert headers["X-Amz-Target"] == amazon.PAAPI_TARGET

    again = sign_paapi_request(
        '{"Keywords": "earbuds"}', "AKID", "secret", "webservices.amazon.com", "us-east-1", "20240101T000000Z"
    )
    other = sign_paapi_request(
        '{"Keywords": "earbuds"}', "AKID", "other", "webservices.amazon.com", "us-east-1", "20240101T000000Z"
    )
    assert headers["Authorization"] == again["Authorization"]
    assert headers["Authorization"] != other["Authorization"]


@pytest.mark.asyncio
async def test_amazon_scrape_applies_price_bounds():
    fetcher = FakeFetcher({"https://www.amazon.com/s": AMAZON_SEARCH_HTML})
    adapter = AmazonAdapter(fetcher=fetcher, limiter=fast_bucket())

    result = await adapter.search("wireless earbuds", SearchFilters(min_price=10, max_price=50, limit=5))

    assert not result.degraded
    assert [p.external_id for p in result.products] == ["B0EAR001"]
    assert fetcher.urls == ["https://www.amazon.com/s?k=wireless+earbuds&ref=nb_sb_noss"]


@pytest.mark.asyncio
async def test_amazon_captcha_page_is_a_blocked_failure():
    fetcher = FakeFetcher({"https://www.amazon.com": "<html>captcha</html>"})
    adapter = AmazonAdapter(fetcher=fetcher, limiter=fast_bucket())

    result = await adapter.search("earbuds", SearchFilters())

    assert result.failed and result.degraded
    assert result.reason == "blocked"
    assert result.products == []


@pytest.mark.asyncio
async def test_empty_page_reports_no_results():
    adapter = AmazonAdapter(fetcher=FakeFetcher({"https://www.amazon.com": "<html></html>"}), limiter=fast_bucket())

    result = await adapter.search("earbuds", SearchFilters())

    assert result.products == []
    assert result.degraded and not result.failed
    assert result.reason == "no_results"


@pytest.mark.asyncio
async def test_http_error_reason_carries_status():
    error = MarketplaceError("HTTP 503", source="amazon", status_code=503)
    adapter = AmazonAdapter(fetcher=FakeFetcher(error=error), limiter=fast_bucket())

    result = await adapter.search("earbuds", SearchFilters())

    assert result.failed
    assert result.reason == "http_503"


@pytest.mark.asyncio
async def test_unexpected_scrape_error_is_contained():
    adapter = AmazonAdapter(fetcher=FakeFetcher(error=RuntimeError("boom")), limiter=fast_bucket())

    result = await adapter.search("earbuds", SearchFilters())

    assert result.failed
    assert result.reason == "scrape_failed"


@pytest.mark.asyncio
async def test_amazon_api_request_is_signed_and_parsed(monkeypatch):
    monkeypatch.setattr(settings, "amazon_access_key", "AKID")
    monkeypatch.setattr(settings, "amazon_secret_key", "secret")
    monkeypatch.setattr(settings, "amazon_partner_tag", "tag-20")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "SearchResult": {
                    "Items": [
                        {
                            "ASIN": "B0API01",
                            "DetailPageURL": "https://www.amazon.com/dp/B0API01",
                            "ItemInfo": {"Title": {"DisplayValue": "API Earbuds"}},
                            "Offers": {"Listings": [{"Price": {"Amount": 29.99, "Currency": "USD"}}]},
                            "CustomerReviews": {"StarRating": {"Value": 4.2}, "Count": 150},
                        }
                    ]
                }
            },
        )

    fetcher = FakeFetcher()
    adapter = AmazonAdapter(fetcher=fetcher, api_client=api_client_for("amazon", handler), limiter=fast_bucket())

    result = await adapter.search("earbuds", SearchFilters(min_price=10, max_price=50, limit=20))

    assert [p.external_id for p in result.products] == ["B0API01"]
    assert result.products[0].rating == 4.2
    assert result.products[0].reviews_count == 150
    assert not result.degraded
    assert seen["auth"].startswith("AWS4-HMAC-SHA256 Credential=AKID/")
    assert seen["body"]["MinPrice"] == 1000
    assert seen["body"]["MaxPrice"] == 5000
    assert seen["body"]["ItemCount"] == 10
    assert fetcher.urls == []


@pytest.mark.asyncio
async def test_amazon_api_failure_falls_back_to_scraping(monkeypatch):
    monkeypatch.setattr(settings, "amazon_access_key", "AKID")
    monkeypatch.setattr(settings, "amazon_secret_key", "secret")
    monkeypatch.setattr(settings, "amazon_partner_tag", "tag-20")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"Errors": [{"Code": "InvalidSignature"}]})

    fetcher = FakeFetcher({"https://www.amazon.com/s": AMAZON_SEARCH_HTML})
    adapter = AmazonAdapter(fetcher=fetcher, api_client=api_client_for("amazon", handler), limiter=fast_bucket())

    result = await adapter.search("earbuds", SearchFilters())

    assert len(result.products) == 3
    assert result.degraded and not result.failed
    assert result.reason == "api_fallback"


# ---------------------------------------------------------------------------
# AliExpress
# ---------------------------------------------------------------------------

@pytest.mark.unit
def test_aliexpress_sign_request():
    signature = sign_request({"b": "2", "a": "1"}, "secret")
    assert len(signature) == 32
    assert signature == signature.upper()
    assert signature == sign_request({"a": "1", "b": "2"}, "secret")
    assert signature != sign_request({"a": "1", "b": "2"}, "other")


@pytest.mark.unit
def test_aliexpress_embedded_json():
    products = aliexpress.parse_search_html(ALIEXPRESS_EMBEDDED_HTML, SearchFilters())
    assert [p.external_id for p in products] == ["1005001", "1005002"]

    first = products[0]
    assert first.title == "TWS Bluetooth Earbuds"
    assert first.price == 6.5
    assert first.original_price == 12.0
    assert first.rating == 4.6
    assert first.sales_count == 5000
    assert first.main_image == "https://ae01.alicdn.com/kf/a1.jpg"
    assert first.supplier_url == "https://www.aliexpress.com/item/1005001.html"
    assert products[1].original_price == 15.2


@pytest.mark.unit
def test_aliexpress_cards_fallback():
    products = aliexpress.parse_search_html(ALIEXPRESS_CARDS_HTML, SearchFilters(category="Audio"))
    assert len(products) == 1

    card = products[0]
    assert card.external_id == "1005777"
    assert card.title == "Mini Earbuds"
    assert card.price == 3.99
    assert card.rating == 4.3
    assert card.sales_count == 2500
    assert card.category == "Audio"
    assert card.supplier_url == "https://www.aliexpress.com/item/1005777.html"


@pytest.mark.unit
def test_aliexpress_api_response_maps_feedback_rate():
    data = {
        "aliexpress_affiliate_product_query_response": {
            "resp_result": {
                "result": {
                    "products": {
                        "product": [
                            {
                                "product_id": 42,
                                "product_title": "API Earbuds",
                                "target_sale_price": "7.50",
                                "target_original_price": "10.00",
                                "evaluate_rate": "96.0%",
                                "lastest_volume": 812,
                            },
                            {"product_id": 43, "product_title": ""},
                        ]
                    }
                }
            }
        }
    }
    products = aliexpress.parse_api_response(data)
    assert len(products) == 1
    assert products[0].external_id == "42"
    assert products[0].price == 7.5
    assert products[0].rating == 4.8
    assert products[0].sales_count == 812


@pytest.mark.asyncio
async def test_aliexpress_tries_second_domain():
    class FailingFirstDomain(FakeFetcher):
        async def fetch(self, url, headers, timeout):
            if url.startswith("https://www.aliexpress.com"):
                self.urls.append(url)
                raise MarketplaceError("HTTP 403", source="aliexpress", status_code=403)
            return await super().fetch(url, headers, timeout)

    fetcher = FailingFirstDomain({"https://www.aliexpress.us": ALIEXPRESS_EMBEDDED_HTML})
    adapter = AliExpressAdapter(fetcher=fetcher, limiter=fast_bucket())

    result = await adapter.search("earbuds", SearchFilters(max_price=10))

    assert [p.external_id for p in result.products] == ["1005001"]
    assert len(fetcher.urls) == 2


@pytest.mark.asyncio
async def test_aliexpress_all_domains_failing():
    error = MarketplaceError("HTTP 403", source="aliexpress", status_code=403)
    adapter = AliExpressAdapter(fetcher=FakeFetcher(error=error), limiter=fast_bucket())

    result = await adapter.search("earbuds", SearchFilters())

    assert result.failed
    assert result.reason == "http_403"


@pytest.mark.asyncio
async def test_aliexpress_network_error_moves_to_second_domain():
    class UnreachableFirstDomain(FakeFetcher):
        async def fetch(self, url, headers, timeout):
            if url.startswith("https://www.aliexpress.com"):
                self.urls.append(url)
                raise MarketplaceError("timed out", source="aliexpress", url=url, reason="network_error")
            return await super().fetch(url, headers, timeout)

    fetcher = UnreachableFirstDomain({"https://www.aliexpress.us": ALIEXPRESS_EMBEDDED_HTML})
    adapter = AliExpressAdapter(fetcher=fetcher, limiter=fast_bucket())

    result = await adapter.search("earbuds", SearchFilters(max_price=10))

    assert len(fetcher.urls) == 2
    assert [p.external_id for p in result.products] == ["1005001"]
    assert not result.degraded


# ---------------------------------------------------------------------------
# eBay / Temu
# ---------------------------------------------------------------------------

@pytest.mark.unit
def test_ebay_price_filter():
    assert build_price_filter(SearchFilters()) is None
    assert build_price_filter(SearchFilters(min_price=10, max_price=50)) == "price:[10..50],priceCurrency:USD"
    assert build_price_filter(SearchFilters(min_price=9.5)) == "price:[9.5..],priceCurrency:USD"


@pytest.mark.unit
def test_ebay_parse_search_response():
    products = parse_search_response(EBAY_SEARCH_JSON, SearchFilters(category="Audio"))
    assert [p.external_id for p in products] == ["v1|1111|0", "v1|2222|0"]

    first = products[0]
    assert first.price == 22.5
    assert first.rating is None
    assert first.category == "Headphones"
    assert first.extra["condition"] == "Used"
    assert first.extra["shipping"]["cost"] == 3.99

    second = products[1]
    assert second.main_image == "https://i.ebayimg.com/2.jpg"
    assert second.category == "Audio"
    assert second.extra["condition"] == "New"


@pytest.mark.asyncio
async def test_ebay_without_credentials_is_unavailable():
    adapter = EbayAdapter(limiter=fast_bucket())

    result = await adapter.search("earbuds", SearchFilters())

    assert result.products == []
    assert result.degraded and not result.failed
    assert result.reason == "missing_credentials"
    assert await adapter.get_item("v1|1111|0") is None


@pytest.mark.asyncio
async def test_ebay_token_is_cached_between_searches(monkeypatch):
    monkeypatch.setattr(settings, "ebay_app_id", "app")
    monkeypatch.setattr(settings, "ebay_cert_id", "cert")
    calls = {"token": 0, "search": 0}
    seen_filters = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/oauth2/token"):
            calls["token"] += 1
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 7200})
        calls["search"] += 1
        assert request.headers["Authorization"] == "Bearer tok"
        seen_filters.append(request.url.params.get("filter"))
        return httpx.Response(200, json=EBAY_SEARCH_JSON)

    now = [0.0]
    adapter = EbayAdapter(api_client=api_client_for("ebay", handler), limiter=fast_bucket(), clock=lambda: now[0])

    first = await adapter.search("earbuds", SearchFilters(min_price=10, max_price=50))
    second = await adapter.search("earbuds", SearchFilters())

    assert len(first.products) == 2 and len(second.products) == 2
    assert calls == {"token": 1, "search": 2}
    assert seen_filters == ["price:[10..50],priceCurrency:USD", None]

    # past expiry minus the safety margin a new token is requested
    now[0] = 7200 - 30
    await adapter.search("earbuds", SearchFilters())
    assert calls["token"] == 2


@pytest.mark.asyncio
async def test_ebay_api_error_is_a_failure(monkeypatch):
    monkeypatch.setattr(settings, "ebay_app_id", "app")
    monkeypatch.setattr(settings, "ebay_cert_id", "cert")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "invalid_client"})

    adapter = EbayAdapter(api_client=api_client_for("ebay", handler), limiter=fast_bucket())

    result = await adapter.search("earbuds", SearchFilters())

    assert result.failed
    assert result.reason == "api_failed"


@pytest.mark.asyncio
async def test_ebay_empty_api_answer_is_no_results(monkeypatch):
    monkeypatch.setattr(settings, "ebay_app_id", "app")
    monkeypatch.setattr(settings, "ebay_cert_id", "cert")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/oauth2/token"):
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 7200})
        return httpx.Response(200, json={"total": 0})

    adapter = EbayAdapter(api_client=api_client_for("ebay", handler), limiter=fast_bucket())

    result = await adapter.search("no such thing", SearchFilters())

    assert result.products == []
    assert result.degraded and not result.failed
    assert result.reason == "no_results"


@pytest.mark.asyncio
async def test_ebay_rating_floor_excludes_unrated_listings(monkeypatch):
    monkeypatch.setattr(settings, "ebay_app_id", "app")
    monkeypatch.setattr(settings, "ebay_cert_id", "cert")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/oauth2/token"):
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 7200})
        return httpx.Response(200, json=EBAY_SEARCH_JSON)

    adapter = EbayAdapter(api_client=api_client_for("ebay", handler), limiter=fast_bucket())

    result = await adapter.search("earbuds", SearchFilters(min_rating=4.5))

    assert result.products == []
    assert result.reason == "no_results"


@pytest.mark.asyncio
async def test_temu_is_always_unsupported():
    fetcher = FakeFetcher()
    adapter = TemuAdapter(fetcher=fetcher, limiter=fast_bucket())

    result = await adapter.search("earbuds", SearchFilters())

    assert result.products == []
    assert result.degraded and not result.failed
    assert result.reason == "unsupported"
    assert fetcher.urls == []


# ---------------------------------------------------------------------------
# API client retries
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_api_client_retries_server_errors():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request.url)
        if len(attempts) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})

    client = api_client_for("ebay", handler, retry_count=3)
    assert await client.request_json("GET", "https://api.example.com/x") == {"ok": True}
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_api_client_does_not_retry_client_errors():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request.url)
        return httpx.Response(404)

    client = api_client_for("ebay", handler, retry_count=3)
    with pytest.raises(MarketplaceError) as excinfo:
        await client.request_json("GET", "https://api.example.com/x")
    assert excinfo.value.status_code == 404
    assert len(attempts) == 1
