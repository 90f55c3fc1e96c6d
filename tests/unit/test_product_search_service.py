from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from app.exceptions import LimitReachedError, ValidationFailedError
from app.marketplaces.adapters.base import AdapterResult
from app.models import Product
from app.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from app.services.product_search_service import ProductSearchService, SearchQuery, upsert_products
from app.services.search_cache import SearchCache
from app.services.usage_service import get_usage_count
from app.settings import settings
from tests.fixtures.mock_products import FakeAdapter, make_item, make_items


def build_service(adapters, **kwargs):
    kwargs.setdefault("cache", SearchCache(ttl_seconds=3600, max_entries=100))
    kwargs.setdefault("budget_seconds", 5)
    return ProductSearchService(adapter_getter=lambda source: adapters[source], **kwargs)


def healthy_adapters():
    return {
        "amazon": FakeAdapter("amazon", make_items("amazon", [12.0, 25.0, 49.0, 80.0, 5.0])),
        "aliexpress": FakeAdapter("aliexpress", make_items("aliexpress", [3.5, 14.0])),
        "temu": FakeAdapter("temu", result=AdapterResult.unavailable("temu", "unsupported")),
        "ebay": FakeAdapter("ebay", make_items("ebay", [30.0])),
    }


# ---------------------------------------------------------------------------
# SearchQuery
# ---------------------------------------------------------------------------

@pytest.mark.unit
def test_query_validation():
    with pytest.raises(ValidationFailedError):
        SearchQuery(q="   ").validate()
    with pytest.raises(ValidationFailedError):
        SearchQuery(q="earbuds", source="walmart").validate()
    with pytest.raises(ValidationFailedError) as excinfo:
        SearchQuery(q="earbuds", min_price=50, max_price=10).validate()
    assert excinfo.value.field == "minPrice"

    assert SearchQuery(q="earbuds", min_price=10, max_price=10).validate()


@pytest.mark.unit
def test_pages_past_the_adapter_ceiling_are_rejected(monkeypatch):
    monkeypatch.setattr(settings, "adapter_max_results", 100)

    assert SearchQuery(q="earbuds", page=2, limit=50).validate()
    with pytest.raises(ValidationFailedError) as excinfo:
        SearchQuery(q="earbuds", page=3, limit=50).validate()
    assert excinfo.value.field == "page"


@pytest.mark.unit
def test_query_sources_and_adapter_filters():
    assert SearchQuery(q="x").sources == ["amazon", "aliexpress", "temu", "ebay"]
    assert SearchQuery(q="x", source="ebay").sources == ["ebay"]

    filters = SearchQuery(q="x", min_price=10, page=3, limit=20).adapter_filters()
    assert filters.min_price == 10
    assert filters.limit == 60


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_all_sources_merged_with_status():
    service = build_service(healthy_adapters())

    data = await service.search_marketplaces(SearchQuery(q="earbuds", limit=50))

    sources = {s["source"]: s for s in data["sources"]}
    assert sources["amazon"]["count"] == 5
    assert sources["aliexpress"]["count"] == 2
    assert sources["ebay"]["count"] == 1
    assert sources["temu"] == {"source": "temu", "count": 0, "degraded": True, "reason": "unsupported"}
    assert data["pagination"] == {"page": 1, "limit": 50, "total": 8, "hasMore": False}
    # camelCase wire format
    assert "externalId" in data["products"][0]


@pytest.mark.asyncio
async def test_partial_failure_still_returns_other_sources():
    adapters = healthy_adapters()
    adapters["amazon"] = FakeAdapter("amazon", error=RuntimeError("parser exploded"))
    service = build_service(adapters)

    data = await service.search_marketplaces(SearchQuery(q="earbuds"))

    sources = {s["source"]: s for s in data["sources"]}
    assert sources["amazon"]["degraded"] is True
    assert sources["amazon"]["reason"] == "adapter_error"
    assert {p["source"] for p in data["products"]} == {"aliexpress", "ebay"}


@pytest.mark.asyncio
async def test_slow_source_times_out_within_budget():
    adapters = healthy_adapters()
    adapters["ebay"] = FakeAdapter("ebay", make_items("ebay", [30.0]), delay=5)
    service = build_service(adapters, budget_seconds=0.2)

    data = await service.search_marketplaces(SearchQuery(q="earbuds"))

    sources = {s["source"]: s for s in data["sources"]}
    assert sources["ebay"]["reason"] == "timeout"
    assert sources["ebay"]["count"] == 0
    assert sources["amazon"]["count"] > 0


@pytest.mark.asyncio
async def test_open_circuit_skips_source():
    adapters = healthy_adapters()
    failing = FakeAdapter("amazon", result=AdapterResult.failure("amazon", "blocked"))
    adapters["amazon"] = failing
    breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=2, recovery_seconds=300))
    service = build_service(adapters, breaker=breaker)

    for _ in range(2):
        await service.search_marketplaces(SearchQuery(q="earbuds", source="amazon"))
    data = await service.search_marketplaces(SearchQuery(q="earbuds", source="amazon"))

    assert len(failing.calls) == 2
    assert data["sources"] == [{"source": "amazon", "count": 0, "degraded": True, "reason": "circuit_open"}]


@pytest.mark.asyncio
async def test_price_bounds_and_pagination():
    service = build_service(healthy_adapters())

    data = await service.search_marketplaces(
        SearchQuery(q="earbuds", source="amazon", min_price=10, max_price=50, limit=2)
    )

    prices = [p["price"] for p in data["products"]]
    assert prices == [12.0, 25.0]
    assert data["pagination"]["total"] == 2
    assert data["pagination"]["hasMore"] is False

    page2 = await service.search_marketplaces(
        SearchQuery(q="earbuds", source="amazon", min_price=10, max_price=50, page=2, limit=2)
    )
    assert [p["price"] for p in page2["products"]] == [49.0]
    assert page2["pagination"]["total"] == 3


# ---------------------------------------------------------------------------
# Full search: quota, persistence, cache
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_search_persists_and_counts_usage(db_session, free_user):
    service = build_service(healthy_adapters())

    result = await service.search(db_session, free_user, SearchQuery(q="earbuds"))

    assert result["success"] is True
    assert result["cached"] is False
    assert db_session.scalar(select(func.count()).select_from(Product)) == 8
    assert get_usage_count(db_session, free_user.id, "search") == 1


@pytest.mark.asyncio
async def test_second_identical_search_is_served_from_cache(db_session, free_user):
    adapters = healthy_adapters()
    service = build_service(adapters)
    query = SearchQuery(q="Earbuds", source="amazon", min_price=10, max_price=50, limit=5)

    first = await service.search(db_session, free_user, query)
    second = await service.search(db_session, free_user, SearchQuery(q="earbuds ", source="amazon", min_price=10, max_price=50, limit=5))

    assert second["cached"] is True
    assert second["data"]["products"] == first["data"]["products"]
    assert len(adapters["amazon"].calls) == 1
    # cache hits do not consume quota
    assert get_usage_count(db_session, free_user.id, "search") == 1


@pytest.mark.asyncio
async def test_earbuds_scenario(db_session, pro_user):
    adapters = {"amazon": FakeAdapter("amazon", make_items("amazon", [9.99, 15.0, 22.0, 35.5, 48.0, 49.99, 51.0, 18.0]))}
    service = build_service(adapters)

    result = await service.search(
        db_session, pro_user, SearchQuery(q="wireless earbuds", source="amazon", min_price=10, max_price=50, limit=5)
    )

    products = result["data"]["products"]
    assert len(products) == 5
    assert all(10 <= p["price"] <= 50 for p in products)
    assert all(p["source"] == "amazon" for p in products)
    assert result["data"]["sources"] == [{"source": "amazon", "count": 5, "degraded": False, "reason": None}]


@pytest.mark.asyncio
async def test_quota_checked_before_adapters(db_session, free_user):
    adapters = healthy_adapters()
    service = build_service(adapters)
    for i in range(10):
        await service.search(db_session, free_user, SearchQuery(q=f"query {i}", source="ebay"))

    with pytest.raises(LimitReachedError):
        await service.search(db_session, free_user, SearchQuery(q="one more", source="ebay"))
    assert len(adapters["ebay"].calls) == 10


# ---------------------------------------------------------------------------
# Product cache upsert
# ---------------------------------------------------------------------------

@pytest.mark.integration
def test_upsert_refreshes_row_and_keeps_ai_fields(db_session):
    now = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
    assert upsert_products(db_session, [make_item("amazon", "B01", 20.0)], now=now) == 1

    product = db_session.scalars(select(Product)).one()
    product_id = product.id
    product.ai_score = 82
    product.ai_analysis = {"score": 82}
    product.is_winning = True
    db_session.flush()

    upsert_products(db_session, [make_item("amazon", "B01", 17.5, title="Renamed")], now=now)
    db_session.expire_all()

    rows = db_session.scalars(select(Product)).all()
    assert len(rows) == 1
    refreshed = rows[0]
    assert refreshed.id == product_id
    assert refreshed.price == 17.5
    assert refreshed.title == "Renamed"
    assert refreshed.ai_score == 82
    assert refreshed.is_winning is True


@pytest.mark.integration
def test_upsert_deduplicates_within_batch(db_session):
    items = [make_item("ebay", "E1", 10.0), make_item("ebay", "E1", 11.0), make_item("amazon", "E1", 12.0)]

    assert upsert_products(db_session, items) == 2
    prices = sorted(db_session.scalars(select(Product.price)).all())
    assert prices == [11.0, 12.0]
