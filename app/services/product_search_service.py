from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.exceptions import ValidationFailedError
from app.marketplaces.adapter_factory import get_adapter, get_supported_sources
from app.marketplaces.adapters.base import AdapterResult, MarketplaceAdapter, SearchFilters
from app.models import Product, User
from app.schemas.product import Pagination, ProductItem, SearchData, SourceStatus
from app.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from app.services.search_cache import SearchCache, make_search_key, search_cache
from app.services.usage_service import enforce_usage_limit, track_usage
from app.settings import settings

logger = logging.getLogger(__name__)

# columns refreshed on every search hit; AI fields are left alone
REFRESHED_COLUMNS = (
    "title",
    "description",
    "price",
    "original_price",
    "currency",
    "images",
    "main_image",
    "rating",
    "reviews_count",
    "sales_count",
    "category",
    "supplier_url",
    "cached_at",
    "expires_at",
)


@dataclass(frozen=True)
class SearchQuery:
    q: str
    source: str = "all"
    min_price: float | None = None
    max_price: float | None = None
    min_rating: float | None = None
    category: str | None = None
    page: int = 1
    limit: int = 20

    def validate(self) -> "SearchQuery":
        if not self.q or not self.q.strip():
            raise ValidationFailedError("Search query is required", field="q")
        if self.source != "all" and self.source not in get_supported_sources():
            raise ValidationFailedError(f"Unsupported source: {self.source}", field="source")
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValidationFailedError("minPrice must not be greater than maxPrice", field="minPrice")
        if self.page * self.limit > settings.adapter_max_results:
            # adapters are never asked for more than adapter_max_results items
            raise ValidationFailedError(
                f"page * limit must not exceed {settings.adapter_max_results}",
                field="page",
            )
        return self

    @property
    def sources(self) -> list[str]:
        if self.source == "all":
            return get_supported_sources()
        return [self.source]

    @property
    def cache_key(self) -> str:
        return make_search_key(
            self.q,
            self.source,
            self.min_price,
            self.max_price,
            self.min_rating,
            self.category,
            self.page,
            self.limit,
        )

    def adapter_filters(self) -> SearchFilters:
        # enough results to cut the requested page from; validate() bounds it
        fetch_limit = min(self.page * self.limit, settings.adapter_max_results)
        return SearchFilters(
            min_price=self.min_price,
            max_price=self.max_price,
            min_rating=self.min_rating,
            category=self.category,
            limit=max(1, fetch_limit),
        )


def _insert_for(session: Session):
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


def upsert_products(
    session: Session,
    items: Iterable[ProductItem],
    ttl_hours: int | None = None,
    now: datetime | None = None,
) -> int:
    """
    Write search hits into the products cache with one INSERT .. ON CONFLICT statement.
    Returns the number of distinct rows written.
    """
    now = now or datetime.now(timezone.utc)
    expires_at = now + timedelta(hours=ttl_hours if ttl_hours is not None else settings.product_cache_ttl_hours)

    rows: dict[tuple[str, str], dict[str, Any]] = {}
    for item in items:
        # a statement may not touch the same conflict target twice; last hit wins
        rows[(item.source, item.external_id)] = {
            "id": uuid.uuid4(),
            "source": item.source,
            "external_id": item.external_id,
            "title": item.title,
            "description": item.description,
            "price": item.price,
            "original_price": item.original_price,
            "currency": item.currency,
            "images": list(item.images),
            "main_image": item.main_image,
            "rating": item.rating,
            "reviews_count": item.reviews_count,
            "sales_count": item.sales_count,
            "category": item.category,
            "supplier_url": item.supplier_url,
            "is_winning": False,
            "cached_at": now,
            "expires_at": expires_at,
        }
    if not rows:
        return 0

    insert = _insert_for(session)
    stmt = insert(Product.__table__).values(list(rows.values()))
    stmt = stmt.on_conflict_do_update(
        index_elements=["source", "external_id"],
        set_={column: stmt.excluded[column] for column in REFRESHED_COLUMNS},
    )
    session.execute(stmt)
    session.flush()
    return len(rows)


def build_search_data(query: SearchQuery, results: list[AdapterResult]) -> dict[str, Any]:
    merged: list[ProductItem] = []
    sources: list[SourceStatus] = []
    for result in results:
        merged.extend(result.products)
        sources.append(
            SourceStatus(
                source=result.source,
                count=len(result.products),
                degraded=result.degraded,
                reason=result.reason,
            )
        )

    start = (query.page - 1) * query.limit
    page_items = merged[start : start + query.limit]
    data = SearchData(
        products=page_items,
        pagination=Pagination(
            page=query.page,
            limit=query.limit,
            total=len(merged),
            has_more=start + query.limit < len(merged),
        ),
        sources=sources,
    )
    return data.model_dump(by_alias=True, mode="json")


class ProductSearchService:
    """
    Fans a search out to the marketplace adapters.

    At most `max_concurrency` adapters run at once and all of them share one time
    budget. A source that fails, times out or has an open circuit is reported as
    degraded and the others still answer.
    """

    def __init__(
        self,
        adapter_getter: Callable[[str], MarketplaceAdapter] = get_adapter,
        breaker: CircuitBreaker | None = None,
        cache: SearchCache | None = None,
        max_concurrency: int | None = None,
        budget_seconds: float | None = None,
    ) -> None:
        self.adapter_getter = adapter_getter
        self.breaker = breaker or CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=settings.circuit_failure_threshold,
                recovery_seconds=settings.circuit_recovery_seconds,
            )
        )
        self.cache = cache if cache is not None else search_cache
        self.max_concurrency = max_concurrency or settings.search_max_concurrency
        self.budget_seconds = budget_seconds if budget_seconds is not None else settings.search_timeout_budget_seconds

    async def _run_one(
        self,
        source: str,
        query: str,
        filters: SearchFilters,
        semaphore: asyncio.Semaphore,
        deadline: float,
    ) -> AdapterResult:
        loop = asyncio.get_running_loop()
        async with semaphore:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(f"{source}: request budget exhausted before start")
                return AdapterResult.unavailable(source, "timeout")

            # claims the single half-open trial; every path below records an outcome
            if not self.breaker.allow(source):
                logger.warning(f"{source}: circuit open, skipped")
                return AdapterResult.unavailable(source, "circuit_open")

            try:
                adapter = self.adapter_getter(source)
                result = await asyncio.wait_for(adapter.search(query, filters), timeout=remaining)
            except asyncio.TimeoutError:
                logger.error(f"{source}: search timed out after {remaining:.1f}s")
                self.breaker.record_failure(source, "timeout")
                return AdapterResult.failure(source, "timeout")
            except Exception as e:
                logger.exception(f"{source}: adapter raised {e.__class__.__name__}: {e}")
                self.breaker.record_failure(source, str(e) or e.__class__.__name__)
                return AdapterResult.failure(source, "adapter_error")

        if result.failed:
            self.breaker.record_failure(source, result.reason or "failed")
        else:
            self.breaker.record_success(source)
        return result

    async def run_adapters(self, query: str, sources: list[str], filters: SearchFilters) -> list[AdapterResult]:
        semaphore = asyncio.Semaphore(self.max_concurrency)
        deadline = asyncio.get_running_loop().time() + self.budget_seconds
        tasks = [self._run_one(source, query, filters, semaphore, deadline) for source in sources]
        return list(await asyncio.gather(*tasks))

    async def search_marketplaces(self, query: SearchQuery) -> dict[str, Any]:
        """Adapters only: no quota, persistence or caching."""
        query.validate()
        results = await self.run_adapters(query.q.strip(), query.sources, query.adapter_filters())
        return build_search_data(query, results)

    async def search(self, session: Session, user: User, query: SearchQuery) -> dict[str, Any]:
        query.validate()
        enforce_usage_limit(session, user.id, "search", user.subscription_tier)

        key = query.cache_key
        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"Search cache hit: {key}")
            return {"success": True, "data": cached, "cached": True}

        results = await self.run_adapters(query.q.strip(), query.sources, query.adapter_filters())
        all_products = [item for result in results for item in result.products]
        written = upsert_products(session, all_products)
        logger.info(f"Search '{query.q}' ({query.source}): {len(all_products)} products, {written} cached rows")

        track_usage(session, user.id, "search")

        data = build_search_data(query, results)
        self.cache.set(key, data)
        return {"success": True, "data": data, "cached": False}

    async def get_ebay_item(self, session: Session, item_id: str) -> Product | None:
        """eBay listing detail, written through to the products cache so it can be imported or analyzed."""
        item = await self.adapter_getter("ebay").get_item(item_id)
        if item is None:
            return None
        upsert_products(session, [item])
        return session.scalars(
            select(Product).where(Product.source == item.source, Product.external_id == item.external_id)
            .execution_options(populate_existing=True)
        ).first()


product_search_service = ProductSearchService()
