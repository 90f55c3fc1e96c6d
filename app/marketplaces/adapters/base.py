from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from app.exceptions import MarketplaceError
from app.marketplaces.api_client import MarketplaceApiClient
from app.marketplaces.scraping import CurlPageFetcher, PageFetcher
from app.schemas.product import ProductItem
from app.services.rate_limiter import TokenBucket
from app.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchFilters:
    min_price: float | None = None
    max_price: float | None = None
    min_rating: float | None = None
    category: str | None = None
    limit: int = 20


@dataclass
class AdapterResult:
    """
    Outcome of one marketplace search.

    degraded: the answer is not the full, healthy upstream answer (fallback path, empty scrape, error)
    failed: the upstream call errored; counted by the circuit breaker
    """

    source: str
    products: list[ProductItem] = field(default_factory=list)
    degraded: bool = False
    reason: str | None = None
    failed: bool = False

    @classmethod
    def failure(cls, source: str, reason: str) -> "AdapterResult":
        return cls(source=source, products=[], degraded=True, reason=reason, failed=True)

    @classmethod
    def unavailable(cls, source: str, reason: str) -> "AdapterResult":
        return cls(source=source, products=[], degraded=True, reason=reason)


class MarketplaceAdapter(Protocol):
    source: str

    async def search(self, query: str, filters: SearchFilters) -> AdapterResult:
        ...


def apply_filters(items: list[ProductItem], filters: SearchFilters) -> list[ProductItem]:
    """Client-side price/rating filtering, de-duplication by external id and truncation."""
    has_price_bound = filters.min_price is not None or filters.max_price is not None
    out: list[ProductItem] = []
    seen: set[str] = set()

    for item in items:
        if not item.external_id or item.external_id in seen:
            continue
        if has_price_bound and item.price <= 0:
            continue
        if filters.min_price is not None and item.price < filters.min_price:
            continue
        if filters.max_price is not None and item.price > filters.max_price:
            continue
        # unrated listings cannot satisfy a rating floor
        if filters.min_rating is not None and (item.rating is None or item.rating < filters.min_rating):
            continue

        seen.add(item.external_id)
        out.append(item)
        if len(out) >= filters.limit:
            break

    return out


class BaseMarketplaceAdapter:
    """
    Official API first (when credentials are configured), HTML scraping second.
    Never fabricates products: an empty or failed lookup is reported as a degraded result.
    """

    source: str = ""
    base_url: str = ""
    supports_scraping: bool = True

    def __init__(
        self,
        fetcher: PageFetcher | None = None,
        api_client: MarketplaceApiClient | None = None,
        limiter: TokenBucket | None = None,
        timeout: float | None = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else settings.adapter_timeout_seconds
        self.fetcher = fetcher or CurlPageFetcher(self.source, jitter_seconds=settings.scrape_jitter_seconds)
        self.api_client = api_client or MarketplaceApiClient(
            self.source, timeout=self.timeout, retry_count=settings.adapter_retry_count
        )
        self.limiter = limiter or TokenBucket(settings.adapter_rate_per_second, settings.adapter_burst)

    def has_api_credentials(self) -> bool:
        return False

    async def search_api(self, query: str, filters: SearchFilters) -> list[ProductItem]:
        raise NotImplementedError

    async def scrape(self, query: str, filters: SearchFilters) -> list[ProductItem]:
        raise NotImplementedError

    async def search(self, query: str, filters: SearchFilters) -> AdapterResult:
        api_failed = False

        if self.has_api_credentials():
            await self.limiter.acquire()
            try:
                items = await self.search_api(query, filters)
            except Exception as e:
                api_failed = True
                logger.warning(f"{self.source} API failed, falling back to scraping: {e}")
            else:
                products = apply_filters(items, filters)
                logger.info(f"{self.source}: API returned {len(products)} products for '{query}'")
                if not products:
                    return AdapterResult.unavailable(self.source, "no_results")
                return AdapterResult(source=self.source, products=products)

        if not self.supports_scraping:
            if api_failed:
                return AdapterResult.failure(self.source, "api_failed")
            return AdapterResult.unavailable(self.source, "missing_credentials")

        await self.limiter.acquire()
        try:
            items = await self.scrape(query, filters)
        except MarketplaceError as e:
            logger.error(f"{self.source} scraping error: {e}")
            return AdapterResult.failure(self.source, e.reason)
        except Exception as e:
            logger.error(f"{self.source} scraping error: {e}")
            return AdapterResult.failure(self.source, "scrape_failed")

        if not items:
            logger.warning(f"{self.source}: no products extracted for '{query}'. Page structure may have changed.")
            return AdapterResult.unavailable(self.source, "no_results")

        products = apply_filters(items, filters)
        logger.info(f"{self.source}: scraped {len(products)} products for '{query}'")
        return AdapterResult(
            source=self.source,
            products=products,
            degraded=api_failed,
            reason="api_fallback" if api_failed else None,
        )
