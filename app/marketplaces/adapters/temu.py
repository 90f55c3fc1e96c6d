from __future__ import annotations

import logging

from app.marketplaces.adapters.base import AdapterResult, BaseMarketplaceAdapter, SearchFilters

logger = logging.getLogger(__name__)


class TemuAdapter(BaseMarketplaceAdapter):
    """
    Temu has no public product API and its terms forbid scraping.
    Searches always come back empty and flagged so the client can tell the source is off.
    """

    source = "temu"
    base_url = "https://www.temu.com"
    supports_scraping = False

    async def search(self, query: str, filters: SearchFilters) -> AdapterResult:
        logger.warning("Temu: source disabled - no public API available")
        return AdapterResult.unavailable(self.source, "unsupported")
