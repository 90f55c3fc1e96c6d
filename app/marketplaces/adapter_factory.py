from __future__ import annotations

from app.marketplaces.adapters.aliexpress import AliExpressAdapter
from app.marketplaces.adapters.amazon import AmazonAdapter
from app.marketplaces.adapters.base import BaseMarketplaceAdapter
from app.marketplaces.adapters.ebay import EbayAdapter
from app.marketplaces.adapters.temu import TemuAdapter

_ALIASES = {
    "AMAZON": "amazon",
    "AMZN": "amazon",
    "ALIEXPRESS": "aliexpress",
    "ALI": "aliexpress",
    "ALI_EXPRESS": "aliexpress",
    "TEMU": "temu",
    "EBAY": "ebay",
}

_ADAPTER_CLASSES: dict[str, type[BaseMarketplaceAdapter]] = {
    "amazon": AmazonAdapter,
    "aliexpress": AliExpressAdapter,
    "temu": TemuAdapter,
    "ebay": EbayAdapter,
}

# adapters hold their token bucket and eBay token; one instance per source per process
_instances: dict[str, BaseMarketplaceAdapter] = {}


def get_supported_sources() -> list[str]:
    return ["amazon", "aliexpress", "temu", "ebay"]


def normalize_source(source: str) -> str:
    code = str(source or "").strip().upper().replace("-", "_")
    normalized = _ALIASES.get(code)
    if normalized is None:
        raise ValueError(f"Unsupported marketplace source: {source}")
    return normalized


def get_adapter(source: str) -> BaseMarketplaceAdapter:
    key = normalize_source(source)
    adapter = _instances.get(key)
    if adapter is None:
        adapter = _ADAPTER_CLASSES[key]()
        _instances[key] = adapter
    return adapter


def reset_adapters() -> None:
    _instances.clear()
