from __future__ import annotations

import asyncio
import logging
import random
import re
from typing import Any, Iterable, Protocol

from bs4 import BeautifulSoup, Tag
from curl_cffi import CurlError
from curl_cffi.requests import AsyncSession

from app.exceptions import MarketplaceError

logger = logging.getLogger(__name__)

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:122.0) Gecko/20100101 Firefox/122.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2.1 Safari/605.1.15",
]

ACCEPT_LANGUAGES = [
    "en-US,en;q=0.9",
    "en-GB,en;q=0.9",
    "en;q=0.9",
]

_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")


def build_browser_headers(rng: random.Random | None = None) -> dict[str, str]:
    """Rotated header set for public search pages."""
    pick = (rng or random).choice
    return {
        "User-Agent": pick(USER_AGENTS),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": pick(ACCEPT_LANGUAGES),
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Cache-Control": "max-age=0",
    }


def parse_price(text: Any) -> float:
    """'$1,299.99' -> 1299.99. Returns 0.0 when no number is present."""
    if text is None:
        return 0.0
    if isinstance(text, (int, float)):
        return float(text)
    cleaned = str(text).replace(",", "")
    m = _NUMBER_RE.search(cleaned)
    if not m:
        return 0.0
    try:
        return float(m.group(1))
    except ValueError:
        return 0.0


def parse_count(text: Any) -> int:
    """'1,234 sold' -> 1234, '2.5K+' -> 2500."""
    if text is None:
        return 0
    if isinstance(text, (int, float)):
        return int(text)
    cleaned = str(text).replace(",", "").strip()
    m = re.search(r"(\d+(?:\.\d+)?)\s*([kKmM])?", cleaned)
    if not m:
        return 0
    value = float(m.group(1))
    suffix = (m.group(2) or "").lower()
    if suffix == "k":
        value *= 1_000
    elif suffix == "m":
        value *= 1_000_000
    return int(value)


def normalize_url(url: str | None, base: str) -> str:
    url = (url or "").strip()
    if not url:
        return ""
    if url.startswith("//"):
        return "https:" + url
    if url.startswith("/"):
        return base.rstrip("/") + url
    return url


def select_first_text(node: Tag | BeautifulSoup, selectors: Iterable[str]) -> str:
    """Tries each CSS selector in order; the first non-empty text wins."""
    for selector in selectors:
        found = node.select_one(selector)
        if found is None:
            continue
        text = found.get_text(" ", strip=True)
        if text:
            return text
    return ""


def select_first_attr(node: Tag | BeautifulSoup, selectors: Iterable[str], attrs: Iterable[str]) -> str:
    attrs = list(attrs)
    for selector in selectors:
        found = node.select_one(selector)
        if found is None:
            continue
        for attr in attrs:
            value = (found.get(attr) or "").strip()
            if value:
                return value
    return ""


def select_all_first(soup: BeautifulSoup, selectors: Iterable[str]) -> list[Tag]:
    """Result list of the first selector that matches anything."""
    for selector in selectors:
        found = soup.select(selector)
        if found:
            return found
    return []


class PageFetcher(Protocol):
    async def fetch(self, url: str, headers: dict[str, str], timeout: float) -> str:
        ...


class CurlPageFetcher:
    """Fetches public pages with a browser TLS fingerprint."""

    def __init__(self, source: str, impersonate: str = "chrome", jitter_seconds: float = 0.0) -> None:
        self.source = source
        self.impersonate = impersonate
        self.jitter_seconds = jitter_seconds

    async def fetch(self, url: str, headers: dict[str, str], timeout: float) -> str:
        if self.jitter_seconds > 0:
            await asyncio.sleep(random.uniform(0, self.jitter_seconds))

        try:
            async with AsyncSession(impersonate=self.impersonate, headers=headers) as client:
                resp = await client.get(url, allow_redirects=True, timeout=timeout)
        except CurlError as e:
            # timeouts, DNS and connection resets
            raise MarketplaceError(
                f"{self.source} page fetch failed: {e}", source=self.source, url=url, reason="network_error"
            ) from e

        if resp.status_code != 200:
            raise MarketplaceError(
                f"{self.source} page fetch failed: HTTP {resp.status_code}",
                source=self.source,
                status_code=resp.status_code,
                url=url,
            )
        return resp.text or ""
