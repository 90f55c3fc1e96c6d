from __future__ import annotations

import logging
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from app.exceptions import MarketplaceError

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, MarketplaceError) and exc.retryable


class MarketplaceApiClient:
    """
    JSON client for official marketplace APIs.

    429 and 5xx responses and transport errors are retried with exponential backoff;
    other 4xx responses fail immediately with MarketplaceError.
    """

    def __init__(
        self,
        source: str,
        timeout: float = 10.0,
        retry_count: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.source = source
        self.timeout = timeout
        self.retry_count = max(1, retry_count)
        self._transport = transport

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        data: dict[str, Any] | None = None,
        content: str | bytes | None = None,
        headers: dict[str, str] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> dict[str, Any]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_count),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
            before_sleep=lambda retry_state: logger.warning(
                f"{self.source} API retry ({retry_state.attempt_number}): {retry_state.outcome.exception()}"
            ),
        )
        async for attempt in retrying:
            with attempt:
                return await self._send(
                    method, url, params=params, json=json, data=data, content=content, headers=headers, auth=auth
                )
        raise MarketplaceError(f"{self.source} API call was not attempted", source=self.source, url=url)

    async def _send(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        timeout = httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0))
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            resp = await client.request(method, url, **{k: v for k, v in kwargs.items() if v is not None})

        if resp.status_code == 429 or resp.status_code >= 500:
            raise MarketplaceError(
                f"{self.source} API temporarily unavailable: HTTP {resp.status_code}",
                source=self.source,
                status_code=resp.status_code,
                url=url,
                retryable=True,
            )
        if resp.status_code >= 400:
            raise MarketplaceError(
                f"{self.source} API call failed: HTTP {resp.status_code} {resp.text[:200]}",
                source=self.source,
                status_code=resp.status_code,
                url=url,
            )

        if not resp.content:
            return {}
        try:
            payload = resp.json()
        except ValueError as e:
            raise MarketplaceError(f"{self.source} API returned non-JSON body", source=self.source, url=url) from e
        if isinstance(payload, dict):
            return payload
        return {"_raw": payload}
