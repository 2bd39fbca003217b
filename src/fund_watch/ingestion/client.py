"""Rate-limited async HTTP client for fund pages."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from aiolimiter import AsyncLimiter

from fund_watch.core.config import FetchConfig
from fund_watch.core.exceptions import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageResponse:
    """Status and body of a fetched page."""

    status_code: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class PageClient:
    """Fetches fund pages over HTTP.

    One attempt per call: a failed fetch is reported to the caller, and the
    next scheduled poll cycle is the retry. Requests are paced by a token
    bucket so a cycle never bursts against the fund site.

    Use via `async with PageClient(...) as client:`.
    """

    def __init__(
        self,
        config: FetchConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._limiter = AsyncLimiter(max_rate=config.rate_limit, time_period=1.0)
        self._client = httpx.AsyncClient(
            headers={"User-Agent": config.user_agent},
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> PageClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client. Called automatically by __aexit__."""
        await self._client.aclose()

    async def fetch(self, url: str) -> PageResponse:
        """GET a page and return its status and body, whatever the status.

        Raises:
            TransportError: If no response was received at all.
        """
        try:
            await self._limiter.acquire()
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise TransportError(
                f"Request to {url} failed: {e}",
                context={"url": url, "error": str(e)},
            ) from e
        return PageResponse(status_code=response.status_code, text=response.text)

    async def fetch_text(self, url: str) -> str:
        """GET a page and return its body.

        Raises:
            TransportError: Network error or non-2xx status.
        """
        page = await self.fetch(url)
        if not page.ok:
            raise TransportError(
                f"HTTP {page.status_code} from {url}",
                context={"url": url, "status_code": page.status_code},
            )
        logger.debug("Fetched %s (%d chars)", url, len(page.text))
        return page.text
