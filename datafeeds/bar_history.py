"""
Bar-history REST client.

Wraps the upstream `GET ?symbol=&resolution=&from=&to=` endpoint. Every
failure (transport error, non-2xx, non-JSON or non-list body) is raised as
TransientFetchError so callers can treat it as "no data this symbol this
tick". Individual malformed rows are dropped, not fatal.
"""

from typing import List, Optional, Protocol

import httpx

from core.config import Settings, settings as default_settings
from core.errors import TransientFetchError
from core.helpers.rest_validation import validate_bars
from core.logging_utils import get_logger
from core.models import Bar
from core.resolution import Resolution

logger = get_logger(__name__)


class BarSource(Protocol):
    """Anything that can fetch bars for one symbol and window."""

    async def fetch_bars(
        self, symbol: str, resolution: Resolution, from_ts: int, to_ts: int
    ) -> List[Bar]:
        ...


class BarHistoryClient:
    """Async client for the bar-history endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = config or default_settings
        self.base_url = base_url or config.bar_history_url
        self.timeout = timeout if timeout is not None else config.http_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        # Stats
        self.requests = 0
        self.errors = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self):
        """Close the client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def fetch_bars(
        self, symbol: str, resolution: Resolution, from_ts: int, to_ts: int
    ) -> List[Bar]:
        """Fetch bars in [from_ts, to_ts], oldest first. Empty list when the range has none."""
        params = {
            "symbol": symbol,
            "resolution": str(resolution),
            "from": int(from_ts),
            "to": int(to_ts),
        }
        self.requests += 1
        try:
            client = await self._get_client()
            resp = await client.get(self.base_url, params=params)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as e:
            self.errors += 1
            raise TransientFetchError(symbol, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            self.errors += 1
            raise TransientFetchError(symbol, f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            self.errors += 1
            raise TransientFetchError(symbol, f"invalid JSON: {e}") from e

        if not isinstance(payload, list):
            self.errors += 1
            raise TransientFetchError(symbol, f"expected a list, got {type(payload).__name__}")

        bars = validate_bars(payload, symbol)
        logger.debug(
            "[HISTORY] %s %s [%s, %s] -> %d bars", symbol, resolution, from_ts, to_ts, len(bars)
        )
        return bars

    def get_stats(self) -> dict:
        return {"requests": self.requests, "errors": self.errors}
