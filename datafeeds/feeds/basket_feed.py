"""Basket chart datafeed: one synthetic series from N polled legs."""

import asyncio
import time
from typing import Any, Callable, Iterable, List, Optional

from core.config import Settings
from core.errors import TransientFetchError
from core.logging_utils import get_logger
from core.models import Bar, BasketItem, BasketLeg, HistoryMeta, Side
from core.resolution import Resolution, align
from datafeeds.bar_history import BarSource
from datafeeds.basket import complete_items, fingerprint, has_changed, synthesize
from datafeeds.feeds.base import BaseDataFeed, range_field
from datafeeds.subscription import Subscription

logger = get_logger(__name__)


class BasketDataFeed(BaseDataFeed):
    """
    Charts a long or short basket of legs.

    Each refresh fetches every complete leg concurrently, drops legs that
    failed or came back empty, and synthesizes the survivors. A subscription
    only re-fetches when the basket changed since its last refresh, unless
    `basket_refresh_every_tick` is set.
    """

    def __init__(
        self,
        basket_items: Optional[Iterable[Any]] = None,
        side: Any = Side.BUY,
        source: Optional[BarSource] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(source=source, config=config)
        self.basket_items: List[Any] = list(basket_items or [])
        self.side = Side.parse(side)
        self.last_basket_items_hash = fingerprint(self.basket_items)

    @property
    def poll_interval(self) -> float:
        return self.config.basket_poll_interval

    @property
    def basket_name(self) -> str:
        return f"BASKET_{self.side.value.upper()}"

    def symbol_info(self, name: str) -> dict:
        return self.base_symbol_info(
            self.basket_name,
            f"{self.side.value.capitalize()} Basket Performance",
            self.config.basket_price_scale,
        )

    def update_basket_items(self, new_items: Optional[Iterable[Any]]) -> bool:
        """
        Replace the basket if it materially changed and refresh every subscriber now.

        Returns True when the basket was replaced.
        """
        if new_items is None:
            return False
        new_items = list(new_items)
        if not has_changed(self.basket_items, new_items):
            return False

        self.basket_items = new_items
        self.last_basket_items_hash = fingerprint(new_items)
        logger.info("[BASKET] Basket changed: %s", self.last_basket_items_hash or "<empty>")

        for sub in list(self.subscribers.values()):
            if sub.on_reset_cache is not None:
                sub.on_reset_cache()
            self._spawn(self.refresh(sub))
        return True

    async def fetch_legs(self, resolution: Resolution, from_ts: int, to_ts: int) -> List[BasketLeg]:
        """Fetch every complete leg concurrently; failed or empty legs are left out."""
        items = complete_items(self.basket_items)
        if not items:
            return []

        results = await asyncio.gather(
            *(self._fetch_leg(item, resolution, from_ts, to_ts) for item in items),
            return_exceptions=True,
        )

        legs = []
        for item, result in zip(items, results):
            if isinstance(result, BaseException):
                logger.warning("[BASKET] Error fetching %s: %s", item.symbol, result)
            elif result is not None:
                legs.append(result)
        return legs

    async def _fetch_leg(
        self, item: BasketItem, resolution: Resolution, from_ts: int, to_ts: int
    ) -> Optional[BasketLeg]:
        try:
            bars = await self.source.fetch_bars(item.symbol, resolution, from_ts, to_ts)
        except TransientFetchError as e:
            logger.warning("[BASKET] Failed to fetch %s: %s", item.symbol, e.reason)
            return None
        if not bars:
            logger.info("[BASKET] No data received for %s", item.symbol)
            return None
        return BasketLeg(symbol=item.symbol, notional=item.notional_value, bars=list(bars))

    async def get_bars(
        self,
        symbol_info: Any,
        resolution: Resolution,
        range_info: Any,
        on_history: Callable[[List[Bar], HistoryMeta], None],
        on_error: Callable[[str], None],
        now: Optional[float] = None,
    ):
        current = int(time.time() if now is None else now)
        to_ts = min(current, int(range_field(range_info, "to", "to_ts", default=current)))
        from_ts = int(range_field(range_info, "from", "from_ts", default=0))

        try:
            legs = await self.fetch_legs(resolution, from_ts, to_ts)
            if not legs:
                logger.warning("[BASKET] No valid data received for any basket items")
                on_history([], HistoryMeta(no_data=True))
                return

            bars = synthesize(legs, self.side)
        except Exception as e:
            logger.error("[BASKET] getBars failed: %s", e, exc_info=True)
            on_error("Error loading basket data")
            return

        if not bars:
            on_history([], HistoryMeta(no_data=True))
            return
        on_history(bars, HistoryMeta(no_data=False))

    async def _tick(self, sub: Subscription):
        current = fingerprint(self.basket_items)
        if not self.config.basket_refresh_every_tick and sub.fingerprint == current:
            return
        await self.refresh(sub)

    async def refresh(self, sub: Subscription, now: Optional[float] = None) -> Optional[Bar]:
        """Fetch the current bucket for every leg and emit the latest basket bar."""
        basket_hash = fingerprint(self.basket_items)
        current = int(time.time() if now is None else now)
        bucket = align(current, sub.resolution)

        legs = await self.fetch_legs(sub.resolution, bucket, current)
        if not sub.active:
            return None
        if not legs:
            logger.warning("[BASKET] No valid data received for any basket items")
            return None

        bars = synthesize(legs, self.side)
        if not bars:
            return None

        latest = bars[-1]
        if not latest.is_finite:
            logger.error("[BASKET] Invalid latest bar data: %s", latest)
            return None

        last = sub.last_emitted_bar
        if last is not None and latest.time < last.time:
            logger.warning(
                "[BASKET] Skipping bar with time violation: new=%s current=%s",
                latest.time, last.time,
            )
            return None

        sub.last_emitted_bar = latest
        sub.fingerprint = basket_hash
        sub.emit(latest)
        return latest
