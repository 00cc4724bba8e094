"""Single-symbol chart datafeed with a live-price overlay."""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.config import Settings
from core.logging_utils import get_logger
from core.models import Bar, HistoryMeta
from core.price_scale import price_scale
from core.resolution import Resolution, align
from datafeeds.bar_history import BarSource
from datafeeds.bar_poller import BarPollingEngine
from datafeeds.feeds.base import BaseDataFeed, range_field, symbol_name
from datafeeds.subscription import Subscription

logger = get_logger(__name__)


class CustomDataFeed(BaseDataFeed):
    """
    Polls one symbol every few seconds and overlays pushed last-trade prices.

    The live price is pushed in by the caller (`update_live_price`) and is
    applied to the current bar immediately, without waiting for a poll.
    """

    def __init__(
        self,
        live_price: Any = None,
        source: Optional[BarSource] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(source=source, config=config)
        self.live_price = live_price
        self.engine = BarPollingEngine(self.source)
        self._seed_bars: Dict[Tuple[str, str], Optional[Bar]] = {}
        self._history_end: Dict[Tuple[str, str], int] = {}

    @property
    def poll_interval(self) -> float:
        return self.config.single_poll_interval

    def symbol_info(self, name: str) -> dict:
        return self.base_symbol_info(name, f"{name} Price", price_scale(self.live_price))

    async def get_bars(
        self,
        symbol_info: Any,
        resolution: Resolution,
        range_info: Any,
        on_history: Callable[[List[Bar], HistoryMeta], None],
        on_error: Callable[[str], None],
        now: Optional[float] = None,
    ):
        name = symbol_name(symbol_info)
        if not name:
            on_error("Invalid symbol data")
            return

        current = time.time() if now is None else now
        aligned = align(current, resolution)
        first = bool(range_field(range_info, "first_data_request", "firstDataRequest", default=True))
        from_ts = int(range_field(range_info, "from", "from_ts", default=0))
        to_ts = aligned
        if not first:
            to_ts = min(int(range_field(range_info, "to", "to_ts", default=aligned)), aligned)

        try:
            bars, seed = await self.engine.fetch_history(
                name,
                resolution,
                from_ts,
                to_ts,
                live_price=self.live_price if first else None,
                now=current,
            )
        except Exception as e:
            logger.error("[HISTORY] %s getBars failed: %s", name, e, exc_info=True)
            on_error("Error loading data")
            return

        if not bars:
            on_history([], HistoryMeta(no_data=True))
            return

        if first:
            key = (name, str(resolution))
            self._seed_bars[key] = seed
            self._history_end[key] = int(current)
            for sub in self._subscriptions_for(key):
                self._prepare_subscription(sub)

        on_history(bars, HistoryMeta(no_data=False))

    def _subscriptions_for(self, key: Tuple[str, str]) -> List[Subscription]:
        return [
            sub for sub in self.subscribers.values()
            if (sub.symbol, str(sub.resolution)) == key
        ]

    def _prepare_subscription(self, sub: Subscription):
        key = (sub.symbol, str(sub.resolution))
        sub.history_end = self._history_end.get(key, 0)
        sub.overlay.seed(self._seed_bars.get(key))

    def unsubscribe_bars(self, uid: str):
        sub = self.subscribers.get(uid)
        super().unsubscribe_bars(uid)
        if sub is None:
            return
        key = (sub.symbol, str(sub.resolution))
        if not self._subscriptions_for(key):
            # next subscriber for this key waits for a fresh first getBars
            self._seed_bars.pop(key, None)
            self._history_end.pop(key, None)

    async def _tick(self, sub: Subscription):
        bar = await self.engine.poll_tick(sub.symbol, sub.resolution, sub)
        if bar is not None:
            sub.emit(bar)

    def get_stats(self) -> dict:
        stats = super().get_stats()
        stats.update({f"poll_{k}": v for k, v in self.engine.get_stats().items()})
        return stats

    def update_live_price(self, price: Any):
        """Store the latest pushed price and fold it into every active subscription's bar."""
        self.live_price = price
        for sub in list(self.subscribers.values()):
            bar = sub.overlay.apply_live_price(price)
            if bar is not None:
                self._schedule_echoes(sub, bar)

    def _schedule_echoes(self, sub: Subscription, bar: Bar):
        # The chart sometimes skips redrawing an updated last bar; resend it unchanged
        delays = self.config.echo_delays
        if not delays:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        for delay in delays:
            loop.call_later(delay, self._echo, sub, bar)

    @staticmethod
    def _echo(sub: Subscription, bar: Bar):
        if sub.active and sub.last_emitted_bar == bar:
            sub.emit(bar)
