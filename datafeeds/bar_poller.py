"""
Bar Polling Engine

Turns polled bar-history windows into a monotonically advancing bar series.
- One-shot history fetch that also seeds the live-price overlay
- Per-tick fetch of the last completed bucket window
- Replace/merge policy against the subscription's current bar
- Out-of-order results are dropped, never emitted
"""

import time
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from core.errors import TransientFetchError
from core.helpers.validation import positive_float
from core.logging_utils import get_logger
from core.models import Bar
from core.resolution import Resolution, align, seconds_for
from datafeeds.bar_history import BarSource
from datafeeds.subscription import Subscription

logger = get_logger(__name__)


def aggregate_window(rows: Sequence[Bar]) -> Bar:
    """Collapse one window's rows into a single bar anchored at the earliest row."""
    if not rows:
        raise ValueError("aggregate_window needs at least one row")
    ordered = sorted(rows, key=lambda b: b.time)
    first, last = ordered[0], ordered[-1]
    return Bar(
        time=first.time,
        open=first.open,
        high=max(b.high for b in ordered),
        low=min(b.low for b in ordered),
        close=last.close,
        volume=sum(b.volume for b in ordered),
    )


def merge_bars(existing: Bar, polled: Bar) -> Bar:
    """
    Merge a re-polled bar into the bar already shown for the same bucket.

    Volume is taken from the poll, not summed.
    """
    return replace(
        existing,
        high=max(existing.high, polled.high),
        low=min(existing.low, polled.low),
        close=polled.close,
        volume=polled.volume,
    )


class BarPollingEngine:
    """Fetches and merges bars for single-symbol subscriptions."""

    def __init__(self, source: BarSource):
        self.source = source

        # Stats
        self.ticks = 0
        self.emitted = 0
        self.stale_skipped = 0
        self.errors = 0

    async def fetch_history(
        self,
        symbol: str,
        resolution: Resolution,
        from_ts: int,
        to_ts: int,
        live_price=None,
        now: Optional[float] = None,
    ) -> Tuple[List[Bar], Optional[Bar]]:
        """
        Fetch the initial chart fill.

        Returns (bars, seed) where seed is the bar the overlay should continue
        from. When the history stops before the current bucket and a live
        price is known, a flat bar for the current bucket is appended.
        """
        try:
            bars = list(await self.source.fetch_bars(symbol, resolution, from_ts, to_ts))
        except TransientFetchError as e:
            self.errors += 1
            logger.warning("[HISTORY] %s %s fetch failed: %s", symbol, resolution, e)
            return [], None

        if not bars:
            return [], None

        current_bucket = align(time.time() if now is None else now, resolution)
        price = positive_float(live_price)
        last = bars[-1]

        if last.time < current_bucket and price is not None:
            seed = Bar.flat(current_bucket, price)
            bars.append(seed)
        elif last.time == current_bucket and price is not None:
            seed = last.with_price(price)
        else:
            seed = last
        return bars, seed

    async def poll_tick(
        self,
        symbol: str,
        resolution: Resolution,
        subscription: Subscription,
        now: Optional[float] = None,
    ) -> Optional[Bar]:
        """
        Run one polling cycle; return the bar to emit or None.

        The window is the last completed bucket, clipped so it never reaches
        back before the end of the loaded history. An empty window creates no
        bar: between polls only the live price moves the current bar.
        """
        self.ticks += 1
        size = seconds_for(resolution)
        aligned_now = align(time.time() if now is None else now, resolution)
        from_ts = max(subscription.history_end, aligned_now - size)
        to_ts = aligned_now
        if from_ts >= to_ts:
            return None

        try:
            rows = await self.source.fetch_bars(symbol, resolution, from_ts, to_ts)
        except TransientFetchError as e:
            self.errors += 1
            logger.warning("[POLL] %s tick failed: %s", symbol, e)
            return None

        if not subscription.active:
            logger.debug("[POLL] %s result dropped, %s unsubscribed", symbol, subscription.uid)
            return None
        if not rows:
            return None

        return self.apply_polled_bar(subscription, aggregate_window(rows))

    def apply_polled_bar(self, subscription: Subscription, polled: Bar) -> Optional[Bar]:
        """Replace or merge `polled` into the subscription's current bar."""
        last = subscription.last_emitted_bar
        if last is not None and polled.time < last.time:
            self.stale_skipped += 1
            logger.warning(
                "[POLL] %s skipping bar with time violation: new=%s current=%s",
                subscription.symbol, polled.time, last.time,
            )
            return None

        if last is None or last.time != polled.time:
            bar = polled
        else:
            bar = merge_bars(last, polled)

        subscription.last_emitted_bar = bar
        self.emitted += 1
        return bar

    def get_stats(self) -> dict:
        return {
            "ticks": self.ticks,
            "emitted": self.emitted,
            "stale_skipped": self.stale_skipped,
            "errors": self.errors,
        }
