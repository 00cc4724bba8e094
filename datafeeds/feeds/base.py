"""Shared plumbing for chart datafeeds: widget handshake, timers, subscriptions."""

import asyncio
from typing import Any, Callable, Dict, Mapping, Optional, Set

from core.config import Settings, settings as default_settings
from core.logging_utils import get_logger
from core.models import Bar
from core.resolution import SUPPORTED_RESOLUTIONS, Resolution
from datafeeds.bar_history import BarHistoryClient, BarSource
from datafeeds.subscription import Subscription

logger = get_logger(__name__)

SYMBOL_MISSING_ERROR = "Error: Symbol name is missing."


def symbol_name(symbol_info: Any) -> str:
    """Read the name from a widget symbol-info dict (or object)."""
    if symbol_info is None:
        return ""
    if isinstance(symbol_info, Mapping):
        return str(symbol_info.get("name") or "")
    return str(getattr(symbol_info, "name", "") or "")


def range_field(range_info: Any, *keys: str, default=None):
    """Read a range-info value under either its snake_case or widget camelCase key."""
    for key in keys:
        if isinstance(range_info, Mapping):
            if key in range_info and range_info[key] is not None:
                return range_info[key]
        elif getattr(range_info, key, None) is not None:
            return getattr(range_info, key)
    return default


class SubscriptionHandle:
    """Caller-side handle for one subscription; `cancel()` is unsubscribe."""

    def __init__(self, feed: "BaseDataFeed", subscription: Subscription):
        self._feed = feed
        self._subscription = subscription

    @property
    def uid(self) -> str:
        return self._subscription.uid

    @property
    def active(self) -> bool:
        return (
            self._subscription.active
            and self._feed.subscribers.get(self.uid) is self._subscription
        )

    def cancel(self):
        if self.active:
            self._feed.unsubscribe_bars(self.uid)


class BaseDataFeed:
    """
    Chart widget datafeed contract.

    Each subscription id owns one timer task; subscribing an id that is
    already active is a no-op and unsubscribing stops its timer at once.
    """

    def __init__(self, source: Optional[BarSource] = None, config: Optional[Settings] = None):
        self.config = config or default_settings
        self._owns_source = source is None
        self.source: BarSource = source or BarHistoryClient(config=self.config)
        self.subscribers: Dict[str, Subscription] = {}
        self._background: Set[asyncio.Task] = set()

    @property
    def poll_interval(self) -> float:
        raise NotImplementedError

    def ready_config(self) -> dict:
        return {
            "supports_search": True,
            "supports_group_request": False,
            "supported_resolutions": list(SUPPORTED_RESOLUTIONS),
            "supports_marks": False,
            "supports_timescale_marks": False,
            "supports_time": True,
        }

    def symbol_info(self, name: str) -> dict:
        raise NotImplementedError

    @staticmethod
    def base_symbol_info(name: str, description: str, pricescale: int) -> dict:
        return {
            "name": name,
            "ticker": name,
            "description": description,
            "type": "crypto",
            "session": "24x7",
            "exchange": "Custom",
            "minmov": 1,
            "timezone": "Etc/UTC",
            "pricescale": pricescale,
            "has_intraday": True,
            "supported_resolutions": list(SUPPORTED_RESOLUTIONS),
            "volume_precision": 2,
            "data_status": "streaming",
        }

    async def on_ready(self, callback: Callable[[dict], None]):
        await asyncio.sleep(self.config.on_ready_delay)
        callback(self.ready_config())

    async def resolve_symbol(
        self,
        name: str,
        on_resolved: Callable[[dict], None],
        on_error: Callable[[str], None],
    ):
        if not name:
            on_error(SYMBOL_MISSING_ERROR)
            return
        info = self.symbol_info(name)
        # The widget expects the resolution callback on a later loop turn
        await asyncio.sleep(0)
        on_resolved(info)

    def subscribe_bars(
        self,
        symbol_info: Any,
        resolution: Resolution,
        on_realtime: Callable[[Bar], None],
        uid: str,
        on_reset_cache: Optional[Callable[[], None]] = None,
    ) -> SubscriptionHandle:
        """Start the timer for `uid`. Must be called from a running event loop."""
        existing = self.subscribers.get(uid)
        if existing is not None:
            logger.debug("[FEED] %s already subscribed", uid)
            return SubscriptionHandle(self, existing)

        sub = Subscription(
            uid=uid,
            symbol=symbol_name(symbol_info),
            resolution=resolution,
            on_realtime=on_realtime,
            on_reset_cache=on_reset_cache,
        )
        self._prepare_subscription(sub)
        sub.task = asyncio.get_running_loop().create_task(self._timer_loop(sub))
        self.subscribers[uid] = sub
        logger.info(
            "[FEED] Subscribed %s (%s, %s) every %ss",
            uid, sub.symbol, resolution, self.poll_interval,
        )
        return SubscriptionHandle(self, sub)

    def unsubscribe_bars(self, uid: str):
        sub = self.subscribers.pop(uid, None)
        if sub is None:
            return
        sub.cancel()
        logger.info("[FEED] Unsubscribed %s", uid)

    def is_subscribed(self, uid: str) -> bool:
        return uid in self.subscribers

    def get_stats(self) -> dict:
        stats = {
            "subscriptions": len(self.subscribers),
            "emitted": sum(sub.emitted for sub in self.subscribers.values()),
        }
        if hasattr(self.source, "get_stats"):
            stats.update(self.source.get_stats())
        return stats

    def _prepare_subscription(self, sub: Subscription):
        """Hook to seed a new subscription before its timer starts."""

    async def _tick(self, sub: Subscription):
        raise NotImplementedError

    async def _timer_loop(self, sub: Subscription):
        while sub.active:
            try:
                await asyncio.sleep(self.poll_interval)
                if not sub.active:
                    break
                await self._tick(sub)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning("[FEED] %s tick error: %s", sub.uid, e, exc_info=True)

    def _spawn(self, coro) -> Optional[asyncio.Task]:
        """Run `coro` in the background if a loop is running; keep a ref until done."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            return None
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def close(self):
        """Stop every subscription and release the HTTP client if we made it."""
        for uid in list(self.subscribers):
            self.unsubscribe_bars(uid)
        for task in list(self._background):
            task.cancel()
        if self._owns_source and hasattr(self.source, "close"):
            await self.source.close()
