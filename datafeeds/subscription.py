"""Per-subscription state owned by a feed."""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Optional

from core.models import Bar
from core.resolution import Resolution
from datafeeds.live_price import LivePriceOverlay


@dataclass
class Subscription:
    """
    One chart subscription: its timer task and its current-bar slot.

    The slot lives in the overlay so that live prices and polled bars update
    the same bar. Nothing here is shared between subscriptions.
    """
    uid: str
    symbol: str
    resolution: Resolution
    on_realtime: Callable[[Bar], None]
    on_reset_cache: Optional[Callable[[], None]] = None
    history_end: int = 0
    overlay: LivePriceOverlay = field(default_factory=LivePriceOverlay)
    fingerprint: Optional[str] = None  # basket composition at the last refresh
    task: Optional[asyncio.Task] = field(default=None, repr=False)
    active: bool = True
    emitted: int = 0

    def __post_init__(self):
        self.overlay.on_bar = self.emit

    @property
    def last_emitted_bar(self) -> Optional[Bar]:
        return self.overlay.current_bar

    @last_emitted_bar.setter
    def last_emitted_bar(self, bar: Optional[Bar]):
        self.overlay.current_bar = bar

    def emit(self, bar: Bar):
        """Push a bar to the chart unless the subscription has ended."""
        if not self.active:
            return
        self.emitted += 1
        self.on_realtime(bar)

    def cancel(self):
        """Stop the timer and release bar state. Safe to call twice."""
        self.active = False
        if self.task is not None and not self.task.done():
            self.task.cancel()
        self.task = None
        self.overlay.reset()
        self.fingerprint = None
