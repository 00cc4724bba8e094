"""Live last-trade overlay for the in-progress bar."""

from typing import Any, Callable, Optional

from core.helpers.validation import positive_float
from core.models import Bar


class LivePriceOverlay:
    """
    Holds the current bar of one subscription and folds streamed prices into it.

    Only the current bar is ever touched; bars already handed to the chart are
    immutable. The polling engine reads and replaces the same slot, so the
    overlay and the poller always agree on what "current" means.
    """

    def __init__(self, on_bar: Optional[Callable[[Bar], None]] = None, current_bar: Optional[Bar] = None):
        self.on_bar = on_bar
        self.current_bar = current_bar

    def seed(self, bar: Optional[Bar]):
        self.current_bar = bar

    def reset(self):
        self.on_bar = None
        self.current_bar = None

    def apply_live_price(self, price: Any) -> Optional[Bar]:
        """Update close/high/low from `price` and emit; None when there is nothing to update."""
        if self.on_bar is None or self.current_bar is None:
            return None
        value = positive_float(price)
        if value is None:
            return None

        updated = self.current_bar.with_price(value)
        self.current_bar = updated
        self.on_bar(updated)
        return updated
