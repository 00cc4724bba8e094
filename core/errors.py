"""Error taxonomy for the bar feeds.

None of these are fatal: a failed fetch degrades to "no update this tick".
"""


class FeedError(Exception):
    """Base class for feed errors."""


class TransientFetchError(FeedError):
    """Network/HTTP failure or malformed payload for one symbol on one fetch."""

    def __init__(self, symbol: str, reason: str):
        super().__init__(f"{symbol}: {reason}")
        self.symbol = symbol
        self.reason = reason


class InvalidInputError(FeedError, ValueError):
    """Input that cannot take part in aggregation (bad basket item, unknown side)."""
