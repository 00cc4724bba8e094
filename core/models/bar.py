"""Bar primitives shared by the single-symbol and basket feeds."""

from dataclasses import dataclass, replace
from typing import Any, Mapping

from core.helpers.validation import finite_float, is_finite_number


@dataclass(frozen=True)
class Bar:
    """OHLCV bar keyed by the epoch-second start of its bucket."""
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Bar":
        """
        Parse one raw endpoint row.

        Numeric strings are accepted. A missing or unparseable volume counts
        as 0.0; a missing, non-numeric or non-finite time or OHLC value
        raises ValueError.
        """
        if not isinstance(row, Mapping):
            raise ValueError(f"bar row must be a mapping, got {type(row).__name__}")
        try:
            bar = cls(
                time=int(float(row["time"])),
                open=float(row["open"]),
                high=float(row["high"]),
                low=float(row["low"]),
                close=float(row["close"]),
                volume=finite_float(row.get("volume")),
            )
        except (KeyError, TypeError, OverflowError) as e:
            raise ValueError(f"malformed bar row {row!r}: {e}") from e
        if not bar.is_finite:
            raise ValueError(f"non-finite bar row {row!r}")
        return bar

    @classmethod
    def flat(cls, time: int, price: float) -> "Bar":
        """A bar with every price field at `price` and no volume."""
        return cls(time=time, open=price, high=price, low=price, close=price, volume=0.0)

    def with_price(self, price: float) -> "Bar":
        """Fold a last-trade price into this bar (time, open and volume kept)."""
        return replace(
            self,
            high=max(self.high, price),
            low=min(self.low, price),
            close=price,
        )

    @property
    def is_finite(self) -> bool:
        return all(
            is_finite_number(v)
            for v in (self.time, self.open, self.high, self.low, self.close, self.volume)
        )

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass(frozen=True)
class HistoryMeta:
    """Second argument of a history callback; `no_data` marks an empty range."""
    no_data: bool = False
