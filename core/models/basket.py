"""Basket composition types."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Mapping, Optional, Union

from core.errors import InvalidInputError
from core.helpers.validation import positive_float
from core.models.bar import Bar

EXCHANGE_DELIMITER = ":"


class Side(Enum):
    BUY = "buy"
    SELL = "sell"

    @classmethod
    def parse(cls, value: Union["Side", str]) -> "Side":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise InvalidInputError(f"unknown basket side: {value!r}") from e


@dataclass(frozen=True)
class BasketItem:
    """
    One basket leg as edited in the UI.

    `notional` is kept raw (it may still be a half-typed string); use
    `notional_value` for the parsed number. `weight` is informational only.
    """
    symbol: str
    notional: Any = None
    weight: Optional[float] = None

    @classmethod
    def parse(cls, raw: Union["BasketItem", Mapping[str, Any]]) -> "BasketItem":
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, Mapping):
            raise InvalidInputError(f"basket item must be a mapping, got {type(raw).__name__}")
        symbol = raw.get("symbol")
        return cls(
            symbol=str(symbol) if symbol is not None else "",
            notional=raw.get("notional"),
            weight=raw.get("weight"),
        )

    @property
    def notional_value(self) -> Optional[float]:
        return positive_float(self.notional)



@dataclass
class BasketLeg:
    """One constituent's fetched bar series, ready for synthesis."""
    symbol: str
    notional: float
    bars: List[Bar] = field(default_factory=list)
