"""Typed data models for the bar feeds."""

from core.models.bar import Bar, HistoryMeta
from core.models.basket import EXCHANGE_DELIMITER, BasketItem, BasketLeg, Side

__all__ = [
    "Bar",
    "BasketItem",
    "BasketLeg",
    "EXCHANGE_DELIMITER",
    "HistoryMeta",
    "Side",
]
