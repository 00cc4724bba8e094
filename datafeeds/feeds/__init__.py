"""Chart widget datafeeds."""

from datafeeds.feeds.base import BaseDataFeed, SubscriptionHandle
from datafeeds.feeds.basket_feed import BasketDataFeed
from datafeeds.feeds.custom_feed import CustomDataFeed

__all__ = [
    "BaseDataFeed",
    "BasketDataFeed",
    "CustomDataFeed",
    "SubscriptionHandle",
]
