"""Helpers to validate REST bar responses before they reach a feed."""

from typing import Any, Iterable, List

from core.logging_utils import get_logger
from core.models import Bar

logger = get_logger(__name__)


def validate_bars(rows: Iterable[Any], symbol: str = "") -> List[Bar]:
    """Parse raw rows into a time-ordered bar list, skipping malformed rows."""
    bars: List[Bar] = []
    for row in rows:
        try:
            bars.append(Bar.from_row(row))
        except ValueError as e:
            logger.debug("[HISTORY] Skipping invalid bar for %s: %s", symbol, e)
    bars.sort(key=lambda b: b.time)
    return bars
