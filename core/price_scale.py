"""
Dynamic price scale for the chart's price axis.

The widget takes a power of ten ("pricescale") that sets how many decimals a
symbol is drawn with. Sub-cent assets need many more decimals than BTC, so
the scale is derived from a reference price instead of being fixed.
"""

import math
import re
from typing import Any

FALLBACK_PRICE_SCALE = 10 ** 8
MIN_SUBUNIT_DECIMALS = 8
MIN_DECIMALS = 2
INTEGER_PRICE_SCALE = 100

# Leading zeros after the point, then the significant digit run.
_SUBUNIT_RE = re.compile(r"^0\.(0*)([1-9]\d*)?")


def _parse_price(price: Any) -> float:
    if price is None or isinstance(price, bool):
        return math.nan
    try:
        return float(str(price).strip()) if isinstance(price, str) else float(price)
    except (TypeError, ValueError):
        return math.nan


def price_scale(price: Any) -> int:
    """
    Return the pricescale for `price`.

    Prices below 1 show at least 8 decimals and enough to reach the first two
    significant digits; prices of 1 and above keep their own decimals with a
    floor of 2; whole prices use 100. Missing or non-positive input falls
    back to 1e8.
    """
    value = _parse_price(price)
    if not math.isfinite(value) or value <= 0:
        return FALLBACK_PRICE_SCALE

    if value < 1:
        match = _SUBUNIT_RE.match(f"{value:.12f}")
        if match:
            leading_zeros = len(match.group(1))
            significant = (match.group(2) or "").rstrip("0")
            decimals = leading_zeros + min(len(significant), 2)
            return 10 ** max(decimals, MIN_SUBUNIT_DECIMALS)
        return FALLBACK_PRICE_SCALE

    if value.is_integer():
        return INTEGER_PRICE_SCALE

    text = repr(value)
    if "e" in text or "." not in text:
        return INTEGER_PRICE_SCALE
    decimals = len(text.split(".", 1)[1])
    return 10 ** max(decimals, MIN_DECIMALS)
