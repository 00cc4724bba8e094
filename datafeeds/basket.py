"""
Basket synthesis.

A basket is one chart series built from N legs: at each timestamp every leg
contributes notional * close, and the sum is the basket's price level.
Only timestamps present in every leg are used; a timestamp missing from one
leg would misstate the basket value, so it is dropped instead.
"""

from typing import Any, Iterable, List, Optional, Sequence, Union

import numpy as np

from core.errors import InvalidInputError
from core.helpers.validation import is_finite_number
from core.logging_utils import get_logger
from core.models import EXCHANGE_DELIMITER, Bar, BasketItem, BasketLeg, Side

logger = get_logger(__name__)

PRICE_DECIMALS = 2


def is_complete_item(item: Any) -> bool:
    """A leg is usable once it names an exchange and has a notional > 0."""
    try:
        parsed = BasketItem.parse(item)
    except InvalidInputError:
        return False
    return (
        bool(parsed.symbol)
        and EXCHANGE_DELIMITER in parsed.symbol
        and parsed.notional_value is not None
    )


def complete_items(items: Optional[Iterable[Any]]) -> List[BasketItem]:
    if not items:
        return []
    return [BasketItem.parse(item) for item in items if is_complete_item(item)]


def fingerprint(items: Optional[Iterable[Any]]) -> str:
    """Order-independent key of the complete legs (`symbol:notional`, sorted, `|`-joined)."""
    return "|".join(sorted(f"{item.symbol}:{item.notional}" for item in complete_items(items)))


def has_changed(old_items: Optional[Iterable[Any]], new_items: Optional[Iterable[Any]]) -> bool:
    """True when legs were added/removed or a complete leg's symbol or notional changed."""
    if new_items is None:
        return False
    old_complete = complete_items(old_items)
    new_complete = complete_items(new_items)
    if len(old_complete) != len(new_complete):
        return True
    return fingerprint(old_complete) != fingerprint(new_complete)


def invert_bar(bar: Bar) -> Bar:
    """Mirror a bar for a sell basket; volume stays positive."""
    return Bar(
        time=bar.time,
        open=-bar.open,
        high=-bar.high,
        low=-bar.low,
        close=-bar.close,
        volume=bar.volume,
    )


def synthesize(legs: Sequence[BasketLeg], side: Union[Side, str] = Side.BUY) -> List[Bar]:
    """Build the basket series from independently fetched leg series."""
    side = Side.parse(side)
    if not legs:
        return []

    common = set.intersection(*({b.time for b in leg.bars} for leg in legs))
    if not common:
        logger.warning("[BASKET] No common timestamps across %d legs", len(legs))
        return []

    times = np.array(sorted(common), dtype=np.int64)
    slot = {int(t): i for i, t in enumerate(times)}
    level = np.zeros(len(times))
    volume = np.zeros(len(times))
    seen = np.zeros(len(times), dtype=bool)

    for leg in legs:
        kept = [b for b in leg.bars if b.time in slot and is_finite_number(b.close)]
        if not kept:
            continue
        idx = np.fromiter((slot[b.time] for b in kept), dtype=np.int64, count=len(kept))
        closes = np.fromiter((b.close for b in kept), dtype=float, count=len(kept))
        vols = np.fromiter(
            (b.volume if is_finite_number(b.volume) else 0.0 for b in kept),
            dtype=float,
            count=len(kept),
        )
        # add.at so duplicate rows for one timestamp both count
        np.add.at(level, idx, leg.notional * closes)
        np.add.at(volume, idx, leg.notional * vols)
        seen[idx] = True

    level = np.round(level, PRICE_DECIMALS)
    volume = np.round(volume, PRICE_DECIMALS)
    valid = seen & np.isfinite(level) & np.isfinite(volume)
    if not valid.all():
        dropped = int((seen & ~valid).sum())
        if dropped:
            logger.error("[BASKET] Dropped %d non-finite basket bars", dropped)

    bars = []
    for i in np.flatnonzero(valid):
        price = float(level[i])
        bars.append(Bar(
            time=int(times[i]),
            open=price,
            high=price,
            low=price,
            close=price,
            volume=float(volume[i]),
        ))

    if side is Side.SELL:
        bars = [invert_bar(b) for b in bars]
    return bars
