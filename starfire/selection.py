"""Balance-weighted random choice of a reward recipient."""

from __future__ import annotations

import bisect
import random
from dataclasses import dataclass
from itertools import accumulate
from typing import Iterable, List, Sequence

DEFAULT_MIN_HOLDERS = 5


@dataclass(frozen=True)
class HolderWeight:
    address: str
    balance: int


def eligible_holders(
    holders: Iterable[HolderWeight], *, exclude: Iterable[str] = ()
) -> List[HolderWeight]:
    """Drop zero balances and excluded addresses, keeping fetch order."""

    skip = {str(a) for a in exclude}
    return [h for h in holders if h.balance > 0 and h.address not in skip]


def select_weighted(
    holders: Sequence[HolderWeight], rng: random.Random | None = None
) -> HolderWeight:
    """Return one holder with probability proportional to its balance.

    Equivalent to sweeping ``r`` in ``[0, total)`` down the list and taking
    the first entry where it drops to zero, done with a bisect over prefix
    sums.
    """

    if not holders:
        raise ValueError("cannot select from an empty holder list")
    prefix = list(accumulate(h.balance for h in holders))
    total = prefix[-1]
    if total <= 0:
        raise ValueError("holder balances must be positive")
    draw = (rng or random).random() * total
    index = bisect.bisect_left(prefix, draw)
    return holders[min(index, len(holders) - 1)]


__all__ = ["DEFAULT_MIN_HOLDERS", "HolderWeight", "eligible_holders", "select_weighted"]
