"""Relative-strength momentum indicator used to gate buybacks."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import List, Tuple

DEFAULT_PERIOD = 14
NEUTRAL_VALUE = 50.0


class MomentumAction(str, Enum):
    """Discrete buyback decision derived from the oscillator."""

    STRONG_BUY = "strong_buy"
    OVERSOLD = "oversold"
    BUY_ZONE = "buy_zone"
    WEAK_BUY = "weak_buy"
    ACCUMULATE = "accumulate"


# Ordered thresholds, first match wins.
_THRESHOLDS: Tuple[Tuple[float, MomentumAction, float], ...] = (
    (20.0, MomentumAction.STRONG_BUY, 2.0),
    (30.0, MomentumAction.OVERSOLD, 1.5),
    (40.0, MomentumAction.BUY_ZONE, 1.0),
    (50.0, MomentumAction.WEAK_BUY, 0.5),
)


@dataclass(frozen=True)
class MomentumReading:
    value: float
    ready: bool
    samples: int

    def as_dict(self) -> dict:
        return {"value": self.value, "ready": self.ready, "samples": self.samples}


@dataclass(frozen=True)
class MomentumSignal:
    """Classification of a :class:`MomentumReading`."""

    action: MomentumAction
    multiplier: float
    value: float
    reason: str

    @property
    def should_buy(self) -> bool:
        return self.multiplier > 0

    def as_dict(self) -> dict:
        return {
            "action": self.action.value,
            "multiplier": self.multiplier,
            "value": self.value,
            "reason": self.reason,
            "should_buy": self.should_buy,
        }


class MomentumIndicator:
    """Bounded price history with a 0-100 oscillator.

    At most ``2 * period`` samples are retained; on overflow the history is
    trimmed back to the most recent ``period + 1`` samples, which is exactly
    what :meth:`compute` needs.
    """

    def __init__(self, period: int = DEFAULT_PERIOD) -> None:
        period = int(period)
        if period < 1:
            raise ValueError("period must be at least 1")
        self.period = period
        self._samples: List[float] = []

    @property
    def samples(self) -> Tuple[float, ...]:
        return tuple(self._samples)

    @property
    def ready(self) -> bool:
        return len(self._samples) >= self.period + 1

    def add_sample(self, price: object) -> bool:
        """Append ``price`` and return ``True``; invalid input is ignored."""

        if isinstance(price, bool) or not isinstance(price, Real):
            return False
        value = float(price)
        if not math.isfinite(value) or value <= 0:
            return False
        self._samples.append(value)
        if len(self._samples) > self.period * 2:
            self._samples = self._samples[-(self.period + 1):]
        return True

    def compute(self) -> MomentumReading:
        count = len(self._samples)
        if count < self.period + 1:
            return MomentumReading(NEUTRAL_VALUE, False, count)

        gains = 0.0
        losses = 0.0
        window = self._samples[-(self.period + 1):]
        for previous, current in zip(window, window[1:]):
            change = current - previous
            if change > 0:
                gains += change
            else:
                losses += -change

        avg_gain = gains / self.period
        avg_loss = losses / self.period
        if avg_loss == 0:
            return MomentumReading(100.0, True, count)

        rs = avg_gain / avg_loss
        value = 100.0 - 100.0 / (1.0 + rs)
        return MomentumReading(round(value, 2), True, count)

    def classify(self) -> MomentumSignal:
        reading = self.compute()
        if not reading.ready:
            return MomentumSignal(
                MomentumAction.ACCUMULATE, 0.0, reading.value, "insufficient data"
            )
        return classify_value(reading.value)


def classify_value(value: float) -> MomentumSignal:
    """Map an oscillator ``value`` onto a :class:`MomentumSignal`."""

    for limit, action, multiplier in _THRESHOLDS:
        if value < limit:
            return MomentumSignal(action, multiplier, value, action.value.replace("_", " "))
    return MomentumSignal(MomentumAction.ACCUMULATE, 0.0, value, "accumulating")


__all__ = [
    "DEFAULT_PERIOD",
    "MomentumAction",
    "MomentumIndicator",
    "MomentumReading",
    "MomentumSignal",
    "classify_value",
]
