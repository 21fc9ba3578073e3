from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SplitPercentages:
    """Whole-number percentages for the four buckets; must sum to 100."""

    burn: int = 25
    buyback: int = 25
    holder_reward: int = 25
    lp_pool: int = 25

    def __post_init__(self) -> None:
        parts = (self.burn, self.buyback, self.holder_reward, self.lp_pool)
        if any(isinstance(p, bool) or not isinstance(p, int) or p < 0 for p in parts):
            raise ValueError("split percentages must be non-negative integers")
        if sum(parts) != 100:
            raise ValueError(f"split percentages must sum to 100, got {sum(parts)}")


DEFAULT_PERCENTAGES = SplitPercentages()


@dataclass(frozen=True)
class FeeSplit:
    burn: int
    buyback: int
    holder_reward: int
    lp_pool: int
    total: int

    def as_dict(self) -> dict[str, int]:
        return {
            "burn": self.burn,
            "buyback": self.buyback,
            "holder_reward": self.holder_reward,
            "lp_pool": self.lp_pool,
            "total": self.total,
        }


def calculate_split(
    total: int, percentages: SplitPercentages = DEFAULT_PERCENTAGES
) -> FeeSplit:
    """Partition ``total`` lamports into the four buckets.

    The first three parts are floored; the pool bucket receives the rest so
    the parts always add up to ``total`` exactly.
    """

    if isinstance(total, bool) or not isinstance(total, int):
        raise TypeError("total must be an integer amount of lamports")
    if total < 0:
        raise ValueError("total must be non-negative")

    burn = total * percentages.burn // 100
    buyback = total * percentages.buyback // 100
    holder_reward = total * percentages.holder_reward // 100
    lp_pool = total - burn - buyback - holder_reward
    return FeeSplit(burn, buyback, holder_reward, lp_pool, total)


__all__ = ["DEFAULT_PERCENTAGES", "FeeSplit", "SplitPercentages", "calculate_split"]
