"""Tier ladder and progress calculation.

Tiers are derived, never stored: an account's tier is whichever band its
lifetime earned points fall into. Lower bounds are inclusive, so a total that
sits exactly on a threshold belongs to the higher tier.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class Tier:
    name: str
    threshold: int


DEFAULT_TIERS: tuple[Tier, ...] = (
    Tier("Bronze", 0),
    Tier("Silver", 500),
    Tier("Gold", 2000),
    Tier("Platinum", 5000),
    Tier("Diamond", 10000),
)


@dataclass(frozen=True)
class TierProgress:
    tier: str
    current_threshold: int
    next_tier: str | None
    next_threshold: int | None
    progress_percent: float

    def as_dict(self) -> dict[str, object]:
        return {
            "tier": self.tier,
            "currentThreshold": self.current_threshold,
            "nextTier": self.next_tier,
            "nextThreshold": self.next_threshold,
            "progressPercent": self.progress_percent,
        }


def tier_for(points: int, tiers: Sequence[Tier] = DEFAULT_TIERS) -> TierProgress:
    """Place ``points`` on the tier ladder and report progress toward the next tier."""

    if not tiers:
        raise ValueError("Tier ladder must define at least one tier")

    value = max(int(points), 0)
    thresholds = [tier.threshold for tier in tiers]
    index = max(bisect_right(thresholds, value) - 1, 0)
    current = tiers[index]

    if index + 1 >= len(tiers):
        return TierProgress(
            tier=current.name,
            current_threshold=current.threshold,
            next_tier=None,
            next_threshold=None,
            progress_percent=100.0,
        )

    upcoming = tiers[index + 1]
    span = upcoming.threshold - current.threshold
    progress = (value - current.threshold) / span * 100
    return TierProgress(
        tier=current.name,
        current_threshold=current.threshold,
        next_tier=upcoming.name,
        next_threshold=upcoming.threshold,
        progress_percent=round(min(max(progress, 0.0), 100.0), 2),
    )


def points_to_next_tier(points: int, tiers: Sequence[Tier] = DEFAULT_TIERS) -> int | None:
    progress = tier_for(points, tiers)
    if progress.next_threshold is None:
        return None
    return progress.next_threshold - max(int(points), 0)


def tier_rank(name: str, tiers: Sequence[Tier] = DEFAULT_TIERS) -> int | None:
    """Position of a tier on the ladder (case-insensitive), or ``None`` when unknown."""

    lowered = name.strip().lower()
    for index, tier in enumerate(tiers):
        if tier.name.lower() == lowered:
            return index
    return None


__all__ = [
    "DEFAULT_TIERS",
    "Tier",
    "TierProgress",
    "points_to_next_tier",
    "tier_for",
    "tier_rank",
]
