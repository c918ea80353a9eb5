"""Static reward catalog and the grouped listings shown to members."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Sequence

from kiss_loyalty.services.errors import InvalidRewardError
from kiss_loyalty.services.loyalty.tiers import tier_rank


class RewardType(str, Enum):
    DISCOUNT = "discount"
    PHYSICAL = "physical"
    DIGITAL = "digital"
    EXPERIENCE = "experience"
    RAFFLE = "raffle"


@dataclass(frozen=True)
class RewardDefinition:
    id: str
    name: str
    description: str
    points_cost: int
    reward_type: RewardType
    category: str
    level_required: str
    availability: str = "unlimited"
    stock: int | None = None
    estimated_value: int | None = None
    korean_culture: bool = True
    special: bool = False

    @property
    def redeemable(self) -> bool:
        """Raffle prizes are won, never exchanged directly for points."""

        return self.reward_type is not RewardType.RAFFLE

    @property
    def requires_shipping(self) -> bool:
        return self.reward_type is RewardType.PHYSICAL


REWARD_CATALOG: tuple[RewardDefinition, ...] = (
    RewardDefinition(
        id="discount-5",
        name="$5 Off Your Order",
        description="Apply $5 discount to any Korean product purchase",
        points_cost=500,
        reward_type=RewardType.DISCOUNT,
        category="discount",
        level_required="Bronze",
        korean_culture=False,
    ),
    RewardDefinition(
        id="korean-snack-box",
        name="Korean Snack Discovery Box",
        description="Curated box of popular Korean snacks and treats from Seoul",
        points_cost=2000,
        reward_type=RewardType.PHYSICAL,
        category="physical",
        level_required="Silver",
        availability="limited",
        stock=50,
        estimated_value=25,
    ),
    RewardDefinition(
        id="kbeauty-starter-kit",
        name="K-Beauty Starter Kit",
        description="5-piece Korean skincare set with glass skin essentials",
        points_cost=3500,
        reward_type=RewardType.PHYSICAL,
        category="beauty",
        level_required="Gold",
        availability="limited",
        stock=30,
        estimated_value=45,
    ),
    RewardDefinition(
        id="korean-language-course",
        name="3-Month Korean Language Course",
        description="Online Korean language course with K-drama context",
        points_cost=5000,
        reward_type=RewardType.DIGITAL,
        category="education",
        level_required="Gold",
        availability="limited",
        stock=20,
        estimated_value=99,
    ),
    RewardDefinition(
        id="seoul-fashion-week-merchandise",
        name="Seoul Fashion Week Exclusive Merch",
        description="Limited edition tote bag and accessories from Seoul Fashion Week",
        points_cost=7500,
        reward_type=RewardType.PHYSICAL,
        category="fashion",
        level_required="Platinum",
        availability="limited",
        stock=15,
        estimated_value=85,
    ),
    RewardDefinition(
        id="virtual-seoul-tour",
        name="Virtual Seoul Culture Tour",
        description="Live-guided virtual tour of Seoul with Korean culture expert",
        points_cost=10000,
        reward_type=RewardType.EXPERIENCE,
        category="experience",
        level_required="Platinum",
        availability="scheduled",
        estimated_value=120,
    ),
    RewardDefinition(
        id="seoul-trip-5day",
        name="5-Day Seoul Adventure Trip",
        description="Complete Seoul experience: flights, hotel, cultural tours, and $1000 shopping budget",
        points_cost=50000,
        reward_type=RewardType.RAFFLE,
        category="travel",
        level_required="Diamond",
        availability="raffle",
        estimated_value=3500,
        special=True,
    ),
)

_CATALOG_INDEX = {reward.id: reward for reward in REWARD_CATALOG}

PHYSICAL_CATEGORIES = frozenset({"physical", "beauty", "fashion"})
EXPERIENCE_CATEGORIES = frozenset({"experience", "education"})
FEATURED_LIMIT = 3


def get_reward(reward_id: str) -> RewardDefinition:
    reward = _CATALOG_INDEX.get(reward_id)
    if reward is None:
        raise InvalidRewardError(reward_id)
    return reward


def get_redeemable_reward(reward_id: str) -> RewardDefinition:
    reward = get_reward(reward_id)
    if not reward.redeemable:
        raise InvalidRewardError(reward_id)
    return reward


@dataclass(frozen=True)
class RewardListing:
    reward: RewardDefinition
    affordable: bool
    points_needed: int

    def as_dict(self) -> dict[str, Any]:
        reward = self.reward
        return {
            "id": reward.id,
            "name": reward.name,
            "description": reward.description,
            "pointsCost": reward.points_cost,
            "type": reward.reward_type.value,
            "category": reward.category,
            "levelRequired": reward.level_required,
            "availability": reward.availability,
            "stock": reward.stock,
            "estimatedValue": reward.estimated_value,
            "koreanCulture": reward.korean_culture,
            "special": reward.special,
            "redeemable": reward.redeemable,
            "affordable": self.affordable,
            "pointsNeeded": self.points_needed,
        }


def list_rewards(
    *,
    balance: int = 0,
    category: str | None = None,
    user_level: str | None = None,
    catalog: Iterable[RewardDefinition] = REWARD_CATALOG,
) -> list[RewardListing]:
    """Filter the catalog and annotate each reward with affordability for ``balance``."""

    rewards: Sequence[RewardDefinition] = list(catalog)
    if category:
        rewards = [reward for reward in rewards if reward.category == category]
    if user_level:
        level = tier_rank(user_level)
        if level is not None:
            rewards = [reward for reward in rewards if (tier_rank(reward.level_required) or 0) <= level]

    return [
        RewardListing(
            reward=reward,
            affordable=balance >= reward.points_cost,
            points_needed=max(0, reward.points_cost - balance),
        )
        for reward in rewards
    ]


def group_listings(listings: Sequence[RewardListing]) -> dict[str, list[RewardListing]]:
    return {
        "featured": [item for item in listings if item.reward.korean_culture and item.affordable][:FEATURED_LIMIT],
        "discounts": [item for item in listings if item.reward.category == "discount"],
        "physical": [item for item in listings if item.reward.category in PHYSICAL_CATEGORIES],
        "experiences": [item for item in listings if item.reward.category in EXPERIENCE_CATEGORIES],
        "premium": [item for item in listings if item.reward.category == "travel" or item.reward.special],
        "all": list(listings),
    }


__all__ = [
    "REWARD_CATALOG",
    "RewardDefinition",
    "RewardListing",
    "RewardType",
    "get_redeemable_reward",
    "get_reward",
    "group_listings",
    "list_rewards",
]
