"""Reward catalog and redemption exports."""

from .catalog import (  # noqa: F401
    REWARD_CATALOG,
    RewardDefinition,
    RewardListing,
    RewardType,
    get_redeemable_reward,
    get_reward,
    group_listings,
    list_rewards,
)
from .redemptions import (  # noqa: F401
    DEFAULT_FULFILLMENT_HANDLERS,
    RedemptionOutcome,
    RedemptionProcessor,
)
