"""Loyalty ledger exports."""

from .analytics import PointsAnalytics, PointsAnalyticsService  # noqa: F401
from .ledger_service import (  # noqa: F401
    EARN_ACTION_POINTS,
    BalanceReconciliation,
    LedgerResult,
    LedgerService,
    MonthlyPointsStats,
    PointsOverview,
)
from .tiers import DEFAULT_TIERS, Tier, TierProgress, tier_for  # noqa: F401
