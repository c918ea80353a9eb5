"""Monthly raffle exports."""

from .allocator import RAFFLE_TICKETS_ACTION, TicketAllocator, TicketPurchase  # noqa: F401
from .drawing import DrawResult, DrawingEngine, WeightedEntry, WeightedPool  # noqa: F401
from .overview import (  # noqa: F401
    PRIZE_DETAILS,
    AccountEntries,
    RaffleOverview,
    RaffleOverviewService,
    RaffleStats,
    odds_percent,
)
