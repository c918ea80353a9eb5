"""SQLAlchemy models package."""

from .account import Account  # noqa: F401
from .ledger import LedgerTransaction, LedgerTransactionKind  # noqa: F401
from .raffle import RaffleEntry, RaffleWinner  # noqa: F401
from .redemption import RewardRedemption, RewardRedemptionStatus  # noqa: F401
