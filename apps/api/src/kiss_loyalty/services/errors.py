"""Domain errors raised by the ledger, raffle, and reward services."""

from __future__ import annotations

from typing import Any
from uuid import UUID


class LoyaltyError(RuntimeError):
    """Base exception for loyalty domain failures."""

    code = "loyalty_error"

    def as_detail(self) -> dict[str, Any]:
        return {"error": self.code, "message": str(self)}


class AccountNotFoundError(LoyaltyError):
    code = "account_not_found"

    def __init__(self, account_id: UUID) -> None:
        super().__init__(f"Loyalty account {account_id} not found")
        self.account_id = account_id


class InvalidAmountError(LoyaltyError, ValueError):
    """Raised when a ledger movement is not a positive whole number of points."""

    code = "invalid_amount"


class InsufficientBalanceError(LoyaltyError):
    """Raised when a debit exceeds the account balance. No state was mutated."""

    code = "insufficient_balance"

    def __init__(self, required: int, current: int) -> None:
        super().__init__(f"Insufficient points: {required} required, {current} available")
        self.required = required
        self.current = current

    @property
    def shortfall(self) -> int:
        return max(self.required - self.current, 0)

    def as_detail(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": "Insufficient points",
            "required": self.required,
            "current": self.current,
            "needed": self.shortfall,
        }


class InvalidTicketCountError(LoyaltyError, ValueError):
    code = "invalid_ticket_count"

    def __init__(self, count: int, minimum: int, maximum: int) -> None:
        super().__init__(f"Can purchase {minimum}-{maximum} tickets at a time (requested {count})")
        self.count = count
        self.minimum = minimum
        self.maximum = maximum


class InvalidPeriodError(LoyaltyError, ValueError):
    code = "invalid_period"

    def __init__(self, period: str) -> None:
        super().__init__(f"Raffle period must use YYYY-MM format (got {period!r})")
        self.period = period


class NoEntriesError(LoyaltyError):
    code = "no_entries"

    def __init__(self, period: str) -> None:
        super().__init__(f"No raffle entries found for {period}")
        self.period = period


class AlreadyDrawnError(LoyaltyError):
    code = "already_drawn"

    def __init__(self, period: str) -> None:
        super().__init__(f"Winner already selected for {period}")
        self.period = period


class RaffleClosedError(LoyaltyError):
    """Raised when tickets are bought for a period whose winner is already drawn."""

    code = "raffle_closed"

    def __init__(self, period: str) -> None:
        super().__init__(f"The {period} raffle has already been drawn")
        self.period = period


class WinnerNotFoundError(LoyaltyError):
    code = "winner_not_found"

    def __init__(self, period: str) -> None:
        super().__init__(f"No raffle winner recorded for {period}")
        self.period = period


class InvalidRewardError(LoyaltyError, ValueError):
    code = "invalid_reward"

    def __init__(self, reward_id: str) -> None:
        super().__init__(f"Invalid reward ID: {reward_id}")
        self.reward_id = reward_id


class MissingShippingAddressError(LoyaltyError, ValueError):
    code = "missing_shipping_address"

    def __init__(self, reward_id: str) -> None:
        super().__init__("Shipping address required for physical rewards")
        self.reward_id = reward_id


class FulfillmentError(LoyaltyError):
    """Raised by a fulfillment handler; the redemption is kept for manual reconciliation."""

    code = "fulfillment_failed"


__all__ = [
    "AccountNotFoundError",
    "AlreadyDrawnError",
    "FulfillmentError",
    "InsufficientBalanceError",
    "InvalidAmountError",
    "InvalidPeriodError",
    "InvalidRewardError",
    "InvalidTicketCountError",
    "LoyaltyError",
    "MissingShippingAddressError",
    "NoEntriesError",
    "RaffleClosedError",
    "WinnerNotFoundError",
]
