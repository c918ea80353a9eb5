from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class LoyaltySnapshot:
    ledger: Dict[str, int]
    actions: Dict[str, int]
    raffle: Dict[str, int]
    redemptions: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "ledger": dict(self.ledger),
            "actions": dict(self.actions),
            "raffle": dict(self.raffle),
            "redemptions": dict(self.redemptions),
        }


class LoyaltyObservabilityStore:
    """Collect ledger, raffle, and redemption telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._ledger: Dict[str, int] = defaultdict(int)
        self._actions: Dict[str, int] = defaultdict(int)
        self._raffle: Dict[str, int] = defaultdict(int)
        self._redemptions: Dict[str, int] = defaultdict(int)

    def record_earn(self, action: str, points: int) -> None:
        with self._lock:
            self._ledger["earn_transactions"] += 1
            self._ledger["points_earned"] += points
            self._actions[action] += 1

    def record_redeem(self, action: str, points: int) -> None:
        with self._lock:
            self._ledger["redeem_transactions"] += 1
            self._ledger["points_redeemed"] += points
            self._actions[action] += 1

    def record_duplicate(self, action: str) -> None:
        with self._lock:
            self._ledger["idempotent_replays"] += 1
            self._actions[f"duplicate:{action}"] += 1

    def record_insufficient_balance(self) -> None:
        with self._lock:
            self._ledger["insufficient_balance"] += 1

    def record_ticket_purchase(self, tickets: int) -> None:
        with self._lock:
            self._raffle["purchases"] += 1
            self._raffle["tickets_sold"] += tickets

    def record_rejected_purchase(self, reason: str) -> None:
        with self._lock:
            self._raffle[f"rejected:{reason}"] += 1

    def record_draw(self, outcome: str) -> None:
        with self._lock:
            self._raffle[f"draw:{outcome}"] += 1

    def record_redemption(self, status: str) -> None:
        with self._lock:
            self._redemptions[status] += 1

    def snapshot(self) -> LoyaltySnapshot:
        with self._lock:
            return LoyaltySnapshot(
                ledger=dict(self._ledger),
                actions=dict(self._actions),
                raffle=dict(self._raffle),
                redemptions=dict(self._redemptions),
            )

    def reset(self) -> None:
        with self._lock:
            self._ledger.clear()
            self._actions.clear()
            self._raffle.clear()
            self._redemptions.clear()


_STORE = LoyaltyObservabilityStore()


def get_loyalty_store() -> LoyaltyObservabilityStore:
    return _STORE


__all__ = ["get_loyalty_store", "LoyaltyObservabilityStore", "LoyaltySnapshot"]
