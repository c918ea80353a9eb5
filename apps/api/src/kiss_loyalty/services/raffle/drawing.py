"""Weighted monthly drawing.

Each account's chance of winning is proportional to the tickets it holds for
the period. Entries are ordered by the string form of the account id and
walked as cumulative ticket ranges, so a draw costs ``O(entries)`` memory
regardless of ticket volume and the same seed always picks the same winner.
"""

from __future__ import annotations

import random
from bisect import bisect_right
from dataclasses import dataclass
from itertools import accumulate
from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kiss_loyalty.core.settings import settings
from kiss_loyalty.models.raffle import RaffleEntry, RaffleWinner
from kiss_loyalty.observability.loyalty import LoyaltyObservabilityStore, get_loyalty_store
from kiss_loyalty.services.errors import AlreadyDrawnError, LoyaltyError, NoEntriesError
from kiss_loyalty.services.loyalty.ledger_service import LedgerResult, LedgerService
from kiss_loyalty.services.periods import parse_period


RAFFLE_WINNER_ACTION = "raffle_winner"


@dataclass(frozen=True)
class WeightedEntry:
    account_id: UUID
    tickets: int


class WeightedPool:
    """Cumulative ticket ranges over entries sorted by ``str(account_id)``.

    The pool owns the ordering, so the storage backend's row order never
    changes which account a seeded draw picks.
    """

    def __init__(self, entries: Sequence[WeightedEntry]) -> None:
        ordered = sorted((entry for entry in entries if entry.tickets > 0), key=lambda entry: str(entry.account_id))
        self._entries = ordered
        self._bounds = list(accumulate(entry.tickets for entry in ordered))

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def total_tickets(self) -> int:
        return self._bounds[-1] if self._bounds else 0

    def entry_at(self, offset: int) -> WeightedEntry:
        """Entry owning ticket ``offset`` in ``[0, total_tickets)``."""

        if not 0 <= offset < self.total_tickets:
            raise IndexError(f"Ticket offset {offset} outside pool of {self.total_tickets}")
        return self._entries[bisect_right(self._bounds, offset)]

    def draw(self, rng: random.Random) -> WeightedEntry:
        if not self._entries:
            raise ValueError("Cannot draw from an empty pool")
        return self.entry_at(rng.randrange(self.total_tickets))


@dataclass
class DrawResult:
    winner: RaffleWinner
    winning_ticket_count: int
    total_tickets: int
    participants: int
    bonus: LedgerResult

    @property
    def odds(self) -> float:
        return self.winning_ticket_count / self.total_tickets


class DrawingEngine:
    """Draw exactly one winner per period and pay out the winner bonus."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        ledger: LedgerService | None = None,
        store: LoyaltyObservabilityStore | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._db = db_session
        self._store = store or get_loyalty_store()
        self._ledger = ledger or LedgerService(db_session, store=self._store)
        self._rng = rng or random.SystemRandom()

    async def draw_winner(self, period: str) -> DrawResult:
        parse_period(period)
        await self._ensure_not_drawn(period)

        result = await self._db.execute(
            select(RaffleEntry.account_id, RaffleEntry.ticket_count).where(RaffleEntry.period == period)
        )
        pool = WeightedPool([WeightedEntry(account_id=row[0], tickets=int(row[1])) for row in result.all()])
        if not len(pool):
            self._store.record_draw("no_entries")
            raise NoEntriesError(period)

        selected = pool.draw(self._rng)
        winner = RaffleWinner(
            account_id=selected.account_id,
            period=period,
            prize_type=settings.raffle_prize_type,
            prize_description=settings.raffle_prize_description,
            winning_ticket_count=selected.tickets,
            total_tickets=pool.total_tickets,
            claimed=False,
        )
        self._db.add(winner)
        try:
            await self._db.flush()
        except IntegrityError as exc:
            await self._db.rollback()
            self._store.record_draw("already_drawn")
            logger.warning("Concurrent raffle draw detected", period=period)
            raise AlreadyDrawnError(period) from exc

        try:
            bonus = await self._ledger.earn(
                selected.account_id,
                settings.raffle_winner_bonus_points,
                action=RAFFLE_WINNER_ACTION,
                description=f"Won the {period} Seoul trip raffle!",
                reference_id=str(winner.id),
            )
            await self._db.commit()
        except (LoyaltyError, SQLAlchemyError):
            await self._db.rollback()
            raise

        self._store.record_draw("drawn")
        logger.info(
            "Drew raffle winner",
            period=period,
            account_id=str(selected.account_id),
            winning_tickets=selected.tickets,
            total_tickets=pool.total_tickets,
            participants=len(pool),
        )
        return DrawResult(
            winner=winner,
            winning_ticket_count=selected.tickets,
            total_tickets=pool.total_tickets,
            participants=len(pool),
            bonus=bonus,
        )

    async def _ensure_not_drawn(self, period: str) -> None:
        existing = await self._db.execute(select(RaffleWinner.id).where(RaffleWinner.period == period))
        if existing.scalar_one_or_none() is not None:
            self._store.record_draw("already_drawn")
            raise AlreadyDrawnError(period)


__all__ = ["DrawResult", "DrawingEngine", "RAFFLE_WINNER_ACTION", "WeightedEntry", "WeightedPool"]
