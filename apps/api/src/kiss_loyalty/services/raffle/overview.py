"""Read models for the monthly raffle plus prize claiming."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from kiss_loyalty.models.account import Account
from kiss_loyalty.models.raffle import RaffleEntry, RaffleWinner
from kiss_loyalty.services.errors import WinnerNotFoundError
from kiss_loyalty.services.periods import current_period, ensure_utc, period_window


RECENT_WINNERS_LIMIT = 5

PRIZE_DETAILS: dict[str, str] = {
    "name": "5-Day Seoul Adventure Trip",
    "value": "$3,500",
    "description": "Complete Seoul experience with flights, hotel, tours, and shopping budget",
}


def odds_percent(tickets: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(tickets / total * 100, 2)


@dataclass
class RaffleStats:
    total_participants: int
    total_tickets: int

    @property
    def average_tickets_per_user(self) -> float:
        if not self.total_participants:
            return 0.0
        return round(self.total_tickets / self.total_participants, 1)


@dataclass
class RaffleOverview:
    period: str
    drawing_at: datetime
    now: datetime
    stats: RaffleStats
    current_winner: dict[str, Any] | None
    user_entry: dict[str, Any] | None
    recent_winners: list[dict[str, Any]]

    @property
    def time_until_drawing_ms(self) -> int:
        return max(0, int((self.drawing_at - self.now).total_seconds() * 1000))

    @property
    def has_drawing_passed(self) -> bool:
        return self.now > self.drawing_at


@dataclass
class AccountEntries:
    period: str
    user_tickets: int
    total_tickets: int
    winner: RaffleWinner | None

    @property
    def odds(self) -> float:
        return odds_percent(self.user_tickets, self.total_tickets)

    @property
    def has_won(self) -> bool:
        return self.winner is not None


class RaffleOverviewService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def period_stats(self, period: str) -> RaffleStats:
        stmt = select(
            func.count(RaffleEntry.id),
            func.coalesce(func.sum(RaffleEntry.ticket_count), 0),
        ).where(RaffleEntry.period == period)
        participants, tickets = (await self._db.execute(stmt)).one()
        return RaffleStats(total_participants=int(participants or 0), total_tickets=int(tickets or 0))

    async def account_tickets(self, account_id: UUID, period: str) -> int:
        stmt = select(RaffleEntry.ticket_count).where(
            RaffleEntry.account_id == account_id,
            RaffleEntry.period == period,
        )
        value = (await self._db.execute(stmt)).scalar_one_or_none()
        return int(value or 0)

    async def get_winner(self, period: str) -> RaffleWinner | None:
        result = await self._db.execute(select(RaffleWinner).where(RaffleWinner.period == period))
        return result.scalar_one_or_none()

    async def current(
        self,
        *,
        account_id: UUID | None = None,
        now: datetime | None = None,
    ) -> RaffleOverview:
        moment = ensure_utc(now or datetime.now(timezone.utc))
        period = current_period(moment)
        window = period_window(period)
        stats = await self.period_stats(period)

        current_winner = None
        winner_row = (
            await self._db.execute(
                select(RaffleWinner, Account)
                .join(Account, Account.id == RaffleWinner.account_id)
                .where(RaffleWinner.period == period)
            )
        ).first()
        if winner_row is not None:
            winner, winner_account = winner_row
            current_winner = {
                "username": winner_account.username,
                "country": winner_account.country_code,
                "claimed": bool(winner.claimed),
            }

        user_entry = None
        if account_id is not None:
            tickets = await self.account_tickets(account_id, period)
            if tickets:
                user_entry = {"tickets": tickets, "odds": odds_percent(tickets, stats.total_tickets)}

        recent = await self._db.execute(
            select(RaffleWinner.period, RaffleWinner.claimed, Account.username, Account.country_code)
            .join(Account, Account.id == RaffleWinner.account_id)
            .order_by(RaffleWinner.period.desc())
            .limit(RECENT_WINNERS_LIMIT)
        )
        recent_winners = [
            {"month": row_period, "username": username, "country": country, "claimed": bool(claimed)}
            for row_period, claimed, username, country in recent.all()
        ]

        return RaffleOverview(
            period=period,
            drawing_at=window.drawing_at,
            now=moment,
            stats=stats,
            current_winner=current_winner,
            user_entry=user_entry,
            recent_winners=recent_winners,
        )

    async def account_entries(self, account_id: UUID, period: str | None = None) -> AccountEntries:
        target = period or current_period()
        period_window(target)
        stats = await self.period_stats(target)
        tickets = await self.account_tickets(account_id, target)
        winner = (
            await self._db.execute(
                select(RaffleWinner).where(
                    RaffleWinner.period == target,
                    RaffleWinner.account_id == account_id,
                )
            )
        ).scalar_one_or_none()
        return AccountEntries(
            period=target,
            user_tickets=tickets,
            total_tickets=stats.total_tickets,
            winner=winner,
        )

    async def claim_prize(self, period: str) -> RaffleWinner:
        """Mark the period's prize claimed. Claiming an already-claimed prize changes nothing."""

        period_window(period)
        winner = await self.get_winner(period)
        if winner is None:
            raise WinnerNotFoundError(period)
        if winner.claimed:
            return winner

        winner.claimed = True
        winner.claimed_at = datetime.now(timezone.utc)
        await self._db.commit()
        await self._db.refresh(winner)
        logger.info("Marked raffle prize claimed", period=period, account_id=str(winner.account_id))
        return winner


__all__ = [
    "AccountEntries",
    "PRIZE_DETAILS",
    "RaffleOverview",
    "RaffleOverviewService",
    "RaffleStats",
    "odds_percent",
]
