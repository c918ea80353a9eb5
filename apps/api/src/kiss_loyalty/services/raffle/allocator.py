"""Convert point debits into weighted raffle tickets."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kiss_loyalty.core.settings import settings
from kiss_loyalty.models.account import utcnow
from kiss_loyalty.models.raffle import RaffleEntry, RaffleWinner
from kiss_loyalty.observability.loyalty import LoyaltyObservabilityStore, get_loyalty_store
from kiss_loyalty.services.errors import InvalidTicketCountError, LoyaltyError, RaffleClosedError
from kiss_loyalty.services.loyalty.ledger_service import LedgerService
from kiss_loyalty.services.periods import current_period, parse_period


RAFFLE_TICKETS_ACTION = "raffle_tickets"
MIN_TICKETS_PER_PURCHASE = 1


@dataclass
class TicketPurchase:
    period: str
    tickets_purchased: int
    points_spent: int
    total_tickets: int
    remaining_points: int


class TicketAllocator:
    """Debit points and credit raffle tickets in one unit of work."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        ledger: LedgerService | None = None,
        store: LoyaltyObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._store = store or get_loyalty_store()
        self._ledger = ledger or LedgerService(db_session, store=self._store)

    async def purchase_tickets(
        self,
        account_id: UUID,
        count: int,
        *,
        period: str | None = None,
        price_per_ticket: int | None = None,
    ) -> TicketPurchase:
        maximum = settings.raffle_max_tickets_per_purchase
        if isinstance(count, bool) or not isinstance(count, int) or not (
            MIN_TICKETS_PER_PURCHASE <= count <= maximum
        ):
            raise InvalidTicketCountError(count, MIN_TICKETS_PER_PURCHASE, maximum)

        target_period = period or current_period()
        parse_period(target_period)
        price = price_per_ticket if price_per_ticket is not None else settings.raffle_ticket_price_points
        cost = count * price

        try:
            await self._ensure_open(target_period)
            debit = await self._ledger.redeem(
                account_id,
                cost,
                action=RAFFLE_TICKETS_ACTION,
                description=f"Purchased {count} Seoul trip raffle tickets",
            )
            await self._add_tickets(account_id, target_period, count)
            total = await self._entry_tickets(account_id, target_period)
            await self._db.commit()
        except (LoyaltyError, SQLAlchemyError):
            await self._db.rollback()
            raise

        self._store.record_ticket_purchase(count)
        logger.info(
            "Allocated raffle tickets",
            account_id=str(account_id),
            period=target_period,
            tickets=count,
            points_spent=cost,
            total_tickets=total,
        )
        return TicketPurchase(
            period=target_period,
            tickets_purchased=count,
            points_spent=cost,
            total_tickets=total,
            remaining_points=debit.balance,
        )

    async def _ensure_open(self, period: str) -> None:
        result = await self._db.execute(select(RaffleWinner.id).where(RaffleWinner.period == period))
        if result.scalar_one_or_none() is not None:
            self._store.record_rejected_purchase("raffle_closed")
            logger.warning("Rejected ticket purchase for drawn raffle", period=period)
            raise RaffleClosedError(period)

    async def _add_tickets(self, account_id: UUID, period: str, count: int) -> None:
        dialect = self._db.bind.dialect.name if self._db.bind is not None else "postgresql"
        insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
        stmt = insert(RaffleEntry).values(account_id=account_id, period=period, ticket_count=count)
        stmt = stmt.on_conflict_do_update(
            index_elements=[RaffleEntry.account_id, RaffleEntry.period],
            set_={
                "ticket_count": RaffleEntry.ticket_count + stmt.excluded.ticket_count,
                "updated_at": utcnow(),
            },
        )
        await self._db.execute(stmt)

    async def _entry_tickets(self, account_id: UUID, period: str) -> int:
        stmt = select(RaffleEntry.ticket_count).where(
            RaffleEntry.account_id == account_id,
            RaffleEntry.period == period,
        )
        result = await self._db.execute(stmt)
        return int(result.scalar_one())


__all__ = ["RAFFLE_TICKETS_ACTION", "TicketAllocator", "TicketPurchase"]
