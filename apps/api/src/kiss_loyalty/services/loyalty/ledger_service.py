"""Points ledger: append-only transactions feeding a denormalized account balance."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import and_, case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kiss_loyalty.core.settings import settings
from kiss_loyalty.models.account import Account
from kiss_loyalty.models.ledger import LedgerTransaction, LedgerTransactionKind
from kiss_loyalty.observability.loyalty import LoyaltyObservabilityStore, get_loyalty_store
from kiss_loyalty.services.errors import (
    AccountNotFoundError,
    InsufficientBalanceError,
    InvalidAmountError,
    LoyaltyError,
)
from kiss_loyalty.services.loyalty.tiers import TierProgress, tier_for
from kiss_loyalty.services.periods import current_period, period_window


# Default point values for platform actions. Order delivery is computed from
# the order total instead.
EARN_ACTION_POINTS: dict[str, int] = {
    "welcome_bonus": settings.welcome_bonus_points,
    "daily_login": settings.daily_login_points,
    "community_post": 30,
    "comment_created": 5,
    "post_commented": 2,
    "post_liked": 1,
    "followed_user": 5,
    "gained_follower": 10,
    "raffle_winner": settings.raffle_winner_bonus_points,
}

ADMIN_ADJUSTMENT_ACTION = "admin_adjustment"
ORDER_DELIVERED_ACTION = "order_delivered"


@dataclass
class LedgerResult:
    """Outcome of an earn/redeem call.

    ``created`` is ``False`` when the call replayed an already-recorded
    ``(account, action, reference)`` event and nothing was written.
    """

    transaction: LedgerTransaction
    balance: int
    created: bool = True


@dataclass
class MonthlyPointsStats:
    period: str
    earned: int
    spent: int

    @property
    def net(self) -> int:
        return self.earned - self.spent


@dataclass
class PointsOverview:
    account: Account
    tier: TierProgress
    monthly: MonthlyPointsStats
    transactions: list[LedgerTransaction]
    page: int
    limit: int
    has_more: bool


@dataclass
class BalanceReconciliation:
    account_id: UUID
    recorded_balance: int
    ledger_balance: int
    recorded_lifetime: int
    ledger_lifetime: int

    @property
    def balance_drift(self) -> int:
        return self.recorded_balance - self.ledger_balance

    @property
    def is_consistent(self) -> bool:
        return self.balance_drift == 0 and self.recorded_lifetime == self.ledger_lifetime


def _validate_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(f"Points must be a whole number (got {amount!r})")
    if amount <= 0:
        raise InvalidAmountError(f"Points must be positive (got {amount})")
    return amount


class LedgerService:
    """Records earn/redeem transactions and keeps account balances in step.

    ``earn`` and ``redeem`` only flush; the caller owns the commit so several
    ledger movements and their related rows can land in one transaction.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        store: LoyaltyObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._store = store or get_loyalty_store()

    async def get_account(self, account_id: UUID) -> Account:
        account = await self._db.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def create_account(
        self,
        *,
        username: str,
        email: str | None = None,
        country_code: str | None = None,
    ) -> Account:
        """Create an account and grant the welcome bonus in the same commit."""

        account = Account(
            username=username,
            email=email,
            country_code=country_code.upper() if country_code else None,
        )
        self._db.add(account)
        try:
            await self._db.flush()
            await self.earn(
                account.id,
                EARN_ACTION_POINTS["welcome_bonus"],
                action="welcome_bonus",
                description="Welcome to Kiss Magazine!",
                reference_id=str(account.id),
            )
            await self._db.commit()
        except (IntegrityError, LoyaltyError):
            await self._db.rollback()
            raise

        await self._db.refresh(account)
        logger.info("Created loyalty account", account_id=str(account.id), username=username)
        return account

    async def earn(
        self,
        account_id: UUID,
        amount: int,
        *,
        action: str,
        description: str | None = None,
        reference_id: str | None = None,
    ) -> LedgerResult:
        """Credit points. Replays of a referenced event are no-ops."""

        _validate_amount(amount)
        duplicate = await self._replay(account_id, action, reference_id)
        if duplicate is not None:
            return duplicate

        account = await self.get_account(account_id)
        transaction = LedgerTransaction(
            account_id=account.id,
            points_delta=amount,
            kind=LedgerTransactionKind.EARN,
            action=action,
            description=description,
            reference_id=reference_id,
        )
        self._db.add(transaction)
        try:
            await self._db.flush()
        except IntegrityError:
            return await self._recover_duplicate(account_id, action, reference_id)

        await self._db.execute(
            update(Account)
            .where(Account.id == account.id)
            .values(
                points_balance=Account.points_balance + amount,
                lifetime_points=Account.lifetime_points + amount,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        await self._db.refresh(account)
        self._store.record_earn(action, amount)
        logger.info(
            "Recorded ledger transaction",
            account_id=str(account.id),
            kind=LedgerTransactionKind.EARN.value,
            action=action,
            points=amount,
            balance=account.points_balance,
        )
        return LedgerResult(transaction=transaction, balance=int(account.points_balance))

    async def redeem(
        self,
        account_id: UUID,
        amount: int,
        *,
        action: str,
        description: str | None = None,
        reference_id: str | None = None,
    ) -> LedgerResult:
        """Debit points, or raise ``InsufficientBalanceError`` without touching state.

        The balance check and the decrement are one conditional UPDATE, so two
        concurrent debits against the same account cannot both pass on a stale
        balance.
        """

        _validate_amount(amount)
        duplicate = await self._replay(account_id, action, reference_id)
        if duplicate is not None:
            return duplicate

        account = await self.get_account(account_id)
        result = await self._db.execute(
            update(Account)
            .where(Account.id == account.id, Account.points_balance >= amount)
            .values(
                points_balance=Account.points_balance - amount,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        await self._db.refresh(account)
        if result.rowcount == 0:
            self._store.record_insufficient_balance()
            logger.warning(
                "Rejected ledger debit",
                account_id=str(account.id),
                action=action,
                required=amount,
                current=account.points_balance,
            )
            raise InsufficientBalanceError(required=amount, current=int(account.points_balance))

        transaction = LedgerTransaction(
            account_id=account.id,
            points_delta=-amount,
            kind=LedgerTransactionKind.REDEEM,
            action=action,
            description=description,
            reference_id=reference_id,
        )
        self._db.add(transaction)
        try:
            await self._db.flush()
        except IntegrityError:
            return await self._recover_duplicate(account_id, action, reference_id)

        self._store.record_redeem(action, amount)
        logger.info(
            "Recorded ledger transaction",
            account_id=str(account.id),
            kind=LedgerTransactionKind.REDEEM.value,
            action=action,
            points=amount,
            balance=account.points_balance,
        )
        return LedgerResult(transaction=transaction, balance=int(account.points_balance))

    async def award_action(
        self,
        account_id: UUID,
        action: str,
        *,
        amount: int | None = None,
        description: str | None = None,
        reference_id: str | None = None,
    ) -> LedgerResult:
        """Earn for a catalogued platform action, defaulting to its standard value."""

        points = amount if amount is not None else EARN_ACTION_POINTS.get(action)
        if points is None:
            raise InvalidAmountError(f"No default point value for action {action!r}; provide an amount")
        return await self.earn(
            account_id,
            points,
            action=action,
            description=description,
            reference_id=reference_id,
        )

    async def record_daily_login(self, account_id: UUID, *, now: datetime | None = None) -> LedgerResult:
        """Daily login bonus, awarded at most once per account per UTC day."""

        moment = now or datetime.now(timezone.utc)
        return await self.earn(
            account_id,
            EARN_ACTION_POINTS["daily_login"],
            action="daily_login",
            description="Daily login bonus",
            reference_id=moment.astimezone(timezone.utc).date().isoformat(),
        )

    async def award_order_delivery(
        self,
        account_id: UUID,
        *,
        order_id: str,
        order_total: float,
        order_number: str | None = None,
    ) -> LedgerResult | None:
        """One point per ``order_delivery_points_divisor`` spent, once per order."""

        points = int(order_total // settings.order_delivery_points_divisor)
        if points <= 0:
            logger.debug("Order total below delivery award threshold", order_id=order_id)
            return None
        return await self.earn(
            account_id,
            points,
            action=ORDER_DELIVERED_ACTION,
            description=f"Order {order_number or order_id} delivered",
            reference_id=order_id,
        )

    async def adjust(
        self,
        account_id: UUID,
        points: int,
        *,
        notes: str | None = None,
        reference_id: str | None = None,
    ) -> LedgerResult:
        """Signed operator adjustment: positive earns, negative redeems."""

        if isinstance(points, bool) or not isinstance(points, int) or points == 0:
            raise InvalidAmountError("Adjustment must be a non-zero whole number of points")

        verb = "awarded" if points > 0 else "deducted"
        description = f"Admin {verb} points: {notes or 'No reason provided'}"
        if points > 0:
            return await self.earn(
                account_id,
                points,
                action=ADMIN_ADJUSTMENT_ACTION,
                description=description,
                reference_id=reference_id,
            )
        return await self.redeem(
            account_id,
            abs(points),
            action=ADMIN_ADJUSTMENT_ACTION,
            description=description,
            reference_id=reference_id,
        )

    async def list_transactions(
        self,
        account_id: UUID,
        *,
        page: int = 1,
        limit: int = 20,
        kind: LedgerTransactionKind | None = None,
    ) -> tuple[list[LedgerTransaction], bool]:
        """Newest-first page of an account's ledger; ties on ``created_at`` break on id."""

        bounded_limit = max(1, min(limit, settings.ledger_page_size_max))
        offset = (max(page, 1) - 1) * bounded_limit
        stmt = (
            select(LedgerTransaction)
            .where(LedgerTransaction.account_id == account_id)
            .order_by(LedgerTransaction.created_at.desc(), LedgerTransaction.id.desc())
        )
        if kind is not None:
            stmt = stmt.where(LedgerTransaction.kind == kind)

        stmt = stmt.offset(offset).limit(bounded_limit + 1)
        result = await self._db.execute(stmt)
        rows = list(result.scalars().all())
        has_more = len(rows) > bounded_limit
        return rows[:bounded_limit], has_more

    async def monthly_stats(self, account_id: UUID, *, now: datetime | None = None) -> MonthlyPointsStats:
        window = period_window(current_period(now))
        stmt = (
            select(LedgerTransaction.kind, func.coalesce(func.sum(LedgerTransaction.points_delta), 0))
            .where(
                LedgerTransaction.account_id == account_id,
                LedgerTransaction.created_at >= window.starts_at,
                LedgerTransaction.created_at < window.ends_at,
            )
            .group_by(LedgerTransaction.kind)
        )
        result = await self._db.execute(stmt)
        totals = {kind: int(total or 0) for kind, total in result.all()}
        return MonthlyPointsStats(
            period=window.period,
            earned=totals.get(LedgerTransactionKind.EARN, 0),
            spent=abs(totals.get(LedgerTransactionKind.REDEEM, 0)),
        )

    async def points_overview(
        self,
        account_id: UUID,
        *,
        page: int = 1,
        limit: int = 20,
        kind: LedgerTransactionKind | None = None,
        now: datetime | None = None,
    ) -> PointsOverview:
        account = await self.get_account(account_id)
        transactions, has_more = await self.list_transactions(
            account.id, page=page, limit=limit, kind=kind
        )
        monthly = await self.monthly_stats(account.id, now=now)
        logger.debug("Built points overview", account_id=str(account.id), page=page)
        return PointsOverview(
            account=account,
            tier=tier_for(int(account.lifetime_points or 0)),
            monthly=monthly,
            transactions=transactions,
            page=max(page, 1),
            limit=max(1, min(limit, settings.ledger_page_size_max)),
            has_more=has_more,
        )

    async def reconcile_account(self, account_id: UUID) -> BalanceReconciliation:
        """Re-derive balance and lifetime points from the ledger and compare."""

        account = await self.get_account(account_id)
        stmt = select(
            func.coalesce(func.sum(LedgerTransaction.points_delta), 0),
            func.coalesce(
                func.sum(
                    case(
                        (LedgerTransaction.kind == LedgerTransactionKind.EARN, LedgerTransaction.points_delta),
                        else_=0,
                    )
                ),
                0,
            ),
        ).where(LedgerTransaction.account_id == account.id)
        ledger_balance, ledger_lifetime = (await self._db.execute(stmt)).one()
        reconciliation = BalanceReconciliation(
            account_id=account.id,
            recorded_balance=int(account.points_balance or 0),
            ledger_balance=int(ledger_balance or 0),
            recorded_lifetime=int(account.lifetime_points or 0),
            ledger_lifetime=int(ledger_lifetime or 0),
        )
        if not reconciliation.is_consistent:
            logger.warning(
                "Detected ledger balance drift",
                account_id=str(account.id),
                recorded_balance=reconciliation.recorded_balance,
                ledger_balance=reconciliation.ledger_balance,
            )
        return reconciliation

    async def list_account_ids(self) -> Sequence[UUID]:
        result = await self._db.execute(select(Account.id).order_by(Account.created_at.asc()))
        return list(result.scalars().all())

    async def _find_transaction(
        self,
        account_id: UUID,
        action: str,
        reference_id: str,
    ) -> LedgerTransaction | None:
        stmt = select(LedgerTransaction).where(
            and_(
                LedgerTransaction.account_id == account_id,
                LedgerTransaction.action == action,
                LedgerTransaction.reference_id == reference_id,
            )
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def _replay(
        self,
        account_id: UUID,
        action: str,
        reference_id: str | None,
    ) -> LedgerResult | None:
        if reference_id is None:
            return None
        existing = await self._find_transaction(account_id, action, reference_id)
        if existing is None:
            return None

        account = await self.get_account(account_id)
        self._store.record_duplicate(action)
        logger.info(
            "Skipped duplicate ledger event",
            account_id=str(account_id),
            action=action,
            reference_id=reference_id,
            transaction_id=str(existing.id),
        )
        return LedgerResult(transaction=existing, balance=int(account.points_balance), created=False)

    async def _recover_duplicate(
        self,
        account_id: UUID,
        action: str,
        reference_id: str | None,
    ) -> LedgerResult:
        """A concurrent writer recorded the same event first; drop ours and report theirs."""

        await self._db.rollback()
        logger.warning(
            "Detected race when recording ledger transaction",
            account_id=str(account_id),
            action=action,
            reference_id=reference_id,
        )
        if reference_id is not None:
            replay = await self._replay(account_id, action, reference_id)
            if replay is not None:
                return replay
        raise LoyaltyError(f"Ledger transaction for {action!r} could not be recorded")


__all__ = [
    "ADMIN_ADJUSTMENT_ACTION",
    "BalanceReconciliation",
    "EARN_ACTION_POINTS",
    "LedgerResult",
    "LedgerService",
    "MonthlyPointsStats",
    "ORDER_DELIVERED_ACTION",
    "PointsOverview",
]
