"""Exchange points for catalog rewards and issue fulfillment payloads."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kiss_loyalty.core.settings import settings
from kiss_loyalty.models.redemption import RewardRedemption, RewardRedemptionStatus
from kiss_loyalty.observability.loyalty import LoyaltyObservabilityStore, get_loyalty_store
from kiss_loyalty.services.errors import FulfillmentError, LoyaltyError, MissingShippingAddressError
from kiss_loyalty.services.loyalty.ledger_service import LedgerService
from kiss_loyalty.services.rewards.catalog import RewardDefinition, RewardType, get_redeemable_reward


REWARD_REDEMPTION_ACTION = "reward_redemption"
PHYSICAL_DELIVERY_ESTIMATE = "10-14 business days from Seoul"

FulfillmentHandler = Callable[[RewardDefinition, RewardRedemption, datetime], dict[str, Any]]


def _digits(length: int) -> str:
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def fulfill_discount(reward: RewardDefinition, redemption: RewardRedemption, now: datetime) -> dict[str, Any]:
    expires_at = now + timedelta(days=settings.discount_code_validity_days)
    return {
        "discountCode": f"KISS{_digits(6)}",
        "expiresAt": expires_at.isoformat(),
        "instructions": "Apply this code at checkout on your next order.",
    }


def fulfill_physical(reward: RewardDefinition, redemption: RewardRedemption, now: datetime) -> dict[str, Any]:
    if not redemption.shipping_address:
        raise FulfillmentError(f"Redemption {redemption.id} has no shipping address")
    return {
        "trackingNumber": None,
        "estimatedDelivery": PHYSICAL_DELIVERY_ESTIMATE,
        "shippingAddress": redemption.shipping_address,
    }


def fulfill_access(reward: RewardDefinition, redemption: RewardRedemption, now: datetime) -> dict[str, Any]:
    return {
        "accessCode": f"KC{_digits(8)}",
        "instructions": f"Use this access code to unlock {reward.name}. Check your email for details.",
    }


DEFAULT_FULFILLMENT_HANDLERS: dict[RewardType, FulfillmentHandler] = {
    RewardType.DISCOUNT: fulfill_discount,
    RewardType.PHYSICAL: fulfill_physical,
    RewardType.DIGITAL: fulfill_access,
    RewardType.EXPERIENCE: fulfill_access,
}


@dataclass
class RedemptionOutcome:
    redemption: RewardRedemption
    reward: RewardDefinition
    remaining_points: int

    @property
    def fulfilled(self) -> bool:
        return self.redemption.status == RewardRedemptionStatus.FULFILLED


class RedemptionProcessor:
    """Debit, record, then fulfill a reward redemption.

    The debit and the pending redemption row are committed together before any
    fulfillment runs. A fulfillment failure keeps the debit and leaves the
    redemption ``failed`` with ``needs_reconciliation`` set for an operator.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        ledger: LedgerService | None = None,
        store: LoyaltyObservabilityStore | None = None,
        handlers: Mapping[RewardType, FulfillmentHandler] | None = None,
    ) -> None:
        self._db = db_session
        self._store = store or get_loyalty_store()
        self._ledger = ledger or LedgerService(db_session, store=self._store)
        self._handlers = dict(handlers or DEFAULT_FULFILLMENT_HANDLERS)

    async def redeem(
        self,
        account_id: UUID,
        reward_id: str,
        *,
        shipping_address: dict[str, Any] | None = None,
    ) -> RedemptionOutcome:
        reward = get_redeemable_reward(reward_id)
        if reward.requires_shipping and not shipping_address:
            raise MissingShippingAddressError(reward_id)

        redemption_id = uuid4()
        try:
            debit = await self._ledger.redeem(
                account_id,
                reward.points_cost,
                action=REWARD_REDEMPTION_ACTION,
                description=f"Redeemed: {reward.name}",
                reference_id=str(redemption_id),
            )
            redemption = RewardRedemption(
                id=redemption_id,
                account_id=account_id,
                reward_id=reward.id,
                reward_name=reward.name,
                reward_type=reward.reward_type.value,
                points_cost=reward.points_cost,
                ledger_transaction_id=debit.transaction.id,
                status=RewardRedemptionStatus.PENDING,
                shipping_address=shipping_address if reward.requires_shipping else None,
                needs_reconciliation=False,
            )
            self._db.add(redemption)
            await self._db.commit()
        except (LoyaltyError, SQLAlchemyError):
            await self._db.rollback()
            raise

        logger.info(
            "Created reward redemption",
            redemption_id=str(redemption.id),
            account_id=str(account_id),
            reward_id=reward.id,
            points=reward.points_cost,
        )

        await self._fulfill(reward, redemption)
        return RedemptionOutcome(redemption=redemption, reward=reward, remaining_points=debit.balance)

    async def _fulfill(self, reward: RewardDefinition, redemption: RewardRedemption) -> None:
        now = datetime.now(timezone.utc)
        handler = self._handlers.get(reward.reward_type)
        try:
            if handler is None:
                raise FulfillmentError(f"No fulfillment handler for reward type {reward.reward_type.value}")
            redemption.fulfillment_data = handler(reward, redemption, now)
            redemption.status = RewardRedemptionStatus.FULFILLED
            redemption.fulfilled_at = now
            await self._db.commit()
        except Exception as exc:
            await self._db.rollback()
            await self._mark_failed(redemption, exc)
            return

        self._store.record_redemption(RewardRedemptionStatus.FULFILLED.value)
        logger.info(
            "Fulfilled reward redemption",
            redemption_id=str(redemption.id),
            reward_type=reward.reward_type.value,
        )

    async def _mark_failed(self, redemption: RewardRedemption, error: Exception) -> None:
        """Flag a debited redemption for an operator. The debit itself is already committed."""

        await self._db.refresh(redemption)
        redemption.status = RewardRedemptionStatus.FAILED
        redemption.needs_reconciliation = True
        redemption.failure_reason = str(error) or error.__class__.__name__
        await self._db.commit()
        self._store.record_redemption(RewardRedemptionStatus.FAILED.value)
        logger.opt(exception=error).error(
            "Reward fulfillment failed; points retained for reconciliation",
            redemption_id=str(redemption.id),
            reward_id=redemption.reward_id,
        )

    async def list_for_account(self, account_id: UUID, *, limit: int = 50) -> list[RewardRedemption]:
        stmt = (
            select(RewardRedemption)
            .where(RewardRedemption.account_id == account_id)
            .order_by(RewardRedemption.created_at.desc(), RewardRedemption.id.desc())
            .limit(max(1, min(limit, settings.ledger_page_size_max)))
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def reconciliation_queue(
        self,
        *,
        limit: int = 100,
        now: datetime | None = None,
    ) -> list[RewardRedemption]:
        """Debited redemptions that still need an operator.

        Covers failed fulfillments and redemptions stuck in ``pending`` past
        ``redemption_pending_timeout_minutes``, which happens when the failure
        itself could not be recorded.
        """

        cutoff = (now or datetime.now(timezone.utc)) - timedelta(
            minutes=settings.redemption_pending_timeout_minutes
        )
        stmt = (
            select(RewardRedemption)
            .where(
                or_(
                    and_(
                        RewardRedemption.status == RewardRedemptionStatus.FAILED,
                        RewardRedemption.needs_reconciliation.is_(True),
                    ),
                    and_(
                        RewardRedemption.status == RewardRedemptionStatus.PENDING,
                        RewardRedemption.created_at < cutoff,
                    ),
                )
            )
            .order_by(RewardRedemption.created_at.asc(), RewardRedemption.id.asc())
            .limit(max(1, min(limit, settings.ledger_page_size_max)))
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())


__all__ = [
    "DEFAULT_FULFILLMENT_HANDLERS",
    "FulfillmentHandler",
    "RedemptionOutcome",
    "RedemptionProcessor",
    "REWARD_REDEMPTION_ACTION",
    "fulfill_access",
    "fulfill_discount",
    "fulfill_physical",
]
