"""API endpoints for the reward catalog and point redemptions."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from kiss_loyalty.api.dependencies.security import require_admin_api_key
from kiss_loyalty.api.dependencies.session import optional_account_session, require_account_session
from kiss_loyalty.api.errors import to_http_exception
from kiss_loyalty.db.session import get_session
from kiss_loyalty.models.account import Account
from kiss_loyalty.models.redemption import RewardRedemption, RewardRedemptionStatus
from kiss_loyalty.services.errors import LoyaltyError
from kiss_loyalty.services.rewards import RedemptionProcessor, group_listings, list_rewards


router = APIRouter(prefix="/loyalty", tags=["rewards"])


class ShippingAddress(BaseModel):
    name: str
    line1: str
    line2: Optional[str] = None
    city: str
    region: Optional[str] = None
    postalCode: str
    country: str = Field(..., min_length=2, max_length=2)


class RedeemRewardRequest(BaseModel):
    rewardId: str
    shippingAddress: Optional[ShippingAddress] = None


class RedemptionResponse(BaseModel):
    id: UUID
    accountId: UUID
    rewardId: str
    rewardName: str
    rewardType: str
    pointsCost: int
    status: Literal["pending", "fulfilled", "failed"]
    fulfillmentData: Optional[Dict[str, Any]]
    shippingAddress: Optional[Dict[str, Any]]
    failureReason: Optional[str]
    needsReconciliation: bool
    ledgerTransactionId: Optional[UUID]
    createdAt: datetime
    fulfilledAt: Optional[datetime]


class RedeemRewardResponse(BaseModel):
    redemption: RedemptionResponse
    remainingPoints: int
    message: str


class RewardCatalogResponse(BaseModel):
    userPoints: int
    filters: Dict[str, Optional[str]]
    rewards: Optional[List[Dict[str, Any]]] = None
    groups: Optional[Dict[str, List[Dict[str, Any]]]] = None


def _serialize_redemption(redemption: RewardRedemption) -> RedemptionResponse:
    return RedemptionResponse(
        id=redemption.id,
        accountId=redemption.account_id,
        rewardId=redemption.reward_id,
        rewardName=redemption.reward_name,
        rewardType=redemption.reward_type,
        pointsCost=int(redemption.points_cost),
        status=RewardRedemptionStatus(redemption.status).value,
        fulfillmentData=redemption.fulfillment_data,
        shippingAddress=redemption.shipping_address,
        failureReason=redemption.failure_reason,
        needsReconciliation=bool(redemption.needs_reconciliation),
        ledgerTransactionId=redemption.ledger_transaction_id,
        createdAt=redemption.created_at,
        fulfilledAt=redemption.fulfilled_at,
    )


@router.get("/rewards", response_model=RewardCatalogResponse)
async def list_reward_catalog(
    category: Optional[str] = Query(None),
    user_level: Optional[str] = Query(None),
    account: Account | None = Depends(optional_account_session),
) -> RewardCatalogResponse:
    """Catalog with affordability for the caller. Grouped unless a category is requested."""

    balance = int(account.points_balance or 0) if account is not None else 0
    listings = list_rewards(balance=balance, category=category, user_level=user_level)
    filters = {"category": category, "userLevel": user_level}
    if category:
        return RewardCatalogResponse(
            userPoints=balance,
            filters=filters,
            rewards=[item.as_dict() for item in listings],
        )
    return RewardCatalogResponse(
        userPoints=balance,
        filters=filters,
        groups={name: [item.as_dict() for item in items] for name, items in group_listings(listings).items()},
    )


@router.post(
    "/rewards/redeem",
    response_model=RedeemRewardResponse,
    status_code=status.HTTP_201_CREATED,
)
async def redeem_reward(
    request: RedeemRewardRequest,
    account: Account = Depends(require_account_session),
    db: AsyncSession = Depends(get_session),
) -> RedeemRewardResponse:
    processor = RedemptionProcessor(db)
    try:
        outcome = await processor.redeem(
            account.id,
            request.rewardId,
            shipping_address=request.shippingAddress.model_dump() if request.shippingAddress else None,
        )
    except LoyaltyError as error:
        raise to_http_exception(error) from error

    message = (
        f"Successfully redeemed {outcome.reward.name}!"
        if outcome.fulfilled
        else f"Redeemed {outcome.reward.name}; fulfillment is delayed and our team has been notified."
    )
    return RedeemRewardResponse(
        redemption=_serialize_redemption(outcome.redemption),
        remainingPoints=outcome.remaining_points,
        message=message,
    )


@router.get("/redemptions", response_model=List[RedemptionResponse])
async def list_redemptions(
    limit: int = Query(50, ge=1, le=100),
    account: Account = Depends(require_account_session),
    db: AsyncSession = Depends(get_session),
) -> List[RedemptionResponse]:
    processor = RedemptionProcessor(db)
    redemptions = await processor.list_for_account(account.id, limit=limit)
    return [_serialize_redemption(item) for item in redemptions]


@router.get(
    "/admin/redemptions/reconciliation",
    response_model=List[RedemptionResponse],
    dependencies=[Depends(require_admin_api_key)],
)
async def list_reconciliation_queue(
    limit: int = Query(100, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> List[RedemptionResponse]:
    """Failed or stuck redemptions awaiting manual reconciliation."""

    processor = RedemptionProcessor(db)
    redemptions = await processor.reconciliation_queue(limit=limit)
    return [_serialize_redemption(item) for item in redemptions]
