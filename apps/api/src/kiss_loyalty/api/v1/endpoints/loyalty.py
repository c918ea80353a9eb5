"""API endpoints for loyalty accounts, the points ledger, and tiers."""

from __future__ import annotations

from datetime import datetime
from typing import Awaitable, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kiss_loyalty.api.dependencies.security import require_admin_api_key
from kiss_loyalty.api.dependencies.session import optional_account_session
from kiss_loyalty.api.errors import to_http_exception
from kiss_loyalty.db.session import get_session
from kiss_loyalty.models.account import Account
from kiss_loyalty.models.ledger import LedgerTransaction, LedgerTransactionKind
from kiss_loyalty.services.errors import LoyaltyError
from kiss_loyalty.services.loyalty import DEFAULT_TIERS, LedgerResult, LedgerService, tier_for


router = APIRouter(prefix="/loyalty", tags=["loyalty"])


class TierResponse(BaseModel):
    name: str
    threshold: int


class TierProgressResponse(BaseModel):
    tier: str
    currentThreshold: int
    nextTier: Optional[str]
    nextThreshold: Optional[int]
    progressPercent: float


class AccountCreateRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    email: Optional[str] = None
    countryCode: Optional[str] = Field(default=None, min_length=2, max_length=2)


class AccountResponse(BaseModel):
    id: UUID
    username: str
    email: Optional[str]
    countryCode: Optional[str]
    pointsBalance: int
    lifetimePoints: int
    tier: TierProgressResponse
    createdAt: datetime


class LedgerTransactionResponse(BaseModel):
    id: UUID
    accountId: UUID
    kind: Literal["earn", "redeem"]
    action: str
    points: int
    pointsDelta: int
    description: Optional[str]
    referenceId: Optional[str]
    createdAt: datetime


class LedgerMovementResponse(BaseModel):
    transaction: LedgerTransactionResponse
    balance: int
    created: bool


class MonthlyStatsResponse(BaseModel):
    period: str
    earned: int
    spent: int
    net: int


class PaginationResponse(BaseModel):
    page: int
    limit: int
    hasMore: bool


class PointsOverviewResponse(BaseModel):
    accountId: UUID
    username: str
    pointsBalance: int
    lifetimePoints: int
    tier: TierProgressResponse
    monthlyStats: MonthlyStatsResponse
    transactions: List[LedgerTransactionResponse]
    pagination: PaginationResponse


class EarnRequest(BaseModel):
    action: str = Field(..., min_length=1, max_length=64)
    points: Optional[int] = Field(default=None, gt=0, description="Defaults to the action's standard value")
    description: Optional[str] = None
    referenceId: Optional[str] = Field(default=None, max_length=128)


class SpendRequest(BaseModel):
    action: str = Field(..., min_length=1, max_length=64)
    points: int = Field(..., gt=0)
    description: Optional[str] = None
    referenceId: Optional[str] = Field(default=None, max_length=128)


class AdjustmentRequest(BaseModel):
    accountId: UUID
    points: int = Field(..., description="Positive awards points, negative deducts them")
    notes: Optional[str] = None
    referenceId: Optional[str] = Field(default=None, max_length=128)


class ReconciliationResponse(BaseModel):
    accountId: UUID
    recordedBalance: int
    ledgerBalance: int
    recordedLifetime: int
    ledgerLifetime: int
    balanceDrift: int
    consistent: bool


def serialize_transaction(transaction: LedgerTransaction) -> LedgerTransactionResponse:
    return LedgerTransactionResponse(
        id=transaction.id,
        accountId=transaction.account_id,
        kind=LedgerTransactionKind(transaction.kind).value,
        action=transaction.action,
        points=transaction.points,
        pointsDelta=int(transaction.points_delta),
        description=transaction.description,
        referenceId=transaction.reference_id,
        createdAt=transaction.created_at,
    )


def _serialize_movement(result: LedgerResult) -> LedgerMovementResponse:
    return LedgerMovementResponse(
        transaction=serialize_transaction(result.transaction),
        balance=result.balance,
        created=result.created,
    )


def _serialize_account(account: Account) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        username=account.username,
        email=account.email,
        countryCode=account.country_code,
        pointsBalance=int(account.points_balance or 0),
        lifetimePoints=int(account.lifetime_points or 0),
        tier=TierProgressResponse(**tier_for(int(account.lifetime_points or 0)).as_dict()),
        createdAt=account.created_at,
    )


async def _commit_movement(db: AsyncSession, movement: Awaitable[LedgerResult]) -> LedgerMovementResponse:
    try:
        result = await movement
        await db.commit()
    except LoyaltyError as error:
        await db.rollback()
        raise to_http_exception(error) from error
    return _serialize_movement(result)


@router.get("/tiers", response_model=List[TierResponse])
async def list_tiers() -> List[TierResponse]:
    """Tier ladder ordered from lowest to highest threshold."""

    return [TierResponse(name=tier.name, threshold=tier.threshold) for tier in DEFAULT_TIERS]


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    request: AccountCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> AccountResponse:
    """Open a loyalty account and grant the welcome bonus."""

    service = LedgerService(db)
    try:
        account = await service.create_account(
            username=request.username,
            email=request.email,
            country_code=request.countryCode,
        )
    except IntegrityError as error:
        raise HTTPException(status_code=409, detail="Username or email already registered") from error
    return _serialize_account(account)


@router.get("/accounts/{account_id}/points", response_model=PointsOverviewResponse)
async def get_points_overview(
    account_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[Literal["earn", "redeem"]] = Query(None, description="Filter by transaction kind"),
    db: AsyncSession = Depends(get_session),
) -> PointsOverviewResponse:
    service = LedgerService(db)
    kind = LedgerTransactionKind(type) if type else None
    try:
        overview = await service.points_overview(account_id, page=page, limit=limit, kind=kind)
    except LoyaltyError as error:
        raise to_http_exception(error) from error

    return PointsOverviewResponse(
        accountId=overview.account.id,
        username=overview.account.username,
        pointsBalance=int(overview.account.points_balance or 0),
        lifetimePoints=int(overview.account.lifetime_points or 0),
        tier=TierProgressResponse(**overview.tier.as_dict()),
        monthlyStats=MonthlyStatsResponse(
            period=overview.monthly.period,
            earned=overview.monthly.earned,
            spent=overview.monthly.spent,
            net=overview.monthly.net,
        ),
        transactions=[serialize_transaction(item) for item in overview.transactions],
        pagination=PaginationResponse(page=overview.page, limit=overview.limit, hasMore=overview.has_more),
    )


@router.post(
    "/accounts/{account_id}/earn",
    response_model=LedgerMovementResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def earn_points(
    account_id: UUID,
    request: EarnRequest,
    db: AsyncSession = Depends(get_session),
) -> LedgerMovementResponse:
    """Record an earn event reported by the order or community flows."""

    service = LedgerService(db)
    return await _commit_movement(
        db,
        service.award_action(
            account_id,
            request.action,
            amount=request.points,
            description=request.description,
            reference_id=request.referenceId,
        ),
    )


@router.post(
    "/accounts/{account_id}/spend",
    response_model=LedgerMovementResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def spend_points(
    account_id: UUID,
    request: SpendRequest,
    db: AsyncSession = Depends(get_session),
) -> LedgerMovementResponse:
    """Debit points for an external flow such as order payment."""

    service = LedgerService(db)
    return await _commit_movement(
        db,
        service.redeem(
            account_id,
            request.points,
            action=request.action,
            description=request.description,
            reference_id=request.referenceId,
        ),
    )


@router.post("/accounts/{account_id}/daily-login", response_model=LedgerMovementResponse)
async def record_daily_login(
    account_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> LedgerMovementResponse:
    service = LedgerService(db)
    return await _commit_movement(db, service.record_daily_login(account_id))


@router.post(
    "/admin/adjustments",
    response_model=LedgerMovementResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def adjust_points(
    request: AdjustmentRequest,
    operator: Account | None = Depends(optional_account_session),
    db: AsyncSession = Depends(get_session),
) -> LedgerMovementResponse:
    """Operator-initiated signed points adjustment."""

    if operator is not None and operator.id == request.accountId:
        raise HTTPException(status_code=400, detail="Cannot adjust your own points")

    service = LedgerService(db)
    return await _commit_movement(
        db,
        service.adjust(
            request.accountId,
            request.points,
            notes=request.notes,
            reference_id=request.referenceId,
        ),
    )


@router.get(
    "/accounts/{account_id}/reconciliation",
    response_model=ReconciliationResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def reconcile_account(
    account_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> ReconciliationResponse:
    service = LedgerService(db)
    try:
        report = await service.reconcile_account(account_id)
    except LoyaltyError as error:
        raise to_http_exception(error) from error
    return ReconciliationResponse(
        accountId=report.account_id,
        recordedBalance=report.recorded_balance,
        ledgerBalance=report.ledger_balance,
        recordedLifetime=report.recorded_lifetime,
        ledgerLifetime=report.ledger_lifetime,
        balanceDrift=report.balance_drift,
        consistent=report.is_consistent,
    )
