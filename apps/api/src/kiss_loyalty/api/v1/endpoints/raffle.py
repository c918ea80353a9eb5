"""API endpoints for the monthly Seoul trip raffle."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from kiss_loyalty.api.dependencies.security import require_admin_api_key
from kiss_loyalty.api.dependencies.session import optional_account_session, require_account_session
from kiss_loyalty.api.errors import to_http_exception
from kiss_loyalty.core.settings import settings
from kiss_loyalty.db.session import get_session
from kiss_loyalty.models.account import Account
from kiss_loyalty.models.raffle import RaffleWinner
from kiss_loyalty.services.errors import LoyaltyError
from kiss_loyalty.services.raffle import (
    PRIZE_DETAILS,
    DrawingEngine,
    RaffleOverviewService,
    TicketAllocator,
)


router = APIRouter(tags=["raffle"])


class RaffleStatsResponse(BaseModel):
    totalParticipants: int
    totalTickets: int
    averageTicketsPerUser: float


class CurrentRaffleResponse(BaseModel):
    month: str
    drawingDate: datetime
    timeUntilDrawing: int
    hasDrawingPassed: bool
    stats: RaffleStatsResponse
    currentWinner: Optional[Dict[str, Any]]
    userEntry: Optional[Dict[str, Any]]
    recentWinners: List[Dict[str, Any]]
    prize: Dict[str, str]


class WinnerResponse(BaseModel):
    id: UUID
    accountId: UUID
    period: str
    prizeType: str
    prizeDescription: Optional[str]
    claimed: bool
    claimedAt: Optional[datetime]
    drawnAt: datetime


class AccountEntriesResponse(BaseModel):
    month: str
    userTickets: int
    totalTickets: int
    odds: float
    hasWon: bool
    winner: Optional[WinnerResponse]


class PurchaseTicketsRequest(BaseModel):
    ticketCount: int = Field(1, description="Tickets to purchase in this call")


class PurchaseTicketsResponse(BaseModel):
    month: str
    ticketsPurchased: int
    pointsSpent: int
    totalTickets: int
    remainingPoints: int
    message: str


class DrawRequest(BaseModel):
    month: str = Field(..., description="Raffle period in YYYY-MM format")


class DrawResponse(BaseModel):
    winner: WinnerResponse
    username: str
    winningTicketCount: int
    totalTickets: int
    participants: int
    odds: float
    bonusPoints: int


def _serialize_winner(winner: RaffleWinner) -> WinnerResponse:
    return WinnerResponse(
        id=winner.id,
        accountId=winner.account_id,
        period=winner.period,
        prizeType=winner.prize_type,
        prizeDescription=winner.prize_description,
        claimed=bool(winner.claimed),
        claimedAt=winner.claimed_at,
        drawnAt=winner.drawn_at,
    )


@router.get("/raffle/current", response_model=CurrentRaffleResponse)
async def get_current_raffle(
    account: Account | None = Depends(optional_account_session),
    db: AsyncSession = Depends(get_session),
) -> CurrentRaffleResponse:
    service = RaffleOverviewService(db)
    overview = await service.current(account_id=account.id if account is not None else None)
    return CurrentRaffleResponse(
        month=overview.period,
        drawingDate=overview.drawing_at,
        timeUntilDrawing=overview.time_until_drawing_ms,
        hasDrawingPassed=overview.has_drawing_passed,
        stats=RaffleStatsResponse(
            totalParticipants=overview.stats.total_participants,
            totalTickets=overview.stats.total_tickets,
            averageTicketsPerUser=overview.stats.average_tickets_per_user,
        ),
        currentWinner=overview.current_winner,
        userEntry=overview.user_entry,
        recentWinners=overview.recent_winners,
        prize=dict(PRIZE_DETAILS),
    )


@router.get("/raffle/entries", response_model=AccountEntriesResponse)
async def get_raffle_entries(
    month: Optional[str] = Query(None, description="Raffle period in YYYY-MM format"),
    account: Account = Depends(require_account_session),
    db: AsyncSession = Depends(get_session),
) -> AccountEntriesResponse:
    service = RaffleOverviewService(db)
    try:
        entries = await service.account_entries(account.id, month)
    except LoyaltyError as error:
        raise to_http_exception(error) from error
    return AccountEntriesResponse(
        month=entries.period,
        userTickets=entries.user_tickets,
        totalTickets=entries.total_tickets,
        odds=entries.odds,
        hasWon=entries.has_won,
        winner=_serialize_winner(entries.winner) if entries.winner is not None else None,
    )


@router.post("/raffle/entries", response_model=PurchaseTicketsResponse, status_code=status.HTTP_201_CREATED)
async def purchase_raffle_tickets(
    request: PurchaseTicketsRequest,
    account: Account = Depends(require_account_session),
    db: AsyncSession = Depends(get_session),
) -> PurchaseTicketsResponse:
    """Spend points on tickets for the current month's drawing."""

    allocator = TicketAllocator(db)
    try:
        purchase = await allocator.purchase_tickets(account.id, request.ticketCount)
    except LoyaltyError as error:
        raise to_http_exception(error) from error
    return PurchaseTicketsResponse(
        month=purchase.period,
        ticketsPurchased=purchase.tickets_purchased,
        pointsSpent=purchase.points_spent,
        totalTickets=purchase.total_tickets,
        remainingPoints=purchase.remaining_points,
        message=f"Successfully purchased {purchase.tickets_purchased} raffle tickets!",
    )


@router.post(
    "/admin/raffle/draw",
    response_model=DrawResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin_api_key)],
)
async def draw_raffle_winner(
    request: DrawRequest,
    db: AsyncSession = Depends(get_session),
) -> DrawResponse:
    """Draw the single winner for a period. A second draw is rejected."""

    engine = DrawingEngine(db)
    try:
        result = await engine.draw_winner(request.month)
    except LoyaltyError as error:
        raise to_http_exception(error) from error

    winner_account = await db.get(Account, result.winner.account_id)
    return DrawResponse(
        winner=_serialize_winner(result.winner),
        username=winner_account.username if winner_account is not None else "",
        winningTicketCount=result.winning_ticket_count,
        totalTickets=result.total_tickets,
        participants=result.participants,
        odds=round(result.odds * 100, 2),
        bonusPoints=settings.raffle_winner_bonus_points,
    )


@router.post(
    "/admin/raffle/winners/{period}/claim",
    response_model=WinnerResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def claim_raffle_prize(
    period: str,
    db: AsyncSession = Depends(get_session),
) -> WinnerResponse:
    service = RaffleOverviewService(db)
    try:
        winner = await service.claim_prize(period)
    except LoyaltyError as error:
        raise to_http_exception(error) from error
    return _serialize_winner(winner)
