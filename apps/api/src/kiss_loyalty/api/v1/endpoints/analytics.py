from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from kiss_loyalty.api.dependencies.security import require_admin_api_key
from kiss_loyalty.db.session import get_session
from kiss_loyalty.services.loyalty import PointsAnalyticsService


router = APIRouter(prefix="/loyalty/analytics", tags=["analytics"])


class PointsAnalyticsResponse(BaseModel):
    timeframe: str
    breakdown: str
    startDate: datetime
    endDate: datetime
    summary: Dict[str, Any]
    chartData: List[Dict[str, Any]]
    topActions: List[Dict[str, Any]]
    tierDistribution: Dict[str, int]


@router.get(
    "/points",
    response_model=PointsAnalyticsResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def get_points_analytics(
    timeframe: Literal["7d", "30d", "90d", "1y"] = Query("30d"),
    breakdown: Literal["daily", "weekly", "monthly"] = Query("daily"),
    db: AsyncSession = Depends(get_session),
) -> PointsAnalyticsResponse:
    """Points earned and spent across the platform over a trailing window."""

    analytics = await PointsAnalyticsService(db).build(timeframe=timeframe, breakdown=breakdown)
    return PointsAnalyticsResponse(
        timeframe=analytics.timeframe,
        breakdown=analytics.breakdown,
        startDate=analytics.starts_at,
        endDate=analytics.ends_at,
        summary=analytics.summary(),
        chartData=analytics.chart_data,
        topActions=analytics.top_actions,
        tierDistribution=analytics.tier_distribution,
    )
