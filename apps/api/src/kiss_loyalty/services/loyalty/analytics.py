"""Platform-wide points analytics for operators."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kiss_loyalty.models.account import Account
from kiss_loyalty.models.ledger import LedgerTransaction, LedgerTransactionKind
from kiss_loyalty.services.loyalty.tiers import DEFAULT_TIERS, tier_for
from kiss_loyalty.services.periods import ensure_utc


TIMEFRAME_DAYS: dict[str, int] = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}
BREAKDOWNS = ("daily", "weekly", "monthly")
TOP_ACTIONS_LIMIT = 10


def week_start(day: date) -> date:
    """Sunday on or before ``day``."""

    return day - timedelta(days=(day.weekday() + 1) % 7)


def _bucket_key(moment: datetime, breakdown: str) -> str:
    day = ensure_utc(moment).date()
    if breakdown == "weekly":
        return week_start(day).isoformat()
    if breakdown == "monthly":
        return f"{day.year:04d}-{day.month:02d}"
    return day.isoformat()


@dataclass
class _Bucket:
    earned: int = 0
    spent: int = 0
    accounts: set = field(default_factory=set)

    def as_dict(self, key: str) -> dict[str, Any]:
        return {
            "date": key,
            "earned": self.earned,
            "spent": self.spent,
            "net": self.earned - self.spent,
            "activeUsers": len(self.accounts),
        }


@dataclass
class PointsAnalytics:
    timeframe: str
    breakdown: str
    starts_at: datetime
    ends_at: datetime
    chart_data: list[dict[str, Any]]
    top_actions: list[dict[str, Any]]
    tier_distribution: dict[str, int]
    total_earned: int
    total_spent: int
    active_users: int

    @property
    def average_per_user(self) -> float:
        if not self.active_users:
            return 0.0
        return round(self.total_earned / self.active_users, 2)

    def summary(self) -> dict[str, Any]:
        return {
            "totalPointsEarned": self.total_earned,
            "totalPointsSpent": self.total_spent,
            "netPoints": self.total_earned - self.total_spent,
            "activeUsers": self.active_users,
            "averagePerUser": self.average_per_user,
        }


class PointsAnalyticsService:
    """Aggregate ledger activity into chart buckets, top actions, and tier counts."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def build(
        self,
        *,
        timeframe: str = "30d",
        breakdown: str = "daily",
        now: datetime | None = None,
    ) -> PointsAnalytics:
        if timeframe not in TIMEFRAME_DAYS:
            raise ValueError(f"Unsupported timeframe {timeframe!r}")
        if breakdown not in BREAKDOWNS:
            raise ValueError(f"Unsupported breakdown {breakdown!r}")

        ends_at = ensure_utc(now or datetime.now(timezone.utc))
        starts_at = ends_at - timedelta(days=TIMEFRAME_DAYS[timeframe])

        stmt = (
            select(
                LedgerTransaction.account_id,
                LedgerTransaction.kind,
                LedgerTransaction.action,
                LedgerTransaction.points_delta,
                LedgerTransaction.created_at,
            )
            .where(
                LedgerTransaction.created_at >= starts_at,
                LedgerTransaction.created_at <= ends_at,
            )
            .order_by(LedgerTransaction.created_at.asc())
        )
        rows = (await self._db.execute(stmt)).all()

        buckets: dict[str, _Bucket] = defaultdict(_Bucket)
        action_counts: dict[str, int] = defaultdict(int)
        action_points: dict[str, int] = defaultdict(int)
        active: set = set()
        total_earned = 0
        total_spent = 0

        for account_id, kind, action, delta, created_at in rows:
            bucket = buckets[_bucket_key(created_at, breakdown)]
            bucket.accounts.add(account_id)
            active.add(account_id)
            if kind == LedgerTransactionKind.EARN:
                bucket.earned += delta
                total_earned += delta
                action_counts[action] += 1
                action_points[action] += delta
            else:
                bucket.spent += abs(delta)
                total_spent += abs(delta)

        chart_data = [buckets[key].as_dict(key) for key in sorted(buckets)]
        ranked = sorted(action_points, key=lambda name: (-action_points[name], name))[:TOP_ACTIONS_LIMIT]
        top_actions = [
            {
                "action": name,
                "count": action_counts[name],
                "totalPoints": action_points[name],
                "averagePoints": round(action_points[name] / action_counts[name], 2),
            }
            for name in ranked
        ]

        analytics = PointsAnalytics(
            timeframe=timeframe,
            breakdown=breakdown,
            starts_at=starts_at,
            ends_at=ends_at,
            chart_data=chart_data,
            top_actions=top_actions,
            tier_distribution=await self.tier_distribution(),
            total_earned=total_earned,
            total_spent=total_spent,
            active_users=len(active),
        )
        logger.info(
            "Computed points analytics",
            timeframe=timeframe,
            breakdown=breakdown,
            transactions=len(rows),
            active_users=analytics.active_users,
        )
        return analytics

    async def tier_distribution(self) -> dict[str, int]:
        distribution = {tier.name: 0 for tier in DEFAULT_TIERS}
        result = await self._db.execute(select(Account.lifetime_points))
        for (lifetime,) in result.all():
            distribution[tier_for(int(lifetime or 0)).tier] += 1
        return distribution


__all__ = ["BREAKDOWNS", "PointsAnalytics", "PointsAnalyticsService", "TIMEFRAME_DAYS", "week_start"]
