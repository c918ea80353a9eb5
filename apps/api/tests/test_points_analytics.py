from datetime import date

import pytest

from kiss_loyalty.services.loyalty import LedgerService, PointsAnalyticsService
from kiss_loyalty.services.loyalty.analytics import week_start


def test_weeks_start_on_sunday() -> None:
    assert week_start(date(2026, 10, 21)) == date(2026, 10, 18)
    assert week_start(date(2026, 10, 18)) == date(2026, 10, 18)
    assert week_start(date(2026, 10, 17)) == date(2026, 10, 11)


@pytest.mark.asyncio
async def test_points_analytics_summary(session_factory, make_account) -> None:
    minji = await make_account("minji-analytics", points=600)
    joon = await make_account("joon-analytics", points=2500)

    async with session_factory() as session:
        ledger = LedgerService(session)
        await ledger.earn(minji, 30, action="community_post")
        await ledger.earn(minji, 30, action="community_post")
        await ledger.earn(joon, 5, action="comment_created")
        await ledger.redeem(joon, 500, action="reward_redemption")
        await session.commit()

        analytics = await PointsAnalyticsService(session).build(timeframe="7d", breakdown="daily")

    summary = analytics.summary()
    assert summary["totalPointsEarned"] == 3165
    assert summary["totalPointsSpent"] == 500
    assert summary["netPoints"] == 2665
    assert summary["activeUsers"] == 2
    assert summary["averagePerUser"] == 1582.5

    assert len(analytics.chart_data) == 1
    bucket = analytics.chart_data[0]
    assert bucket["earned"] == 3165
    assert bucket["spent"] == 500
    assert bucket["net"] == 2665
    assert bucket["activeUsers"] == 2

    assert [item["action"] for item in analytics.top_actions] == [
        "admin_adjustment",
        "community_post",
        "comment_created",
    ]
    community = analytics.top_actions[1]
    assert community["count"] == 2
    assert community["averagePoints"] == 30.0

    assert analytics.tier_distribution["Silver"] == 1
    assert analytics.tier_distribution["Gold"] == 1
    assert analytics.tier_distribution["Diamond"] == 0


@pytest.mark.asyncio
async def test_monthly_breakdown_keys(session_factory, make_account) -> None:
    await make_account("monthly", points=10)

    async with session_factory() as session:
        analytics = await PointsAnalyticsService(session).build(timeframe="1y", breakdown="monthly")

    assert len(analytics.chart_data) == 1
    assert len(analytics.chart_data[0]["date"]) == len("2026-10")


@pytest.mark.asyncio
async def test_unsupported_options(session_factory) -> None:
    async with session_factory() as session:
        service = PointsAnalyticsService(session)
        with pytest.raises(ValueError):
            await service.build(timeframe="2w")
        with pytest.raises(ValueError):
            await service.build(breakdown="hourly")
