import random
from datetime import datetime, timezone

import pytest

from kiss_loyalty.services.errors import InvalidPeriodError, WinnerNotFoundError
from kiss_loyalty.services.raffle import DrawingEngine, RaffleOverviewService, TicketAllocator, odds_percent


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def test_odds_percent() -> None:
    assert odds_percent(1, 3) == 33.33
    assert odds_percent(0, 0) == 0.0


@pytest.mark.asyncio
async def test_current_overview(session_factory, make_account) -> None:
    jiwoo = await make_account("jiwoo", points=500)
    hana = await make_account("hana", points=500)
    seojun = await make_account("seojun", points=500)

    async with session_factory() as session:
        allocator = TicketAllocator(session)
        await allocator.purchase_tickets(jiwoo, 3, period="2026-03")
        await allocator.purchase_tickets(hana, 3, period="2026-03")
        await allocator.purchase_tickets(seojun, 1, period="2026-03")
        await allocator.purchase_tickets(hana, 1, period="2026-02")
        await DrawingEngine(session, rng=random.Random(5)).draw_winner("2026-02")

    async with session_factory() as session:
        overview = await RaffleOverviewService(session).current(account_id=jiwoo, now=NOW)

    assert overview.period == "2026-03"
    assert overview.drawing_at == datetime(2026, 3, 31, 23, 59, 59, tzinfo=timezone.utc)
    assert overview.time_until_drawing_ms == int((overview.drawing_at - NOW).total_seconds() * 1000)
    assert not overview.has_drawing_passed
    assert overview.stats.total_participants == 3
    assert overview.stats.total_tickets == 7
    assert overview.stats.average_tickets_per_user == 2.3
    assert overview.current_winner is None
    assert overview.user_entry == {"tickets": 3, "odds": 42.86}
    assert overview.recent_winners == [
        {"month": "2026-02", "username": "hana", "country": "KR", "claimed": False}
    ]


@pytest.mark.asyncio
async def test_overview_after_drawing_time(session_factory) -> None:
    after = datetime(2026, 4, 30, 23, 59, 59, 500000, tzinfo=timezone.utc)

    async with session_factory() as session:
        overview = await RaffleOverviewService(session).current(now=after)

    assert overview.has_drawing_passed
    assert overview.time_until_drawing_ms == 0
    assert overview.stats.average_tickets_per_user == 0.0
    assert overview.user_entry is None


@pytest.mark.asyncio
async def test_account_entries_reports_odds_and_win(session_factory, make_account) -> None:
    winner = await make_account("lucky", points=300)

    async with session_factory() as session:
        await TicketAllocator(session).purchase_tickets(winner, 3, period="2026-05")
        await DrawingEngine(session).draw_winner("2026-05")

    async with session_factory() as session:
        entries = await RaffleOverviewService(session).account_entries(winner, "2026-05")

    assert entries.user_tickets == 3
    assert entries.total_tickets == 3
    assert entries.odds == 100.0
    assert entries.has_won
    assert entries.winner.prize_description.startswith("5-Day Seoul Adventure Trip")


@pytest.mark.asyncio
async def test_account_without_entries(session_factory, make_account) -> None:
    account_id = await make_account("browser")

    async with session_factory() as session:
        entries = await RaffleOverviewService(session).account_entries(account_id, "2026-05")
        with pytest.raises(InvalidPeriodError):
            await RaffleOverviewService(session).account_entries(account_id, "May 2026")

    assert entries.user_tickets == 0
    assert entries.odds == 0.0
    assert not entries.has_won


@pytest.mark.asyncio
async def test_claim_prize_is_idempotent(session_factory, make_account) -> None:
    account_id = await make_account("claimant", points=100)

    async with session_factory() as session:
        await TicketAllocator(session).purchase_tickets(account_id, 1, period="2026-06")
        await DrawingEngine(session).draw_winner("2026-06")

    async with session_factory() as session:
        service = RaffleOverviewService(session)
        first = await service.claim_prize("2026-06")
        claimed_at = first.claimed_at
        second = await service.claim_prize("2026-06")

        assert first.claimed
        assert claimed_at is not None
        assert second.claimed_at == claimed_at

        with pytest.raises(WinnerNotFoundError):
            await service.claim_prize("2026-01")
