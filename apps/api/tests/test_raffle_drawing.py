import random
from collections import Counter
from uuid import UUID

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from kiss_loyalty.models.account import Account
from kiss_loyalty.models.ledger import LedgerTransaction
from kiss_loyalty.models.raffle import RaffleWinner
from kiss_loyalty.observability.loyalty import get_loyalty_store
from kiss_loyalty.services.errors import AlreadyDrawnError, NoEntriesError
from kiss_loyalty.services.loyalty import LedgerService
from kiss_loyalty.services.raffle import DrawingEngine, TicketAllocator, WeightedEntry, WeightedPool


ALICE = UUID(int=1)
BORA = UUID(int=2)


class FixedOffset(random.Random):
    def __init__(self, offset: int) -> None:
        super().__init__(0)
        self.offset = offset

    def randrange(self, *args, **kwargs) -> int:  # type: ignore[override]
        return self.offset


def test_ticket_offsets_map_to_cumulative_ranges() -> None:
    pool = WeightedPool([WeightedEntry(BORA, 1), WeightedEntry(ALICE, 3)])

    assert pool.total_tickets == 4
    assert [pool.entry_at(offset).account_id for offset in range(4)] == [ALICE, ALICE, ALICE, BORA]
    with pytest.raises(IndexError):
        pool.entry_at(4)


def test_zero_ticket_entries_are_ignored() -> None:
    pool = WeightedPool([WeightedEntry(ALICE, 0), WeightedEntry(BORA, 2)])

    assert len(pool) == 1
    assert pool.draw(random.Random(7)).account_id == BORA


def test_empty_pool_cannot_draw() -> None:
    with pytest.raises(ValueError):
        WeightedPool([]).draw(random.Random(1))


def test_selection_is_proportional_to_tickets() -> None:
    pool = WeightedPool([WeightedEntry(ALICE, 3), WeightedEntry(BORA, 1)])
    rng = random.Random(20240229)
    draws = 20000

    wins = Counter(pool.draw(rng).account_id for _ in range(draws))

    assert 0.73 < wins[ALICE] / draws < 0.77
    assert 0.23 < wins[BORA] / draws < 0.27


def test_same_seed_same_winner() -> None:
    entries = [WeightedEntry(UUID(int=index), index) for index in range(1, 30)]

    first = WeightedPool(entries).draw(random.Random(99))
    second = WeightedPool(list(reversed(entries))).draw(random.Random(99))

    assert first == second


async def _seed_entries(session_factory, make_account, period: str) -> tuple[UUID, UUID]:
    heavy = await make_account("heavy", points=300)
    light = await make_account("light", points=100)
    async with session_factory() as session:
        allocator = TicketAllocator(session)
        await allocator.purchase_tickets(heavy, 3, period=period)
        await allocator.purchase_tickets(light, 1, period=period)
    return heavy, light


@pytest.mark.asyncio
async def test_draw_persists_winner_and_awards_bonus(session_factory, make_account) -> None:
    heavy, light = await _seed_entries(session_factory, make_account, "2026-09")
    first_by_id = min((heavy, light), key=str)

    async with session_factory() as session:
        result = await DrawingEngine(session, rng=FixedOffset(0)).draw_winner("2026-09")

    assert result.winner.account_id == first_by_id
    assert result.total_tickets == 4
    assert result.participants == 2
    expected_tickets = 3 if first_by_id == heavy else 1
    assert result.winning_ticket_count == expected_tickets
    assert result.odds == expected_tickets / 4
    assert result.bonus.transaction.action == "raffle_winner"
    assert result.bonus.transaction.reference_id == str(result.winner.id)

    async with session_factory() as session:
        winner_account = await session.get(Account, first_by_id)
        assert winner_account.points_balance == 1000
        winner = (await session.execute(select(RaffleWinner))).scalar_one()
        assert winner.period == "2026-09"
        assert winner.prize_type == "seoul_trip"
        assert not winner.claimed

    assert get_loyalty_store().snapshot().raffle["draw:drawn"] == 1


@pytest.mark.asyncio
async def test_second_draw_is_rejected(session_factory, make_account) -> None:
    await _seed_entries(session_factory, make_account, "2026-08")

    async with session_factory() as session:
        await DrawingEngine(session, rng=random.Random(3)).draw_winner("2026-08")

    async with session_factory() as session:
        with pytest.raises(AlreadyDrawnError):
            await DrawingEngine(session, rng=random.Random(4)).draw_winner("2026-08")

    async with session_factory() as session:
        winners = (await session.execute(select(func.count(RaffleWinner.id)))).scalar_one()
        bonuses = (
            await session.execute(
                select(func.count(LedgerTransaction.id)).where(LedgerTransaction.action == "raffle_winner")
            )
        ).scalar_one()
    assert winners == 1
    assert bonuses == 1


@pytest.mark.asyncio
async def test_draw_without_entries(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(NoEntriesError):
            await DrawingEngine(session).draw_winner("2026-07")

    assert get_loyalty_store().snapshot().raffle["draw:no_entries"] == 1


class _MissedPreCheckEngine(DrawingEngine):
    """Behaves like a concurrent draw whose existence check ran before the rival winner committed."""

    async def _ensure_not_drawn(self, period: str) -> None:
        return None


@pytest.mark.asyncio
async def test_unique_period_blocks_racing_draw(session_factory, make_account) -> None:
    await _seed_entries(session_factory, make_account, "2026-06")

    async with session_factory() as session:
        first = await DrawingEngine(session, rng=random.Random(5)).draw_winner("2026-06")

    async with session_factory() as session:
        with pytest.raises(AlreadyDrawnError):
            await _MissedPreCheckEngine(session, rng=random.Random(6)).draw_winner("2026-06")

    async with session_factory() as session:
        winners = (await session.execute(select(RaffleWinner))).scalars().all()
        bonuses = (
            await session.execute(
                select(LedgerTransaction).where(LedgerTransaction.action == "raffle_winner")
            )
        ).scalars().all()

    assert [winner.id for winner in winners] == [first.winner.id]
    assert [bonus.reference_id for bonus in bonuses] == [str(first.winner.id)]
    assert get_loyalty_store().snapshot().raffle["draw:already_drawn"] == 1


def test_pool_order_ignores_row_order() -> None:
    ids = [UUID("f0000000-0000-0000-0000-000000000001"), UUID("0a000000-0000-0000-0000-000000000002")]
    forward = WeightedPool([WeightedEntry(ids[0], 2), WeightedEntry(ids[1], 5)])
    backward = WeightedPool([WeightedEntry(ids[1], 5), WeightedEntry(ids[0], 2)])

    assert [forward.entry_at(offset) for offset in range(7)] == [backward.entry_at(offset) for offset in range(7)]
    assert forward.entry_at(0).account_id == ids[1]


class _UnavailableLedger(LedgerService):
    async def earn(self, *args, **kwargs):
        raise OperationalError("UPDATE accounts", {}, Exception("database is locked"))


@pytest.mark.asyncio
async def test_bonus_storage_failure_rolls_back_winner(session_factory, make_account) -> None:
    await _seed_entries(session_factory, make_account, "2026-05")

    async with session_factory() as session:
        engine = DrawingEngine(session, ledger=_UnavailableLedger(session), rng=random.Random(2))
        with pytest.raises(OperationalError):
            await engine.draw_winner("2026-05")

        winners = (await session.execute(select(func.count(RaffleWinner.id)))).scalar_one()

    assert winners == 0
    assert "draw:drawn" not in get_loyalty_store().snapshot().raffle
