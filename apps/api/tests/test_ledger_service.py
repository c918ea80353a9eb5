from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select, update

from kiss_loyalty.models.account import Account
from kiss_loyalty.models.ledger import LedgerTransaction, LedgerTransactionKind
from kiss_loyalty.observability.loyalty import get_loyalty_store
from kiss_loyalty.services.errors import (
    AccountNotFoundError,
    InsufficientBalanceError,
    InvalidAmountError,
)
from kiss_loyalty.services.loyalty import LedgerService
from kiss_loyalty.services.raffle import TicketAllocator
from kiss_loyalty.services.rewards import RedemptionProcessor


async def _transaction_count(session, account_id) -> int:
    stmt = select(func.count(LedgerTransaction.id)).where(LedgerTransaction.account_id == account_id)
    return int((await session.execute(stmt)).scalar_one())


@pytest.mark.asyncio
async def test_create_account_grants_welcome_bonus(session_factory) -> None:
    async with session_factory() as session:
        service = LedgerService(session)
        account = await service.create_account(username="minji", email="minji@example.com", country_code="kr")

        assert account.points_balance == 100
        assert account.lifetime_points == 100
        assert account.country_code == "KR"

        transactions, has_more = await service.list_transactions(account.id)
        assert not has_more
        assert [item.action for item in transactions] == ["welcome_bonus"]
        assert transactions[0].kind == LedgerTransactionKind.EARN


@pytest.mark.asyncio
async def test_earn_updates_balance_and_lifetime(session_factory, make_account) -> None:
    account_id = await make_account("earner")

    async with session_factory() as session:
        service = LedgerService(session)
        result = await service.earn(account_id, 30, action="community_post", description="Posted")
        await session.commit()

        assert result.created
        assert result.balance == 30
        assert result.transaction.points_delta == 30
        account = await session.get(Account, account_id)
        assert account.lifetime_points == 30


@pytest.mark.asyncio
async def test_redeem_debits_balance_without_touching_lifetime(session_factory, make_account) -> None:
    account_id = await make_account("spender", points=600)

    async with session_factory() as session:
        service = LedgerService(session)
        result = await service.redeem(account_id, 250, action="order_payment", reference_id="order-1")
        await session.commit()

        assert result.balance == 350
        assert result.transaction.points_delta == -250
        assert result.transaction.kind == LedgerTransactionKind.REDEEM
        assert result.transaction.points == 250
        account = await session.get(Account, account_id)
        assert account.lifetime_points == 600


@pytest.mark.asyncio
async def test_insufficient_balance_rejects_without_mutation(session_factory, make_account) -> None:
    account_id = await make_account("short", points=80)

    async with session_factory() as session:
        service = LedgerService(session)
        with pytest.raises(InsufficientBalanceError) as excinfo:
            await service.redeem(account_id, 100, action="order_payment")

        assert excinfo.value.required == 100
        assert excinfo.value.current == 80
        assert excinfo.value.as_detail()["needed"] == 20
        await session.rollback()

    async with session_factory() as session:
        account = await session.get(Account, account_id)
        assert account.points_balance == 80
        assert await _transaction_count(session, account_id) == 1

    assert get_loyalty_store().snapshot().ledger["insufficient_balance"] == 1


@pytest.mark.asyncio
async def test_redeem_entire_balance_is_allowed(session_factory, make_account) -> None:
    account_id = await make_account("exact", points=100)

    async with session_factory() as session:
        result = await LedgerService(session).redeem(account_id, 100, action="order_payment")
        await session.commit()

    assert result.balance == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5, 2.5, True])
async def test_invalid_amounts_are_rejected(session_factory, make_account, amount) -> None:
    account_id = await make_account(f"invalid-{uuid4().hex[:6]}", points=50)

    async with session_factory() as session:
        service = LedgerService(session)
        with pytest.raises(InvalidAmountError):
            await service.earn(account_id, amount, action="post_liked")
        with pytest.raises(InvalidAmountError):
            await service.redeem(account_id, amount, action="order_payment")


@pytest.mark.asyncio
async def test_unknown_account(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(AccountNotFoundError):
            await LedgerService(session).earn(uuid4(), 10, action="post_liked")


@pytest.mark.asyncio
async def test_referenced_events_are_recorded_once(session_factory, make_account) -> None:
    account_id = await make_account("idempotent")

    async with session_factory() as session:
        service = LedgerService(session)
        first = await service.earn(account_id, 5, action="comment_created", reference_id="comment-9")
        await session.commit()
        second = await service.earn(account_id, 5, action="comment_created", reference_id="comment-9")
        await session.commit()

        assert first.created
        assert not second.created
        assert second.transaction.id == first.transaction.id
        assert second.balance == 5
        assert await _transaction_count(session, account_id) == 1

    snapshot = get_loyalty_store().snapshot()
    assert snapshot.ledger["idempotent_replays"] == 1


@pytest.mark.asyncio
async def test_unreferenced_events_are_not_deduplicated(session_factory, make_account) -> None:
    account_id = await make_account("repeat")

    async with session_factory() as session:
        service = LedgerService(session)
        await service.earn(account_id, 1, action="post_liked")
        result = await service.earn(account_id, 1, action="post_liked")
        await session.commit()

    assert result.balance == 2


@pytest.mark.asyncio
async def test_daily_login_once_per_utc_day(session_factory, make_account) -> None:
    account_id = await make_account("daily")
    morning = datetime(2026, 10, 19, 1, 0, tzinfo=timezone.utc)
    evening = datetime(2026, 10, 19, 22, 0, tzinfo=timezone.utc)
    next_day = datetime(2026, 10, 20, 0, 5, tzinfo=timezone.utc)

    async with session_factory() as session:
        service = LedgerService(session)
        first = await service.record_daily_login(account_id, now=morning)
        repeat = await service.record_daily_login(account_id, now=evening)
        tomorrow = await service.record_daily_login(account_id, now=next_day)
        await session.commit()

    assert first.created and not repeat.created and tomorrow.created
    assert tomorrow.balance == 4
    assert first.transaction.reference_id == "2026-10-19"


@pytest.mark.asyncio
async def test_award_action_uses_catalog_value(session_factory, make_account) -> None:
    account_id = await make_account("catalog")

    async with session_factory() as session:
        service = LedgerService(session)
        follower = await service.award_action(account_id, "gained_follower", reference_id="follow-1")
        custom = await service.award_action(account_id, "contest_entry", amount=15)
        with pytest.raises(InvalidAmountError):
            await service.award_action(account_id, "contest_entry")
        await session.commit()

    assert follower.transaction.points_delta == 10
    assert custom.balance == 25


@pytest.mark.asyncio
async def test_order_delivery_awards_one_point_per_ten(session_factory, make_account) -> None:
    account_id = await make_account("shopper")

    async with session_factory() as session:
        service = LedgerService(session)
        result = await service.award_order_delivery(
            account_id, order_id="ord-77", order_total=259.99, order_number="KM-0077"
        )
        replay = await service.award_order_delivery(account_id, order_id="ord-77", order_total=259.99)
        small = await service.award_order_delivery(account_id, order_id="ord-78", order_total=9.5)
        await session.commit()

    assert result.transaction.points_delta == 25
    assert result.transaction.description == "Order KM-0077 delivered"
    assert not replay.created
    assert small is None


@pytest.mark.asyncio
async def test_admin_adjustment_is_signed(session_factory, make_account) -> None:
    account_id = await make_account("adjusted", points=200)

    async with session_factory() as session:
        service = LedgerService(session)
        credit = await service.adjust(account_id, 50, notes="Contest prize")
        debit = await service.adjust(account_id, -120, notes="Chargeback")
        with pytest.raises(InsufficientBalanceError):
            await service.adjust(account_id, -1000)
        with pytest.raises(InvalidAmountError):
            await service.adjust(account_id, 0)
        await session.commit()

    assert credit.transaction.description == "Admin awarded points: Contest prize"
    assert debit.transaction.description == "Admin deducted points: Chargeback"
    assert debit.balance == 130


@pytest.mark.asyncio
async def test_transactions_are_paginated_newest_first(session_factory, make_account) -> None:
    account_id = await make_account("history")

    async with session_factory() as session:
        service = LedgerService(session)
        for index in range(5):
            await service.earn(account_id, index + 1, action="post_liked", reference_id=f"like-{index}")
        await service.redeem(account_id, 3, action="order_payment")
        await session.commit()

        first_page, has_more = await service.list_transactions(account_id, page=1, limit=2)
        assert has_more
        assert first_page[0].kind == LedgerTransactionKind.REDEEM
        assert first_page[1].reference_id == "like-4"

        last_page, has_more = await service.list_transactions(account_id, page=3, limit=2)
        assert not has_more
        assert [item.reference_id for item in last_page] == ["like-1", "like-0"]

        redeems, _ = await service.list_transactions(account_id, kind=LedgerTransactionKind.REDEEM)
        assert len(redeems) == 1


@pytest.mark.asyncio
async def test_points_overview_combines_tier_and_monthly_stats(session_factory, make_account) -> None:
    account_id = await make_account("overview", points=600)

    async with session_factory() as session:
        service = LedgerService(session)
        await service.redeem(account_id, 200, action="raffle_tickets")
        await session.commit()

        overview = await service.points_overview(account_id, limit=10)

    assert overview.tier.tier == "Silver"
    assert overview.monthly.earned == 600
    assert overview.monthly.spent == 200
    assert overview.monthly.net == 400
    assert len(overview.transactions) == 2
    assert not overview.has_more


@pytest.mark.asyncio
async def test_reconcile_reports_drift(session_factory, make_account) -> None:
    account_id = await make_account("audited", points=300)

    async with session_factory() as session:
        service = LedgerService(session)
        await service.redeem(account_id, 120, action="order_payment")
        await session.commit()

        clean = await service.reconcile_account(account_id)
        assert clean.is_consistent
        assert clean.ledger_balance == 180
        assert clean.ledger_lifetime == 300

        await session.execute(update(Account).where(Account.id == account_id).values(points_balance=999))
        await session.commit()

        drifted = await service.reconcile_account(account_id)
        assert not drifted.is_consistent
        assert drifted.balance_drift == 819
        assert account_id in await service.list_account_ids()


@pytest.mark.asyncio
async def test_balance_matches_ledger_after_mixed_activity(session_factory) -> None:
    async with session_factory() as session:
        ledger = LedgerService(session)
        account = await ledger.create_account(username="busy-member")
        account_id = account.id
        balances = [account.points_balance]

        steps = [
            lambda: ledger.earn(account_id, 30, action="community_post", reference_id="post-1"),
            lambda: ledger.earn(account_id, 30, action="community_post", reference_id="post-1"),
            lambda: ledger.award_action(account_id, "gained_follower", reference_id="follow-7"),
            lambda: ledger.award_order_delivery(account_id, order_id="ord-1", order_total=12400.0),
            lambda: ledger.redeem(account_id, 60, action="order_payment", reference_id="ord-2"),
            lambda: ledger.adjust(account_id, -15, notes="Duplicate signup bonus"),
        ]
        for step in steps:
            result = await step()
            await session.commit()
            balances.append(result.balance)

        with pytest.raises(InsufficientBalanceError):
            await ledger.redeem(account_id, 10_000, action="order_payment")
        await session.rollback()

    async with session_factory() as session:
        purchase = await TicketAllocator(session).purchase_tickets(account_id, 2, period="2026-10")
        balances.append(purchase.remaining_points)

    async with session_factory() as session:
        outcome = await RedemptionProcessor(session).redeem(account_id, "discount-5")
        balances.append(outcome.remaining_points)

    async with session_factory() as session:
        reconciliation = await LedgerService(session).reconcile_account(account_id)

    # 100 welcome + 30 post + 10 follower + 1240 delivery, less 60 + 15 + 200 tickets + 500 reward.
    assert balances[-1] == 605
    assert reconciliation.is_consistent
    assert reconciliation.recorded_balance == balances[-1]
    assert reconciliation.ledger_lifetime == 1380
    assert min(balances) >= 0
