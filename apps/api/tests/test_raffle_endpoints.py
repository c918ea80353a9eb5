import pytest
from httpx import ASGITransport, AsyncClient

from kiss_loyalty.services.periods import current_period


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_purchase_tickets_and_view_entries(app_with_db, make_account) -> None:
    app, _ = app_with_db
    account_id = await make_account("raffle-fan", points=600)
    headers = {"X-Session-User": str(account_id)}

    async with _client(app) as client:
        purchase = await client.post("/api/v1/raffle/entries", json={"ticketCount": 5}, headers=headers)
        entries = await client.get("/api/v1/raffle/entries", headers=headers)
        current = await client.get("/api/v1/raffle/current", headers=headers)

    assert purchase.status_code == 201
    assert purchase.json() == {
        "month": current_period(),
        "ticketsPurchased": 5,
        "pointsSpent": 500,
        "totalTickets": 5,
        "remainingPoints": 100,
        "message": "Successfully purchased 5 raffle tickets!",
    }

    entry_payload = entries.json()
    assert entry_payload["userTickets"] == 5
    assert entry_payload["odds"] == 100.0
    assert entry_payload["hasWon"] is False

    overview = current.json()
    assert overview["month"] == current_period()
    assert overview["stats"]["totalParticipants"] == 1
    assert overview["userEntry"] == {"tickets": 5, "odds": 100.0}
    assert overview["prize"]["name"] == "5-Day Seoul Adventure Trip"


@pytest.mark.asyncio
async def test_purchase_validation(app_with_db, make_account) -> None:
    app, _ = app_with_db
    account_id = await make_account("raffle-poor", points=150)
    headers = {"X-Session-User": str(account_id)}

    async with _client(app) as client:
        too_many = await client.post("/api/v1/raffle/entries", json={"ticketCount": 11}, headers=headers)
        too_poor = await client.post("/api/v1/raffle/entries", json={"ticketCount": 2}, headers=headers)
        anonymous = await client.post("/api/v1/raffle/entries", json={"ticketCount": 1})

    assert too_many.status_code == 400
    assert too_many.json()["detail"]["error"] == "invalid_ticket_count"
    assert too_poor.status_code == 400
    assert too_poor.json()["detail"]["needed"] == 50
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_admin_draw_and_claim(app_with_db, make_account) -> None:
    app, session_factory = app_with_db
    account_id = await make_account("winner-to-be", points=300)
    headers = {"X-Session-User": str(account_id)}

    async with _client(app) as client:
        await client.post("/api/v1/raffle/entries", json={"ticketCount": 3}, headers=headers)
        month = current_period()

        drawn = await client.post("/api/v1/admin/raffle/draw", json={"month": month})
        again = await client.post("/api/v1/admin/raffle/draw", json={"month": month})
        late = await client.post("/api/v1/raffle/entries", json={"ticketCount": 1}, headers=headers)
        empty = await client.post("/api/v1/admin/raffle/draw", json={"month": "2020-01"})
        malformed = await client.post("/api/v1/admin/raffle/draw", json={"month": "January"})
        claimed = await client.post(f"/api/v1/admin/raffle/winners/{month}/claim")
        missing = await client.post("/api/v1/admin/raffle/winners/2020-01/claim")
        entries = await client.get("/api/v1/raffle/entries", params={"month": month}, headers=headers)

    assert drawn.status_code == 201
    result = drawn.json()
    assert result["username"] == "winner-to-be"
    assert result["odds"] == 100.0
    assert result["bonusPoints"] == 1000

    assert again.status_code == 409
    assert again.json()["detail"]["error"] == "already_drawn"
    assert late.status_code == 409
    assert late.json()["detail"]["error"] == "raffle_closed"
    assert empty.status_code == 409
    assert empty.json()["detail"]["error"] == "no_entries"
    assert malformed.status_code == 400

    assert claimed.status_code == 200
    assert claimed.json()["claimed"] is True
    assert missing.status_code == 404

    winner_view = entries.json()
    assert winner_view["hasWon"] is True
    assert winner_view["winner"]["prizeType"] == "seoul_trip"
    assert winner_view["winner"]["claimed"] is True
