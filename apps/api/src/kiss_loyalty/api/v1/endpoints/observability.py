"""Observability endpoints for the loyalty ledger, raffle, and redemptions."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from kiss_loyalty.api.dependencies.security import require_admin_api_key
from kiss_loyalty.observability.loyalty import get_loyalty_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/loyalty",
    dependencies=[Depends(require_admin_api_key)],
    summary="Loyalty observability snapshot",
)
async def get_loyalty_snapshot() -> dict[str, object]:
    """Aggregated ledger, raffle, and redemption counters (requires admin API key)."""
    store = get_loyalty_store()
    return store.snapshot().as_dict()
