"""Session-aware dependencies for member-facing loyalty APIs."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from kiss_loyalty.db.session import get_session
from kiss_loyalty.models.account import Account


def _parse_account_id(raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid session user identifier",
        ) from error


async def require_account_session(
    session_user: str | None = Header(None, alias="X-Session-User"),
    db: AsyncSession = Depends(get_session),
) -> Account:
    """Resolve the calling account from forwarded session headers."""

    if not session_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing session user context",
        )

    account = await db.get(Account, _parse_account_id(session_user))
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session user not found",
        )
    return account


async def optional_account_session(
    session_user: str | None = Header(None, alias="X-Session-User"),
    db: AsyncSession = Depends(get_session),
) -> Account | None:
    """Like ``require_account_session`` but anonymous callers resolve to ``None``."""

    if not session_user:
        return None
    return await db.get(Account, _parse_account_id(session_user))
