"""Translate loyalty domain errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from kiss_loyalty.services.errors import (
    AccountNotFoundError,
    AlreadyDrawnError,
    LoyaltyError,
    NoEntriesError,
    RaffleClosedError,
    WinnerNotFoundError,
)


def to_http_exception(error: LoyaltyError) -> HTTPException:
    if isinstance(error, (AccountNotFoundError, WinnerNotFoundError)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, (AlreadyDrawnError, NoEntriesError, RaffleClosedError)):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=error.as_detail())


__all__ = ["to_http_exception"]
