"""Calendar-month period helpers shared by the ledger and the raffle."""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from kiss_loyalty.services.errors import InvalidPeriodError


_PERIOD_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def ensure_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything in this service is stored as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def current_period(now: datetime | None = None) -> str:
    moment = ensure_utc(now or datetime.now(timezone.utc))
    return f"{moment.year:04d}-{moment.month:02d}"


def parse_period(period: str) -> tuple[int, int]:
    match = _PERIOD_PATTERN.match(period or "")
    if not match:
        raise InvalidPeriodError(period)
    return int(match.group(1)), int(match.group(2))


@dataclass(frozen=True)
class PeriodWindow:
    period: str
    starts_at: datetime
    ends_at: datetime

    @property
    def drawing_at(self) -> datetime:
        """Last second of the period's final day."""

        return self.ends_at - timedelta(seconds=1)

    def contains(self, moment: datetime) -> bool:
        return self.starts_at <= ensure_utc(moment) < self.ends_at


def period_window(period: str) -> PeriodWindow:
    """Half-open ``[start, end)`` UTC bounds of a ``YYYY-MM`` period."""

    year, month = parse_period(period)
    starts_at = datetime(year, month, 1, tzinfo=timezone.utc)
    last_day = calendar.monthrange(year, month)[1]
    ends_at = datetime(year, month, last_day, tzinfo=timezone.utc) + timedelta(days=1)
    return PeriodWindow(period=period, starts_at=starts_at, ends_at=ends_at)


__all__ = [
    "PeriodWindow",
    "current_period",
    "ensure_utc",
    "parse_period",
    "period_window",
]
