"""Loyalty account model."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from kiss_loyalty.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Account(Base):
    """A platform user holding a loyalty points balance.

    ``points_balance`` is a projection of the ledger: it always equals the sum of
    ``points_delta`` over the account's ledger transactions. ``lifetime_points`` is
    the sum of earn transactions only and drives tier placement.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("points_balance >= 0", name="ck_accounts_points_balance_non_negative"),
        CheckConstraint("lifetime_points >= 0", name="ck_accounts_lifetime_points_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    username = Column(String(64), nullable=False, unique=True, index=True)
    email = Column(String, nullable=True, unique=True)
    country_code = Column(String(2), nullable=True)
    points_balance = Column(Integer, nullable=False, default=0, server_default="0")
    lifetime_points = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    transactions = relationship("LedgerTransaction", back_populates="account", cascade="all, delete-orphan")
    raffle_entries = relationship("RaffleEntry", back_populates="account", cascade="all, delete-orphan")
    redemptions = relationship("RewardRedemption", back_populates="account", cascade="all, delete-orphan")
