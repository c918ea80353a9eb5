"""Monthly raffle entries and winners."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from kiss_loyalty.db.base import Base
from kiss_loyalty.models.account import utcnow


class RaffleEntry(Base):
    """Accumulated tickets held by one account for one raffle period."""

    __tablename__ = "raffle_entries"
    __table_args__ = (
        UniqueConstraint("account_id", "period", name="uq_raffle_entries_account_period"),
        CheckConstraint("ticket_count > 0", name="ck_raffle_entries_ticket_count_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id = Column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    period = Column(String(7), nullable=False, index=True)
    ticket_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    account = relationship("Account", back_populates="raffle_entries")


class RaffleWinner(Base):
    """The single drawn winner of a raffle period."""

    __tablename__ = "raffle_winners"
    __table_args__ = (UniqueConstraint("period", name="uq_raffle_winners_period"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id = Column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    period = Column(String(7), nullable=False)
    prize_type = Column(String(64), nullable=False)
    prize_description = Column(Text, nullable=True)
    winning_ticket_count = Column(Integer, nullable=False)
    total_tickets = Column(Integer, nullable=False)
    claimed = Column(Boolean, nullable=False, default=False, server_default="false")
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    drawn_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    account = relationship("Account")
