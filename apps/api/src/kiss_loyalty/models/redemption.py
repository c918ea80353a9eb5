"""Catalog reward redemptions."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from kiss_loyalty.db.base import Base
from kiss_loyalty.models.account import utcnow


class RewardRedemptionStatus(str, Enum):
    """Status lifecycle for reward redemptions."""

    PENDING = "pending"
    FULFILLED = "fulfilled"
    FAILED = "failed"


class RewardRedemption(Base):
    """A reward exchanged for points, created in the same commit as its ledger debit."""

    __tablename__ = "reward_redemptions"
    __table_args__ = (Index("ix_reward_redemptions_reconciliation", "status", "needs_reconciliation"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id = Column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    reward_id = Column(String(64), nullable=False)
    reward_name = Column(String, nullable=False)
    reward_type = Column(String(32), nullable=False)
    points_cost = Column(Integer, nullable=False)
    ledger_transaction_id = Column(
        UUID(as_uuid=True),
        ForeignKey("ledger_transactions.id", ondelete="SET NULL"),
        nullable=True,
    )
    status = Column(
        SqlEnum(
            RewardRedemptionStatus,
            name="reward_redemption_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=RewardRedemptionStatus.PENDING,
        server_default=RewardRedemptionStatus.PENDING.value,
    )
    shipping_address = Column(JSON, nullable=True)
    fulfillment_data = Column(JSON, nullable=True)
    failure_reason = Column(String, nullable=True)
    needs_reconciliation = Column(Boolean, nullable=False, default=False, server_default="false")
    fulfilled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    account = relationship("Account", back_populates="redemptions")
    ledger_transaction = relationship("LedgerTransaction")
