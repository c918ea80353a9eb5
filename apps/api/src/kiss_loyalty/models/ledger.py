"""Append-only points ledger."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from kiss_loyalty.db.base import Base
from kiss_loyalty.models.account import utcnow


class LedgerTransactionKind(str, Enum):
    """Direction of a ledger movement."""

    EARN = "earn"
    REDEEM = "redeem"


class LedgerTransaction(Base):
    """Immutable point movement. Earn rows carry a positive delta, redeem rows a negative one."""

    __tablename__ = "ledger_transactions"
    __table_args__ = (
        UniqueConstraint(
            "account_id",
            "action",
            "reference_id",
            name="uq_ledger_transactions_account_action_reference",
        ),
        CheckConstraint("points_delta <> 0", name="ck_ledger_transactions_non_zero"),
        Index("ix_ledger_transactions_account_created", "account_id", "created_at", "id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id = Column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    points_delta = Column(Integer, nullable=False)
    kind = Column(
        SqlEnum(
            LedgerTransactionKind,
            name="ledger_transaction_kind",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    action = Column(String(64), nullable=False)
    description = Column(String, nullable=True)
    reference_id = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    account = relationship("Account", back_populates="transactions")

    @property
    def points(self) -> int:
        """Unsigned magnitude of the movement."""

        return abs(int(self.points_delta or 0))
