"""Loyalty ledger, raffle, and reward redemption tables.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE TYPE ledger_transaction_kind AS ENUM ('earn', 'redeem')")
    op.execute("CREATE TYPE reward_redemption_status AS ENUM ('pending', 'fulfilled', 'failed')")

    op.create_table(
        "accounts",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("country_code", sa.String(length=2), nullable=True),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("email", name="uq_accounts_email"),
        sa.CheckConstraint("points_balance >= 0", name="ck_accounts_points_balance_non_negative"),
        sa.CheckConstraint("lifetime_points >= 0", name="ck_accounts_lifetime_points_non_negative"),
    )
    op.create_index("ix_accounts_username", "accounts", ["username"], unique=True)

    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "account_id",
            sa.dialects.postgresql.UUID(as_uuid=True),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("points_delta", sa.Integer(), nullable=False),
        sa.Column(
            "kind",
            sa.Enum(name="ledger_transaction_kind", create_type=False),
            nullable=False,
        ),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("reference_id", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint(
            "account_id",
            "action",
            "reference_id",
            name="uq_ledger_transactions_account_action_reference",
        ),
        sa.CheckConstraint("points_delta <> 0", name="ck_ledger_transactions_non_zero"),
    )
    op.create_index(
        "ix_ledger_transactions_account_created",
        "ledger_transactions",
        ["account_id", "created_at", "id"],
    )

    op.create_table(
        "raffle_entries",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "account_id",
            sa.dialects.postgresql.UUID(as_uuid=True),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period", sa.String(length=7), nullable=False),
        sa.Column("ticket_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("account_id", "period", name="uq_raffle_entries_account_period"),
        sa.CheckConstraint("ticket_count > 0", name="ck_raffle_entries_ticket_count_positive"),
    )
    op.create_index("ix_raffle_entries_period", "raffle_entries", ["period"])

    op.create_table(
        "raffle_winners",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "account_id",
            sa.dialects.postgresql.UUID(as_uuid=True),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period", sa.String(length=7), nullable=False),
        sa.Column("prize_type", sa.String(length=64), nullable=False),
        sa.Column("prize_description", sa.Text(), nullable=True),
        sa.Column("winning_ticket_count", sa.Integer(), nullable=False),
        sa.Column("total_tickets", sa.Integer(), nullable=False),
        sa.Column("claimed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("drawn_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("period", name="uq_raffle_winners_period"),
    )

    op.create_table(
        "reward_redemptions",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "account_id",
            sa.dialects.postgresql.UUID(as_uuid=True),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("reward_id", sa.String(length=64), nullable=False),
        sa.Column("reward_name", sa.String(), nullable=False),
        sa.Column("reward_type", sa.String(length=32), nullable=False),
        sa.Column("points_cost", sa.Integer(), nullable=False),
        sa.Column(
            "ledger_transaction_id",
            sa.dialects.postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ledger_transactions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "status",
            sa.Enum(name="reward_redemption_status", create_type=False),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("shipping_address", sa.JSON(), nullable=True),
        sa.Column("fulfillment_data", sa.JSON(), nullable=True),
        sa.Column("failure_reason", sa.String(), nullable=True),
        sa.Column("needs_reconciliation", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("fulfilled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index(
        "ix_reward_redemptions_reconciliation",
        "reward_redemptions",
        ["status", "needs_reconciliation"],
    )


def downgrade() -> None:
    op.drop_index("ix_reward_redemptions_reconciliation", table_name="reward_redemptions")
    op.drop_table("reward_redemptions")
    op.drop_table("raffle_winners")
    op.drop_index("ix_raffle_entries_period", table_name="raffle_entries")
    op.drop_table("raffle_entries")
    op.drop_index("ix_ledger_transactions_account_created", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_index("ix_accounts_username", table_name="accounts")
    op.drop_table("accounts")
    op.execute("DROP TYPE IF EXISTS reward_redemption_status")
    op.execute("DROP TYPE IF EXISTS ledger_transaction_kind")
