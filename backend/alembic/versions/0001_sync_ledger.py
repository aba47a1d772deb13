"""create users, families, wallet ledger and sync tables

Revision ID: 0001_sync_ledger
Revises:
Create Date: 2026-10-16 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_sync_ledger"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("CreatedAt", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("Id", sa.String(length=128), primary_key=True),
        sa.Column("DisplayName", sa.String(length=200)),
        sa.Column("Email", sa.String(length=254)),
        sa.Column("Role", sa.String(length=20), nullable=False),
        sa.Column("FamilyId", sa.String(length=128)),
        sa.Column("Timezone", sa.String(length=64)),
        *_timestamps(),
    )
    op.create_index("ix_users_FamilyId", "users", ["FamilyId"])

    op.create_table(
        "families",
        sa.Column("Id", sa.String(length=128), primary_key=True),
        sa.Column("Name", sa.String(length=200), nullable=False),
        sa.Column("OwnerUserId", sa.String(length=128), nullable=False),
        sa.Column("GlobalRatio", sa.Float(), nullable=False, server_default=sa.text("1.0")),
        *_timestamps(),
        sa.Column("UpdatedAt", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_families_OwnerUserId", "families", ["OwnerUserId"])

    op.create_table(
        "family_children",
        sa.Column("Id", sa.Integer(), primary_key=True),
        sa.Column("FamilyId", sa.String(length=128), nullable=False),
        sa.Column("ChildUserId", sa.String(length=128), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("FamilyId", "ChildUserId", name="uq_family_children_family_child"),
    )
    op.create_index("ix_family_children_FamilyId", "family_children", ["FamilyId"])
    op.create_index("ix_family_children_ChildUserId", "family_children", ["ChildUserId"])

    op.create_table(
        "wallets",
        sa.Column("UserId", sa.String(length=128), primary_key=True),
        sa.Column("BalanceSeconds", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("LifetimeEarned", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("LifetimeSpent", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("LastTransactionAt", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.Column("UpdatedAt", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("BalanceSeconds >= 0", name="ck_wallets_balance_non_negative"),
    )

    op.create_table(
        "wallet_transactions",
        sa.Column("Id", sa.String(length=36), primary_key=True),
        sa.Column("WalletUserId", sa.String(length=128), nullable=False),
        sa.Column("Type", sa.String(length=20), nullable=False),
        sa.Column("AmountSeconds", sa.Integer(), nullable=False),
        sa.Column("BalanceAfter", sa.Integer(), nullable=False),
        sa.Column("Description", sa.String(length=300), nullable=False),
        sa.Column("BatchId", sa.String(length=128)),
        *_timestamps(),
    )
    op.create_index("ix_wallet_transactions_WalletUserId", "wallet_transactions", ["WalletUserId"])
    op.create_index("ix_wallet_transactions_BatchId", "wallet_transactions", ["BatchId"])

    op.create_table(
        "activity_sessions",
        sa.Column("Id", sa.String(length=36), primary_key=True),
        sa.Column("ChildUserId", sa.String(length=128), nullable=False),
        sa.Column("ActivityType", sa.String(length=20), nullable=False),
        sa.Column("Status", sa.String(length=20), nullable=False),
        sa.Column("PackageName", sa.String(length=255), nullable=False),
        sa.Column("SubjectId", sa.String(length=128)),
        sa.Column("ClientSessionId", sa.String(length=128)),
        sa.Column("ClaimedDurationSeconds", sa.Float(), nullable=False),
        sa.Column("DurationSeconds", sa.Integer(), nullable=False),
        sa.Column("EarnedSeconds", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("StartedAtMs", sa.BigInteger(), nullable=False),
        sa.Column("EndedAtMs", sa.BigInteger(), nullable=False),
        sa.Column("DeviceId", sa.String(length=128)),
        sa.Column("OsVersion", sa.String(length=64)),
        sa.Column("AppVersion", sa.String(length=64)),
        sa.Column("Timezone", sa.String(length=64)),
        sa.Column("BatchId", sa.String(length=128), nullable=False),
        sa.Column("SyncedAtMs", sa.BigInteger(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_activity_sessions_ChildUserId", "activity_sessions", ["ChildUserId"])
    op.create_index("ix_activity_sessions_BatchId", "activity_sessions", ["BatchId"])
    op.create_index(
        "ix_activity_sessions_child_ended",
        "activity_sessions",
        ["ChildUserId", "EndedAtMs"],
    )

    op.create_table(
        "sync_rate_limits",
        sa.Column("ChildUserId", sa.String(length=128), primary_key=True),
        sa.Column("RequestTimestampsJson", sa.Text(), nullable=False),
        sa.Column("UpdatedAt", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "sync_processed_batches",
        sa.Column("Id", sa.Integer(), primary_key=True),
        sa.Column("ChildUserId", sa.String(length=128), nullable=False),
        sa.Column("BatchId", sa.String(length=128), nullable=False),
        sa.Column("ResponseJson", sa.Text(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("ChildUserId", "BatchId", name="uq_sync_processed_batches_child_batch"),
    )
    op.create_index("ix_sync_processed_batches_ChildUserId", "sync_processed_batches", ["ChildUserId"])


def downgrade() -> None:
    op.drop_table("sync_processed_batches")
    op.drop_table("sync_rate_limits")
    op.drop_table("activity_sessions")
    op.drop_table("wallet_transactions")
    op.drop_table("wallets")
    op.drop_table("family_children")
    op.drop_table("families")
    op.drop_table("users")
