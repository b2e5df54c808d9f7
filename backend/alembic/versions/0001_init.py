"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _inspector():
    from sqlalchemy import inspect as sa_inspect
    return sa_inspect(op.get_bind())


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"))


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"))


def upgrade() -> None:
    inspector = _inspector()
    existing_tables = set(inspector.get_table_names())

    def existing_indexes(table: str) -> set[str]:
        if table not in existing_tables:
            return set()
        return {idx["name"] for idx in inspector.get_indexes(table)}

    def ensure_indexes(table: str, columns: list[list[str]], names: list[str] | None = None) -> None:
        idxs = existing_indexes(table)
        for i, cols in enumerate(columns):
            name = names[i] if names else f"ix_{table}_{cols[0]}"
            if name not in idxs:
                op.create_index(name, table, cols)

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("role", sa.String(), nullable=True),
            sa.Column("balance", sa.Numeric(15, 2), nullable=False, server_default="0"),
            sa.Column("frozen_balance", sa.Numeric(15, 2), nullable=False, server_default="0"),
            sa.Column("referrer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("referral_code", sa.String(), nullable=True, unique=True),
            _created_at(),
            _updated_at(),
        )
    idxs = existing_indexes("users")
    if "ix_users_id" not in idxs:
        op.create_index("ix_users_id", "users", ["id"])
    if "ix_users_email" not in idxs:
        op.create_index("ix_users_email", "users", ["email"], unique=True)
    ensure_indexes("users", [["role"], ["referrer_id"]])

    if "sites" not in existing_tables:
        op.create_table(
            "sites",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("url", sa.String(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            _created_at(),
        )
    ensure_indexes("sites", [["id"], ["user_id"]])

    if "campaigns" not in existing_tables:
        op.create_table(
            "campaigns",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("budget", sa.Numeric(15, 2), nullable=False, server_default="0"),
            sa.Column("spent", sa.Numeric(15, 2), nullable=False, server_default="0"),
            sa.Column("start_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("budget_warning_sent_at", sa.DateTime(timezone=True), nullable=True),
            _created_at(),
            _updated_at(),
        )
    ensure_indexes("campaigns", [["id"], ["user_id"], ["is_active"]])

    if "ad_slots" not in existing_tables:
        op.create_table(
            "ad_slots",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("site_id", sa.Integer(), sa.ForeignKey("sites.id", ondelete="CASCADE"), nullable=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("type", sa.String(), nullable=True),
            sa.Column("dimensions", sa.JSON(), nullable=True),
            sa.Column("price_per_click", sa.Numeric(10, 4), nullable=True),
            sa.Column("price_per_impression", sa.Numeric(10, 4), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            _created_at(),
        )
    ensure_indexes("ad_slots", [["id"], ["site_id"], ["type"]])

    if "ad_slot_campaign" not in existing_tables:
        op.create_table(
            "ad_slot_campaign",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("ad_slot_id", sa.Integer(), sa.ForeignKey("ad_slots.id", ondelete="CASCADE"), nullable=False),
            sa.Column("campaign_id", sa.Integer(), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
            _created_at(),
            sa.UniqueConstraint("ad_slot_id", "campaign_id", name="uq_ad_slot_campaign"),
        )

    if "creatives" not in existing_tables:
        op.create_table(
            "creatives",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("campaign_id", sa.Integer(), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("type", sa.String(), nullable=True),
            sa.Column("content", sa.JSON(), nullable=True),
            sa.Column("url", sa.String(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            _created_at(),
        )
    ensure_indexes("creatives", [["id"], ["campaign_id"], ["type"]])

    if "withdrawals" not in existing_tables:
        op.create_table(
            "withdrawals",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("amount", sa.Numeric(15, 2), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=True),
            sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("transaction_id", sa.String(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            _created_at(),
            _updated_at(),
        )
    ensure_indexes("withdrawals", [["id"], ["user_id"], ["status"], ["processed_at"], ["transaction_id"]])

    if "transaction_logs" not in existing_tables:
        op.create_table(
            "transaction_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("amount", sa.Numeric(15, 2), nullable=False),
            sa.Column("type", sa.String(), nullable=False),
            sa.Column("reference", sa.String(), nullable=True),
            sa.Column("status", sa.String(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("ip_address", sa.String(), nullable=True),
            sa.Column("user_agent", sa.Text(), nullable=True),
            _created_at(),
            _updated_at(),
        )
    ensure_indexes("transaction_logs", [["id"], ["user_id"], ["type"], ["reference"], ["status"], ["created_at"]])

    if "referral_earnings" not in existing_tables:
        op.create_table(
            "referral_earnings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("referred_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("amount", sa.Numeric(15, 2), nullable=False),
            sa.Column(
                "source_transaction_id",
                sa.Integer(),
                sa.ForeignKey("transaction_logs.id", ondelete="CASCADE"),
                nullable=False,
                unique=True,
            ),
            sa.Column("type", sa.String(), nullable=False),
            _created_at(),
        )
    ensure_indexes("referral_earnings", [["id"], ["user_id"], ["referred_user_id"]])

    if "analytics_events" not in existing_tables:
        op.create_table(
            "analytics_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("type", sa.String(), nullable=False),
            sa.Column("related_id", sa.Integer(), nullable=False),
            sa.Column("related_type", sa.String(), nullable=False),
            sa.Column("cost", sa.Numeric(15, 4), nullable=True),
            _created_at(),
        )
    ensure_indexes(
        "analytics_events",
        [["id"], ["created_at"], ["user_id", "type"], ["related_id", "related_type"]],
        names=[
            "ix_analytics_events_id",
            "ix_analytics_events_created_at",
            "ix_analytics_events_user_type",
            "ix_analytics_events_related",
        ],
    )


def downgrade() -> None:
    op.drop_table("analytics_events")
    op.drop_table("referral_earnings")
    op.drop_table("transaction_logs")
    op.drop_table("withdrawals")
    op.drop_table("creatives")
    op.drop_table("ad_slot_campaign")
    op.drop_table("ad_slots")
    op.drop_table("campaigns")
    op.drop_table("sites")
    op.drop_table("users")
