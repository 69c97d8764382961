from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

payment_provider = postgresql.ENUM("cloudpayments", "kaspi", "paypal", "tribute", name="payment_provider", create_type=False)
payment_status = postgresql.ENUM("pending", "succeeded", "failed", "refunded", "canceled", name="payment_status", create_type=False)
subscription_status = postgresql.ENUM(
    "incomplete", "active", "past_due", "paused", "canceled", name="subscription_status", create_type=False
)
project_status = postgresql.ENUM("planned", "in_progress", "completed", name="project_status", create_type=False)
share_kind = postgresql.ENUM("profile", "donation", name="share_kind", create_type=False)
ALL_ENUMS = (payment_provider, payment_status, subscription_status, project_status, share_kind)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ALL_ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("username", sa.String(length=64), nullable=True, unique=True),
        sa.Column("display_name", sa.String(length=120), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("total_trees", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("donations_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_donation_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "tree_prices",
        sa.Column("currency", sa.String(length=3), primary_key=True),
        sa.Column("price_minor", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("price_minor > 0", name="ck_tree_prices_positive"),
    )
    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", project_status, nullable=False),
        sa.Column("country_code", sa.String(length=2), nullable=True),
        sa.Column("region", sa.String(length=120), nullable=True),
        sa.Column("trees_target", sa.Integer(), nullable=True),
        sa.Column("trees_planted", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_projects_status", "projects", ["status"])
    op.create_table(
        "achievements",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("threshold_trees", sa.Integer(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
    )
    op.create_index("ix_achievements_threshold_trees", "achievements", ["threshold_trees"])
    op.create_table(
        "user_achievements",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "achievement_id", sa.Uuid(), sa.ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("awarded_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_achievement"),
    )
    op.create_index("ix_user_achievements_user_id", "user_achievements", ["user_id"])
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("provider", payment_provider, nullable=False),
        sa.Column("provider_customer_id", sa.String(length=120), nullable=True),
        sa.Column("provider_subscription_id", sa.String(length=120), nullable=True, unique=True),
        sa.Column("amount_minor", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("interval_months", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", subscription_status, nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
    )
    op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"])
    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("provider", payment_provider, nullable=False),
        sa.Column("provider_payment_id", sa.String(length=120), nullable=True, unique=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "subscription_id", sa.Uuid(), sa.ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("amount_minor", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", payment_status, nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_payments_user_id", "payments", ["user_id"])
    op.create_index("ix_payments_subscription_id", "payments", ["subscription_id"])
    op.create_index("ix_payments_status", "payments", ["status"])
    op.create_table(
        "donations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "payment_id", sa.Uuid(), sa.ForeignKey("payments.id", ondelete="RESTRICT"), nullable=False, unique=True
        ),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "referral_user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("trees_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("trees_count >= 0", name="ck_donations_trees_non_negative"),
    )
    op.create_index("ix_donations_user_id", "donations", ["user_id"])
    op.create_index("ix_donations_project_id", "donations", ["project_id"])
    op.create_index("ix_donations_referral_user_id", "donations", ["referral_user_id"])
    op.create_index("ix_donations_created_at", "donations", ["created_at"])
    op.create_table(
        "webhook_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("provider", payment_provider, nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        # Unique only on the delivery that claimed the key; NULL elsewhere
        sa.Column("event_idempotency", sa.String(length=200), nullable=True, unique=True),
        sa.Column("delivery_key", sa.String(length=200), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("raw_payload", sa.JSON(), nullable=False),
        sa.Column("signature_ok", sa.Boolean(), nullable=False),
        sa.Column("processed_ok", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("processing_error", sa.Text(), nullable=True),
    )
    op.create_index("ix_webhook_events_provider", "webhook_events", ["provider"])
    op.create_index("ix_webhook_events_delivery_key", "webhook_events", ["delivery_key"])
    op.create_index("ix_webhook_events_received_at", "webhook_events", ["received_at"])
    op.create_table(
        "share_tokens",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", share_kind, nullable=False),
        sa.Column("ref_id", sa.Uuid(), nullable=True),
        sa.Column("slug", sa.String(length=160), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_share_tokens_user_id", "share_tokens", ["user_id"])

    # Ledger-derived counters, compared against users.* by reconciliation
    op.execute(
        """
        CREATE VIEW user_stats AS
        SELECT user_id,
               COALESCE(SUM(trees_count), 0) AS total_trees,
               COUNT(*) AS donations_count,
               MAX(created_at) AS last_donation_at
        FROM donations
        GROUP BY user_id
        """
    )


def downgrade() -> None:
    op.execute("DROP VIEW IF EXISTS user_stats")
    op.drop_table("share_tokens")
    op.drop_table("webhook_events")
    op.drop_table("donations")
    op.drop_table("payments")
    op.drop_table("subscriptions")
    op.drop_table("user_achievements")
    op.drop_table("achievements")
    op.drop_table("projects")
    op.drop_table("tree_prices")
    op.drop_table("users")
    bind = op.get_bind()
    for enum_type in reversed(ALL_ENUMS):
        enum_type.drop(bind, checkfirst=True)
