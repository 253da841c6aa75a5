"""Initial mainframe schema: users, cards, stats, achievements, teams

Revision ID: 5a1c0e7d9b42
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5a1c0e7d9b42"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create every table plus the one-default-card partial index."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("twitch_id", sa.String(64), nullable=False, unique=True),
        sa.Column("twitch_display_name", sa.String(100), nullable=False),
        sa.Column("twitch_avatar", sa.String(512), nullable=True),
        sa.Column("experience", sa.Float(), nullable=False, server_default="0"),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sub_months", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_checkin", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "last_activity", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
        sa.Column(
            "reg_date", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_users_experience", "users", ["experience"])
    op.create_index("ix_users_last_activity", "users", ["last_activity"])
    op.create_index("ix_users_display_name", "users", ["twitch_display_name"])

    op.create_table(
        "cards",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("catalog_no", sa.String(20), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("sysname", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_pullable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("weight", sa.Float(), nullable=False, server_default="1"),
    )

    op.create_table(
        "user_cards",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "card_id", sa.Integer(),
            sa.ForeignKey("cards.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "acquired_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("user_id", "card_id", name="uq_user_cards_user_card"),
    )
    op.create_index(
        "uq_user_cards_one_default",
        "user_cards",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("is_default IS TRUE"),
        sqlite_where=sa.text("is_default = 1"),
    )

    op.create_table(
        "user_stats",
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("stat_key", sa.String(64), primary_key=True),
        sa.Column("stat_value", sa.BigInteger(), nullable=False, server_default="0"),
    )
    op.create_index("ix_user_stats_key_value", "user_stats", ["stat_key", "stat_value"])

    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("sysname", sa.String(64), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tier", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("stat_key", sa.String(64), nullable=False),
        sa.Column("threshold", sa.BigInteger(), nullable=False),
        sa.UniqueConstraint("sysname", "tier", name="uq_achievements_sysname_tier"),
    )
    op.create_index("ix_achievements_stat_key", "achievements", ["stat_key"])

    op.create_table(
        "user_achievements",
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "achievement_id", sa.Integer(),
            sa.ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "achieved_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "tourney",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("team_number", sa.Integer(), nullable=False),
    )
    op.create_index("ix_tourney_user", "tourney", ["user_id"])


def downgrade() -> None:
    """Drop every mainframe table, dependents first."""
    op.drop_index("ix_tourney_user", table_name="tourney")
    op.drop_table("tourney")
    op.drop_table("user_achievements")
    op.drop_index("ix_achievements_stat_key", table_name="achievements")
    op.drop_table("achievements")
    op.drop_index("ix_user_stats_key_value", table_name="user_stats")
    op.drop_table("user_stats")
    op.drop_index("uq_user_cards_one_default", table_name="user_cards")
    op.drop_table("user_cards")
    op.drop_table("cards")
    op.drop_index("ix_users_display_name", table_name="users")
    op.drop_index("ix_users_last_activity", table_name="users")
    op.drop_index("ix_users_experience", table_name="users")
    op.drop_table("users")
