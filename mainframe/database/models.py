"""
mainframe.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- users              — Viewer profiles keyed by a local id, unique Twitch id
- cards              — Card catalog (read-only reference data)
- user_cards         — Card ownership; at most one default per user
- user_stats         — Keyed counters, unique per (user, stat_key)
- achievements       — Achievement catalog: tiered stat thresholds
- user_achievements  — Unlock records, unique per (user, achievement)
- tourney            — Team membership from the tournament assignment
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Mainframe ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class TimestampField(enum.StrEnum):
    """User timestamps an action is allowed to refresh."""
    LAST_LOGIN = "last_login"
    LAST_CHECKIN = "last_checkin"
    LAST_ACTIVITY = "last_activity"


# ---------------------------------------------------------------------------
# Users — one row per Twitch viewer
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    twitch_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    twitch_display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    twitch_avatar: Mapped[str | None] = mapped_column(String(512), default=None)
    experience: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sub_months: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    last_checkin: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    last_activity: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    reg_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    cards: Mapped[list[UserCard]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    stats: Mapped[list[UserStat]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    achievements: Mapped[list[UserAchievement]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_experience", "experience"),
        Index("ix_users_last_activity", "last_activity"),
        Index("ix_users_display_name", "twitch_display_name"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.twitch_display_name!r} exp={self.experience}>"


# ---------------------------------------------------------------------------
# Cards — catalog
# ---------------------------------------------------------------------------
class Card(Base):
    """Immutable card definition.

    ``weight`` is the injected gacha weight.  Premium cards only enter the
    premium pull pool; ``is_pullable`` removes starter cards from the pool.
    """
    __tablename__ = "cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    catalog_no: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    sysname: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_pullable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    weight: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)

    def __repr__(self) -> str:
        return f"<Card id={self.id} sysname={self.sysname!r} no={self.catalog_no!r}>"


# ---------------------------------------------------------------------------
# UserCard — ownership edge
# ---------------------------------------------------------------------------
class UserCard(Base):
    __tablename__ = "user_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    card_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cards.id", ondelete="CASCADE"), nullable=False
    )
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="cards")
    card: Mapped[Card] = relationship()

    __table_args__ = (
        UniqueConstraint("user_id", "card_id", name="uq_user_cards_user_card"),
        # One default card per user
        Index(
            "uq_user_cards_one_default",
            "user_id",
            unique=True,
            postgresql_where=is_default.is_(True),
            sqlite_where=is_default.is_(True),
        ),
    )

    def __repr__(self) -> str:
        return f"<UserCard user={self.user_id} card={self.card_id} default={self.is_default}>"


# ---------------------------------------------------------------------------
# UserStat — keyed counters
# ---------------------------------------------------------------------------
class UserStat(Base):
    __tablename__ = "user_stats"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    stat_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    stat_value: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    user: Mapped[User] = relationship(back_populates="stats")

    __table_args__ = (
        Index("ix_user_stats_key_value", "stat_key", "stat_value"),
    )

    def __repr__(self) -> str:
        return f"<UserStat user={self.user_id} {self.stat_key}={self.stat_value}>"


# ---------------------------------------------------------------------------
# Achievements — tiered stat thresholds
# ---------------------------------------------------------------------------
class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sysname: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    tier: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    stat_key: Mapped[str] = mapped_column(String(64), nullable=False)
    threshold: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("sysname", "tier", name="uq_achievements_sysname_tier"),
        Index("ix_achievements_stat_key", "stat_key"),
    )

    def __repr__(self) -> str:
        return f"<Achievement {self.name!r} tier={self.tier} {self.stat_key}>={self.threshold}>"


class UserAchievement(Base):
    __tablename__ = "user_achievements"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True
    )
    achieved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="achievements")
    achievement: Mapped[Achievement] = relationship()

    def __repr__(self) -> str:
        return f"<UserAchievement user={self.user_id} achievement={self.achievement_id}>"


# ---------------------------------------------------------------------------
# Tourney — team membership (written by the tournament tooling)
# ---------------------------------------------------------------------------
class TeamMembership(Base):
    __tablename__ = "tourney"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    team_number: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_tourney_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<TeamMembership user={self.user_id} team={self.team_number}>"
