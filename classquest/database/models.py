"""
classquest.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- user_gamification  — One XP / level / coin row per user
- user_streaks       — Daily-activity streak per user
- xp_ledger          — Append-only journal of XP awards
- shop_items         — Read-only cosmetic catalog
- user_inventory     — Owned cosmetic items (at most one equipped per user)
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all ClassQuest ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ActionType(enum.StrEnum):
    """XP-earning actions recorded in the ledger."""
    CONTENT_CREATION = "content_creation"
    MARKS_ENTRY = "marks_entry"
    ATTENDANCE_SUBMISSION = "attendance_submission"
    HOMEWORK_CREATION = "homework_creation"
    ANNOUNCEMENT_CREATION = "announcement_creation"
    POLL_PARTICIPATION = "poll_participation"
    MANUAL_AWARD = "manual_award"


class UserRole(enum.StrEnum):
    """School roles; each has its own badge ladder."""
    STUDENT = "student"
    TEACHER = "teacher"
    PARENT = "parent"


# ---------------------------------------------------------------------------
# UserGamification — XP, level and coins
# ---------------------------------------------------------------------------
class UserGamification(Base):
    __tablename__ = "user_gamification"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    current_xp: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    coins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("current_xp >= 0", name="ck_gamification_xp_nonneg"),
        CheckConstraint("current_level >= 1", name="ck_gamification_level_pos"),
        CheckConstraint("coins >= 0", name="ck_gamification_coins_nonneg"),
        Index("ix_user_gamification_xp_desc", "current_xp"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserGamification user={self.user_id!r} xp={self.current_xp} "
            f"lvl={self.current_level} coins={self.coins}>"
        )


# ---------------------------------------------------------------------------
# UserStreak — consecutive-day activity counter
# ---------------------------------------------------------------------------
class UserStreak(Base):
    __tablename__ = "user_streaks"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_activity_date: Mapped[date | None] = mapped_column(Date, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("current_streak >= 0", name="ck_streak_current_nonneg"),
        CheckConstraint(
            "longest_streak >= current_streak", name="ck_streak_longest_ge_current"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<UserStreak user={self.user_id!r} current={self.current_streak} "
            f"longest={self.longest_streak}>"
        )


# ---------------------------------------------------------------------------
# XPLedger — append-only award journal
# ---------------------------------------------------------------------------
class XPLedger(Base):
    __tablename__ = "xp_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    xp_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("xp_amount > 0", name="ck_xp_ledger_amount_pos"),
        Index("ix_xp_ledger_user_time", "user_id", "created_at"),
        Index("ix_xp_ledger_action_time", "action_type", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<XPLedger id={self.id} user={self.user_id!r} "
            f"type={self.action_type} xp={self.xp_amount}>"
        )


# ---------------------------------------------------------------------------
# ShopCatalogItem — cosmetic items for sale
# ---------------------------------------------------------------------------
class ShopCatalogItem(Base):
    """Cosmetic catalog row.

    ``cosmetic_style`` is a key of
    :data:`~classquest.constants.COSMETIC_STYLES`.
    """
    __tablename__ = "shop_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    cost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    cosmetic_style: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    owners: Mapped[list[UserInventory]] = relationship(back_populates="item")

    __table_args__ = (
        CheckConstraint("cost >= 0", name="ck_shop_items_cost_nonneg"),
        Index("ix_shop_items_active_cost", "is_active", "cost"),
    )

    def __repr__(self) -> str:
        return f"<ShopCatalogItem id={self.id} name={self.name!r} cost={self.cost}>"


# ---------------------------------------------------------------------------
# UserInventory — owned items
# ---------------------------------------------------------------------------
class UserInventory(Base):
    __tablename__ = "user_inventory"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shop_items.id", ondelete="CASCADE"), nullable=False
    )
    is_equipped: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    equipped_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    purchased_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    item: Mapped[ShopCatalogItem] = relationship(back_populates="owners")

    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_inventory_user_item"),
        Index("ix_user_inventory_user", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserInventory user={self.user_id!r} item={self.item_id} "
            f"equipped={self.is_equipped}>"
        )
