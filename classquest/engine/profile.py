"""
classquest.engine.profile — Domain Snapshots
=============================================

Plain immutable values passed between the store and the services.  The
store converts ORM rows into these before returning, so nothing outside
``classquest.store`` holds a live SQLAlchemy object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime

from classquest.database.models import ActionType

__all__ = [
    "PROFILE_FIELDS",
    "STREAK_FIELDS",
    "GamificationProfile",
    "InventoryEntry",
    "ShopItem",
    "Streak",
    "XPLedgerEntry",
]

# Fields a push or an update_profile call may carry
PROFILE_FIELDS: frozenset[str] = frozenset({"current_xp", "current_level", "coins"})
STREAK_FIELDS: frozenset[str] = frozenset(
    {"current_streak", "longest_streak", "last_activity_date"}
)


@dataclass(frozen=True, slots=True)
class GamificationProfile:
    user_id: str
    current_xp: int = 0
    current_level: int = 1
    coins: int = 0

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "current_xp": self.current_xp,
            "current_level": self.current_level,
            "coins": self.coins,
        }


@dataclass(frozen=True, slots=True)
class Streak:
    """Consecutive-day activity counter.

    ``longest_streak >= current_streak`` holds for every value produced by
    :func:`~classquest.engine.streak.evaluate_streak`.
    """

    user_id: str
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None


@dataclass(frozen=True, slots=True)
class XPLedgerEntry:
    """One XP award.  Never mutated once appended."""

    user_id: str
    action_type: ActionType
    xp_amount: int
    metadata: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class ShopItem:
    id: int
    name: str
    cost: int
    min_level: int = 1
    cosmetic_style: str = ""
    description: str | None = None
    is_active: bool = True


@dataclass(frozen=True, slots=True)
class InventoryEntry:
    user_id: str
    item_id: int
    is_equipped: bool = False
    equipped_at: datetime | None = None
