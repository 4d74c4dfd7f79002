"""
classquest.engine.badges — Role Badge Milestones
=================================================

Each school role has its own five-step badge ladder unlocked purely by
total XP.  Badges are derived on read; nothing is persisted.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

from dataclasses import dataclass

from classquest.constants import ROLE_BADGES
from classquest.database.models import UserRole

__all__ = ["Badge", "badge_ladder", "earned_badges", "next_badge"]


@dataclass(frozen=True, slots=True)
class Badge:
    id: str
    name: str
    min_xp: int

    @property
    def description(self) -> str:
        return f"Earn {self.min_xp} XP"


def badge_ladder(role: UserRole | str) -> list[Badge]:
    """All badges for *role*, ascending by XP threshold."""
    ladder = ROLE_BADGES.get(UserRole(role), [])
    return [Badge(id=b_id, name=name, min_xp=min_xp) for b_id, name, min_xp in ladder]


def earned_badges(role: UserRole | str, total_xp: int) -> list[Badge]:
    return [b for b in badge_ladder(role) if total_xp >= b.min_xp]


def next_badge(role: UserRole | str, total_xp: int) -> Badge | None:
    """The first badge not yet reached, or None once the ladder is complete."""
    for badge in badge_ladder(role):
        if total_xp < badge.min_xp:
            return badge
    return None
