"""
classquest.services.leaderboard_service — XP Leaderboard
=========================================================

Top players by total XP, each with the cosmetic style they have equipped.
Ties on XP keep the store's order (user id ascending) and share no rank:
ranks are plain positions.
"""

from __future__ import annotations

from dataclasses import dataclass

from classquest.store.protocol import GamificationStore


@dataclass(frozen=True, slots=True)
class LeaderboardRow:
    rank: int
    user_id: str
    current_xp: int
    current_level: int
    equipped_style: str | None = None


def top_players(store: GamificationStore, limit: int = 50) -> list[LeaderboardRow]:
    """Return up to *limit* rows, highest XP first."""
    if limit <= 0:
        return []
    return [
        LeaderboardRow(
            rank=position,
            user_id=profile.user_id,
            current_xp=profile.current_xp,
            current_level=profile.current_level,
            equipped_style=style,
        )
        for position, (profile, style) in enumerate(store.top_profiles(limit), start=1)
    ]
