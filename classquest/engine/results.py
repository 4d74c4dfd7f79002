"""
classquest.engine.results — Caller-Facing Outcomes
===================================================

Everything the UI receives from a :class:`GamificationSession` call is one
of these values; errors never cross the session boundary as exceptions.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

__all__ = ["ActionResult", "AwardResult", "Outcome", "XPAward", "format_award_message"]


class Outcome(enum.StrEnum):
    SUCCESS = "success"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    NOT_OWNED = "not_owned"
    ALREADY_OWNED = "already_owned"
    LOCKED = "locked"
    NOT_FOUND = "not_found"
    PARTIAL_FAILURE = "partial_failure"
    STORE_UNAVAILABLE = "store_unavailable"
    NO_SESSION = "no_session"


@dataclass(frozen=True, slots=True)
class XPAward:
    """Amounts actually granted by one award."""

    xp_amount: int
    coins_earned: int


@dataclass(frozen=True, slots=True)
class AwardResult:
    outcome: Outcome
    xp_amount: int = 0
    coins_earned: int = 0
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


@dataclass(frozen=True, slots=True)
class ActionResult:
    """Result of purchase / equip / refresh."""

    outcome: Outcome
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


def format_award_message(xp_amount: int, coins_earned: int) -> str:
    """``"+20 XP & +2 Coins"`` or ``"+5 XP!"`` when no coins were earned."""
    if coins_earned > 0:
        noun = "Coin" if coins_earned == 1 else "Coins"
        return f"+{xp_amount} XP & +{coins_earned} {noun}"
    return f"+{xp_amount} XP!"
