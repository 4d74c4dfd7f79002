"""
classquest.engine.streak — Daily Streak Evaluation
===================================================

Pure calculation — no DB I/O.  The stateful tracker that commits results
lives in :mod:`classquest.services.streak_service`.

Rules for one evaluation against *today*:

* last activity is today       → unchanged (idempotent within a day)
* last activity was yesterday  → ``current_streak + 1``
* anything else                → ``current_streak = 1``

Every mutating branch raises ``longest_streak`` to at least the new
``current_streak`` and stamps ``last_activity_date = today``.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta

from classquest.engine.profile import Streak

__all__ = ["effective_streak", "evaluate_streak", "streak_was_broken"]


def evaluate_streak(streak: Streak, today: date) -> Streak:
    """Return the streak after recording activity on *today*."""
    last = streak.last_activity_date

    if last == today:
        return streak

    if last is not None and last == today - timedelta(days=1):
        current = streak.current_streak + 1
    else:
        current = 1

    return replace(
        streak,
        current_streak=current,
        longest_streak=max(streak.longest_streak, current),
        last_activity_date=today,
    )


def streak_was_broken(before: Streak, after: Streak) -> bool:
    """True when a running streak (> 1 day) was reset back to 1."""
    return (
        before.last_activity_date is not None
        and after.last_activity_date != before.last_activity_date
        and before.current_streak > 1
        and after.current_streak == 1
    )


def effective_streak(streak: Streak, today: date) -> int:
    """Streak length to display on *today* without recording activity.

    A streak whose last activity is older than yesterday has already lapsed
    and shows as 0, even though the stored value is only reset on the next
    evaluation.
    """
    last = streak.last_activity_date
    if last is None:
        return 0
    if last >= today - timedelta(days=1):
        return streak.current_streak
    return 0
