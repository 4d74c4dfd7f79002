"""
classquest.services.streak_service — StreakTracker
===================================================

Holds the in-memory streak for one user and commits re-evaluations through
the store.  The in-memory value only moves after the store accepted the
write; a failed write leaves it untouched and is not retried.  Evaluation
and commit run under one lock, so concurrent activity on the same day
commits once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from classquest.database.engine import run_db
from classquest.engine.profile import Streak
from classquest.engine.streak import effective_streak, evaluate_streak, streak_was_broken
from classquest.store.protocol import GamificationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StreakUpdate:
    """What one :meth:`StreakTracker.record_activity` call changed."""

    before: Streak
    after: Streak
    increased: bool = False
    broken: bool = False

    @property
    def changed(self) -> bool:
        return self.before != self.after


class StreakTracker:
    """Per-user streak state.

    Parameters
    ----------
    store : authoritative store.
    user_id : owner of the streak.
    emit : ``emit(signal_name, **data)`` used for ``streak_increased`` and
        ``streak_reset``.
    clock : returns "today"; injectable for tests.
    """

    def __init__(
        self,
        store: GamificationStore,
        user_id: str,
        *,
        emit: Callable[..., None] | None = None,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self._store = store
        self.user_id = user_id
        self._emit = emit or (lambda name, **data: None)
        self._clock = clock
        self._streak = Streak(user_id=user_id)
        self._lock = asyncio.Lock()

    @property
    def streak(self) -> Streak:
        return self._streak

    def displayed_streak(self, today: date | None = None) -> int:
        return effective_streak(self._streak, today or self._clock())

    async def load(self) -> Streak:
        self._streak = await run_db(self._store.get_streak, self.user_id)
        return self._streak

    async def record_activity(self, today: date | None = None) -> StreakUpdate:
        """Count *today* as an active day.

        Raises
        ------
        StoreUnavailable
            The commit failed; the in-memory streak is unchanged.
        """
        today = today or self._clock()
        async with self._lock:
            before = self._streak
            after = evaluate_streak(before, today)

            if after == before:
                return StreakUpdate(before=before, after=after)

            await run_db(
                self._store.update_streak,
                self.user_id,
                {
                    "current_streak": after.current_streak,
                    "longest_streak": after.longest_streak,
                    "last_activity_date": after.last_activity_date,
                },
            )
            self._streak = after

        update = StreakUpdate(
            before=before,
            after=after,
            increased=after.current_streak > before.current_streak,
            broken=streak_was_broken(before, after),
        )
        if update.increased:
            logger.info(
                "Streak for user %s: %d → %d day(s)",
                self.user_id, before.current_streak, after.current_streak,
            )
            self._emit("streak_increased", current_streak=after.current_streak)
        elif update.broken:
            logger.info(
                "Streak for user %s broken after %d day(s)",
                self.user_id, before.current_streak,
            )
            self._emit(
                "streak_reset",
                previous_streak=before.current_streak,
                longest_streak=after.longest_streak,
            )
        return update
