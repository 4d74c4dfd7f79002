"""
tests/test_streak.py — Streak Evaluation & StreakTracker Tests
===============================================================
Covers the pure day-over-day rules, the longest/current invariant over
arbitrary day sequences, and the tracker's commit-then-update behaviour.
"""

from __future__ import annotations

import asyncio
import random
from datetime import date, timedelta

import pytest

from classquest.engine.profile import Streak
from classquest.engine.streak import effective_streak, evaluate_streak, streak_was_broken
from classquest.exceptions import StoreUnavailable
from classquest.services.streak_service import StreakTracker


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


JAN_10 = date(2025, 1, 10)


def _streak(current=3, longest=5, last=JAN_10) -> Streak:
    return Streak(user_id="u1", current_streak=current, longest_streak=longest, last_activity_date=last)


class TestEvaluateStreak:
    def test_next_day_continues(self):
        result = evaluate_streak(_streak(), date(2025, 1, 11))
        assert result.current_streak == 4
        assert result.longest_streak == 5
        assert result.last_activity_date == date(2025, 1, 11)

    def test_gap_resets_to_one(self):
        result = evaluate_streak(_streak(), date(2025, 1, 15))
        assert result.current_streak == 1
        assert result.longest_streak == 5
        assert result.last_activity_date == date(2025, 1, 15)

    def test_same_day_is_noop(self):
        s = _streak()
        assert evaluate_streak(s, JAN_10) == s

    def test_first_activity_starts_at_one(self):
        result = evaluate_streak(Streak(user_id="u1"), JAN_10)
        assert (result.current_streak, result.longest_streak) == (1, 1)
        assert result.last_activity_date == JAN_10

    def test_longest_raised_when_exceeded(self):
        result = evaluate_streak(_streak(current=5, longest=5), date(2025, 1, 11))
        assert result.current_streak == 6
        assert result.longest_streak == 6

    def test_idempotent_within_day(self):
        today = date(2025, 1, 11)
        once = evaluate_streak(_streak(), today)
        twice = evaluate_streak(once, today)
        assert once == twice

    def test_month_boundary_counts_as_consecutive(self):
        s = _streak(current=2, longest=2, last=date(2025, 1, 31))
        assert evaluate_streak(s, date(2025, 2, 1)).current_streak == 3

    @pytest.mark.parametrize("seed", range(5))
    def test_longest_never_decreases(self, seed):
        rng = random.Random(seed)
        s = Streak(user_id="u1")
        day = date(2025, 1, 1)
        previous_longest = 0
        for _ in range(200):
            day += timedelta(days=rng.choice([0, 0, 1, 1, 1, 2, 5]))
            s = evaluate_streak(s, day)
            assert s.longest_streak >= previous_longest
            assert s.longest_streak >= s.current_streak
            previous_longest = s.longest_streak


class TestStreakHelpers:
    def test_broken_detected(self):
        before = _streak(current=3)
        after = evaluate_streak(before, date(2025, 1, 15))
        assert streak_was_broken(before, after) is True

    def test_one_day_streak_restarting_is_not_broken(self):
        before = _streak(current=1, longest=5)
        after = evaluate_streak(before, date(2025, 1, 15))
        assert streak_was_broken(before, after) is False

    def test_effective_streak_lapsed_shows_zero(self):
        assert effective_streak(_streak(), date(2025, 1, 13)) == 0

    def test_effective_streak_yesterday_still_counts(self):
        assert effective_streak(_streak(), date(2025, 1, 11)) == 3

    def test_effective_streak_never_active(self):
        assert effective_streak(Streak(user_id="u1"), JAN_10) == 0


class TestStreakTracker:
    @pytest.fixture
    def events(self):
        return []

    @pytest.fixture
    def tracker(self, memory_store, events):
        memory_store.streaks["u1"] = _streak()
        t = StreakTracker(
            memory_store, "u1", emit=lambda name, **data: events.append((name, data))
        )
        _run(t.load())
        return t

    def test_increase_commits_and_signals(self, tracker, memory_store, events):
        update = _run(tracker.record_activity(date(2025, 1, 11)))
        assert update.increased is True
        assert tracker.streak.current_streak == 4
        assert memory_store.streaks["u1"].current_streak == 4
        assert events == [("streak_increased", {"current_streak": 4})]

    def test_reset_emits_distinct_signal(self, tracker, events):
        update = _run(tracker.record_activity(date(2025, 1, 15)))
        assert update.broken is True
        assert update.increased is False
        assert events == [("streak_reset", {"previous_streak": 3, "longest_streak": 5})]

    def test_same_day_writes_nothing(self, tracker, memory_store, events):
        update = _run(tracker.record_activity(JAN_10))
        assert update.changed is False
        assert "update_streak" not in memory_store.calls
        assert events == []

    def test_store_failure_keeps_previous_value(self, tracker, memory_store, events):
        memory_store.fail_on.add("update_streak")
        with pytest.raises(StoreUnavailable):
            _run(tracker.record_activity(date(2025, 1, 11)))
        assert tracker.streak == _streak()
        assert events == []

    def test_concurrent_activity_commits_once(self, tracker, memory_store, events):
        async def _both():
            return await asyncio.gather(
                tracker.record_activity(date(2025, 1, 11)),
                tracker.record_activity(date(2025, 1, 11)),
            )

        updates = _run(_both())
        assert [u.increased for u in updates].count(True) == 1
        assert memory_store.calls.count("update_streak") == 1
        assert events == [("streak_increased", {"current_streak": 4})]
        assert tracker.streak.current_streak == 4

    def test_clock_used_when_no_date_given(self, memory_store):
        t = StreakTracker(memory_store, "u2", clock=lambda: JAN_10)
        _run(t.record_activity())
        assert t.streak.last_activity_date == JAN_10
        assert t.displayed_streak() == 1
