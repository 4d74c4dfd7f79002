"""
tests/test_leaderboard.py — Leaderboard Service Tests
======================================================
"""

from __future__ import annotations

from unittest.mock import MagicMock

from classquest.engine.profile import GamificationProfile
from classquest.services.leaderboard_service import LeaderboardRow, top_players


def test_rows_ranked_in_store_order():
    store = MagicMock()
    store.top_profiles.return_value = [
        (GamificationProfile(user_id="b", current_xp=300, current_level=3), "border_gold"),
        (GamificationProfile(user_id="a", current_xp=50), None),
    ]
    rows = top_players(store, limit=2)
    store.top_profiles.assert_called_once_with(2)
    assert rows == [
        LeaderboardRow(rank=1, user_id="b", current_xp=300, current_level=3,
                       equipped_style="border_gold"),
        LeaderboardRow(rank=2, user_id="a", current_xp=50, current_level=1),
    ]


def test_non_positive_limit_skips_store():
    store = MagicMock()
    assert top_players(store, limit=0) == []
    store.top_profiles.assert_not_called()


def test_sql_store_integration(sql_store):
    sql_store.increment_balance("x", delta_xp=10)
    sql_store.increment_balance("y", delta_xp=20)
    assert [r.user_id for r in top_players(sql_store, 5)] == ["y", "x"]
