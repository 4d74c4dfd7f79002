"""
tests/test_levels_badges.py — Level Curves, Badges & Feedback Messages
=======================================================================
Pure-function tests; no database.
"""

from __future__ import annotations

import pytest

from classquest.constants import COSMETIC_STYLES, DEFAULT_ACTION_XP
from classquest.database.models import ActionType, UserRole
from classquest.database.seed import DEFAULT_SHOP_ITEMS
from classquest.engine.badges import badge_ladder, earned_badges, next_badge
from classquest.engine.levels import exponential_curve, linear_curve, xp_for_level
from classquest.engine.results import format_award_message


class TestLevelCurves:
    def test_xp_for_level_formula(self):
        assert xp_for_level(1) == 125
        assert xp_for_level(2) == 156

    @pytest.mark.parametrize("xp, level", [(0, 1), (124, 1), (125, 2), (156, 3), (195, 4)])
    def test_exponential(self, xp, level):
        assert exponential_curve()(xp) == level

    @pytest.mark.parametrize("xp, level", [(0, 1), (99, 1), (100, 2), (250, 3)])
    def test_linear(self, xp, level):
        assert linear_curve(100)(xp) == level

    @pytest.mark.parametrize("curve", [exponential_curve(), linear_curve(50)])
    def test_monotonic(self, curve):
        levels = [curve(xp) for xp in range(0, 5000, 7)]
        assert levels == sorted(levels)
        assert levels[0] == 1

    def test_bad_parameters(self):
        with pytest.raises(ValueError):
            exponential_curve(base=0)
        with pytest.raises(ValueError):
            exponential_curve(factor=0.9)
        with pytest.raises(ValueError):
            linear_curve(0)


class TestBadges:
    def test_every_role_has_five(self):
        for role in UserRole:
            assert len(badge_ladder(role)) == 5

    def test_earned_by_threshold(self):
        assert [b.min_xp for b in earned_badges(UserRole.TEACHER, 1000)] == [100, 500, 1000]

    def test_none_earned(self):
        assert earned_badges("parent", 99) == []

    def test_next_badge(self):
        assert next_badge("student", 0).id == "student_novice"
        assert next_badge("student", 5000) is None

    def test_description(self):
        assert badge_ladder("student")[0].description == "Earn 100 XP"

    def test_unknown_role(self):
        with pytest.raises(ValueError):
            badge_ladder("principal")


class TestCatalogConstants:
    def test_every_action_has_default(self):
        assert set(DEFAULT_ACTION_XP) == set(ActionType)

    def test_seed_styles_exist(self):
        for style, *_ in DEFAULT_SHOP_ITEMS.values():
            assert style in COSMETIC_STYLES


class TestFeedbackMessages:
    @pytest.mark.parametrize(
        "xp, coins, expected",
        [(20, 2, "+20 XP & +2 Coins"), (10, 1, "+10 XP & +1 Coin"), (5, 0, "+5 XP!")],
    )
    def test_award_message(self, xp, coins, expected):
        assert format_award_message(xp, coins) == expected
