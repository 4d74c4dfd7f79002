"""
classquest.engine.levels — Pluggable XP → Level Curves
=======================================================

The level is owned by the store: the reconciler trusts whatever level the
authoritative record carries.  A curve is only consulted when

* the reference SQL store advances XP on a ledger append, or
* a push carries ``current_xp`` without ``current_level``.

A curve is any callable ``(total_xp) -> level`` returning a level >= 1
that never decreases as XP grows.
"""

from __future__ import annotations

from collections.abc import Callable

__all__ = ["LevelCurve", "exponential_curve", "linear_curve", "xp_for_level"]

LevelCurve = Callable[[int], int]

# Guards against curves whose thresholds stop growing
_MAX_LEVEL = 1000


def xp_for_level(level: int, base: int = 100, factor: float = 1.25) -> int:
    """Total XP needed to move past *level*.

    Uses the exponential formula::

        required = base * (factor ** level)
    """
    return int(base * (factor ** level))


def exponential_curve(base: int = 100, factor: float = 1.25) -> LevelCurve:
    """Curve where leaving level *n* requires ``base * factor ** n`` XP."""
    if base <= 0 or factor < 1.0:
        raise ValueError("exponential curve needs base > 0 and factor >= 1")

    def _curve(total_xp: int) -> int:
        level = 1
        while level < _MAX_LEVEL and total_xp >= xp_for_level(level, base, factor):
            level += 1
        return level

    return _curve


def linear_curve(xp_per_level: int = 100) -> LevelCurve:
    """Curve with a fixed XP cost per level (level 1 at 0 XP)."""
    if xp_per_level <= 0:
        raise ValueError("xp_per_level must be positive")

    def _curve(total_xp: int) -> int:
        return max(total_xp, 0) // xp_per_level + 1

    return _curve
