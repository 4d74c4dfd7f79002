"""
classquest.config — YAML Configuration Loader
==============================================

Reads ``classquest.yaml`` for engine tuning (coin conversion, leaderboard
size, level curve parameters, change-feed settings).  Secrets such as
``DATABASE_URL`` stay in the environment (``.env``).

Usage::

    from classquest.config import load_config

    cfg = load_config()          # reads ./classquest.yaml by default
    print(cfg.coin_divisor)      # 10
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ClassQuestConfig:
    """Immutable configuration loaded from ``classquest.yaml``.

    Every field has a default so a session can be built without a file
    (tests, notebooks).
    """

    # Economy
    coin_divisor: int = 10  # 1 coin per N XP

    # Streaks
    streak_on_login: bool = True  # A login counts as daily activity

    # Leaderboard
    leaderboard_size: int = 50

    # Store-side level curve (exponential: base * factor ** level)
    level_base: int = 100
    level_factor: float = 1.25

    # Change feed
    notify_channel: str = "gamification_changes"
    listener_max_reconnect_attempts: int = 10


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "classquest.yaml") -> ClassQuestConfig:
    """Read *path* and return a :class:`ClassQuestConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``classquest.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If ``coin_divisor`` or ``leaderboard_size`` is not positive.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy classquest.yaml.example → classquest.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = ClassQuestConfig()
    cfg = ClassQuestConfig(
        coin_divisor=int(raw.get("coin_divisor", defaults.coin_divisor)),
        streak_on_login=bool(raw.get("streak_on_login", defaults.streak_on_login)),
        leaderboard_size=int(raw.get("leaderboard_size", defaults.leaderboard_size)),
        level_base=int(raw.get("level_base", defaults.level_base)),
        level_factor=float(raw.get("level_factor", defaults.level_factor)),
        notify_channel=str(raw.get("notify_channel", defaults.notify_channel)),
        listener_max_reconnect_attempts=int(
            raw.get(
                "listener_max_reconnect_attempts",
                defaults.listener_max_reconnect_attempts,
            )
        ),
    )

    if cfg.coin_divisor <= 0:
        raise ValueError(f"coin_divisor must be positive, got {cfg.coin_divisor}")
    if cfg.leaderboard_size <= 0:
        raise ValueError(
            f"leaderboard_size must be positive, got {cfg.leaderboard_size}"
        )
    return cfg
