"""
classquest.__main__ — Entry point for ``python -m classquest``
===============================================================

Wiring:
1. Load .env (secrets).
2. Load classquest.yaml (soft settings).
3. Create the SQLAlchemy engine, ensure tables exist, seed the shop.
4. Build the change feed; start the PG LISTEN/NOTIFY thread on PostgreSQL.
5. Build the store.
6. If a user id was given, open a session for it (a login counts toward the
   streak) and log the profile and the top of the leaderboard.

Run with::

    python -m classquest [USER_ID]
"""

from __future__ import annotations

import asyncio
import logging
import sys

from dotenv import load_dotenv

from classquest.config import load_config
from classquest.database.engine import create_db_engine, init_db
from classquest.engine.feed import ProfileChangeFeed
from classquest.engine.levels import exponential_curve
from classquest.services.session import GamificationSession
from classquest.store.sql_store import SqlGamificationStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("classquest")


async def _show_user(session: GamificationSession) -> None:
    async with session:
        if not session.active:
            logger.error("Could not open a session for user %s", session.user_id)
            return
        profile = session.profile
        logger.info(
            "User %s — level %d, %d XP, %d coins, streak %d (best %d)",
            profile.user_id, profile.current_level, profile.current_xp, profile.coins,
            session.displayed_streak, session.streak.longest_streak,
        )
        for row in await session.leaderboard(limit=10):
            logger.info(
                "#%d %s — %d XP (level %d)%s",
                row.rank, row.user_id, row.current_xp, row.current_level,
                f" [{row.equipped_style}]" if row.equipped_style else "",
            )


def main(argv: list[str] | None = None) -> None:
    """Bootstrap the schema and optionally open a session for one user."""
    argv = sys.argv[1:] if argv is None else argv

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    try:
        cfg = load_config()
    except FileNotFoundError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    logger.info("Config loaded — coin divisor %d", cfg.coin_divisor)

    # 3. Database.
    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    init_db(engine)

    # 4. Change feed.
    feed = ProfileChangeFeed(
        engine,
        channel=cfg.notify_channel,
        max_reconnect_attempts=cfg.listener_max_reconnect_attempts,
    )
    if engine.dialect.name == "postgresql":
        feed.start_listener()

    # 5. Store.
    curve = exponential_curve(cfg.level_base, cfg.level_factor)
    store = SqlGamificationStore(engine, feed=feed, level_curve=curve)

    # 6. Optional session.
    try:
        if argv:
            asyncio.run(_show_user(GamificationSession(store, argv[0], config=cfg, level_curve=curve)))
        else:
            logger.info("Schema ready.  Pass a user id to open a session.")
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")
    finally:
        feed.stop_listener()
        engine.dispose()


if __name__ == "__main__":
    main()
