"""
ClassQuest — Gamification Engine for a School-Management Client
================================================================
Tracks experience points, levels, coins, daily streaks and cosmetic
inventory for each user, and keeps a local in-memory view in sync with the
authoritative store through a push-update channel.  The UI layer talks to a
single per-session object; everything else is wired underneath it.

Package layout::

    classquest/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Action XP table, cosmetic styles, badge ladders
    ├── exceptions.py      # GamificationError hierarchy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models (5 tables)
    │   └── seed.py        # Default cosmetic catalog
    ├── engine/
    │   ├── profile.py     # Domain snapshots (profile, streak, ledger, items)
    │   ├── results.py     # Outcome enum + caller-facing results
    │   ├── streak.py      # Pure streak evaluation
    │   ├── levels.py      # Pluggable XP → level curves
    │   ├── badges.py      # Role badge milestones
    │   └── feed.py        # Change feed + PG LISTEN/NOTIFY listener
    ├── store/
    │   ├── protocol.py    # Store interface consumed by the services
    │   └── sql_store.py   # SQLAlchemy reference store
    └── services/
        ├── streak_service.py      # StreakTracker
        ├── xp_service.py          # XPAwardEngine
        ├── wallet_service.py      # CoinWallet
        ├── inventory_service.py   # InventoryManager
        ├── sync_service.py        # SyncReconciler
        ├── leaderboard_service.py # Top players by XP
        └── session.py             # GamificationSession (UI entry point)
"""

__version__ = "0.1.0"
