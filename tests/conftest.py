"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import UTC, datetime

import pytest
from sqlalchemy import Engine, create_engine

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite has no JSONB; we register a type compiler so it renders as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Session

from classquest.database.models import Base, ShopCatalogItem
from classquest.engine.feed import ProfileChangeFeed, build_change_payload
from classquest.engine.levels import linear_curve
from classquest.engine.profile import (
    PROFILE_FIELDS,
    GamificationProfile,
    InventoryEntry,
    ShopItem,
    Streak,
)
from classquest.exceptions import InsufficientFunds, StoreUnavailable
from classquest.store.sql_store import SqlGamificationStore

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for the PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all ClassQuest tables.

    Uses StaticPool so the ``asyncio.to_thread`` workers behind ``run_db``
    share the same in-memory database.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def sql_store(db_engine: Engine) -> SqlGamificationStore:
    """SQL store over the in-memory engine, levelling 1 per 100 XP."""
    return SqlGamificationStore(db_engine, level_curve=linear_curve(100))


@pytest.fixture
def add_shop_item(db_engine: Engine):
    """Factory inserting a catalog row into ``db_engine``; returns its id."""

    def _add(
        name: str = "Blue Border",
        cost: int = 50,
        min_level: int = 1,
        style: str = "border_blue",
        is_active: bool = True,
    ) -> int:
        with Session(db_engine) as session:
            row = ShopCatalogItem(
                name=name,
                cost=cost,
                min_level=min_level,
                cosmetic_style=style,
                is_active=is_active,
            )
            session.add(row)
            session.commit()
            return row.id

    return _add


# ---------------------------------------------------------------------------
# In-memory store used by the service-level tests
# ---------------------------------------------------------------------------
class MemoryStore:
    """Thread-safe dict-backed store.

    Lacks ``increment_balance`` and ``equip_exclusive`` so services take their
    fallback paths; see :class:`AtomicMemoryStore` for the full capability set.

    ``fail_on`` holds method names that raise :class:`StoreUnavailable`.
    """

    def __init__(self, level_curve=None) -> None:
        self.level_curve = level_curve or linear_curve(100)
        self.feed = ProfileChangeFeed()
        self.fail_on: set[str] = set()
        self.calls: list[str] = []
        self.profiles: dict[str, GamificationProfile] = {}
        self.streaks: dict[str, Streak] = {}
        self.ledger: list = []
        self.inventory: dict[tuple[str, int], InventoryEntry] = {}
        self.items: dict[int, ShopItem] = {}
        self._lock = threading.RLock()

    def _check(self, op: str, user_id: str | None = None) -> None:
        self.calls.append(op)
        if op in self.fail_on:
            raise StoreUnavailable(f"{op} unreachable", user_id=user_id, operation=op)

    def _set_profile(self, new: GamificationProfile) -> None:
        old = self.profiles.get(new.user_id)
        self.profiles[new.user_id] = new
        if old != new:
            self.feed.publish(
                build_change_payload(new.user_id, new.to_dict(), old.to_dict() if old else None)
            )

    # helpers for arranging tests
    def add_item(self, item_id: int, cost: int, min_level: int = 1, name: str | None = None) -> ShopItem:
        item = ShopItem(
            id=item_id,
            name=name or f"Item {item_id}",
            cost=cost,
            min_level=min_level,
            cosmetic_style="border_blue",
        )
        self.items[item_id] = item
        return item

    def seed_profile(self, user_id: str, **fields) -> None:
        self.profiles[user_id] = GamificationProfile(user_id=user_id, **fields)

    def equipped(self, user_id: str) -> list[int]:
        return sorted(
            iid for (uid, iid), e in self.inventory.items() if uid == user_id and e.is_equipped
        )

    # store protocol
    def get_profile(self, user_id):
        self._check("get_profile", user_id)
        with self._lock:
            return self.profiles.setdefault(user_id, GamificationProfile(user_id=user_id))

    def get_streak(self, user_id):
        self._check("get_streak", user_id)
        with self._lock:
            return self.streaks.setdefault(user_id, Streak(user_id=user_id))

    def append_ledger_entry(self, entry):
        self._check("append_ledger_entry", entry.user_id)
        with self._lock:
            self.ledger.append(entry)
            p = self.profiles.get(entry.user_id, GamificationProfile(user_id=entry.user_id))
            xp = p.current_xp + entry.xp_amount
            self._set_profile(
                replace(p, current_xp=xp, current_level=max(p.current_level, self.level_curve(xp)))
            )
            return len(self.ledger)

    def update_profile(self, user_id, fields):
        self._check("update_profile", user_id)
        with self._lock:
            p = self.profiles.get(user_id, GamificationProfile(user_id=user_id))
            new = replace(p, **{k: v for k, v in fields.items() if k in PROFILE_FIELDS})
            self._set_profile(new)
            return new

    def update_streak(self, user_id, fields):
        self._check("update_streak", user_id)
        with self._lock:
            s = replace(self.streaks.get(user_id, Streak(user_id=user_id)), **fields)
            self.streaks[user_id] = s
            return s

    def list_inventory(self, user_id):
        self._check("list_inventory", user_id)
        with self._lock:
            return [e for (uid, _), e in self.inventory.items() if uid == user_id]

    def insert_inventory_entry(self, user_id, item_id, *, is_equipped=False):
        self._check("insert_inventory_entry", user_id)
        with self._lock:
            existing = self.inventory.get((user_id, item_id))
            if existing is not None:
                return existing, False
            entry = InventoryEntry(user_id=user_id, item_id=item_id, is_equipped=is_equipped)
            self.inventory[(user_id, item_id)] = entry
            return entry, True

    def update_inventory_entry(self, user_id, fields, *, item_id=None):
        op = "update_inventory_entry" if item_id is None else "update_inventory_entry:one"
        self._check(op, user_id)
        with self._lock:
            changed = 0
            for (uid, iid), e in list(self.inventory.items()):
                if uid != user_id or (item_id is not None and iid != item_id):
                    continue
                equipped = fields["is_equipped"]
                self.inventory[(uid, iid)] = replace(
                    e,
                    is_equipped=equipped,
                    equipped_at=datetime.now(UTC) if equipped else None,
                )
                changed += 1
            return changed

    def list_shop_items(self, active_only=True):
        self._check("list_shop_items")
        return sorted(
            (i for i in self.items.values() if i.is_active or not active_only),
            key=lambda i: (i.cost, i.id),
        )

    def get_shop_item(self, item_id):
        self._check("get_shop_item")
        return self.items.get(item_id)

    def subscribe_profile_changes(self, user_id, on_update):
        self._check("subscribe_profile_changes", user_id)
        return self.feed.subscribe(user_id, on_update)

    def top_profiles(self, limit):
        self._check("top_profiles")
        ranked = sorted(self.profiles.values(), key=lambda p: (-p.current_xp, p.user_id))
        return [(p, None) for p in ranked[:limit]]


class AtomicMemoryStore(MemoryStore):
    """:class:`MemoryStore` plus the optional atomic capabilities."""

    def increment_balance(self, user_id, delta_xp=0, delta_coins=0):
        self._check("increment_balance", user_id)
        with self._lock:
            p = self.profiles.get(user_id, GamificationProfile(user_id=user_id))
            if p.coins + delta_coins < 0:
                raise InsufficientFunds(
                    "too poor", balance=p.coins, user_id=user_id, operation="increment_balance"
                )
            new = replace(p, coins=p.coins + delta_coins, current_xp=p.current_xp + delta_xp)
            self._set_profile(new)
            return new

    def equip_exclusive(self, user_id, item_id):
        self._check("equip_exclusive", user_id)
        with self._lock:
            if (user_id, item_id) not in self.inventory:
                return False
            for key, e in list(self.inventory.items()):
                if key[0] == user_id:
                    self.inventory[key] = replace(
                        e,
                        is_equipped=key[1] == item_id,
                        equipped_at=datetime.now(UTC) if key[1] == item_id else None,
                    )
            return True


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def atomic_store() -> AtomicMemoryStore:
    return AtomicMemoryStore()
