"""
tests/test_sql_store.py — SqlGamificationStore Integration Tests
=================================================================
Runs the reference store against in-memory SQLite via the shared conftest
fixtures: lazy creation, conditional balance updates, ledger-driven XP and
level, inventory idempotency, transactional equip, change publishing and
the leaderboard query.
"""

from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from classquest.database.models import ActionType, UserGamification, XPLedger
from classquest.database.seed import DEFAULT_SHOP_ITEMS, seed_shop_catalog
from classquest.engine.profile import XPLedgerEntry
from classquest.exceptions import InsufficientFunds, StoreUnavailable
from classquest.store.sql_store import SqlGamificationStore


class TestLazyCreation:
    def test_profile_created_on_first_read(self, sql_store, db_engine):
        profile = sql_store.get_profile("u1")
        assert (profile.current_xp, profile.current_level, profile.coins) == (0, 1, 0)
        with Session(db_engine) as session:
            assert session.get(UserGamification, "u1") is not None

    def test_streak_created_on_first_read(self, sql_store):
        streak = sql_store.get_streak("u1")
        assert streak.current_streak == 0
        assert streak.last_activity_date is None

    def test_second_read_returns_same_row(self, sql_store):
        sql_store.get_profile("u1")
        sql_store.update_profile("u1", {"coins": 9})
        assert sql_store.get_profile("u1").coins == 9


class TestBalance:
    def test_increment(self, sql_store):
        profile = sql_store.increment_balance("u1", delta_coins=25)
        assert profile.coins == 25

    def test_overdraft_rejected_and_nothing_written(self, sql_store):
        sql_store.increment_balance("u1", delta_coins=10)
        with pytest.raises(InsufficientFunds) as info:
            sql_store.increment_balance("u1", delta_coins=-11)
        assert info.value.balance == 10
        assert sql_store.get_profile("u1").coins == 10

    def test_exact_balance_can_be_spent(self, sql_store):
        sql_store.increment_balance("u1", delta_coins=10)
        assert sql_store.increment_balance("u1", delta_coins=-10).coins == 0

    def test_update_profile_rejects_negative(self, sql_store):
        with pytest.raises(ValueError):
            sql_store.update_profile("u1", {"coins": -1})

    def test_update_profile_rejects_unknown_field(self, sql_store):
        with pytest.raises(ValueError, match="Unknown profile fields"):
            sql_store.update_profile("u1", {"gold": 5})


class TestLedger:
    def test_append_advances_xp_and_level(self, sql_store, db_engine):
        entry_id = sql_store.append_ledger_entry(
            XPLedgerEntry(user_id="u1", action_type=ActionType.MARKS_ENTRY, xp_amount=250,
                          metadata={"class": "7B"})
        )
        assert entry_id > 0
        profile = sql_store.get_profile("u1")
        assert profile.current_xp == 250
        assert profile.current_level == 3
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(XPLedger)) == 1

    def test_level_never_decreases(self, sql_store):
        sql_store.update_profile("u1", {"current_level": 9})
        sql_store.append_ledger_entry(
            XPLedgerEntry(user_id="u1", action_type=ActionType.MARKS_ENTRY, xp_amount=10)
        )
        assert sql_store.get_profile("u1").current_level == 9

    def test_rejects_non_positive_xp(self, sql_store):
        with pytest.raises(ValueError):
            sql_store.append_ledger_entry(
                XPLedgerEntry(user_id="u1", action_type=ActionType.MARKS_ENTRY, xp_amount=0)
            )

    def test_history_newest_first(self, sql_store):
        for xp in (10, 20, 30):
            sql_store.append_ledger_entry(
                XPLedgerEntry(user_id="u1", action_type=ActionType.MARKS_ENTRY, xp_amount=xp)
            )
        history = sql_store.list_ledger_entries("u1", limit=2)
        assert [e.xp_amount for e in history] == [30, 20]
        assert history[0].action_type is ActionType.MARKS_ENTRY


class TestStreakCommit:
    def test_update_streak(self, sql_store):
        streak = sql_store.update_streak(
            "u1",
            {"current_streak": 2, "longest_streak": 4, "last_activity_date": date(2025, 1, 11)},
        )
        assert streak.current_streak == 2
        assert sql_store.get_streak("u1").last_activity_date == date(2025, 1, 11)

    def test_longest_below_current_rejected(self, sql_store):
        with pytest.raises(ValueError):
            sql_store.update_streak("u1", {"current_streak": 5, "longest_streak": 4})


class TestInventory:
    def test_insert_is_idempotent(self, sql_store, add_shop_item):
        item_id = add_shop_item()
        first, created = sql_store.insert_inventory_entry("u1", item_id)
        second, created_again = sql_store.insert_inventory_entry("u1", item_id)
        assert first.item_id == second.item_id
        assert created is True
        assert created_again is False
        assert len(sql_store.list_inventory("u1")) == 1

    def test_equip_exclusive_single_equipped(self, sql_store, add_shop_item):
        a = add_shop_item("A", 10)
        b = add_shop_item("B", 20)
        sql_store.insert_inventory_entry("u1", a)
        sql_store.insert_inventory_entry("u1", b)
        assert sql_store.equip_exclusive("u1", a) is True
        assert sql_store.equip_exclusive("u1", b) is True
        equipped = [e.item_id for e in sql_store.list_inventory("u1") if e.is_equipped]
        assert equipped == [b]

    def test_equip_exclusive_not_owned(self, sql_store, add_shop_item):
        a = add_shop_item("A", 10)
        assert sql_store.equip_exclusive("u1", a) is False

    def test_update_inventory_all_rows(self, sql_store, add_shop_item):
        a = add_shop_item("A", 10)
        b = add_shop_item("B", 20)
        sql_store.insert_inventory_entry("u1", a, is_equipped=True)
        sql_store.insert_inventory_entry("u1", b, is_equipped=True)
        assert sql_store.update_inventory_entry("u1", {"is_equipped": False}) == 2
        assert not any(e.is_equipped for e in sql_store.list_inventory("u1"))

    def test_catalog_active_only_sorted(self, sql_store, add_shop_item):
        add_shop_item("Pricey", 500)
        add_shop_item("Cheap", 5)
        add_shop_item("Retired", 1, is_active=False)
        assert [i.name for i in sql_store.list_shop_items()] == ["Cheap", "Pricey"]
        assert len(sql_store.list_shop_items(active_only=False)) == 3


class TestChangeFeed:
    def test_changes_published_after_commit(self, sql_store):
        received = []
        sql_store.subscribe_profile_changes("u1", received.append)
        sql_store.increment_balance("u1", delta_coins=5)
        assert received[-1]["new"]["coins"] == 5
        assert received[-1]["user_id"] == "u1"

    def test_rejected_change_not_published(self, sql_store):
        sql_store.get_profile("u1")
        received = []
        sql_store.subscribe_profile_changes("u1", received.append)
        with pytest.raises(InsufficientFunds):
            sql_store.increment_balance("u1", delta_coins=-5)
        assert received == []

    def test_unsubscribe_stops_delivery(self, sql_store):
        received = []
        sub = sql_store.subscribe_profile_changes("u1", received.append)
        sub.unsubscribe()
        sub.unsubscribe()
        sql_store.increment_balance("u1", delta_coins=5)
        assert received == []


class TestConnectivity:
    def test_operational_error_becomes_store_unavailable(self):
        engine = MagicMock()
        engine.dialect.name = "sqlite"
        store = SqlGamificationStore(engine)
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr(
                "classquest.store.sql_store.get_session",
                MagicMock(side_effect=OperationalError("SELECT 1", {}, Exception("down"))),
            )
            with pytest.raises(StoreUnavailable) as info:
                store.get_profile("u1")
        assert info.value.operation == "get_profile"
        assert info.value.user_id == "u1"


class TestLeaderboardQuery:
    def test_ordered_with_equipped_style(self, sql_store, add_shop_item):
        item = add_shop_item("Gold Border", 10, style="border_gold")
        for uid, xp in [("a", 50), ("b", 300), ("c", 120)]:
            sql_store.append_ledger_entry(
                XPLedgerEntry(user_id=uid, action_type=ActionType.MANUAL_AWARD, xp_amount=xp)
            )
        sql_store.insert_inventory_entry("c", item)
        sql_store.equip_exclusive("c", item)

        rows = sql_store.top_profiles(2)
        assert [(p.user_id, style) for p, style in rows] == [("b", None), ("c", "border_gold")]


class TestSeed:
    def test_seed_is_idempotent(self, db_engine):
        assert seed_shop_catalog(db_engine) == len(DEFAULT_SHOP_ITEMS)
        assert seed_shop_catalog(db_engine) == 0
