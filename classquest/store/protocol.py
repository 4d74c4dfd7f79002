"""
classquest.store.protocol — Store Interface
============================================

What the services need from the authoritative store.  All methods are
synchronous; services call them through
:func:`~classquest.database.engine.run_db`.

Two capabilities are optional and probed with ``getattr``:

* ``increment_balance(user_id, delta_xp, delta_coins)`` — atomic,
  conditional balance change.  Without it the wallet falls back to
  read-modify-write.
* ``equip_exclusive(user_id, item_id)`` — single-transaction equip.
  Without it the inventory uses the two-step unequip-all / equip-one
  protocol.

Connectivity failures must surface as
:class:`~classquest.exceptions.StoreUnavailable`.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from classquest.engine.feed import Subscription
from classquest.engine.profile import (
    GamificationProfile,
    InventoryEntry,
    ShopItem,
    Streak,
    XPLedgerEntry,
)


class GamificationStore(Protocol):
    def get_profile(self, user_id: str) -> GamificationProfile: ...

    def get_streak(self, user_id: str) -> Streak: ...

    def append_ledger_entry(self, entry: XPLedgerEntry) -> int: ...

    def update_profile(self, user_id: str, fields: dict) -> GamificationProfile: ...

    def update_streak(self, user_id: str, fields: dict) -> Streak: ...

    def list_inventory(self, user_id: str) -> list[InventoryEntry]: ...

    def insert_inventory_entry(
        self, user_id: str, item_id: int, *, is_equipped: bool = False
    ) -> tuple[InventoryEntry, bool]: ...

    def update_inventory_entry(
        self, user_id: str, fields: dict, *, item_id: int | None = None
    ) -> int: ...

    def list_shop_items(self, active_only: bool = True) -> list[ShopItem]: ...

    def get_shop_item(self, item_id: int) -> ShopItem | None: ...

    def subscribe_profile_changes(
        self, user_id: str, on_update: Callable[[dict], object]
    ) -> Subscription: ...

    def top_profiles(self, limit: int) -> list[tuple[GamificationProfile, str | None]]: ...
