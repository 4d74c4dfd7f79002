"""
classquest.services.inventory_service — InventoryManager
=========================================================

Owned cosmetic items for one user and the single-equipped invariant.

Equipping prefers the store's ``equip_exclusive`` (one transaction).  When
the store lacks it, a two-step protocol is used: unequip every entry, then
equip the target.  A failure between the steps leaves zero items equipped,
never two.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import UTC, datetime

from classquest.database.engine import run_db
from classquest.engine.profile import InventoryEntry, ShopItem
from classquest.engine.results import Outcome
from classquest.exceptions import GamificationError, InvariantViolation
from classquest.services.wallet_service import CoinWallet
from classquest.store.protocol import GamificationStore

logger = logging.getLogger(__name__)


def is_locked(item: ShopItem, level: int) -> bool:
    return item.min_level > level


def _recency(entry: InventoryEntry) -> tuple[bool, float, int]:
    at = entry.equipped_at
    return (at is not None, at.timestamp() if at is not None else 0.0, entry.item_id)


def find_violation(user_id: str, entries: list[InventoryEntry]) -> InvariantViolation | None:
    """Return an :class:`InvariantViolation` if more than one entry is equipped."""
    equipped = [e.item_id for e in entries if e.is_equipped]
    if len(equipped) <= 1:
        return None
    return InvariantViolation(
        f"{len(equipped)} items equipped at once",
        equipped_item_ids=sorted(equipped),
        user_id=user_id,
        operation="list_inventory",
    )


class InventoryManager:
    def __init__(
        self,
        store: GamificationStore,
        user_id: str,
        wallet: CoinWallet,
    ) -> None:
        self._store = store
        self.user_id = user_id
        self._wallet = wallet
        self._entries: dict[int, InventoryEntry] = {}
        self._equip_exclusive = getattr(store, "equip_exclusive", None)
        self._purchase_lock = asyncio.Lock()

    # -------------------------------------------------------------------
    # Local view
    # -------------------------------------------------------------------
    @property
    def entries(self) -> list[InventoryEntry]:
        return list(self._entries.values())

    def owned_item_ids(self) -> set[int]:
        return set(self._entries)

    def owns(self, item_id: int) -> bool:
        return item_id in self._entries

    def equipped_item_id(self) -> int | None:
        equipped = [e for e in self._entries.values() if e.is_equipped]
        if not equipped:
            return None
        return max(equipped, key=_recency).item_id

    def _set_equipped(self, item_id: int | None) -> None:
        now = datetime.now(UTC)
        self._entries = {
            iid: replace(
                e,
                is_equipped=iid == item_id,
                equipped_at=now if iid == item_id else None,
            )
            for iid, e in self._entries.items()
        }

    # -------------------------------------------------------------------
    # Loading & self-healing
    # -------------------------------------------------------------------
    async def load(self) -> list[InventoryEntry]:
        """Fetch the inventory and repair a multi-equip state if one is found."""
        entries = await run_db(self._store.list_inventory, self.user_id)
        self._entries = {e.item_id: e for e in entries}
        await self.heal()
        return self.entries

    async def heal(self) -> int | None:
        """Unequip all but the most recently equipped entry.

        Returns the kept item id when a repair happened, else None.
        """
        violation = find_violation(self.user_id, self.entries)
        if violation is None:
            return None

        keep = self.equipped_item_id()
        logger.warning(
            "Inventory invariant broken for user %s (equipped: %s); keeping item %s",
            self.user_id, violation.equipped_item_ids, keep,
        )
        await self._equip_remote(keep)
        return keep

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    async def purchase(self, item: ShopItem) -> Outcome:
        """Buy *item*: debit first, then record ownership.

        Purchases are serialized per manager, so a second purchase of the
        same item sees the first one's entry and never debits.

        Raises
        ------
        StoreUnavailable
            The debit or the insert failed.  A debit that already went
            through is refunded before raising.
        """
        async with self._purchase_lock:
            if self.owns(item.id):
                return Outcome.ALREADY_OWNED

            outcome = await self._wallet.debit(item.cost)
            if outcome is not Outcome.SUCCESS:
                return outcome

            try:
                entry, created = await run_db(
                    self._store.insert_inventory_entry, self.user_id, item.id, is_equipped=False
                )
            except GamificationError:
                logger.warning(
                    "Inventory insert failed for user %s item %d; refunding %d coins",
                    self.user_id, item.id, item.cost,
                )
                await self._refund(item.cost)
                raise

            self._entries[item.id] = entry
            if not created:
                logger.info(
                    "User %s already owned item %d; refunding %d coins",
                    self.user_id, item.id, item.cost,
                )
                await self._refund(item.cost)
                return Outcome.ALREADY_OWNED

        logger.info(
            "User %s bought %s (#%d) for %d coins", self.user_id, item.name, item.id, item.cost
        )
        return Outcome.SUCCESS

    async def _refund(self, amount: int) -> None:
        try:
            await self._wallet.credit(amount)
        except GamificationError:
            logger.exception("Refund of %d coins failed for user %s", amount, self.user_id)

    async def equip(self, item_id: int) -> Outcome:
        """Make *item_id* the only equipped item.

        Raises
        ------
        StoreUnavailable
            A remote step failed.  With the two-step protocol the user may be
            left with nothing equipped.
        """
        if not self.owns(item_id):
            return Outcome.NOT_OWNED
        if not await self._equip_remote(item_id):
            self._entries.pop(item_id, None)
            return Outcome.NOT_OWNED
        logger.info("User %s equipped item %d", self.user_id, item_id)
        return Outcome.SUCCESS

    async def _equip_remote(self, item_id: int | None) -> bool:
        if self._equip_exclusive is not None and item_id is not None:
            if not await run_db(self._equip_exclusive, self.user_id, item_id):
                return False
            self._set_equipped(item_id)
            return True

        # Step 1: nothing equipped.
        await run_db(self._store.update_inventory_entry, self.user_id, {"is_equipped": False})
        self._set_equipped(None)
        if item_id is None:
            return True

        # Step 2: equip the target.  A failure here leaves zero equipped.
        changed = await run_db(
            self._store.update_inventory_entry,
            self.user_id,
            {"is_equipped": True},
            item_id=item_id,
        )
        if not changed:
            return False
        self._set_equipped(item_id)
        return True
