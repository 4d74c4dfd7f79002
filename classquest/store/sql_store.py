"""
classquest.store.sql_store — SQLAlchemy Reference Store
========================================================

The authoritative side of the engine.  Owns the XP total and the level:
appending a ledger entry advances ``current_xp`` and re-derives
``current_level`` with the configured curve, in the same transaction.

Balance changes are single conditional ``UPDATE`` statements
(``coins = coins + :delta WHERE coins + :delta >= 0``), so concurrent
awards cannot lose an increment and a debit can never go negative.

Every committed profile change is published on the
:class:`~classquest.engine.feed.ProfileChangeFeed` — in-process after commit
on SQLite, via ``pg_notify`` inside the transaction on PostgreSQL.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeout
from sqlalchemy.orm import Session

from classquest.database.engine import get_session
from classquest.database.models import (
    ActionType,
    ShopCatalogItem,
    UserGamification,
    UserInventory,
    UserStreak,
    XPLedger,
)
from classquest.engine.feed import (
    ProfileChangeFeed,
    Subscription,
    build_change_payload,
    notify_profile_change,
)
from classquest.engine.levels import LevelCurve, exponential_curve
from classquest.engine.profile import (
    PROFILE_FIELDS,
    STREAK_FIELDS,
    GamificationProfile,
    InventoryEntry,
    ShopItem,
    Streak,
    XPLedgerEntry,
)
from classquest.exceptions import InsufficientFunds, StoreUnavailable

logger = logging.getLogger(__name__)

_CONNECTIVITY_ERRORS = (OperationalError, InterfaceError, PoolTimeout)

INVENTORY_FIELDS: frozenset[str] = frozenset({"is_equipped"})


# ---------------------------------------------------------------------------
# Row → snapshot converters
# ---------------------------------------------------------------------------
def _profile(row: UserGamification) -> GamificationProfile:
    return GamificationProfile(
        user_id=row.user_id,
        current_xp=row.current_xp,
        current_level=row.current_level,
        coins=row.coins,
    )


def _streak(row: UserStreak) -> Streak:
    return Streak(
        user_id=row.user_id,
        current_streak=row.current_streak,
        longest_streak=row.longest_streak,
        last_activity_date=row.last_activity_date,
    )


def _shop_item(row: ShopCatalogItem) -> ShopItem:
    return ShopItem(
        id=row.id,
        name=row.name,
        cost=row.cost,
        min_level=row.min_level,
        cosmetic_style=row.cosmetic_style,
        description=row.description,
        is_active=row.is_active,
    )


def _inventory_entry(row: UserInventory) -> InventoryEntry:
    return InventoryEntry(
        user_id=row.user_id,
        item_id=row.item_id,
        is_equipped=row.is_equipped,
        equipped_at=row.equipped_at,
    )


# ---------------------------------------------------------------------------
# Get-or-create helpers (session-scoped)
# ---------------------------------------------------------------------------
def get_or_create_profile(session: Session, user_id: str) -> UserGamification:
    """Fetch or insert the user_gamification row."""
    row = session.get(UserGamification, user_id)
    if row is None:
        row = UserGamification(user_id=user_id, current_xp=0, current_level=1, coins=0)
        session.add(row)
        session.flush()
    return row


def get_or_create_streak(session: Session, user_id: str) -> UserStreak:
    """Fetch or insert the user_streaks row."""
    row = session.get(UserStreak, user_id)
    if row is None:
        row = UserStreak(user_id=user_id, current_streak=0, longest_streak=0)
        session.add(row)
        session.flush()
    return row


class SqlGamificationStore:
    """Store backed by a SQLAlchemy engine (PostgreSQL or SQLite).

    Parameters
    ----------
    engine : SQLAlchemy engine.
    feed : change feed to publish on; a private one is created if omitted.
    level_curve : ``total_xp -> level``; defaults to the exponential curve.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        feed: ProfileChangeFeed | None = None,
        level_curve: LevelCurve | None = None,
    ) -> None:
        self._engine = engine
        self.feed = feed or ProfileChangeFeed(engine)
        self._level_curve = level_curve or exponential_curve()
        self._use_pg_notify = engine.dialect.name == "postgresql"

    # -------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------
    @contextmanager
    def _remote(self, operation: str, user_id: str | None = None):
        """Translate connectivity failures into :class:`StoreUnavailable`."""
        try:
            yield
        except _CONNECTIVITY_ERRORS as exc:
            logger.warning("Store %s failed for user %s: %s", operation, user_id, exc)
            raise StoreUnavailable(
                f"{operation} failed: {exc}", user_id=user_id, operation=operation
            ) from exc

    def _queue_change(
        self,
        session: Session,
        new: GamificationProfile,
        old: GamificationProfile | None,
    ) -> dict | None:
        """NOTIFY inside the transaction (PG) or return the payload to
        publish after commit (everything else)."""
        if old is not None and new == old:
            return None
        payload = build_change_payload(
            new.user_id, new.to_dict(), old.to_dict() if old else None
        )
        if self._use_pg_notify:
            notify_profile_change(session, self.feed.channel, payload)
            return None
        return payload

    def _publish(self, payload: dict | None) -> None:
        if payload is not None:
            self.feed.publish(payload)

    def _apply_delta(
        self,
        session: Session,
        row: UserGamification,
        delta_xp: int,
        delta_coins: int,
    ) -> None:
        """Single conditional UPDATE; re-derives the level when XP moved."""
        result = session.execute(
            update(UserGamification)
            .where(
                UserGamification.user_id == row.user_id,
                UserGamification.coins + delta_coins >= 0,
                UserGamification.current_xp + delta_xp >= 0,
            )
            .values(
                coins=UserGamification.coins + delta_coins,
                current_xp=UserGamification.current_xp + delta_xp,
            )
            .execution_options(synchronize_session=False)
        )
        session.refresh(row)
        if result.rowcount == 0:
            raise InsufficientFunds(
                f"balance {row.coins} cannot absorb {delta_coins}",
                balance=row.coins,
                user_id=row.user_id,
                operation="increment_balance",
            )
        if delta_xp:
            # Levels never go down, even if the curve is reconfigured
            row.current_level = max(row.current_level, self._level_curve(row.current_xp))
            session.flush()

    # -------------------------------------------------------------------
    # Profile & streak
    # -------------------------------------------------------------------
    def get_profile(self, user_id: str) -> GamificationProfile:
        with self._remote("get_profile", user_id):
            try:
                with get_session(self._engine) as session:
                    return _profile(get_or_create_profile(session, user_id))
            except IntegrityError:
                # Lost a create race; the row exists now.
                with get_session(self._engine) as session:
                    return _profile(get_or_create_profile(session, user_id))

    def get_streak(self, user_id: str) -> Streak:
        with self._remote("get_streak", user_id):
            try:
                with get_session(self._engine) as session:
                    return _streak(get_or_create_streak(session, user_id))
            except IntegrityError:
                with get_session(self._engine) as session:
                    return _streak(get_or_create_streak(session, user_id))

    def update_profile(self, user_id: str, fields: dict) -> GamificationProfile:
        """Overwrite profile fields (direct coin adjustment, admin fixes)."""
        unknown = set(fields) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)}")
        if fields.get("coins", 0) < 0 or fields.get("current_xp", 0) < 0:
            raise ValueError("coins and current_xp must be non-negative")
        if fields.get("current_level", 1) < 1:
            raise ValueError("current_level must be >= 1")

        with self._remote("update_profile", user_id):
            with get_session(self._engine) as session:
                row = get_or_create_profile(session, user_id)
                old = _profile(row)
                for key, value in fields.items():
                    setattr(row, key, int(value))
                session.flush()
                new = _profile(row)
                pending = self._queue_change(session, new, old)
            self._publish(pending)
            return new

    def update_streak(self, user_id: str, fields: dict) -> Streak:
        """Commit a re-evaluated streak."""
        unknown = set(fields) - STREAK_FIELDS
        if unknown:
            raise ValueError(f"Unknown streak fields: {sorted(unknown)}")

        with self._remote("update_streak", user_id):
            with get_session(self._engine) as session:
                row = get_or_create_streak(session, user_id)
                for key, value in fields.items():
                    setattr(row, key, value)
                if row.longest_streak < row.current_streak:
                    raise ValueError("longest_streak must be >= current_streak")
                session.flush()
                return _streak(row)

    def increment_balance(
        self, user_id: str, delta_xp: int = 0, delta_coins: int = 0
    ) -> GamificationProfile:
        """Atomically add the deltas; rejects any change that would go negative.

        Raises
        ------
        InsufficientFunds
            If ``coins + delta_coins`` (or ``current_xp + delta_xp``) < 0.
            Nothing is written.
        """
        with self._remote("increment_balance", user_id):
            with get_session(self._engine) as session:
                row = get_or_create_profile(session, user_id)
                old = _profile(row)
                self._apply_delta(session, row, delta_xp, delta_coins)
                new = _profile(row)
                pending = self._queue_change(session, new, old)
            self._publish(pending)
            return new

    # -------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------
    def append_ledger_entry(self, entry: XPLedgerEntry) -> int:
        """Append *entry* and advance the user's XP and level.  Returns the id."""
        if isinstance(entry.xp_amount, bool) or entry.xp_amount <= 0:
            raise ValueError(f"xp_amount must be a positive integer, got {entry.xp_amount!r}")

        with self._remote("append_ledger_entry", entry.user_id):
            with get_session(self._engine) as session:
                log = XPLedger(
                    user_id=entry.user_id,
                    action_type=ActionType(entry.action_type).value,
                    xp_amount=entry.xp_amount,
                    metadata_=dict(entry.metadata),
                    created_at=entry.created_at,
                )
                session.add(log)
                row = get_or_create_profile(session, entry.user_id)
                old = _profile(row)
                self._apply_delta(session, row, entry.xp_amount, 0)
                new = _profile(row)
                pending = self._queue_change(session, new, old)
                entry_id = log.id
            self._publish(pending)

        logger.info(
            "Ledger +%d XP (%s) for user %s → %d XP, level %d",
            entry.xp_amount, entry.action_type, entry.user_id,
            new.current_xp, new.current_level,
        )
        return entry_id

    def list_ledger_entries(self, user_id: str, limit: int = 50) -> list[XPLedgerEntry]:
        """Most recent ledger entries first."""
        with self._remote("list_ledger_entries", user_id):
            with get_session(self._engine) as session:
                rows = session.scalars(
                    select(XPLedger)
                    .where(XPLedger.user_id == user_id)
                    .order_by(XPLedger.created_at.desc(), XPLedger.id.desc())
                    .limit(limit)
                ).all()
                return [
                    XPLedgerEntry(
                        user_id=r.user_id,
                        action_type=ActionType(r.action_type),
                        xp_amount=r.xp_amount,
                        metadata=dict(r.metadata_ or {}),
                        created_at=r.created_at,
                    )
                    for r in rows
                ]

    # -------------------------------------------------------------------
    # Inventory & catalog
    # -------------------------------------------------------------------
    def list_inventory(self, user_id: str) -> list[InventoryEntry]:
        with self._remote("list_inventory", user_id):
            with get_session(self._engine) as session:
                rows = session.scalars(
                    select(UserInventory)
                    .where(UserInventory.user_id == user_id)
                    .order_by(UserInventory.id)
                ).all()
                return [_inventory_entry(r) for r in rows]

    def insert_inventory_entry(
        self, user_id: str, item_id: int, *, is_equipped: bool = False
    ) -> tuple[InventoryEntry, bool]:
        """Insert an owned item.  Idempotent on (user_id, item_id).

        Returns ``(entry, created)``; *created* is False when the user
        already owned the item and the existing row was returned.
        """
        with self._remote("insert_inventory_entry", user_id):
            try:
                with get_session(self._engine) as session:
                    row = UserInventory(
                        user_id=user_id,
                        item_id=item_id,
                        is_equipped=is_equipped,
                        equipped_at=datetime.now(UTC) if is_equipped else None,
                    )
                    session.add(row)
                    session.flush()
                    return _inventory_entry(row), True
            except IntegrityError:
                with get_session(self._engine) as session:
                    existing = session.scalar(
                        select(UserInventory).where(
                            UserInventory.user_id == user_id,
                            UserInventory.item_id == item_id,
                        )
                    )
                    if existing is None:
                        raise
                    logger.info("User %s already owns item %d", user_id, item_id)
                    return _inventory_entry(existing), False

    def update_inventory_entry(
        self, user_id: str, fields: dict, *, item_id: int | None = None
    ) -> int:
        """Update one entry, or every entry of the user when *item_id* is None.

        Returns the number of rows changed.
        """
        unknown = set(fields) - INVENTORY_FIELDS
        if unknown:
            raise ValueError(f"Unknown inventory fields: {sorted(unknown)}")

        values = dict(fields)
        if "is_equipped" in values:
            values["equipped_at"] = datetime.now(UTC) if values["is_equipped"] else None

        stmt = update(UserInventory).where(UserInventory.user_id == user_id)
        if item_id is not None:
            stmt = stmt.where(UserInventory.item_id == item_id)

        with self._remote("update_inventory_entry", user_id):
            with get_session(self._engine) as session:
                result = session.execute(
                    stmt.values(**values).execution_options(synchronize_session=False)
                )
                return result.rowcount

    def equip_exclusive(self, user_id: str, item_id: int) -> bool:
        """Unequip everything and equip *item_id* in one transaction.

        Returns False (and changes nothing) if the user doesn't own the item.
        """
        with self._remote("equip_exclusive", user_id):
            with get_session(self._engine) as session:
                owned = session.scalar(
                    select(UserInventory.id).where(
                        UserInventory.user_id == user_id,
                        UserInventory.item_id == item_id,
                    )
                )
                if owned is None:
                    return False
                session.execute(
                    update(UserInventory)
                    .where(UserInventory.user_id == user_id)
                    .values(is_equipped=False, equipped_at=None)
                    .execution_options(synchronize_session=False)
                )
                session.execute(
                    update(UserInventory)
                    .where(UserInventory.id == owned)
                    .values(is_equipped=True, equipped_at=datetime.now(UTC))
                    .execution_options(synchronize_session=False)
                )
                return True

    def list_shop_items(self, active_only: bool = True) -> list[ShopItem]:
        stmt = select(ShopCatalogItem).order_by(ShopCatalogItem.cost, ShopCatalogItem.id)
        if active_only:
            stmt = stmt.where(ShopCatalogItem.is_active.is_(True))
        with self._remote("list_shop_items"):
            with get_session(self._engine) as session:
                return [_shop_item(r) for r in session.scalars(stmt).all()]

    def get_shop_item(self, item_id: int) -> ShopItem | None:
        with self._remote("get_shop_item"):
            with get_session(self._engine) as session:
                row = session.get(ShopCatalogItem, item_id)
                return _shop_item(row) if row is not None else None

    # -------------------------------------------------------------------
    # Change feed & leaderboard
    # -------------------------------------------------------------------
    def subscribe_profile_changes(
        self, user_id: str, on_update: Callable[[dict], object]
    ) -> Subscription:
        if self._use_pg_notify and self.feed.listener_failed:
            raise StoreUnavailable(
                "profile change listener is down",
                user_id=user_id,
                operation="subscribe_profile_changes",
            )
        return self.feed.subscribe(user_id, on_update)

    def top_profiles(self, limit: int) -> list[tuple[GamificationProfile, str | None]]:
        """Top *limit* profiles by XP with each user's equipped style."""
        with self._remote("top_profiles"):
            with get_session(self._engine) as session:
                rows = session.scalars(
                    select(UserGamification)
                    .order_by(UserGamification.current_xp.desc(), UserGamification.user_id)
                    .limit(limit)
                ).all()
                user_ids = [r.user_id for r in rows]
                styles: dict[str, str] = {}
                if user_ids:
                    equipped = session.execute(
                        select(UserInventory.user_id, ShopCatalogItem.cosmetic_style)
                        .join(ShopCatalogItem, ShopCatalogItem.id == UserInventory.item_id)
                        .where(
                            UserInventory.user_id.in_(user_ids),
                            UserInventory.is_equipped.is_(True),
                        )
                    ).all()
                    styles = {uid: style for uid, style in equipped}
                return [(_profile(r), styles.get(r.user_id)) for r in rows]
