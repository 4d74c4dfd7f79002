"""
classquest.services.session — GamificationSession (facade)
===========================================================

The single entry point the UI layer calls.  One instance per logged-in
user: build it at login, ``await start()``, ``await close()`` at logout
(or use ``async with``).  Nothing is module-global.

Every call returns an :class:`AwardResult` / :class:`ActionResult`; errors of
the :class:`GamificationError` family are converted to outcomes here and
never reach the UI.  Programmer errors (``ValueError`` for an unknown action
or a bad amount) still propagate.

Signals (register with :meth:`GamificationSession.on`):

* ``level_up(old_level, new_level, message)``
* ``streak_increased(current_streak)``
* ``streak_reset(previous_streak, longest_streak)``
* ``notice(message, error)`` — non-fatal problems (store unreachable, ...)

Callbacks may be plain functions or coroutine functions.  Pushes can arrive
on worker threads, so coroutine callbacks are scheduled on the session's
event loop.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from datetime import date
from typing import Any

from classquest.config import ClassQuestConfig
from classquest.database.engine import run_db
from classquest.database.models import ActionType, UserRole
from classquest.engine.badges import Badge, earned_badges, next_badge
from classquest.engine.levels import LevelCurve
from classquest.engine.profile import GamificationProfile, InventoryEntry, ShopItem, Streak, XPLedgerEntry
from classquest.engine.results import ActionResult, AwardResult, Outcome, format_award_message
from classquest.exceptions import GamificationError, PartialFailure, StoreUnavailable
from classquest.services.inventory_service import InventoryManager, is_locked
from classquest.services.leaderboard_service import LeaderboardRow, top_players
from classquest.services.streak_service import StreakTracker
from classquest.services.sync_service import SyncReconciler
from classquest.services.wallet_service import CoinWallet
from classquest.services.xp_service import XPAwardEngine
from classquest.store.protocol import GamificationStore

logger = logging.getLogger(__name__)

SIGNALS = frozenset({"level_up", "streak_increased", "streak_reset", "notice"})

UNAVAILABLE_MESSAGE = "Couldn't reach the server. Please try again."


def level_up_message(level: int) -> str:
    return f"Level Up! You are now Level {level}!"


class GamificationSession:
    """Per-user gamification state and operations.

    Parameters
    ----------
    store : authoritative store (see :class:`GamificationStore`).
    user_id : the logged-in user.
    config : settings; defaults are used when omitted.
    level_curve : used to derive a level when a push carries XP only.
    clock : returns today's date; injectable for tests.
    """

    def __init__(
        self,
        store: GamificationStore,
        user_id: str,
        *,
        config: ClassQuestConfig | None = None,
        level_curve: LevelCurve | None = None,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self._store = store
        self.user_id = user_id
        self.config = config or ClassQuestConfig()
        self._listeners: dict[str, list[Callable[..., Any]]] = {name: [] for name in SIGNALS}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task] = set()
        self._active = False

        self.reconciler = SyncReconciler(
            store, user_id, emit=self._emit, level_curve=level_curve
        )
        self.wallet = CoinWallet(store, user_id, self.reconciler)
        self.xp = XPAwardEngine(
            store, user_id, self.wallet, self.reconciler,
            coin_divisor=self.config.coin_divisor,
        )
        self.inventory_manager = InventoryManager(store, user_id, self.wallet)
        self.streak_tracker = StreakTracker(store, user_id, emit=self._emit, clock=clock)

    # -------------------------------------------------------------------
    # Signals
    # -------------------------------------------------------------------
    def on(self, signal: str, callback: Callable[..., Any]) -> Callable[[], None]:
        """Register *callback* for *signal*.  Returns a function that removes it."""
        if signal not in SIGNALS:
            raise ValueError(f"Unknown signal {signal!r}; expected one of {sorted(SIGNALS)}")
        self._listeners[signal].append(callback)

        def _off() -> None:
            if callback in self._listeners[signal]:
                self._listeners[signal].remove(callback)

        return _off

    def _emit(self, signal: str, **data: Any) -> None:
        if signal == "level_up":
            data.setdefault("message", level_up_message(data["new_level"]))

        for callback in list(self._listeners.get(signal, ())):
            try:
                if inspect.iscoroutinefunction(callback):
                    self._schedule(callback(**data))
                else:
                    callback(**data)
            except Exception:
                logger.exception("Signal %s callback %r failed", signal, callback)

    def _schedule(self, coro) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            coro.close()
            logger.warning("No event loop for user %s; dropped async callback", self.user_id)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            task = loop.create_task(coro)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)
        else:
            asyncio.run_coroutine_threadsafe(coro, loop)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Async signal callback failed for user %s", self.user_id,
                exc_info=task.exception(),
            )

    def _notice(self, message: str, error: GamificationError | None = None) -> None:
        self._emit("notice", message=message, error=error)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    @property
    def active(self) -> bool:
        return self._active

    async def start(self) -> ActionResult:
        """Load the user's state and subscribe to changes.

        A login counts as daily activity when ``streak_on_login`` is set.
        """
        if self._active:
            return ActionResult(Outcome.SUCCESS)
        self._loop = asyncio.get_running_loop()

        try:
            profile = await run_db(self._store.get_profile, self.user_id)
            self.reconciler.load(profile)
            await self.streak_tracker.load()
            await self.inventory_manager.load()
            self.reconciler.start()
        except GamificationError as exc:
            self.reconciler.stop()
            logger.warning("Session start failed for user %s: %s", self.user_id, exc)
            self._notice(UNAVAILABLE_MESSAGE, exc)
            return ActionResult(Outcome.STORE_UNAVAILABLE, UNAVAILABLE_MESSAGE)

        self._active = True
        logger.info(
            "Session started for user %s (level %d, %d XP, %d coins)",
            self.user_id, profile.current_level, profile.current_xp, profile.coins,
        )
        if self.config.streak_on_login:
            await self._record_activity()
        return ActionResult(Outcome.SUCCESS)

    async def close(self) -> None:
        """Unsubscribe and deactivate.  Safe to call more than once."""
        self.reconciler.stop()
        if self._active:
            logger.info("Session closed for user %s", self.user_id)
        self._active = False

    async def __aenter__(self) -> GamificationSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    @property
    def profile(self) -> GamificationProfile:
        return self.reconciler.profile

    @property
    def streak(self) -> Streak:
        return self.streak_tracker.streak

    @property
    def displayed_streak(self) -> int:
        return self.streak_tracker.displayed_streak()

    @property
    def inventory(self) -> list[InventoryEntry]:
        return self.inventory_manager.entries

    def badges(self, role: UserRole | str) -> list[Badge]:
        return earned_badges(role, self.profile.current_xp)

    def next_badge(self, role: UserRole | str) -> Badge | None:
        return next_badge(role, self.profile.current_xp)

    async def shop_catalog(self) -> list[dict]:
        """Active shop items with ``owned`` / ``equipped`` / ``locked`` flags.

        Returns an empty list when the store is unreachable.
        """
        try:
            items = await run_db(self._store.list_shop_items, True)
        except GamificationError as exc:
            self._notice(UNAVAILABLE_MESSAGE, exc)
            return []

        level = self.profile.current_level
        owned = self.inventory_manager.owned_item_ids()
        equipped = self.inventory_manager.equipped_item_id()
        return [
            {
                "item": item,
                "owned": item.id in owned,
                "equipped": item.id == equipped,
                "locked": is_locked(item, level),
            }
            for item in items
        ]

    async def leaderboard(self, limit: int | None = None) -> list[LeaderboardRow]:
        try:
            return await run_db(top_players, self._store, limit or self.config.leaderboard_size)
        except GamificationError as exc:
            self._notice(UNAVAILABLE_MESSAGE, exc)
            return []

    async def xp_history(self, limit: int = 50) -> list[XPLedgerEntry]:
        """Recent ledger entries, newest first (empty if the store can't list them)."""
        list_entries = getattr(self._store, "list_ledger_entries", None)
        if list_entries is None:
            return []
        try:
            return await run_db(list_entries, self.user_id, limit)
        except GamificationError as exc:
            self._notice(UNAVAILABLE_MESSAGE, exc)
            return []

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------
    async def award_xp(
        self,
        action_type: ActionType | str,
        xp_amount: int | None = None,
        metadata: dict | None = None,
    ) -> AwardResult:
        """Award XP for *action_type*; the action also counts toward the streak."""
        if not self._active:
            return AwardResult(Outcome.NO_SESSION, message="No active session.")

        try:
            award = await self.xp.award(action_type, xp_amount, metadata)
        except PartialFailure as exc:
            message = f"+{exc.xp_amount} XP! Coins could not be added right now."
            self._notice(message, exc)
            return AwardResult(
                Outcome.PARTIAL_FAILURE, xp_amount=exc.xp_amount, coins_earned=0, message=message
            )
        except StoreUnavailable as exc:
            self._notice(UNAVAILABLE_MESSAGE, exc)
            return AwardResult(Outcome.STORE_UNAVAILABLE, message=UNAVAILABLE_MESSAGE)

        await self._record_activity()
        return AwardResult(
            Outcome.SUCCESS,
            xp_amount=award.xp_amount,
            coins_earned=award.coins_earned,
            message=format_award_message(award.xp_amount, award.coins_earned),
        )

    async def purchase_item(self, item: ShopItem | int) -> ActionResult:
        """Buy a shop item (by value or id)."""
        if not self._active:
            return ActionResult(Outcome.NO_SESSION, "No active session.")

        try:
            if isinstance(item, int):
                found = await run_db(self._store.get_shop_item, item)
                if found is None or not found.is_active:
                    return ActionResult(Outcome.NOT_FOUND, "Item not found.")
                item = found

            if is_locked(item, self.profile.current_level):
                return ActionResult(
                    Outcome.LOCKED, f"Reach Level {item.min_level} to unlock {item.name}."
                )

            outcome = await self.inventory_manager.purchase(item)
        except GamificationError as exc:
            self._notice(UNAVAILABLE_MESSAGE, exc)
            return ActionResult(Outcome.STORE_UNAVAILABLE, UNAVAILABLE_MESSAGE)

        messages = {
            Outcome.SUCCESS: f"You bought {item.name}!",
            Outcome.INSUFFICIENT_FUNDS: "Not enough coins!",
            Outcome.ALREADY_OWNED: f"You already own {item.name}.",
        }
        return ActionResult(outcome, messages.get(outcome, ""))

    async def equip_item(self, item_id: int) -> ActionResult:
        if not self._active:
            return ActionResult(Outcome.NO_SESSION, "No active session.")
        try:
            outcome = await self.inventory_manager.equip(item_id)
        except GamificationError as exc:
            self._notice(UNAVAILABLE_MESSAGE, exc)
            return ActionResult(Outcome.STORE_UNAVAILABLE, UNAVAILABLE_MESSAGE)

        if outcome is Outcome.NOT_OWNED:
            return ActionResult(outcome, "You don't own that item.")
        return ActionResult(outcome, "Item equipped!")

    async def refresh(self) -> ActionResult:
        """Re-read profile, streak and inventory from the store.

        Also resubscribes when the change feed had been lost.
        """
        if not self._active:
            return ActionResult(Outcome.NO_SESSION, "No active session.")
        try:
            profile = await run_db(self._store.get_profile, self.user_id)
            self.reconciler.apply_truth(profile)
            await self.streak_tracker.load()
            await self.inventory_manager.load()
            self.reconciler.start()
        except GamificationError as exc:
            self._notice(UNAVAILABLE_MESSAGE, exc)
            return ActionResult(Outcome.STORE_UNAVAILABLE, UNAVAILABLE_MESSAGE)
        return ActionResult(Outcome.SUCCESS)

    async def _record_activity(self) -> None:
        try:
            await self.streak_tracker.record_activity()
        except GamificationError as exc:
            logger.warning("Streak update failed for user %s: %s", self.user_id, exc)
            self._notice("Couldn't update your streak.", exc)
