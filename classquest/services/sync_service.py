"""
classquest.services.sync_service — SyncReconciler
==================================================

Owns the local cached :class:`GamificationProfile` and merges two channels
into it:

* **intent** — optimistic deltas applied by the wallet / award engine the
  moment the user acts (:meth:`SyncReconciler.apply_intent`);
* **truth** — authoritative pushes from the store's change feed
  (:meth:`SyncReconciler.handle_push`) and explicit refreshes.

Truth always overwrites intent.  Level-up detection compares an incoming
level with the *cached* level, so duplicate or out-of-order pushes never
fire the signal twice.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace

from classquest.engine.feed import Subscription
from classquest.engine.levels import LevelCurve
from classquest.engine.profile import PROFILE_FIELDS, GamificationProfile
from classquest.store.protocol import GamificationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    profile: GamificationProfile
    leveled_up: bool = False
    old_level: int | None = None
    new_level: int | None = None


class SyncReconciler:
    """Local profile cache kept in sync with the authoritative store.

    Parameters
    ----------
    store : provides ``subscribe_profile_changes``.
    user_id : the session's user; pushes for anyone else are ignored.
    emit : ``emit(signal_name, **data)``; receives ``level_up``.
    level_curve : derives ``current_level`` when a push carries XP only.
    """

    def __init__(
        self,
        store: GamificationStore,
        user_id: str,
        *,
        emit: Callable[..., None] | None = None,
        level_curve: LevelCurve | None = None,
    ) -> None:
        self._store = store
        self.user_id = user_id
        self._emit = emit or (lambda name, **data: None)
        self._level_curve = level_curve
        self._lock = threading.Lock()
        self._profile = GamificationProfile(user_id=user_id)
        self._subscription: Subscription | None = None

    # -------------------------------------------------------------------
    # Cache reads
    # -------------------------------------------------------------------
    @property
    def profile(self) -> GamificationProfile:
        with self._lock:
            return self._profile

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    # -------------------------------------------------------------------
    # Subscription lifecycle
    # -------------------------------------------------------------------
    def start(self) -> None:
        """Subscribe to the user's change feed.  No-op when already subscribed.

        Raises
        ------
        StoreUnavailable
            The feed could not be reached; the cache stays as it is.
        """
        if self.subscribed:
            return
        self._subscription = self._store.subscribe_profile_changes(
            self.user_id, self.handle_push
        )
        logger.info("Reconciler subscribed for user %s", self.user_id)

    def stop(self) -> None:
        """Unsubscribe.  Safe to call any number of times."""
        sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.unsubscribe()
            logger.info("Reconciler unsubscribed for user %s", self.user_id)

    # -------------------------------------------------------------------
    # Truth channel
    # -------------------------------------------------------------------
    def load(self, profile: GamificationProfile) -> None:
        """Seed the cache at session start.  Never fires ``level_up``."""
        with self._lock:
            self._profile = profile

    def handle_push(self, payload: dict) -> ReconcileResult:
        """Merge an authoritative change into the cache (last write wins).

        *payload* may be a feed envelope (``{"new": {...}, "old": {...}}``)
        or a flat dict of profile fields.  The envelope's ``old`` is ignored:
        the cached level is the level-up baseline.
        """
        new = payload.get("new", payload)
        if not isinstance(new, dict):
            logger.warning("Ignoring malformed push for user %s: %s", self.user_id, payload)
            return ReconcileResult(profile=self.profile)

        target = new.get("user_id", payload.get("user_id", self.user_id))
        if str(target) != self.user_id:
            logger.debug("Ignoring push for user %s (session user %s)", target, self.user_id)
            return ReconcileResult(profile=self.profile)

        fields = {k: int(v) for k, v in new.items() if k in PROFILE_FIELDS and v is not None}
        if (
            "current_xp" in fields
            and "current_level" not in fields
            and self._level_curve is not None
        ):
            fields["current_level"] = self._level_curve(fields["current_xp"])

        return self._merge(fields)

    def _merge(self, fields: dict) -> ReconcileResult:
        with self._lock:
            old_level = self._profile.current_level
            self._profile = replace(self._profile, **fields)
            merged = self._profile

        new_level = merged.current_level
        if new_level > old_level:
            logger.info(
                "User %s leveled up: %d → %d", self.user_id, old_level, new_level
            )
            self._emit("level_up", old_level=old_level, new_level=new_level)
            return ReconcileResult(
                profile=merged, leveled_up=True, old_level=old_level, new_level=new_level
            )
        return ReconcileResult(profile=merged)

    def apply_truth(self, profile: GamificationProfile) -> ReconcileResult:
        """Merge a freshly fetched profile (e.g. after a refresh)."""
        return self._merge({k: getattr(profile, k) for k in PROFILE_FIELDS})

    # -------------------------------------------------------------------
    # Intent channel
    # -------------------------------------------------------------------
    def apply_intent(self, *, delta_xp: int = 0, delta_coins: int = 0) -> GamificationProfile:
        """Optimistically shift XP / coins.  The level is never touched."""
        with self._lock:
            self._profile = replace(
                self._profile,
                current_xp=max(self._profile.current_xp + delta_xp, 0),
                coins=max(self._profile.coins + delta_coins, 0),
            )
            return self._profile
