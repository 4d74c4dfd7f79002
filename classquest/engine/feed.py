"""
classquest.engine.feed — Per-User Profile Change Feed with PG LISTEN/NOTIFY
============================================================================

Every committed change to a ``user_gamification`` row is published as a
JSON envelope::

    {"user_id": "...", "new": {...profile...}, "old": {...profile...}}

Subscribers register per user and receive the decoded dict.  Two sources
feed the same registry:

* SQLite / single process — the store calls :meth:`ProfileChangeFeed.publish`
  right after commit.
* PostgreSQL — the store issues ``pg_notify`` inside the transaction
  (:func:`notify_profile_change`), and a background thread LISTENs on the
  channel and republishes every payload (:meth:`ProfileChangeFeed.start_listener`).

Callbacks run on whichever thread delivered the change (a ``run_db`` worker
or the listener thread) and must be thread-safe.
"""

from __future__ import annotations

import json
import logging
import random
import select as _select
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# Default PG channel name for profile changes
NOTIFY_CHANNEL = "gamification_changes"

# PG rejects NOTIFY payloads of 8000 bytes or more
MAX_NOTIFY_PAYLOAD = 7999

ChangeCallback = Callable[[dict], Any]


class Subscription:
    """Handle returned by :meth:`ProfileChangeFeed.subscribe`.

    :meth:`unsubscribe` may be called any number of times.
    """

    __slots__ = ("_feed", "user_id", "callback", "_active")

    def __init__(self, feed: ProfileChangeFeed, user_id: str, callback: ChangeCallback):
        self._feed = feed
        self.user_id = user_id
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._feed._remove(self)

    def __repr__(self) -> str:
        return f"<Subscription user={self.user_id!r} active={self._active}>"


class ProfileChangeFeed:
    """Thread-safe subscriber registry plus an optional PG LISTEN thread.

    Usage:
        feed = ProfileChangeFeed(engine)
        feed.start_listener()          # PostgreSQL only

        sub = feed.subscribe(user_id, on_update)
        ...
        sub.unsubscribe()
    """

    def __init__(
        self,
        engine: Engine | None = None,
        *,
        channel: str = NOTIFY_CHANNEL,
        max_reconnect_attempts: int = 10,
    ) -> None:
        # The channel name is interpolated into LISTEN
        if not channel.isidentifier():
            raise ValueError(f"Invalid NOTIFY channel name: {channel!r}")
        self._engine = engine
        self.channel = channel
        self._max_reconnect_attempts = max_reconnect_attempts
        self._lock = threading.Lock()
        # user_id → live subscriptions
        self._subscribers: dict[str, list[Subscription]] = {}

        self._listener_healthy: bool = False
        self._listener_failed: bool = False
        self._listener_thread: threading.Thread | None = None
        self._shutdown_event = threading.Event()

    # -------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------
    def subscribe(self, user_id: str, callback: ChangeCallback) -> Subscription:
        sub = Subscription(self, user_id, callback)
        with self._lock:
            self._subscribers.setdefault(user_id, []).append(sub)
        logger.debug("Subscribed to profile changes for user %s", user_id)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.user_id, [])
            if sub in subs:
                subs.remove(sub)
            if not subs:
                self._subscribers.pop(sub.user_id, None)
        logger.debug("Unsubscribed from profile changes for user %s", sub.user_id)

    def subscriber_count(self, user_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(user_id, []))

    # -------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------
    def publish(self, payload: dict) -> int:
        """Deliver *payload* to the subscribers of its user.

        Returns the number of callbacks invoked.  A failing callback is
        logged and does not stop delivery to the others.
        """
        user_id = payload.get("user_id") or (payload.get("new") or {}).get("user_id")
        if not user_id:
            logger.warning("Change payload without user_id: %s", payload)
            return 0

        with self._lock:
            targets = list(self._subscribers.get(str(user_id), []))

        delivered = 0
        for sub in targets:
            if not sub.active:
                continue
            try:
                sub.callback(payload)
                delivered += 1
            except Exception:
                logger.exception("Profile change callback failed for user %s", user_id)
        return delivered

    def publish_raw(self, raw_payload: str) -> int:
        """Parse a JSON NOTIFY payload and :meth:`publish` it."""
        try:
            data = json.loads(raw_payload)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Invalid change payload (not JSON): %s", raw_payload)
            return 0
        if not isinstance(data, dict):
            logger.warning("Change payload is not an object: %s", raw_payload)
            return 0
        return self.publish(data)

    # -------------------------------------------------------------------
    # PG LISTEN thread
    # -------------------------------------------------------------------
    @property
    def listener_healthy(self) -> bool:
        """Return True if the LISTEN thread is alive and connected."""
        return self._listener_healthy and not self._listener_failed

    @property
    def listener_failed(self) -> bool:
        """Return True if the listener exhausted reconnect attempts."""
        return self._listener_failed

    def stop_listener(self) -> None:
        """Signal the listener thread to stop and wait for it to exit."""
        self._shutdown_event.set()
        if self._listener_thread is not None and self._listener_thread.is_alive():
            self._listener_thread.join(timeout=5)
            logger.info("PG NOTIFY listener thread stopped")
        self._listener_healthy = False

    def start_listener(self) -> None:
        """Start a background thread that LISTENs on :attr:`channel`.

        The thread uses a raw psycopg2 connection + select() and reconnects
        with exponential backoff + jitter, giving up after
        ``max_reconnect_attempts`` consecutive failures.
        """
        if self._engine is None:
            raise RuntimeError("start_listener() needs an engine")
        if self._listener_thread is not None and self._listener_thread.is_alive():
            return

        import psycopg2

        max_backoff = 60.0
        base_backoff = 1.0
        self._shutdown_event.clear()
        self._listener_failed = False

        def _listen_thread() -> None:
            # str(engine.url) hides the password; psycopg2 needs the real one.
            raw_url = self._engine.url.render_as_string(hide_password=False)
            dsn = raw_url.replace("postgresql+psycopg2://", "postgresql://")
            attempt = 0

            while not self._shutdown_event.is_set():
                conn = None
                try:
                    conn = psycopg2.connect(dsn)
                    conn.set_isolation_level(0)  # autocommit
                    cur = conn.cursor()
                    cur.execute(f"LISTEN {self.channel};")
                    logger.info("PG LISTEN started on channel '%s'", self.channel)

                    attempt = 0
                    self._listener_healthy = True

                    while not self._shutdown_event.is_set():
                        if _select.select([conn], [], [], 5.0) == ([], [], []):
                            continue
                        conn.poll()
                        while conn.notifies:
                            notify = conn.notifies.pop(0)
                            logger.debug("NOTIFY received: %s", notify.payload)
                            self.publish_raw(notify.payload or "")

                except Exception:
                    self._listener_healthy = False
                    attempt += 1

                    if attempt >= self._max_reconnect_attempts:
                        logger.critical(
                            "PG LISTEN exhausted %d retries. "
                            "Profile pushes disabled until restart.",
                            self._max_reconnect_attempts,
                        )
                        self._listener_failed = True
                        break

                    backoff = min(base_backoff * (2 ** (attempt - 1)), max_backoff)
                    wait = backoff + random.uniform(0, backoff * 0.5)
                    logger.exception(
                        "PG LISTEN connection lost (attempt %d/%d). "
                        "Reconnecting in %.1fs…",
                        attempt, self._max_reconnect_attempts, wait,
                    )
                    if self._shutdown_event.wait(timeout=wait):
                        break
                finally:
                    if conn is not None:
                        try:
                            conn.close()
                        except Exception:
                            logger.debug("Error closing LISTEN connection", exc_info=True)

        thread = threading.Thread(
            target=_listen_thread, daemon=True, name="pg-profile-listener"
        )
        self._listener_thread = thread
        thread.start()
        logger.info("PG NOTIFY listener thread started")


def build_change_payload(user_id: str, new: dict, old: dict | None) -> dict:
    return {"user_id": user_id, "new": new, "old": old or {}}


def notify_profile_change(session: Session, channel: str, payload: dict) -> None:
    """Queue a ``pg_notify`` inside the current transaction.

    PostgreSQL only delivers it on commit, so subscribers never see a change
    that was rolled back.
    """
    raw = json.dumps(payload, default=str)
    if len(raw.encode("utf-8")) > MAX_NOTIFY_PAYLOAD:
        raise ValueError(f"NOTIFY payload too large ({len(raw)} chars)")
    session.execute(select(func.pg_notify(channel, raw)))
