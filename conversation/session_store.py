from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator

from conversation.models import ConversationSession, SessionKey

logger = logging.getLogger(__name__)

DEFAULT_MAX_IDLE = timedelta(minutes=30)
DEFAULT_SWEEP_INTERVAL_SEC = 300.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """In-memory wizard sessions keyed by (user, chat).

    ``lock(key)`` serializes every step for one key. Locks are retired only by
    ``sweep``; a waiter that wakes up on a retired lock re-acquires the current one.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or _utc_now
        self._guard = threading.Lock()
        self._sessions: dict[SessionKey, ConversationSession] = {}
        self._locks: dict[SessionKey, threading.RLock] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)

    @contextmanager
    def lock(self, key: SessionKey) -> Iterator[None]:
        key_lock = self._acquire(key, blocking=True)
        if key_lock is None:
            raise RuntimeError(f"could not lock session {key}")
        try:
            yield
        finally:
            key_lock.release()

    def get(self, key: SessionKey) -> ConversationSession | None:
        with self._guard:
            return self._sessions.get(key)

    def upsert(self, key: SessionKey, session: ConversationSession) -> ConversationSession:
        session.key = key
        session.touched_at = self._clock()
        with self._guard:
            self._sessions[key] = session
        return session

    def delete(self, key: SessionKey) -> bool:
        with self._guard:
            return self._sessions.pop(key, None) is not None

    def sweep(self, max_idle: timedelta = DEFAULT_MAX_IDLE) -> int:
        threshold = self._clock() - max_idle
        with self._guard:
            stale = [key for key, session in self._sessions.items() if session.touched_at < threshold]
            orphaned = [key for key in self._locks if key not in self._sessions]

        evicted = 0
        for key in stale + orphaned:
            key_lock = self._acquire(key, blocking=False)
            if key_lock is None:
                # A step handler owns the key right now; it refreshes touched_at anyway.
                continue
            try:
                with self._guard:
                    session = self._sessions.get(key)
                    if session is not None and session.touched_at < threshold:
                        del self._sessions[key]
                        evicted += 1
                        logger.info("session-evicted user_id=%s chat_id=%s", key.user_id, key.chat_id)
                    if key not in self._sessions:
                        self._locks.pop(key, None)
            finally:
                key_lock.release()
        return evicted

    def _acquire(self, key: SessionKey, blocking: bool) -> threading.RLock | None:
        while True:
            with self._guard:
                key_lock = self._locks.get(key)
                if key_lock is None:
                    key_lock = threading.RLock()
                    self._locks[key] = key_lock
            if not key_lock.acquire(blocking=blocking):
                return None
            with self._guard:
                if self._locks.get(key) is key_lock:
                    return key_lock
            key_lock.release()


class SessionSweeper:
    """Background thread that calls ``SessionStore.sweep`` on a fixed interval."""

    def __init__(
        self,
        store: SessionStore,
        max_idle: timedelta = DEFAULT_MAX_IDLE,
        interval_sec: float = DEFAULT_SWEEP_INTERVAL_SEC,
    ) -> None:
        self.store = store
        self.max_idle = max_idle
        self.interval_sec = max(1.0, float(interval_sec))
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="session-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout_sec: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout_sec)
            self._thread = None

    def run_once(self) -> int:
        evicted = self.store.sweep(self.max_idle)
        if evicted:
            logger.info("session-sweep evicted=%s remaining=%s", evicted, len(self.store))
        return evicted

    def _run(self) -> None:
        while not self._stop.wait(self.interval_sec):
            try:
                self.run_once()
            except Exception:  # noqa: BLE001
                logger.exception("session-sweep-failed")
