from __future__ import annotations

import logging
import threading
import time
import uuid
from contextlib import AbstractContextManager
from dataclasses import replace
from typing import Callable

from skinconsult.application.ports.session_store import SessionStorePort
from skinconsult.domain.entities.session import SessionState

logger = logging.getLogger(__name__)


class _SessionLock:
    """Per-session mutex that reports each release, so the registry can forget ended sessions."""

    def __init__(self, on_release: Callable[[], None]) -> None:
        self._lock = threading.Lock()
        self._on_release = on_release

    def __enter__(self) -> _SessionLock:
        self._lock.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self._lock.release()
        self._on_release()

    def locked(self) -> bool:
        return self._lock.locked()


class MemorySessionStore(SessionStorePort):
    """
    Process-local session registry.

    Sessions idle for longer than `ttl_seconds` are evicted, and the registry never holds
    more than `max_sessions` (least recently seen go first). Lock entries live only as long
    as their session: unknown ids get a throwaway lock, and a lock held while its session
    is deleted is forgotten when the holder releases it.
    """

    def __init__(
        self,
        ttl_seconds: float = 6 * 3600,
        max_sessions: int = 5000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sessions: dict[str, SessionState] = {}
        self._locks: dict[str, _SessionLock] = {}
        self._lock_lock = threading.Lock()  # guards both dicts
        self._ttl_seconds = ttl_seconds
        self._max_sessions = max_sessions
        self._clock = clock

    def lock(self, session_id: str) -> AbstractContextManager:
        with self._lock_lock:
            if session_id not in self._sessions:
                return threading.Lock()
            if session_id not in self._locks:
                self._locks[session_id] = _SessionLock(lambda: self._forget_lock(session_id))
            return self._locks[session_id]

    def lock_count(self) -> int:
        with self._lock_lock:
            return len(self._locks)

    def create(self, user_name: str) -> SessionState:
        now = self._clock()
        self.evict_expired(now)
        state = SessionState(
            session_id=uuid.uuid4().hex,
            user_name=user_name,
            created_at=now,
            last_seen_at=now,
        )
        with self._lock_lock:
            self._sessions[state.session_id] = state
            overflow = len(self._sessions) - self._max_sessions
            if overflow > 0:
                oldest = sorted(self._sessions.values(), key=lambda s: s.last_seen_at or 0.0)[:overflow]
                for stale in oldest:
                    self._drop(stale.session_id)
                logger.info("Session cap reached, evicted %s sessions", overflow)
        return state

    def get(self, session_id: str) -> SessionState | None:
        self.evict_expired()
        with self._lock_lock:
            return self._sessions.get(session_id)

    def save(self, state: SessionState) -> None:
        if state.last_seen_at is None:
            state = replace(state, last_seen_at=self._clock())
        with self._lock_lock:
            self._sessions[state.session_id] = state

    def delete(self, session_id: str) -> None:
        with self._lock_lock:
            self._drop(session_id)

    def evict_expired(self, now_ts: float | None = None) -> list[str]:
        now = self._clock() if now_ts is None else now_ts
        with self._lock_lock:
            expired = [
                session_id
                for session_id, state in self._sessions.items()
                if now - (state.last_seen_at or state.created_at or now) > self._ttl_seconds
            ]
            for session_id in expired:
                self._drop(session_id)
        if expired:
            logger.info("Evicted %s idle sessions", len(expired))
        return expired

    def _drop(self, session_id: str) -> None:
        # Caller holds _lock_lock. A held lock stays registered until its holder releases it.
        self._sessions.pop(session_id, None)
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            self._locks.pop(session_id, None)

    def _forget_lock(self, session_id: str) -> None:
        with self._lock_lock:
            if session_id in self._sessions:
                return
            lock = self._locks.get(session_id)
            if lock is not None and not lock.locked():
                self._locks.pop(session_id, None)
