from abc import ABC, abstractmethod
from contextlib import AbstractContextManager

from skinconsult.domain.entities.session import SessionState


class SessionStorePort(ABC):
    @abstractmethod
    def create(self, user_name: str) -> SessionState:
        raise NotImplementedError

    @abstractmethod
    def get(self, session_id: str) -> SessionState | None:
        raise NotImplementedError

    @abstractmethod
    def save(self, state: SessionState) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, session_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def lock(self, session_id: str) -> AbstractContextManager:
        """
        Per-session lock. Turns for one session are applied one at a time, in arrival order.
        Different sessions never share a lock.
        """
        raise NotImplementedError

    @abstractmethod
    def evict_expired(self, now_ts: float | None = None) -> list[str]:
        """Drop idle sessions past their TTL. Returns evicted session ids."""
        raise NotImplementedError
