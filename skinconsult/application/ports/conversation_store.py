from abc import ABC, abstractmethod
from typing import Any


class ConversationStorePort(ABC):
    @abstractmethod
    def append_message(self, session_id: str, role: str, text: str, meta: dict[str, Any] | None = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_history(self, session_id: str) -> list[dict[str, Any]]:
        """Full message log of a session, in append order."""
        raise NotImplementedError
