from __future__ import annotations

import threading
import time
from typing import Any

from skinconsult.application.ports.conversation_store import ConversationStorePort


class MemoryConversationStore(ConversationStorePort):
    def __init__(self) -> None:
        self._sessions: dict[str, list[dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def append_message(self, session_id: str, role: str, text: str, meta: dict[str, Any] | None = None) -> None:
        with self._lock:
            self._sessions.setdefault(session_id, []).append(
                {
                    "role": role,
                    "text": text,
                    "ts": time.time(),
                    "meta": dict(meta or {}),
                }
            )

    def get_history(self, session_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._sessions.get(session_id, []))
