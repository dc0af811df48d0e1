from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any

from skinconsult.application.ports.conversation_store import ConversationStorePort

logger = logging.getLogger(__name__)


class JsonConversationStore(ConversationStorePort):
    """One JSON file per session; writes go through a temp file and an atomic replace."""

    def __init__(self, data_dir: str = "./data/sessions") -> None:
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, threading.Lock] = {}
        self._lock_lock = threading.Lock()  # Lock for managing locks dict

    def _get_lock(self, session_id: str) -> threading.Lock:
        """Get or create a lock for a session_id."""
        with self._lock_lock:
            if session_id not in self._locks:
                self._locks[session_id] = threading.Lock()
            return self._locks[session_id]

    def _get_file_path(self, session_id: str) -> Path:
        safe_id = "".join(ch for ch in session_id if ch.isalnum() or ch in "-_")
        return self._data_dir / f"{safe_id}.json"

    def _load_session_data(self, session_id: str) -> dict[str, Any]:
        """Load session data from JSON file, return default if missing."""
        file_path = self._get_file_path(session_id)
        default = {"session_id": session_id, "messages": [], "version": 1}
        if not file_path.exists():
            return default

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Session log unreadable, starting fresh", extra={"session_id": session_id, "reason": str(e)})
            return default
        if not isinstance(data, dict) or not isinstance(data.get("messages"), list):
            return default
        return data

    def _save_session_data(self, session_id: str, data: dict[str, Any]) -> None:
        """Save session data to JSON file atomically."""
        file_path = self._get_file_path(session_id)
        temp_path = file_path.with_suffix(".json.tmp")

        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            temp_path.replace(file_path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)
            raise

    def append_message(self, session_id: str, role: str, text: str, meta: dict[str, Any] | None = None) -> None:
        with self._get_lock(session_id):
            data = self._load_session_data(session_id)
            data["messages"].append(
                {
                    "role": role,
                    "text": text,
                    "ts": time.time(),
                    "meta": dict(meta or {}),
                }
            )
            self._save_session_data(session_id, data)

    def get_history(self, session_id: str) -> list[dict[str, Any]]:
        with self._get_lock(session_id):
            return self._load_session_data(session_id)["messages"]
