from __future__ import annotations

import logging
import re
import time
from typing import Any

from skinconsult.application.exceptions import SessionNotFoundError, SnapshotExportError
from skinconsult.application.ports.conversation_store import ConversationStorePort
from skinconsult.application.ports.session_store import SessionStorePort
from skinconsult.application.ports.snapshot_exporter import SnapshotExporterPort
from skinconsult.domain.entities.session import SessionState
from skinconsult.domain.entities.snapshot import SessionSnapshot

NOT_SPECIFIED = "Non specificato"

EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")


def find_email(history: list[dict[str, Any]]) -> str | None:
    for message in history:
        if message.get("role") != "user":
            continue
        match = EMAIL_PATTERN.search(message.get("text") or "")
        if match:
            return match.group(0)
    return None


def build_session_snapshot(
    state: SessionState,
    history: list[dict[str, Any]],
    ended_at: float | None = None,
) -> SessionSnapshot:
    """Answers plus full transcript, in the shape CRM exporters consume."""
    answers = state.answers
    return SessionSnapshot(
        session_id=state.session_id,
        user_name=state.user_name or NOT_SPECIFIED,
        email=find_email(history) or NOT_SPECIFIED,
        answers={
            "skin_type": answers.skin_type or NOT_SPECIFIED,
            "age": answers.age or NOT_SPECIFIED,
            "main_issue": answers.main_issue or NOT_SPECIFIED,
            "advice_type": answers.advice_type or NOT_SPECIFIED,
            "additional_info": answers.additional_info or NOT_SPECIFIED,
        },
        skin_problems=answers.skin_problems,
        final_recommendation_sent=state.final_recommendation_sent,
        message_count=len(history),
        transcript=tuple(
            {"role": m.get("role"), "text": m.get("text", ""), "ts": m.get("ts")}
            for m in history
        ),
        started_at=state.created_at,
        ended_at=ended_at,
    )


class EndSessionUseCase:
    def __init__(
        self,
        sessions: SessionStorePort,
        conversations: ConversationStorePort,
        exporter: SnapshotExporterPort,
    ) -> None:
        self._sessions = sessions
        self._conversations = conversations
        self._exporter = exporter
        self._logger = logging.getLogger(__name__)

    def execute(self, session_id: str) -> SessionSnapshot:
        with self._sessions.lock(session_id):
            state = self._sessions.get(session_id)
            if state is None:
                raise SessionNotFoundError(session_id)
            snapshot = build_session_snapshot(state, self._conversations.get_history(session_id), time.time())
            self._sessions.delete(session_id)

        try:
            self._exporter.export(snapshot)
        except SnapshotExportError as e:
            self._logger.error("Snapshot export failed", extra={"session_id": session_id, "reason": str(e)})

        self._logger.info("Session ended", extra={"session_id": session_id})
        return snapshot
