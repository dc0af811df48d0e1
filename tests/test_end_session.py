"""
Tests for ending a session and exporting its snapshot.
"""

from __future__ import annotations

import json
from dataclasses import replace

import httpx
import pytest

from skinconsult.application.exceptions import SessionNotFoundError, SnapshotExportError
from skinconsult.application.ports.snapshot_exporter import SnapshotExporterPort
from skinconsult.application.use_cases.end_session import (
    NOT_SPECIFIED,
    EndSessionUseCase,
    build_session_snapshot,
    find_email,
)
from skinconsult.domain.entities.session import Answers
from skinconsult.infrastructure.export.snapshot_exporters import HttpSnapshotExporter
from skinconsult.infrastructure.store.memory_session_store import MemorySessionStore
from skinconsult.infrastructure.store.memory_store import MemoryConversationStore


class RecordingExporter(SnapshotExporterPort):
    def __init__(self, error: Exception | None = None) -> None:
        self.snapshots = []
        self.error = error

    def export(self, snapshot) -> None:
        self.snapshots.append(snapshot)
        if self.error:
            raise self.error


def _session_with_history():
    sessions = MemorySessionStore()
    conversations = MemoryConversationStore()
    state = sessions.create("Giulia")
    sessions.save(replace(state, answers=Answers(skin_type="Mista", main_issue="Acne/Brufoli"), final_recommendation_sent=True))
    conversations.append_message(state.session_id, "user", "Ho la pelle mista, scrivimi a giulia@example.com")
    conversations.append_message(state.session_id, "assistant", "Ecco la tua routine")
    return sessions, conversations, state


def test_snapshot_fills_missing_answers():
    sessions, conversations, state = _session_with_history()
    snapshot = build_session_snapshot(sessions.get(state.session_id), conversations.get_history(state.session_id))
    assert snapshot.user_name == "Giulia"
    assert snapshot.email == "giulia@example.com"
    assert snapshot.answers["skin_type"] == "Mista"
    assert snapshot.answers["age"] == NOT_SPECIFIED
    assert snapshot.message_count == 2
    assert snapshot.final_recommendation_sent


def test_email_only_from_user_messages():
    history = [{"role": "assistant", "text": "scrivi a info@beautycology.it"}, {"role": "user", "text": "ok"}]
    assert find_email(history) is None


def test_end_session_exports_and_forgets_session():
    sessions, conversations, state = _session_with_history()
    exporter = RecordingExporter()
    snapshot = EndSessionUseCase(sessions, conversations, exporter).execute(state.session_id)

    assert exporter.snapshots == [snapshot]
    assert snapshot.ended_at is not None
    assert sessions.get(state.session_id) is None
    assert len(conversations.get_history(state.session_id)) == 2

    with pytest.raises(SessionNotFoundError):
        EndSessionUseCase(sessions, conversations, exporter).execute(state.session_id)


def test_ended_sessions_leave_no_locks_behind():
    """Ending many sessions, then hitting their ids again, keeps the lock registry empty."""
    sessions = MemorySessionStore()
    conversations = MemoryConversationStore()
    use_case = EndSessionUseCase(sessions, conversations, RecordingExporter())
    ids = [sessions.create(f"utente-{i}").session_id for i in range(50)]
    for session_id in ids:
        use_case.execute(session_id)
    for session_id in ids:
        with pytest.raises(SessionNotFoundError):
            use_case.execute(session_id)

    assert sessions.lock_count() == 0


def test_export_failure_does_not_fail_the_request():
    sessions, conversations, state = _session_with_history()
    exporter = RecordingExporter(error=SnapshotExportError("down"))
    snapshot = EndSessionUseCase(sessions, conversations, exporter).execute(state.session_id)
    assert snapshot.session_id == state.session_id
    assert sessions.get(state.session_id) is None


def test_http_exporter_posts_json_with_token():
    sessions, conversations, state = _session_with_history()
    snapshot = build_session_snapshot(sessions.get(state.session_id), conversations.get_history(state.session_id))
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True})

    exporter = HttpSnapshotExporter("https://crm.example.com/hook", token="secret", transport=httpx.MockTransport(handler))
    exporter.export(snapshot)

    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["session_id"] == state.session_id
    assert seen["body"]["answers"]["main_issue"] == "Acne/Brufoli"
    assert len(seen["body"]["transcript"]) == 2


def test_http_exporter_raises_on_rejection_and_network_errors():
    sessions, conversations, state = _session_with_history()
    snapshot = build_session_snapshot(sessions.get(state.session_id), [])

    rejecting = HttpSnapshotExporter(
        "https://crm.example.com/hook",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    with pytest.raises(SnapshotExportError):
        rejecting.export(snapshot)

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    offline = HttpSnapshotExporter("https://crm.example.com/hook", transport=httpx.MockTransport(unreachable))
    with pytest.raises(SnapshotExportError):
        offline.export(snapshot)
