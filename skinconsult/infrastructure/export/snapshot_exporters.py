from __future__ import annotations

import logging
from dataclasses import asdict

import httpx

from skinconsult.application.exceptions import SnapshotExportError
from skinconsult.application.ports.snapshot_exporter import SnapshotExporterPort
from skinconsult.domain.entities.snapshot import SessionSnapshot

logger = logging.getLogger(__name__)


class LoggingSnapshotExporter(SnapshotExporterPort):
    def export(self, snapshot: SessionSnapshot) -> None:
        logger.info(
            "Session snapshot ready",
            extra={
                "session_id": snapshot.session_id,
                "reason": f"messages={snapshot.message_count} recommendation={snapshot.final_recommendation_sent}",
            },
        )


class HttpSnapshotExporter(SnapshotExporterPort):
    """POSTs the snapshot as JSON to a CRM webhook (spreadsheet or mailing-list bridge)."""

    def __init__(
        self,
        webhook_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.token = token
        self.timeout = timeout
        self.transport = transport

    def export(self, snapshot: SessionSnapshot) -> None:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.webhook_url, json=asdict(snapshot), headers=headers)
        except httpx.HTTPError as e:
            raise SnapshotExportError(f"CRM webhook unreachable: {e}") from e

        if response.status_code >= 400:
            logger.error(
                "CRM webhook rejected snapshot",
                extra={"session_id": snapshot.session_id, "reason": f"status={response.status_code}"},
            )
            raise SnapshotExportError(f"CRM webhook returned {response.status_code}")
