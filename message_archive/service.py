"""
Process-level wiring: one document store, one cold store, the archival job and
the history reader, constructed once by the entry point (CLI or HTTP app).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from message_archive.archiver import ArchivalJob, ArchivalResult
from message_archive.cold_store import ColdStorageBackend, create_cold_store
from message_archive.config import Settings, load_settings
from message_archive.db import Database, log_audit
from message_archive.document_store import DocumentStore, SqlDocumentStore
from message_archive.history import HistoryReader


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ArchiveService:
    def __init__(
        self,
        documents: DocumentStore,
        cold_store: ColdStorageBackend,
        settings_provider: Callable[[], Settings] = load_settings,
        database: Database | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.documents = documents
        self.cold_store = cold_store
        self.settings_provider = settings_provider
        self.database = database
        self.job = ArchivalJob(documents, cold_store, settings_provider, clock)
        self.history = HistoryReader(cold_store)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ArchiveService":
        """Build the production service: SQL live store plus the configured cold store."""
        settings = settings or load_settings()
        database = Database.from_settings(settings)
        return cls(SqlDocumentStore(database), create_cold_store(settings), database=database)

    async def run_archival(self, triggered_by: str = "scheduler") -> ArchivalResult:
        """Run the archival job once and record the run in the audit log (SQL store only)."""
        result = await self.job.run()
        if self.database is not None:
            async with self.database.session_scope() as session:
                await log_audit(
                    session,
                    "archive.run",
                    "messages",
                    details={**result.as_dict(), "triggeredBy": triggered_by},
                )
        return result

    async def load_history(self, tenant_id: str, year_month: str) -> list[dict[str, Any]]:
        return await self.history.load_history(tenant_id, year_month)

    async def list_archived_months(self, tenant_id: str) -> list[str]:
        return await self.history.list_archived_months(tenant_id)

    async def close(self) -> None:
        if self.database is not None:
            await self.database.dispose()
