"""
Archival job: move expired messages from the live store to the cold store and
purge expired notifications.

Pages are processed strictly one after another. For each page every partition
group is uploaded (concurrently), and only once all uploads have succeeded is
the page deleted from the live store, in one atomic batch. A failed upload
aborts the run before the delete, so a record is always in at least one store.

Runs must not overlap; the scheduler that triggers run() guarantees this.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from message_archive.cold_store import JSONL_CONTENT_TYPE, ColdStorageBackend, part_file_key, run_stamp
from message_archive.config import Settings, load_settings
from message_archive.document_store import MESSAGES, NOTIFICATIONS, Document, DocumentStore, FieldFilter
from message_archive.logging import get_logger
from message_archive.retention import RetentionPolicy
from message_archive.serialization import format_timestamp, partition_key, serialize_partition

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ArchivalResult:
    archived_message_count: int
    deleted_notification_count: int
    cutoff: datetime
    notification_cutoff: datetime
    bucket: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "archivedMessages": self.archived_message_count,
            "deletedNotifications": self.deleted_notification_count,
            "bucket": self.bucket,
            "cutoff": format_timestamp(self.cutoff),
            "notificationCutoff": format_timestamp(self.notification_cutoff),
        }


class ArchivalJob:
    """
    Singleton batch task triggered by an external scheduler.

    Args:
        documents: Live document store.
        cold_store: Archive object storage.
        settings_provider: Called at the start of every run; retention and page
            size are never cached between runs.
        clock: Returns the current aware UTC time (injected by tests).
    """

    def __init__(
        self,
        documents: DocumentStore,
        cold_store: ColdStorageBackend,
        settings_provider: Callable[[], Settings] = load_settings,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.documents = documents
        self.cold_store = cold_store
        self._settings_provider = settings_provider
        self._clock = clock

    async def run(self) -> ArchivalResult:
        settings = self._settings_provider()
        policy = RetentionPolicy.from_settings(settings)
        started_at = self._clock()
        cutoff, notification_cutoff = policy.cutoffs(started_at)
        log = logger.bind(run=run_stamp(started_at))
        log.info(
            "archive.run.started",
            cutoff=format_timestamp(cutoff),
            notification_cutoff=format_timestamp(notification_cutoff),
            bucket=self.cold_store.bucket,
        )

        archived = await self.archive_messages(cutoff, started_at, settings.page_size)
        deleted = await self.purge_notifications(notification_cutoff, settings.page_size)

        log.info("archive.run.completed", archived_messages=archived, deleted_notifications=deleted)
        return ArchivalResult(archived, deleted, cutoff, notification_cutoff, self.cold_store.bucket)

    async def archive_messages(self, cutoff: datetime, started_at: datetime, page_size: int) -> int:
        """Archive and delete every live message with createdAt < cutoff. Returns the count."""
        stamp = run_stamp(started_at)
        total = 0
        page = 0
        last: Document | None = None
        while True:
            docs = await self.documents.query(
                MESSAGES,
                [FieldFilter("createdAt", "<", cutoff)],
                order_by="createdAt",
                limit=page_size,
                start_after=last,
            )
            if not docs:
                break
            partitions = await self._write_page(docs, stamp, page, started_at)
            await self.documents.batch_delete(MESSAGES, [d["id"] for d in docs])
            total += len(docs)
            last = docs[-1]
            logger.info("archive.page.archived", page=page, records=len(docs), partitions=partitions)
            page += 1
            if len(docs) < page_size:
                break
        return total

    async def _write_page(self, docs: list[Document], stamp: str, page: int, archived_at: datetime) -> int:
        groups: dict[tuple[str, str], list[Document]] = defaultdict(list)
        for d in docs:
            groups[partition_key(d)].append(d)

        uploads = [
            asyncio.to_thread(
                self.cold_store.put_object,
                part_file_key(tenant, ym, stamp, page),
                serialize_partition(group, archived_at),
                JSONL_CONTENT_TYPE,
            )
            for (tenant, ym), group in groups.items()
        ]
        # Let every upload settle before deciding; the page is deleted only if all succeeded.
        results = await asyncio.gather(*uploads, return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.error("archive.page.write_failed", page=page, failed=len(failures), partitions=len(groups))
            raise failures[0]
        return len(groups)

    async def purge_notifications(self, cutoff: datetime, page_size: int) -> int:
        """Delete every notification with createdAt < cutoff. Returns the count."""
        total = 0
        last: Document | None = None
        while True:
            docs = await self.documents.query(
                NOTIFICATIONS,
                [FieldFilter("createdAt", "<", cutoff)],
                order_by="createdAt",
                limit=page_size,
                start_after=last,
            )
            if not docs:
                break
            await self.documents.batch_delete(NOTIFICATIONS, [d["id"] for d in docs])
            total += len(docs)
            last = docs[-1]
            if len(docs) < page_size:
                break
        if total:
            logger.info("archive.notifications.purged", deleted=total)
        return total
