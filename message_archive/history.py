"""
Read path for archived message history.

The UI subscribes to the live store for the current conversation; this reader
serves the "load older history" interaction from the cold store, one
(quote request, month) partition at a time.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from message_archive.cold_store import ColdStorageBackend, partition_prefix, tenant_prefix
from message_archive.logging import get_logger
from message_archive.serialization import is_valid_tenant_id, parse_partition, validate_year_month

logger = get_logger(__name__)

_UNSORTABLE = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(record: dict[str, Any]) -> tuple[int, datetime]:
    created_at = record.get("createdAt")
    if isinstance(created_at, datetime):
        return (1, created_at)
    return (0, _UNSORTABLE)


def _check_tenant(tenant_id: str) -> str:
    if not is_valid_tenant_id(tenant_id):
        raise ValueError(f"invalid quote request id {tenant_id!r}")
    return tenant_id


class HistoryReader:
    """Merges every part-file of an archive partition into one ordered history."""

    def __init__(self, cold_store: ColdStorageBackend):
        self.cold_store = cold_store

    async def load_history(self, tenant_id: str, year_month: str) -> list[dict[str, Any]]:
        """
        Return archived messages of one quote request for one month, oldest first.

        Args:
            tenant_id: Quote request id.
            year_month: Month key, YYYY-MM (UTC).

        Returns:
            Message records with createdAt/archivedAt as datetimes; empty if
            nothing was archived for that month. Malformed lines are skipped.
        """
        prefix = partition_prefix(_check_tenant(tenant_id), validate_year_month(year_month))
        keys = await asyncio.to_thread(self.cold_store.list_prefix, prefix)
        if not keys:
            return []

        bodies = await asyncio.gather(*(asyncio.to_thread(self.cold_store.get_object, k) for k in keys))
        records: list[dict[str, Any]] = []
        for body in bodies:
            # Listed objects can vanish between list and get on eventually consistent stores
            if body is not None:
                records.extend(parse_partition(body))

        records.sort(key=_sort_key)
        logger.info("history.loaded", quote_request_id=tenant_id, month=year_month, parts=len(keys), records=len(records))
        return records

    async def list_archived_months(self, tenant_id: str) -> list[str]:
        """Return the YYYY-MM partitions archived for a quote request, ascending."""
        prefix = tenant_prefix(_check_tenant(tenant_id))
        keys = await asyncio.to_thread(self.cold_store.list_prefix, prefix)
        months = set()
        for key in keys:
            month = key[len(prefix):].split("/", 1)[0]
            try:
                months.add(validate_year_month(month))
            except ValueError:
                continue
        return sorted(months)
