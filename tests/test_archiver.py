"""
Archival job tests: cutoff boundary, partitioning, idempotence, failure isolation,
notification purge, per-run settings reload.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from message_archive.archiver import ArchivalJob
from message_archive.cold_store import InMemoryColdStorage, partition_prefix
from message_archive.config import Settings
from message_archive.document_store import MESSAGES, NOTIFICATIONS
from message_archive.history import HistoryReader

from conftest import NOW, make_message, make_notification


class FailingColdStorage(InMemoryColdStorage):
    """Cold store whose uploads fail for keys containing a marker."""

    def __init__(self, marker: str):
        super().__init__("failing")
        self.marker = marker
        self.attempted: list[str] = []

    def put_object(self, key, body, content_type=None):
        self.attempted.append(key)
        if self.marker in key:
            raise RuntimeError(f"upload failed for {key}")
        super().put_object(key, body, content_type)


def _job(documents, cold, settings, clock):
    return ArchivalJob(documents, cold, settings_provider=lambda: settings, clock=clock)


def _lines(cold, key):
    return [json.loads(line) for line in cold.get_object(key).decode("utf-8").split("\n")]


@pytest.mark.asyncio
async def test_cutoff_boundary(documents, cold, settings, clock):
    a = make_message("qr-1", datetime(2024, 5, 1, 12, tzinfo=timezone.utc), id="A")
    b = make_message("qr-1", datetime(2024, 5, 3, tzinfo=timezone.utc), id="B")
    await documents.batch_write(MESSAGES, [a, b])

    result = await _job(documents, cold, settings, clock).run()

    assert result.archived_message_count == 1
    assert result.cutoff == datetime(2024, 5, 2, tzinfo=timezone.utc)
    assert await documents.get(MESSAGES, "A") is None
    assert await documents.get(MESSAGES, "B") is not None


@pytest.mark.asyncio
async def test_partition_correctness(documents, cold, settings, clock):
    msgs = [
        make_message("qr-1", datetime(2024, 3, 5, tzinfo=timezone.utc), id="m1"),
        make_message("qr-1", datetime(2024, 4, 9, tzinfo=timezone.utc), id="m2"),
        make_message("qr-2", datetime(2024, 3, 20, tzinfo=timezone.utc), id="m3"),
        make_message("qr-1", datetime(2024, 3, 31, 23, 59, tzinfo=timezone.utc), id="m4"),
    ]
    await documents.batch_write(MESSAGES, msgs)

    await _job(documents, cold, settings, clock).run()

    expected = {"m1": ("qr-1", "2024-03"), "m2": ("qr-1", "2024-04"), "m3": ("qr-2", "2024-03"), "m4": ("qr-1", "2024-03")}
    for msg_id, (tenant, ym) in expected.items():
        keys = cold.list_prefix(partition_prefix(tenant, ym))
        ids = {rec["id"] for key in keys for rec in _lines(cold, key)}
        assert msg_id in ids
        assert await documents.get(MESSAGES, msg_id) is None
    assert len(cold.list_prefix("messages/")) == 3
    assert documents.count(MESSAGES) == 0


@pytest.mark.asyncio
async def test_tenant_with_slash_is_archived_as_unknown(documents, cold, settings, clock):
    await documents.batch_write(MESSAGES, [
        make_message("qr-1", datetime(2024, 3, 5, tzinfo=timezone.utc), id="own"),
        make_message("qr-1/2024-03", datetime(2024, 3, 6, tzinfo=timezone.utc), id="stray"),
    ])

    result = await _job(documents, cold, settings, clock).run()

    assert result.archived_message_count == 2
    assert documents.count(MESSAGES) == 0
    stray_keys = cold.list_prefix(partition_prefix("unknown", "2024-03"))
    assert [rec["id"] for key in stray_keys for rec in _lines(cold, key)] == ["stray"]
    history = await HistoryReader(cold).load_history("qr-1", "2024-03")
    assert [m["id"] for m in history] == ["own"]


@pytest.mark.asyncio
async def test_part_files_are_jsonl_with_archived_at(documents, cold, settings, clock):
    await documents.batch_write(MESSAGES, [make_message("qr-1", datetime(2024, 3, 5, tzinfo=timezone.utc), id="m1")])
    await _job(documents, cold, settings, clock).run()

    [key] = cold.list_prefix(partition_prefix("qr-1", "2024-03"))
    assert key.endswith(".jsonl")
    assert cold.content_type(key) == "application/x-ndjson"
    [record] = _lines(cold, key)
    assert record["createdAt"] == "2024-03-05T00:00:00Z"
    assert record["archivedAt"] == "2024-06-01T00:00:00Z"


@pytest.mark.asyncio
async def test_second_run_is_a_no_op(documents, cold, settings, clock):
    old = datetime(2024, 1, 1, tzinfo=timezone.utc)
    await documents.batch_write(MESSAGES, [make_message("qr-1", old + timedelta(hours=i)) for i in range(7)])
    await documents.batch_write(NOTIFICATIONS, [make_notification(old) for _ in range(3)])
    job = _job(documents, cold, settings, clock)

    first = await job.run()
    objects_after_first = cold.list_prefix("messages/")
    second = await job.run()

    assert (first.archived_message_count, first.deleted_notification_count) == (7, 3)
    assert (second.archived_message_count, second.deleted_notification_count) == (0, 0)
    assert cold.list_prefix("messages/") == objects_after_first


@pytest.mark.asyncio
async def test_pages_through_everything(documents, cold, clock):
    settings = Settings(message_retention_days=30, page_size=2)
    old = datetime(2024, 1, 1, tzinfo=timezone.utc)
    await documents.batch_write(MESSAGES, [make_message("qr-1", old + timedelta(minutes=i)) for i in range(5)])

    result = await _job(documents, cold, settings, clock).run()

    assert result.archived_message_count == 5
    assert documents.count(MESSAGES) == 0
    # one part-file per page for the single partition
    assert len(cold.list_prefix(partition_prefix("qr-1", "2024-01"))) == 3


@pytest.mark.asyncio
async def test_failed_upload_keeps_page_in_live_store(documents, settings, clock):
    old = datetime(2024, 1, 1, tzinfo=timezone.utc)
    await documents.batch_write(MESSAGES, [
        make_message("qr-ok", old, id="ok"),
        make_message("qr-bad", old + timedelta(minutes=1), id="bad"),
    ])
    cold = FailingColdStorage("qr-bad")

    with pytest.raises(RuntimeError):
        await _job(documents, cold, settings, clock).run()

    # the healthy group was still attempted, but nothing was deleted
    assert len(cold.attempted) == 2
    assert await documents.get(MESSAGES, "ok") is not None
    assert await documents.get(MESSAGES, "bad") is not None


@pytest.mark.asyncio
async def test_failure_on_later_page_keeps_earlier_pages_archived(documents, clock):
    settings = Settings(message_retention_days=30, page_size=2)
    old = datetime(2024, 1, 1, tzinfo=timezone.utc)
    msgs = [make_message("qr-1", old + timedelta(minutes=i), id=f"m{i}") for i in range(4)]
    await documents.batch_write(MESSAGES, msgs)
    cold = FailingColdStorage("-00001.jsonl")

    with pytest.raises(RuntimeError):
        await _job(documents, cold, settings, clock).run()

    assert await documents.get(MESSAGES, "m0") is None
    assert await documents.get(MESSAGES, "m1") is None
    assert await documents.get(MESSAGES, "m2") is not None
    assert await documents.get(MESSAGES, "m3") is not None

    # a clean rerun only picks up what is still live
    healthy = InMemoryColdStorage()
    result = await _job(documents, healthy, settings, clock).run()
    assert result.archived_message_count == 2


@pytest.mark.asyncio
async def test_notifications_are_purged_without_archive(documents, cold, settings, clock):
    await documents.batch_write(NOTIFICATIONS, [
        make_notification(NOW - timedelta(days=46), id="old"),
        make_notification(NOW - timedelta(days=44), id="fresh"),
    ])

    result = await _job(documents, cold, settings, clock).run()

    assert result.deleted_notification_count == 1
    assert result.notification_cutoff == NOW - timedelta(days=45)
    assert await documents.get(NOTIFICATIONS, "old") is None
    assert await documents.get(NOTIFICATIONS, "fresh") is not None
    assert cold.list_prefix("") == []


@pytest.mark.asyncio
async def test_settings_are_reread_every_run(documents, cold, clock):
    calls = []
    retention = iter([200, 30])

    def provider():
        calls.append(1)
        return Settings(message_retention_days=next(retention))

    await documents.batch_write(MESSAGES, [make_message("qr-1", NOW - timedelta(days=60))])
    job = ArchivalJob(documents, cold, settings_provider=provider, clock=clock)

    first = await job.run()
    second = await job.run()

    assert len(calls) == 2
    assert first.archived_message_count == 0
    assert second.archived_message_count == 1


@pytest.mark.asyncio
async def test_result_as_dict(documents, cold, settings, clock):
    result = await _job(documents, cold, settings, clock).run()
    assert result.as_dict() == {
        "archivedMessages": 0,
        "deletedNotifications": 0,
        "bucket": "test-archive",
        "cutoff": "2024-05-02T00:00:00Z",
        "notificationCutoff": "2024-04-17T00:00:00Z",
    }
