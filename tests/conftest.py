"""Shared fixtures: in-memory live and cold stores, fixed clock, message factory."""

import uuid
from datetime import datetime, timezone

import pytest

from message_archive.cold_store import InMemoryColdStorage
from message_archive.config import Settings
from message_archive.document_store import InMemoryDocumentStore

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def make_message(quote_request_id: str, created_at: datetime, text: str = "hello", **extra) -> dict:
    doc = {
        "id": extra.pop("id", uuid.uuid4().hex),
        "quoteRequestId": quote_request_id,
        "text": text,
        "sender": "anna@example.com",
        "senderCountry": "Sweden",
        "createdAt": created_at,
        "files": [],
        "readBy": [],
    }
    doc.update(extra)
    return doc


def make_notification(created_at: datetime, **extra) -> dict:
    doc = {
        "id": extra.pop("id", uuid.uuid4().hex),
        "quoteRequestId": "qr-1",
        "recipientCountry": "Norway",
        "senderCountry": "Sweden",
        "message": "New quote request",
        "isRead": False,
        "createdAt": created_at,
    }
    doc.update(extra)
    return doc


@pytest.fixture
def documents():
    return InMemoryDocumentStore()


@pytest.fixture
def cold():
    return InMemoryColdStorage("test-archive")


@pytest.fixture
def settings():
    return Settings(message_retention_days=30, notification_ttl_days=45, page_size=500, archive_bucket="test-archive")


@pytest.fixture
def clock():
    return lambda: NOW
