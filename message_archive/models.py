"""
SQLAlchemy models for the live store: messages and notifications.

- messages: chat messages of a quote request; created_at drives archival to the cold store.
- notifications: per-country notices; purged outright after the notification TTL.

Each model declares FIELDS, the mapping from document field names (as stored in
archive lines and returned to the UI) to column attributes.
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from message_archive.base import Base

# JSONB on PostgreSQL, plain JSON elsewhere
JsonDocument = JSON().with_variant(JSONB(), "postgresql")


def _utc_now() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


class Message(Base):
    """Single chat message of a quote request conversation."""

    __tablename__ = "messages"

    FIELDS = {
        "id": "id",
        "quoteRequestId": "quote_request_id",
        "text": "text",
        "sender": "sender",
        "senderCountry": "sender_country",
        "createdAt": "created_at",
        "files": "files",
        "readBy": "read_by",
    }

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    quote_request_id: Mapped[str] = mapped_column(String(128), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sender: Mapped[str] = mapped_column(String(256), nullable=False)
    sender_country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utc_now)
    files: Mapped[list[dict[str, Any]]] = mapped_column(JsonDocument, nullable=False, default=list)
    read_by: Mapped[list[str]] = mapped_column(JsonDocument, nullable=False, default=list)

    __table_args__ = (
        Index("ix_messages_created_at_id", "created_at", "id"),
        Index("ix_messages_quote_request_id_created_at", "quote_request_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Message id={self.id} quote_request_id={self.quote_request_id}>"


class Notification(Base):
    """Notification raised by a domain event; no archive tier."""

    __tablename__ = "notifications"

    FIELDS = {
        "id": "id",
        "quoteRequestId": "quote_request_id",
        "recipientCountry": "recipient_country",
        "senderCountry": "sender_country",
        "message": "message",
        "isRead": "is_read",
        "createdAt": "created_at",
    }

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    quote_request_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    recipient_country: Mapped[str] = mapped_column(String(128), nullable=False)
    sender_country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utc_now)

    __table_args__ = (Index("ix_notifications_created_at_id", "created_at", "id"),)

    def __repr__(self) -> str:
        return f"<Notification id={self.id} recipient_country={self.recipient_country}>"
