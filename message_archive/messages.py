"""
Live-store message operations used by the messaging UI.

Messages are created here and only ever leave the live store through the
archival job.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from message_archive.document_store import MESSAGES, NOTIFICATIONS, Document, DocumentStore, FieldFilter
from message_archive.errors import InvalidMessageError


class FileAttachment(BaseModel):
    name: str
    url: str
    type: str = "application/octet-stream"
    size: int = Field(default=0, ge=0)


class NewMessage(BaseModel):
    quote_request_id: str = Field(min_length=1, pattern=r"^[^/]+$")
    sender: str = Field(min_length=1)
    sender_country: str = Field(min_length=1)
    text: str = ""
    files: list[FileAttachment] = Field(default_factory=list)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def create_message(store: DocumentStore, new: NewMessage, now: Optional[datetime] = None) -> Document:
    """
    Write a new message to the live store and return the stored document.

    A message must carry content: non-blank text or at least one attachment.
    """
    text = new.text.strip()
    if not text and not new.files:
        raise InvalidMessageError("message needs text or at least one file")
    doc: Document = {
        "id": uuid.uuid4().hex,
        "quoteRequestId": new.quote_request_id,
        "text": text,
        "sender": new.sender,
        "senderCountry": new.sender_country,
        "createdAt": now or _utc_now(),
        "files": [f.model_dump() for f in new.files],
        "readBy": [],
    }
    await store.batch_write(MESSAGES, [doc])
    return doc


async def list_live_messages(store: DocumentStore, quote_request_id: str, limit: int = 500) -> list[Document]:
    """Live messages of one quote request, oldest first."""
    return await store.query(
        MESSAGES,
        [FieldFilter("quoteRequestId", "==", quote_request_id)],
        order_by="createdAt",
        limit=limit,
    )


async def mark_read(store: DocumentStore, message_id: str, identity: str) -> Document | None:
    """
    Record that identity has read a message. Returns the updated document, or
    None when the message is no longer live (already archived or deleted).
    """
    # Update-only: a message archived meanwhile must not be written back
    if not await store.update_array_union(MESSAGES, message_id, "readBy", identity):
        return None
    return await store.get(MESSAGES, message_id)


async def create_notification(
    store: DocumentStore,
    recipient_country: str,
    message: str,
    quote_request_id: str | None = None,
    sender_country: str | None = None,
    now: Optional[datetime] = None,
) -> Document:
    doc: dict[str, Any] = {
        "id": uuid.uuid4().hex,
        "quoteRequestId": quote_request_id,
        "recipientCountry": recipient_country,
        "senderCountry": sender_country,
        "message": message,
        "isRead": False,
        "createdAt": now or _utc_now(),
    }
    await store.batch_write(NOTIFICATIONS, [doc])
    return doc
