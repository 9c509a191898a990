"""
Live store adapter: abstract document interface and implementations.

- DocumentStore: protocol for filtered, ordered, cursor-paginated queries and
  atomic batched writes/deletes (bounded by MAX_BATCH_SIZE).
- InMemoryDocumentStore: dict-backed store for tests and local dev.
- SqlDocumentStore: SQLAlchemy async store over the models in message_archive.models.

Documents are plain dicts keyed by field name ("quoteRequestId", "createdAt", ...)
with a string "id". Queries order by (order_by, id) so that a cursor taken from
the last document of a page resumes exactly after it.
"""

from __future__ import annotations

import copy
import operator
from datetime import datetime, timezone
from typing import Any, Callable, NamedTuple, Protocol, Sequence

from sqlalchemy import and_, delete, or_, select, update

from message_archive.db import Database
from message_archive.errors import BatchLimitError
from message_archive.models import Message, Notification

Document = dict[str, Any]

# Largest number of operations accepted by one atomic batch.
MAX_BATCH_SIZE = 500

MESSAGES = "messages"
NOTIFICATIONS = "notifications"

_OPS: dict[str, Callable[[Any, Any], Any]] = {
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    ">=": operator.ge,
    ">": operator.gt,
}


class FieldFilter(NamedTuple):
    """Single comparison, e.g. FieldFilter("createdAt", "<", cutoff)."""

    field: str
    op: str
    value: Any


def _check_batch(size: int) -> None:
    if size > MAX_BATCH_SIZE:
        raise BatchLimitError(size, MAX_BATCH_SIZE)


class DocumentStore(Protocol):
    """Protocol for the live document store."""

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: str = "createdAt",
        limit: int = MAX_BATCH_SIZE,
        start_after: Document | None = None,
    ) -> list[Document]:
        """Return up to limit documents matching all filters, ascending by (order_by, id)."""
        ...

    async def get(self, collection: str, doc_id: str) -> Document | None:
        """Return one document, or None if it does not exist."""
        ...

    async def batch_write(self, collection: str, records: Sequence[Document]) -> None:
        """Upsert records atomically. Each record must carry an "id"."""
        ...

    async def batch_delete(self, collection: str, ids: Sequence[str]) -> None:
        """Delete ids atomically; ids that do not exist are ignored."""
        ...

    async def update_array_union(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        """
        Add value to the list field of an existing document (no duplicates).
        Never creates a document; returns False when doc_id does not exist.
        """
        ...


class InMemoryDocumentStore:
    """
    In-memory backend for tests and local dev without a database.

    Returned documents are copies; mutating them does not touch the store.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = {}

    def _collection(self, name: str) -> dict[str, Document]:
        return self._collections.setdefault(name, {})

    def count(self, collection: str) -> int:
        return len(self._collection(collection))

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: str = "createdAt",
        limit: int = MAX_BATCH_SIZE,
        start_after: Document | None = None,
    ) -> list[Document]:
        docs = [
            d
            for d in self._collection(collection).values()
            if all(f.field in d and _OPS[f.op](d[f.field], f.value) for f in filters)
        ]
        docs.sort(key=lambda d: (d[order_by], d["id"]))
        if start_after is not None:
            cursor = (start_after[order_by], start_after["id"])
            docs = [d for d in docs if (d[order_by], d["id"]) > cursor]
        return [copy.deepcopy(d) for d in docs[:limit]]

    async def get(self, collection: str, doc_id: str) -> Document | None:
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def batch_write(self, collection: str, records: Sequence[Document]) -> None:
        _check_batch(len(records))
        if any(not r.get("id") for r in records):
            raise ValueError("every record in a batch write needs an id")
        target = self._collection(collection)
        for r in records:
            target[r["id"]] = copy.deepcopy(dict(r))

    async def batch_delete(self, collection: str, ids: Sequence[str]) -> None:
        _check_batch(len(ids))
        target = self._collection(collection)
        for doc_id in ids:
            target.pop(doc_id, None)

    async def update_array_union(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        doc = self._collection(collection).get(doc_id)
        if doc is None:
            return False
        items = list(doc.get(field) or [])
        if value not in items:
            items.append(value)
        doc[field] = items
        return True


def _as_utc(value: Any) -> Any:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlDocumentStore:
    """
    SQLAlchemy async backend (PostgreSQL in production).

    Each batch runs in a single transaction, which gives the all-or-nothing
    behaviour the archival job relies on.
    """

    DEFAULT_MODELS = {MESSAGES: Message, NOTIFICATIONS: Notification}

    def __init__(self, database: Database, models: dict[str, type] | None = None):
        self.database = database
        self.models = models or dict(self.DEFAULT_MODELS)

    def _model(self, collection: str):
        try:
            return self.models[collection]
        except KeyError:
            raise ValueError(f"unknown collection {collection!r}") from None

    @staticmethod
    def _column(model, field: str):
        try:
            return getattr(model, model.FIELDS[field])
        except KeyError:
            raise ValueError(f"unknown field {field!r} for {model.__tablename__}") from None

    @staticmethod
    def _to_document(model, row) -> Document:
        return {field: _as_utc(getattr(row, attr)) for field, attr in model.FIELDS.items()}

    @staticmethod
    def _to_row(model, record: Document):
        values = {attr: record[field] for field, attr in model.FIELDS.items() if field in record}
        return model(**values)

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: str = "createdAt",
        limit: int = MAX_BATCH_SIZE,
        start_after: Document | None = None,
    ) -> list[Document]:
        model = self._model(collection)
        stmt = select(model)
        for f in filters:
            stmt = stmt.where(_OPS[f.op](self._column(model, f.field), f.value))
        order_col = self._column(model, order_by)
        if start_after is not None:
            value, last_id = start_after[order_by], start_after["id"]
            stmt = stmt.where(or_(order_col > value, and_(order_col == value, model.id > last_id)))
        stmt = stmt.order_by(order_col.asc(), model.id.asc()).limit(limit)
        async with self.database.session_scope() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [self._to_document(model, r) for r in rows]

    async def get(self, collection: str, doc_id: str) -> Document | None:
        model = self._model(collection)
        async with self.database.session_scope() as session:
            row = await session.get(model, doc_id)
            return self._to_document(model, row) if row is not None else None

    async def batch_write(self, collection: str, records: Sequence[Document]) -> None:
        _check_batch(len(records))
        if any(not r.get("id") for r in records):
            raise ValueError("every record in a batch write needs an id")
        model = self._model(collection)
        async with self.database.session_scope() as session:
            for r in records:
                await session.merge(self._to_row(model, r))

    async def batch_delete(self, collection: str, ids: Sequence[str]) -> None:
        _check_batch(len(ids))
        if not ids:
            return
        model = self._model(collection)
        async with self.database.session_scope() as session:
            await session.execute(delete(model).where(model.id.in_(list(ids))))

    async def update_array_union(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        model = self._model(collection)
        column = self._column(model, field)
        async with self.database.session_scope() as session:
            # Row lock so a concurrent archival delete cannot interleave with the update
            current = (
                await session.execute(select(column).where(model.id == doc_id).with_for_update())
            ).scalar_one_or_none()
            items = list(current or [])
            if value not in items:
                items.append(value)
            result = await session.execute(update(model).where(model.id == doc_id).values({column: items}))
            return result.rowcount > 0
