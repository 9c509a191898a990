"""
Message-Archive: live/cold storage lifecycle for quote-request messages.

Live store (document store, PostgreSQL via SQLAlchemy or in-memory):
  Base, Message, Notification, AuditLog, Database, log_audit
  DocumentStore, FieldFilter, InMemoryDocumentStore, SqlDocumentStore

Cold store (S3 / OSS / in-memory):
  InMemoryColdStorage, S3CompatibleStorage, OssStorage, create_cold_store
  partition_prefix, part_file_key

Pipeline:
  ArchivalJob, ArchivalResult, HistoryReader, RetentionPolicy, compute_cutoff
  ArchiveService (process wiring), Settings, load_settings

Messages:
  NewMessage, FileAttachment, create_message, list_live_messages, mark_read, create_notification
"""

from message_archive.archiver import ArchivalJob, ArchivalResult
from message_archive.base import Base
from message_archive.cold_store import (
    InMemoryColdStorage,
    OssStorage,
    S3CompatibleStorage,
    create_cold_store,
    part_file_key,
    partition_prefix,
)
from message_archive.config import Settings, load_settings
from message_archive.db import Database, log_audit
from message_archive.document_store import (
    DocumentStore,
    FieldFilter,
    InMemoryDocumentStore,
    SqlDocumentStore,
)
from message_archive.errors import ArchiveError, BatchLimitError, ConfigurationError, InvalidMessageError
from message_archive.history import HistoryReader
from message_archive.messages import (
    FileAttachment,
    NewMessage,
    create_message,
    create_notification,
    list_live_messages,
    mark_read,
)
from message_archive.models import Message, Notification
from message_archive.models_audit import AuditLog
from message_archive.retention import RetentionPolicy, compute_cutoff
from message_archive.service import ArchiveService

__all__ = [
    "ArchivalJob",
    "ArchivalResult",
    "ArchiveError",
    "ArchiveService",
    "AuditLog",
    "Base",
    "BatchLimitError",
    "ConfigurationError",
    "Database",
    "DocumentStore",
    "FieldFilter",
    "FileAttachment",
    "HistoryReader",
    "InMemoryColdStorage",
    "InMemoryDocumentStore",
    "InvalidMessageError",
    "Message",
    "NewMessage",
    "Notification",
    "OssStorage",
    "RetentionPolicy",
    "S3CompatibleStorage",
    "Settings",
    "SqlDocumentStore",
    "compute_cutoff",
    "create_cold_store",
    "create_message",
    "create_notification",
    "list_live_messages",
    "load_settings",
    "log_audit",
    "mark_read",
    "part_file_key",
    "partition_prefix",
]
