"""
Archive line format and partition keys.

- One message per line, JSON object, self-describing: all document fields plus
  "id", an ISO-8601 "createdAt" (UTC, "Z" suffix) and "archivedAt".
- Partition key: (quoteRequestId, YYYY-MM of createdAt in UTC).
- Reading is tolerant: lines that are not JSON objects are skipped, and
  timestamps are restored on a best-effort basis.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Iterable

from message_archive.logging import get_logger

logger = get_logger(__name__)

UNKNOWN_TENANT = "unknown"
TIMESTAMP_FIELDS = ("createdAt", "archivedAt")

_YEAR_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def validate_year_month(value: str) -> str:
    """Return value if it is a YYYY-MM month key; raise ValueError otherwise."""
    if not isinstance(value, str) or not _YEAR_MONTH_RE.match(value):
        raise ValueError(f"invalid month {value!r}: expected YYYY-MM")
    return value


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 in UTC with a Z suffix (2024-05-01T12:00:00Z)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    """
    Best-effort conversion to an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (with or without Z / offset), epoch
    milliseconds, and {"_seconds", "_nanoseconds"} maps as produced by some
    document-store exports. Returns None when nothing sensible can be made of it.
    """
    if isinstance(value, datetime):
        return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, dict):
        seconds = value.get("_seconds", value.get("seconds"))
        nanos = value.get("_nanoseconds", value.get("nanoseconds", 0)) or 0
        if isinstance(seconds, (int, float)) and isinstance(nanos, (int, float)):
            return parse_timestamp(seconds * 1000 + nanos / 1_000_000)
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return parse_timestamp(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def year_month(created_at: datetime) -> str:
    """YYYY-MM of a timestamp, in UTC."""
    return created_at.astimezone(timezone.utc).strftime("%Y-%m")


def is_valid_tenant_id(value: Any) -> bool:
    """A quote request id usable as a single key segment (non-blank, no "/")."""
    return isinstance(value, str) and bool(value.strip()) and "/" not in value


def partition_key(doc: dict[str, Any]) -> tuple[str, str]:
    """
    (tenant, YYYY-MM) for a live message document. Ids that cannot form a
    single key segment land in the "unknown" tenant.
    """
    created_at = parse_timestamp(doc.get("createdAt"))
    if created_at is None:
        raise ValueError(f"message {doc.get('id')!r} has no usable createdAt")
    tenant = doc.get("quoteRequestId")
    if not is_valid_tenant_id(tenant):
        if tenant:
            logger.warning("archive.tenant_unusable", message_id=doc.get("id"), quote_request_id=tenant)
        tenant = UNKNOWN_TENANT
    return (tenant, year_month(created_at))


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize_message(doc: dict[str, Any], archived_at: datetime) -> str:
    """Encode one live message as an archive line (no trailing newline)."""
    record = {"id": doc["id"], **doc}
    created_at = parse_timestamp(doc.get("createdAt"))
    if created_at is not None:
        record["createdAt"] = format_timestamp(created_at)
    record["archivedAt"] = format_timestamp(archived_at)
    return json.dumps(record, ensure_ascii=False, default=_json_default)


def serialize_partition(docs: Iterable[dict[str, Any]], archived_at: datetime) -> bytes:
    """Encode messages as JSONL: one JSON object per line."""
    return "\n".join(serialize_message(d, archived_at) for d in docs).encode("utf-8")


def parse_partition(raw: bytes) -> list[dict[str, Any]]:
    """
    Decode one part-file. Blank lines and lines that are not JSON objects are
    skipped; createdAt/archivedAt are turned back into datetimes when possible.
    """
    result = []
    for lineno, line in enumerate(raw.decode("utf-8", errors="replace").split("\n"), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("history.line_skipped", line=lineno, reason="invalid_json")
            continue
        if not isinstance(record, dict):
            logger.debug("history.line_skipped", line=lineno, reason="not_an_object")
            continue
        for field in TIMESTAMP_FIELDS:
            if field in record:
                parsed = parse_timestamp(record[field])
                if parsed is not None:
                    record[field] = parsed
        result.append(record)
    return result
