"""Retention cutoffs for archiving messages and purging notifications."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from message_archive.config import Settings

MILLIS_PER_DAY = 86_400_000


def compute_cutoff(now_millis: int, retention_days: int) -> int:
    """Return the epoch-millis boundary below which records are eligible (createdAt < cutoff)."""
    return now_millis - retention_days * MILLIS_PER_DAY


def to_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def from_millis(millis: int) -> datetime:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


@dataclass(frozen=True)
class RetentionPolicy:
    message_retention_days: int
    notification_ttl_days: int

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetentionPolicy":
        return cls(settings.message_retention_days, settings.notification_ttl_days)

    def cutoffs(self, now: datetime) -> tuple[datetime, datetime]:
        """(message cutoff, notification cutoff) as aware UTC datetimes."""
        now_millis = to_millis(now)
        return (
            from_millis(compute_cutoff(now_millis, self.message_retention_days)),
            from_millis(compute_cutoff(now_millis, self.notification_ttl_days)),
        )
