"""
Error types for the archival pipeline and its surfaces.

Store adapter errors are never wrapped: they propagate unchanged to the caller.
"""

from typing import Any, Optional


class ArchiveError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Structured failure returned by the HTTP and CLI surfaces."""
        out: dict[str, Any] = {"ok": False, "error": self.message, "code": self.code}
        if self.details:
            out["details"] = self.details
        return out


class ConfigurationError(ArchiveError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("configuration_error", message, details)


class InvalidMessageError(ArchiveError):
    def __init__(self, message: str):
        super().__init__("invalid_message", message)


class BatchLimitError(ArchiveError):
    def __init__(self, size: int, limit: int):
        super().__init__(
            "batch_limit_exceeded",
            f"batch of {size} operations exceeds the limit of {limit}",
            {"size": size, "limit": limit},
        )
