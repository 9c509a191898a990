"""
Cold storage for archived messages: abstract interface and implementations.

- ColdStorageBackend: protocol for put/get/list.
- InMemoryColdStorage: dict-backed, for tests and local dev without cloud credentials.
- S3CompatibleStorage: MinIO / AWS S3 / any S3-compatible (optional boto3).
- OssStorage: Aliyun OSS (optional oss2).

There is no delete: archive objects are only ever added.

Object key convention:
  messages/{quoteRequestId}/{YYYY-MM}/part-{runStamp}-{page}.jsonl
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Protocol

from message_archive.config import Settings
from message_archive.errors import ConfigurationError

ARCHIVE_ROOT = "messages"
JSONL_CONTENT_TYPE = "application/x-ndjson"


def tenant_prefix(tenant_id: str) -> str:
    """Return the prefix holding every month of one tenant (e.g. messages/q123/)."""
    return f"{ARCHIVE_ROOT}/{tenant_id}/"


def partition_prefix(tenant_id: str, year_month: str) -> str:
    """Return the prefix of one archive partition (e.g. messages/q123/2024-05/)."""
    return f"{ARCHIVE_ROOT}/{tenant_id}/{year_month}/"


def run_stamp(started_at: datetime) -> str:
    """Key-safe form of a run timestamp (2024-06-01T00-00-00-000000Z)."""
    iso = started_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return iso.replace(":", "-").replace(".", "-")


def part_file_key(tenant_id: str, year_month: str, stamp: str, page: int) -> str:
    """Return the key of the part-file written for one partition by one page of one run."""
    return f"{partition_prefix(tenant_id, year_month)}part-{stamp}-{page:05d}.jsonl"


class ColdStorageBackend(Protocol):
    """Protocol for archive object storage (S3, OSS, in-memory)."""

    bucket: str

    def put_object(self, key: str, body: bytes | str, content_type: str | None = None) -> None:
        """Upload object. key is full path (e.g. messages/q1/2024-05/part-...jsonl)."""
        ...

    def get_object(self, key: str) -> bytes | None:
        """Download object; return None if not found."""
        ...

    def list_prefix(self, prefix: str) -> list[str]:
        """List object keys under prefix (e.g. messages/q1/2024-05/)."""
        ...


class InMemoryColdStorage:
    """
    In-memory backend for tests and local dev without cloud credentials.

    Safe to call from worker threads; the archival job uploads partition
    groups concurrently.
    """

    def __init__(self, bucket: str = "memory") -> None:
        self.bucket = bucket
        self._store: dict[str, bytes] = {}
        self._content_types: dict[str, str | None] = {}
        self._lock = threading.Lock()

    def put_object(self, key: str, body: bytes | str, content_type: str | None = None) -> None:
        payload = body.encode("utf-8") if isinstance(body, str) else body
        with self._lock:
            self._store[key] = payload
            self._content_types[key] = content_type

    def get_object(self, key: str) -> bytes | None:
        with self._lock:
            return self._store.get(key)

    def list_prefix(self, prefix: str) -> list[str]:
        with self._lock:
            return sorted(k for k in self._store if k.startswith(prefix))

    def content_type(self, key: str) -> str | None:
        return self._content_types.get(key)


class S3CompatibleStorage:
    """
    S3-compatible archive bucket (AWS S3, MinIO, GCS interoperability endpoint).

    Part-files are uploaded as JSONL by default and listed in key order, so a
    partition's parts come back oldest run first, as with the in-memory store.
    Requires: pip install boto3 (or pip install -e ".[s3]").
    """

    _MISSING_CODES = ("NoSuchKey", "404")

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        region_name: str = "us-east-1",
        access_key: str | None = None,
        secret_key: str | None = None,
    ):
        self.bucket = bucket
        self._endpoint_url = endpoint_url
        self._region_name = region_name
        self._credentials = (access_key, secret_key) if access_key and secret_key else None
        self._client = None

    def _get_client(self):
        import boto3
        from botocore.config import Config

        if self._client is None:
            kwargs = {
                "region_name": self._region_name,
                "config": Config(signature_version="s3v4", retries={"max_attempts": 3, "mode": "standard"}),
            }
            if self._endpoint_url:
                kwargs["endpoint_url"] = self._endpoint_url
            if self._credentials:
                kwargs["aws_access_key_id"], kwargs["aws_secret_access_key"] = self._credentials
            self._client = boto3.client("s3", **kwargs)
        return self._client

    def put_object(self, key: str, body: bytes | str, content_type: str | None = JSONL_CONTENT_TYPE) -> None:
        payload = body.encode("utf-8") if isinstance(body, str) else body
        extra = {"ContentType": content_type} if content_type else {}
        self._get_client().put_object(Bucket=self.bucket, Key=key, Body=payload, **extra)

    def get_object(self, key: str) -> bytes | None:
        from botocore.exceptions import ClientError

        try:
            return self._get_client().get_object(Bucket=self.bucket, Key=key)["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in self._MISSING_CODES:
                return None
            raise

    def list_prefix(self, prefix: str) -> list[str]:
        paginator = self._get_client().get_paginator("list_objects_v2")
        return sorted(
            obj["Key"]
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix)
            for obj in page.get("Contents") or []
        )


class OssStorage:
    """
    Aliyun OSS (Object Storage Service) backend.

    Object ops used: PutObject, GetObject, ListObjects.
    Requires: pip install oss2 (or pip install -e ".[oss]").
    """

    def __init__(
        self,
        bucket: str,
        access_key_id: str,
        access_key_secret: str,
        endpoint: str,
    ):
        self.bucket = bucket
        self._access_key_id = access_key_id
        self._access_key_secret = access_key_secret
        self._endpoint = endpoint.rstrip("/")
        self._bucket = None

    def _get_bucket(self):
        import oss2

        if self._bucket is None:
            auth = oss2.Auth(self._access_key_id, self._access_key_secret)
            self._bucket = oss2.Bucket(auth, self._endpoint, self.bucket)
        return self._bucket

    def put_object(self, key: str, body: bytes | str, content_type: str | None = None) -> None:
        bucket = self._get_bucket()
        payload = body.encode("utf-8") if isinstance(body, str) else body
        headers = {}
        if content_type:
            headers["Content-Type"] = content_type
        bucket.put_object(key, payload, headers=headers)

    def get_object(self, key: str) -> bytes | None:
        import oss2

        bucket = self._get_bucket()
        try:
            return bucket.get_object(key).read()
        except oss2.exceptions.NoSuchKey:
            return None

    def list_prefix(self, prefix: str) -> list[str]:
        import oss2

        bucket = self._get_bucket()
        return [obj.key for obj in oss2.ObjectIterator(bucket, prefix=prefix) if not obj.is_prefix()]


def _normalize_endpoint(endpoint: str | None) -> str | None:
    """Ensure endpoint has scheme (https://). Returns None if endpoint is empty."""
    if not endpoint or not endpoint.strip():
        return None
    ep = endpoint.strip().rstrip("/")
    if not ep.startswith("http://") and not ep.startswith("https://"):
        ep = "https://" + ep
    return ep


def create_cold_store(settings: Settings) -> ColdStorageBackend:
    """
    Create the cold storage backend selected by settings.storage_backend.

    Raises ConfigurationError when the bucket name or the selected backend's
    credentials are missing. The caller keeps the returned instance for the
    lifetime of the process.
    """
    bucket = settings.archive_bucket.strip()
    if not bucket:
        raise ConfigurationError("archive_bucket is empty")

    if settings.storage_backend == "memory":
        return InMemoryColdStorage(bucket)

    if settings.storage_backend == "s3":
        secret = settings.s3_secret_key.get_secret_value() if settings.s3_secret_key else None
        if bool(settings.s3_access_key) != bool(secret):
            raise ConfigurationError("s3_access_key and s3_secret_key must be set together")
        return S3CompatibleStorage(
            bucket=bucket,
            endpoint_url=_normalize_endpoint(settings.s3_endpoint_url),
            region_name=settings.s3_region,
            access_key=settings.s3_access_key,
            secret_key=secret,
        )

    ep = _normalize_endpoint(settings.oss_endpoint)
    key_id = (settings.oss_access_key_id or "").strip()
    key_secret = settings.oss_access_key_secret.get_secret_value().strip() if settings.oss_access_key_secret else ""
    missing = [
        name
        for name, value in (("oss_endpoint", ep), ("oss_access_key_id", key_id), ("oss_access_key_secret", key_secret))
        if not value
    ]
    if missing:
        raise ConfigurationError(f"missing OSS settings: {', '.join(missing)}", {"fields": missing})
    return OssStorage(bucket=bucket, access_key_id=key_id, access_key_secret=key_secret, endpoint=ep)
