"""HTTP surface tests (FastAPI TestClient over in-memory stores)."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from message_archive.api import create_app
from message_archive.document_store import MESSAGES
from message_archive.service import ArchiveService

from conftest import make_message

TOKEN = "admin-token"


@pytest.fixture
def service(documents, cold, settings, clock):
    return ArchiveService(documents, cold, settings_provider=lambda: settings, clock=clock)


@pytest.fixture
def client(service):
    return TestClient(create_app(service, admin_token=TOKEN))


def _auth(token=TOKEN):
    return {"Authorization": f"Bearer {token}"}


def test_run_requires_token(client):
    assert client.post("/api/admin/archive/run").status_code == 401
    assert client.post("/api/admin/archive/run", headers=_auth("wrong")).status_code == 403


def test_run_closed_when_no_token_configured(service):
    client = TestClient(create_app(service, admin_token=None))
    assert client.post("/api/admin/archive/run", headers=_auth("anything")).status_code == 403


def test_run_then_load(client, documents):
    import asyncio

    asyncio.run(documents.batch_write(MESSAGES, [
        make_message("qr-1", datetime(2024, 3, 2, tzinfo=timezone.utc), id="m2", text="second"),
        make_message("qr-1", datetime(2024, 3, 1, tzinfo=timezone.utc), id="m1", text="first"),
    ]))

    resp = client.post("/api/admin/archive/run", headers=_auth())
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["archivedMessages"] == 2
    assert body["bucket"] == "test-archive"
    assert body["cutoff"] == "2024-05-02T00:00:00Z"

    resp = client.get("/api/admin/archive/load", params={"quoteRequestId": "qr-1", "ym": "2024-03"})
    assert resp.status_code == 200
    messages = resp.json()["messages"]
    assert [m["id"] for m in messages] == ["m1", "m2"]
    assert messages[0]["createdAt"].startswith("2024-03-01T00:00:00")

    resp = client.get("/api/admin/archive/months", params={"quoteRequestId": "qr-1"})
    assert resp.json() == {"ok": True, "months": ["2024-03"]}


def test_load_missing_parameters(client):
    resp = client.get("/api/admin/archive/load", params={"quoteRequestId": "qr-1"})
    assert resp.status_code == 400
    assert resp.json() == {"ok": False, "error": "Missing quoteRequestId or ym"}


def test_load_invalid_month(client):
    resp = client.get("/api/admin/archive/load", params={"quoteRequestId": "qr-1", "ym": "2024-3"})
    assert resp.status_code == 400
    assert resp.json()["ok"] is False


def test_load_nothing_archived(client):
    resp = client.get("/api/admin/archive/load", params={"quoteRequestId": "qr-1", "ym": "2023-01"})
    assert resp.json() == {"ok": True, "messages": []}


def test_run_failure_is_structured(service, client):
    async def boom():
        raise RuntimeError("live store unavailable")

    service.job.run = boom
    resp = client.post("/api/admin/archive/run", headers=_auth())
    assert resp.status_code == 500
    assert resp.json() == {"ok": False, "error": "live store unavailable"}
