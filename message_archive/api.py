"""
HTTP surface: admin archive trigger and archived-history reads.

  POST /api/admin/archive/run                          (bearer admin token)
  GET  /api/admin/archive/load?quoteRequestId=&ym=YYYY-MM
  GET  /api/admin/archive/months?quoteRequestId=

Responses follow {"ok": true, ...} / {"ok": false, "error": "..."}.
Serve with: uvicorn message_archive.api:create_app_from_env --factory
"""

import secrets
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from message_archive.config import load_settings
from message_archive.errors import ArchiveError
from message_archive.logging import configure_logging, get_logger
from message_archive.service import ArchiveService

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)


def _failure(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"ok": False, "error": message}, status_code=status_code)


def create_router(service: ArchiveService, admin_token: Optional[str]) -> APIRouter:
    router = APIRouter(prefix="/api/admin/archive", tags=["Archive"])

    async def require_admin(credentials: HTTPAuthorizationCredentials = Depends(security)):
        """Admin bearer token; with no token configured the trigger is closed."""
        if not credentials:
            raise HTTPException(status_code=401, detail="Not authenticated")
        if not admin_token or not secrets.compare_digest(credentials.credentials, admin_token):
            raise HTTPException(status_code=403, detail="Admin access required")

    @router.post("/run", dependencies=[Depends(require_admin)])
    async def run_archive():
        try:
            result = await service.run_archival(triggered_by="admin")
        except ArchiveError as e:
            logger.error("archive.run.failed", code=e.code, error=e.message)
            return JSONResponse(e.to_dict(), status_code=500)
        except Exception as e:
            logger.exception("archive.run.failed")
            return _failure(str(e) or type(e).__name__, 500)
        return {"ok": True, **result.as_dict()}

    @router.get("/load")
    async def load_archive(
        quoteRequestId: Optional[str] = Query(None),
        ym: Optional[str] = Query(None, description="YYYY-MM"),
    ):
        if not quoteRequestId or not ym:
            return _failure("Missing quoteRequestId or ym", 400)
        try:
            messages = await service.load_history(quoteRequestId, ym)
        except ValueError as e:
            return _failure(str(e), 400)
        except Exception as e:
            logger.exception("history.load_failed", quote_request_id=quoteRequestId, month=ym)
            return _failure(str(e) or type(e).__name__, 500)
        return {"ok": True, "messages": jsonable_encoder(messages)}

    @router.get("/months")
    async def archived_months(quoteRequestId: Optional[str] = Query(None)):
        if not quoteRequestId:
            return _failure("Missing quoteRequestId", 400)
        try:
            months = await service.list_archived_months(quoteRequestId)
        except ValueError as e:
            return _failure(str(e), 400)
        except Exception as e:
            logger.exception("history.months_failed", quote_request_id=quoteRequestId)
            return _failure(str(e) or type(e).__name__, 500)
        return {"ok": True, "months": months}

    return router


def create_app(service: ArchiveService, admin_token: Optional[str] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await service.close()

    app = FastAPI(title="Message Archive", lifespan=lifespan)
    app.include_router(create_router(service, admin_token))
    return app


def create_app_from_env() -> FastAPI:
    settings = load_settings()
    configure_logging(settings)
    token = settings.admin_token.get_secret_value() if settings.admin_token else None
    return create_app(ArchiveService.from_settings(settings), admin_token=token)
