# backend/backoffice/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .logging_config import configure_logging
from .middleware.request_id import RequestIDMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.approvals import router as approvals_router
from .routers.audit import router as audit_router

API_PREFIX = "/api"

log = logging.getLogger("backoffice.api")


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
    log.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": {"code": "SERVER_ERROR", "message": "Internal server error"}},
    )


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Brokerage Back-Office",
        version=settings.app_version,
    )

    # last added runs outermost, so the access log line sees the request id
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(Exception, _unhandled)

    @app.get(f"{API_PREFIX}/health", tags=["meta"])
    def health():
        return {"ok": True, "version": settings.app_version}

    app.include_router(approvals_router, prefix=API_PREFIX)
    app.include_router(audit_router, prefix=API_PREFIX)

    return app


app = create_app()
