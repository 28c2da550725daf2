from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from apperrors.core.config import Settings, get_settings
from apperrors.core.handlers import register_error_handlers
from apperrors.core.logging import get_logger, set_log_context, setup_logging
from apperrors.core.validation import Validator, use_rules
from apperrors.schemas import HealthResponse

log = get_logger("apperrors.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    setup_logging(settings.LOG_LEVEL)
    log.info("startup ok | service=%s request_id_header=%s", settings.SERVICE_NAME, settings.REQUEST_ID_HEADER)
    try:
        yield
    finally:
        log.info("shutdown ok")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(title=settings.SERVICE_NAME, lifespan=lifespan)
    app.state.settings = settings
    app.state.validator = Validator(settings.field_rules())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[settings.REQUEST_ID_HEADER],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        header = request.app.state.settings.REQUEST_ID_HEADER
        rid = request.headers.get(header) or str(uuid.uuid4())
        request.state.request_id = rid
        set_log_context(request_id=rid)
        use_rules(request.app.state.validator.rules)

        t0 = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            dt_ms = int((time.perf_counter() - t0) * 1000)
            log.debug("request %s %s done in %sms", request.method, request.url.path, dt_ms)

        response.headers[header] = rid
        return response

    register_error_handlers(app)

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        return HealthResponse(service=request.app.state.settings.SERVICE_NAME)

    return app


app = create_app()
