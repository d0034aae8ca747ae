# ruff: noqa: I001

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cashplan.api.router import api_router
from cashplan.api.routes.health import health_payload
from cashplan.config import settings
from cashplan.core.observability import global_exception_handler, request_logging_middleware

api_prefix = (
    settings.api_prefix
    if settings.api_prefix.startswith("/")
    else f"/{settings.api_prefix}"
    if settings.api_prefix
    else ""
)

logger = logging.getLogger("cashplan")
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(
    title=settings.app_name,
    version=settings.build_version or "0.1.0",
    docs_url="/docs" if settings.enable_docs else None,
    redoc_url="/redoc" if settings.enable_docs else None,
    openapi_url=(f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
    if settings.enable_docs
    else None,
)

# Expose logger and request settings for middleware without creating circular imports.
app.state.logger = logger
app.state.slow_request_ms = settings.slow_request_ms
app.state.settings_cors_origins = settings.cors_origins

# Global exception handler - catches all unhandled exceptions and returns structured error
app.add_exception_handler(Exception, global_exception_handler)

# Request-level logging + request correlation id.
app.middleware("http")(request_logging_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=api_prefix)


@app.get("/", tags=["meta"])
def root():
    docs_path = (
        (f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
        if settings.enable_docs
        else None
    )
    logger.info("health_check", extra={"event": "root", "status": "ok"})
    return {"message": settings.app_name, "docs": docs_path}


@app.get("/healthz", tags=["meta"])
def healthcheck():
    """Liveness check outside the API prefix, for load balancers."""

    return health_payload()
