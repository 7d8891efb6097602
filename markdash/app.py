"""
FastAPI application entry point for the MarkDash API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from markdash.config import DEFAULT_JWT_SECRET, Settings, get_settings
from markdash.dependencies import build_kv_store
from markdash.errors import MarkdashError, StorageError
from markdash.kv import KvStore
from markdash.middleware import install_middleware
from markdash.responses import error
from markdash.routes import router
from markdash.routes.meta import API_VERSION, endpoint_index, service_status

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Internal server error"


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    message = str(first.get("msg", "Invalid request"))
    if first.get("type") == "value_error":
        return message.removeprefix("Value error, ")
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    return f"{field}: {message}" if field else message


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(MarkdashError)
    async def handle_markdash_error(request: Request, exc: MarkdashError):
        if isinstance(exc, StorageError):
            logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
            message = exc.message if settings.debug else GENERIC_ERROR
            return error(message, exc.status_code)
        return error(exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return error(_validation_message(exc), 400)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else GENERIC_ERROR
        return error(message, exc.status_code)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        if settings.debug:
            return error(GENERIC_ERROR, 500, message=str(exc))
        return error(GENERIC_ERROR, 500)


def create_app(
    settings: Optional[Settings] = None, store: Optional[KvStore] = None
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    if settings.is_production and settings.jwt_secret == DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET is unset; tokens are signed with the default key")

    app = FastAPI(title="MarkDash API", version=API_VERSION)
    app.state.settings = settings
    app.state.store = store if store is not None else build_kv_store(settings)

    register_exception_handlers(app, settings)
    install_middleware(app, settings)

    app.add_api_route("/", service_status, methods=["GET"])
    app.add_api_route(settings.api_prefix, endpoint_index, methods=["GET"])
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
