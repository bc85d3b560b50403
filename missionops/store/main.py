from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import Settings, settings as default_settings
from ..logging import setup_logging, RequestIdMiddleware
from .memory import MemoryStore, StoreError
from .routes.deployments import router as deployments_router
from .routes.billing import router as billing_router

logger = structlog.get_logger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def create_app(settings: Optional[Settings] = None, store: Optional[MemoryStore] = None) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings.log_level)
    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.store = store or MemoryStore(settings)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Every answer, including failures, uses the {success, data, message} envelope
    @app.exception_handler(StoreError)
    async def _store_error(request: Request, exc: StoreError):
        logger.info("store_error", path=request.url.path, status_code=exc.status_code, message=exc.message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return _error(422, "Invalid request body")

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        logger.exception("store_unhandled_error", path=request.url.path)
        return _error(500, "Internal server error")

    # Routers
    app.include_router(deployments_router)
    app.include_router(billing_router)

    @app.get("/healthz")
    def healthz():
        return {"success": True, "data": {"status": "ok", "mockEmail": app.state.store.mailer.is_mock}}

    return app
