import uuid
import logging
import structlog
from contextlib import contextmanager
from typing import Optional
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .config import settings


def setup_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """Configure structlog on top of stdlib logging.

    JSON lines everywhere except a dev environment, which gets the console renderer
    unless ``json_logs`` says otherwise.
    """
    level = (level or settings.log_level or "INFO").upper()
    if json_logs is None:
        json_logs = settings.environment != "dev"
    logging.basicConfig(format="%(message)s", level=getattr(logging, level, logging.INFO))
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.dict_tracebacks,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@contextmanager
def deployment_context(deployment_id: Optional[str]):
    """Tag every log line emitted inside the block with the deployment id."""
    if not deployment_id:
        yield
        return
    structlog.contextvars.bind_contextvars(deployment_id=deployment_id)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars("deployment_id")


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)
        try:
            response: Response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "path")
        response.headers["X-Request-ID"] = request_id
        return response
