from typing import Any, Optional

from fastapi import Request

from .memory import MemoryStore


def get_store(request: Request) -> MemoryStore:
    return request.app.state.store


def ok(data: Any, message: Optional[str] = None, **extra) -> dict:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    body.update(extra)
    return body
