"""
Pytest fixtures for the mission engine test suite.

Provides:
- An in-memory store served through FastAPI's TestClient (an httpx.Client)
- A scriptable fake store on httpx.MockTransport for call-order and
  failure-injection tests
- Seeded personnel / users / clients and a three-day deployment
"""
import json
import threading
import uuid
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from missionops.config import Settings
from missionops.engine import MissionOps
from missionops.store import MemoryStore, create_app

STORE_URL = "http://testserver/api"
FAKE_URL = "http://store.test/api"


@pytest.fixture
def store_settings() -> Settings:
    return Settings().model_copy(
        update={
            "enforce_status_transitions": True,
            "smtp_host": None,
            "admin_email": None,
            "frontend_base_url": "https://ops.example.com",
            "default_markup_percentage": 30,
            "lodging_daily_rate": 150.0,
            "labor_multiplier": 1.0,
        }
    )


@pytest.fixture
def memory_store(store_settings) -> MemoryStore:
    store = MemoryStore(store_settings)
    store.add_personnel("Ava Pilot", daily_pay_rate=400.0, email="ava@example.com", id="p1")
    store.add_personnel("Ben Tech", daily_pay_rate=300.0, email="ben@example.com", role="Technician", id="p2")
    store.add_personnel("Cal Retired", daily_pay_rate=350.0, status="On Leave", id="p3")
    store.add_user("Mona Monitor", email="mona@example.com", id="u1")
    store.add_client("Acme Solar", contact_email="ops@acme.example", id="c1")
    return store


@pytest.fixture
def store_app(store_settings, memory_store):
    return create_app(store_settings, memory_store)


@pytest.fixture
def http(store_app):
    with TestClient(store_app) as client:
        yield client


@pytest.fixture
def ops(http) -> MissionOps:
    return MissionOps(http=http, base_url=STORE_URL, enforce_transitions=True)


@pytest.fixture
def deployment_id(memory_store) -> str:
    row = memory_store.create_deployment({
        "title": "Substation thermal survey",
        "type": "Routine Inspection",
        "status": "Scheduled",
        "siteName": "North Yard",
        "date": "2024-03-01",
        "daysOnSite": 3,
    })
    return row["id"]


@pytest.fixture
def session(ops, deployment_id):
    ops.repository.refresh()
    return ops.open(deployment_id)


class FakeStore:
    """Scriptable stand-in for the remote store.

    Records every request in order. ``fail`` maps (method, path-suffix) to a
    (status, message) answer that is returned instead of the normal one.
    """

    def __init__(self, deployment: Dict):
        self.deployment = deployment
        self.calls: List[tuple] = []
        self.fail: Dict[tuple, tuple] = {}
        self.handlers: Dict[tuple, Callable] = {}
        # Reentrant: a handler may issue a nested request through the same client
        self.lock = threading.RLock()

    def _respond(self, status: int, data=None, message: Optional[str] = None, **extra) -> httpx.Response:
        if status >= 400:
            return httpx.Response(status, json={"success": False, "message": message or "error"})
        body = {"success": True, "data": data}
        if message:
            body["message"] = message
        body.update(extra)
        return httpx.Response(status, json=body)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path[len("/api"):]
        body = json.loads(request.content) if request.content else None
        with self.lock:
            self.calls.append((request.method, path, body))
            for (method, suffix), (status, message) in self.fail.items():
                if request.method == method and path.endswith(suffix):
                    return self._respond(status, message=message)
            for (method, suffix), handler in self.handlers.items():
                if request.method == method and path.endswith(suffix):
                    return handler(request, body)
            return self.default(request.method, path, body)

    def default(self, method: str, path: str, body) -> httpx.Response:
        dep = self.deployment
        base = f"/deployments/{dep['id']}"
        if method == "GET" and path == "/deployments":
            return self._respond(200, [dep])
        if method == "GET" and path == base:
            return self._respond(200, dep)
        if method == "GET" and path == f"{base}/files":
            return self._respond(200, [])
        if method == "PUT" and path == base:
            dep.update(body)
            return self._respond(200, {k: v for k, v in dep.items() if k != "dailyLogs"})
        if method == "POST" and path == f"{base}/daily-logs":
            log = {"id": str(uuid.uuid4()), **body}
            dep.setdefault("dailyLogs", []).append(log)
            return self._respond(201, log)
        if method == "PUT" and path.startswith(f"{base}/daily-logs/"):
            log_id = path.rsplit("/", 1)[1]
            for log in dep.get("dailyLogs", []):
                if log["id"] == log_id:
                    log.update(body)
                    return self._respond(200, log)
            return self._respond(404, message="Daily log not found")
        if method == "DELETE" and path.startswith(f"{base}/daily-logs/"):
            log_id = path.rsplit("/", 1)[1]
            dep["dailyLogs"] = [l for l in dep.get("dailyLogs", []) if l["id"] != log_id]
            return self._respond(200, None)
        if method == "POST" and path.endswith("/personnel"):
            return self._respond(200, {"personnelId": body["personnelId"]})
        if method == "DELETE" and "/personnel/" in path:
            return self._respond(200, None)
        if method == "POST" and path.endswith("/invoices/send"):
            return self._respond(200, [], "Sent 0 invoices successfully.", mock=True)
        if method == "POST" and path.endswith("/notify-assignment"):
            return self._respond(200, None, "Assignment notification sent", mock=False)
        return self._respond(404, message=f"No fake route for {method} {path}")

    def requests(self, method: Optional[str] = None, contains: str = "") -> List[tuple]:
        return [c for c in self.calls if (method is None or c[0] == method) and contains in c[1]]


@pytest.fixture
def fake_deployment() -> Dict:
    return {
        "id": "dep-1",
        "title": "Tower inspection",
        "type": "Routine Inspection",
        "status": "Active",
        "siteName": "Hill 4",
        "date": "2024-03-01",
        "daysOnSite": 3,
        "technicianIds": ["p1"],
        "dailyLogs": [],
    }


@pytest.fixture
def fake_store(fake_deployment) -> FakeStore:
    return FakeStore(fake_deployment)


@pytest.fixture
def fake_ops(fake_store) -> MissionOps:
    client = httpx.Client(transport=httpx.MockTransport(fake_store))
    ops = MissionOps(http=client, base_url=FAKE_URL, enforce_transitions=True)
    yield ops
    client.close()


@pytest.fixture
def fake_session(fake_ops, fake_deployment):
    fake_ops.repository.refresh()
    return fake_ops.open(fake_deployment["id"])
