import asyncio
import json
import os
from datetime import datetime, timezone
from typing import Any, Optional

os.environ["NOTIFY_RETRY_DELAY_SECONDS"] = "0"
os.environ["RECONCILE_INTERVAL_SECONDS"] = "0"
os.environ["API_TOKEN"] = ""

import httpx
import pytest

from reportdesk.schemas.report import ReportDraft
from reportdesk.services.backend_client import BackendClient
from reportdesk.services.lifecycle_controller import LifecycleController
from reportdesk.services.notification_reconciler import NotificationReconciler
from reportdesk.services.report_store import ReportStore

BACKEND_URL = "http://backend.test"
GROUND_FLOOR = "Restroom - Ground Floor(010)"
FIRST_FLOOR = "Restroom - First Floor(110)"


class FakeBackend:
    """In-memory stand-in for the facility-reporting REST backend."""

    def __init__(self) -> None:
        self.reports: dict[str, dict[str, Any]] = {}
        self.updates: list[dict[str, Any]] = []
        self.mine: set[str] = set()
        self.requests: list[tuple[str, str]] = []
        self.auth_headers: list[Optional[str]] = []
        self._failures: dict[tuple[str, str], list[Any]] = {}
        self._holds: dict[tuple[str, str], asyncio.Event] = {}
        self._next_id = 0

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def fail(self, method: str, path: str, *outcomes: Any) -> None:
        """Queue outcomes for the next matching calls: a status code, "timeout" or "landed-timeout"."""
        self._failures.setdefault((method, path), []).extend(outcomes)

    def calls(self, method: str, path: str) -> int:
        return self.requests.count((method, path))

    def hold(self, method: str, path: str) -> asyncio.Event:
        """Delay the next matching response (already computed) until the event is set."""
        gate = asyncio.Event()
        self._holds[(method, path)] = gate
        return gate

    async def reached(self, method: str, path: str, count: int = 1) -> None:
        while self.calls(method, path) < count:
            await asyncio.sleep(0)

    def add_report(self, **fields: Any) -> dict[str, Any]:
        self._next_id += 1
        record = {
            "_id": f"r{self._next_id}",
            "issueType": "Empty Dispenser",
            "location": GROUND_FLOOR,
            "priority": "High Priority",
            "details": "",
            "status": "pending",
            "reportedBy": "Anonymous",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        record.update(fields)
        self.reports[record["_id"]] = record
        return record

    async def handle(self, request: httpx.Request) -> httpx.Response:
        # Yield so concurrent callers interleave the way real I/O would.
        await asyncio.sleep(0)
        method, path = request.method, request.url.path
        self.requests.append((method, path))
        self.auth_headers.append(request.headers.get("Authorization"))
        queued = self._failures.get((method, path))
        outcome = queued.pop(0) if queued else None
        if outcome == "timeout":
            raise httpx.ReadTimeout("timed out", request=request)
        if isinstance(outcome, int):
            return httpx.Response(outcome, json={"message": f"forced {outcome}"})
        body = json.loads(request.content) if request.content else None
        response = self._route(method, path, body, request)
        gate = self._holds.pop((method, path), None)
        if gate is not None:
            await gate.wait()
        if outcome == "landed-timeout":
            raise httpx.ReadTimeout("timed out after processing", request=request)
        return response

    def _route(self, method: str, path: str, body: Any, request: httpx.Request) -> httpx.Response:
        authed = bool(request.headers.get("Authorization"))
        if method == "GET" and path == "/api/reports":
            return httpx.Response(200, json=list(self.reports.values()))
        if method == "POST" and path == "/api/reports":
            record = self.add_report(**body, reportedBy="student@campus.edu" if authed else "Anonymous")
            record["status"] = "pending"
            if authed:
                self.mine.add(record["_id"])
            return httpx.Response(201, json=record)
        if method == "GET" and path == "/api/my-reports":
            if not authed:
                return httpx.Response(401, json={"message": "Unauthorized"})
            return httpx.Response(200, json=[self.reports[key] for key in sorted(self.mine)])
        if method == "POST" and path.startswith("/api/reports/") and path.endswith("/resolve"):
            report_id = path.split("/")[3]
            record = self.reports.get(report_id)
            if record is None:
                return httpx.Response(404, json={"message": "Report not found"})
            if record["status"] == "resolved":
                return httpx.Response(409, json={"message": "Report already resolved"})
            record["status"] = "resolved"
            record["resolvedAt"] = datetime.now(timezone.utc).isoformat()
            return httpx.Response(200, json={"message": "Report resolved"})
        if method == "POST" and path == "/api/admin/resolve":
            self.updates.append({**body, "createdAt": datetime.now(timezone.utc).isoformat()})
            return httpx.Response(200, json={"message": "Update recorded"})
        if method == "GET" and path == "/api/admin/updates":
            return httpx.Response(200, json=list(self.updates))
        if method == "POST" and path == "/api/admin/resolve-confirm":
            self.updates = [item for item in self.updates if item["reportId"] != body["reportId"]]
            return httpx.Response(200, json={"message": "Confirmed"})
        return httpx.Response(404, json={"message": "Not found"})


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def client(backend) -> BackendClient:
    return BackendClient(BACKEND_URL, transport=backend.transport())


@pytest.fixture
def reconciler(client) -> NotificationReconciler:
    return NotificationReconciler(client)


@pytest.fixture
def store(client, reconciler) -> ReportStore:
    return ReportStore(client, reconciler)


@pytest.fixture
def controller(store, reconciler) -> LifecycleController:
    return LifecycleController(store, reconciler, retry_attempts=3, retry_delay=0)


@pytest.fixture
def make_draft():
    def _make(**overrides: Any) -> ReportDraft:
        values = {"issue_type": "Empty Dispenser", "location": GROUND_FLOOR, "details": "No soap"}
        values.update(overrides)
        return ReportDraft(**values)

    return _make
