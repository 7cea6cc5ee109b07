"""HTTP and WebSocket API behavior."""

from __future__ import annotations

import asyncio
import json
import threading
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from core.orchestrator import Orchestrator, RuntimeBundle
from core.policy_runtime import AppConfig
from os_controller.base_controller import DriverResult, WindowAutomationDriver
from web.app import create_app
from web.connection_manager import ConnectionManager


class RecordingDriver(WindowAutomationDriver):
    def __init__(self) -> None:
        self.calls: list[str] = []

    def run(self, identifier: str, cancel_event: threading.Event | None = None) -> DriverResult:
        self.calls.append(identifier)
        return {"success": True, "identifier": identifier, "steps": [], "output": ""}


class ConsoleGate:
    def is_safe(self) -> bool:
        return True


@pytest.fixture
def bundle(tmp_path: Path) -> RuntimeBundle:
    folder = tmp_path / "bot_config" / "555"
    folder.mkdir(parents=True)
    (folder / "settings.json").write_text(json.dumps({"gathering": {"enabled": False}}), encoding="utf-8")
    (tmp_path / "bot_config" / "777").mkdir()

    built = Orchestrator(root=tmp_path, config=AppConfig()).build(
        driver=RecordingDriver(), session_gate=ConsoleGate()
    )
    built.directory.assign_igg_id("555", label="Main")
    built.directory.assign_igg_id("999")
    built.directory.set_subscription("999", datetime.now(UTC) - timedelta(days=1))
    built.queue.autostart = False
    yield built
    built.close()


@pytest.fixture
def client(bundle: RuntimeBundle) -> TestClient:
    with TestClient(create_app(bundle=bundle)) as test_client:
        yield test_client


def test_apply_changes_requires_identifier(client: TestClient) -> None:
    for body in ({}, {"identifier": ""}, {"identifier": "   "}):
        response = client.post("/automation/apply-changes", json=body)
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "IGG ID is required"}


def test_apply_changes_rejects_malformed_body(client: TestClient) -> None:
    response = client.post(
        "/automation/apply-changes",
        content="not json",
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_apply_changes_unknown_identifier(client: TestClient) -> None:
    response = client.post("/automation/apply-changes", json={"identifier": "404"})
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_apply_changes_expired_subscription(client: TestClient) -> None:
    response = client.post("/automation/apply-changes", json={"identifier": "999"})
    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Subscription expired. Cannot apply changes."}


def test_apply_changes_queues_and_reports_position(client: TestClient, bundle: RuntimeBundle) -> None:
    first = client.post("/automation/apply-changes", json={"identifier": "555"})
    again = client.post("/automation/apply-changes", json={"iggId": "555"})
    folder_only = client.post("/automation/apply-changes", json={"identifier": "777"})

    assert first.status_code == 202
    assert first.json() == {"success": True, "message": "Request added to queue", "queuePosition": 1}
    assert again.json()["queuePosition"] == 1
    assert folder_only.json()["queuePosition"] == 2

    status = client.get("/automation/apply-changes").json()
    assert status == {
        "isRunning": False,
        "queueLength": 2,
        "queuedIdentifiers": ["555", "777"],
        "currentIdentifier": None,
    }
    actions = [row["action"] for row in bundle.directory.recent_activity()]
    assert actions.count("APPLY_CHANGES_QUEUED") == 3


def test_queued_job_is_driven(client: TestClient, bundle: RuntimeBundle) -> None:
    bundle.queue.autostart = True

    client.post("/automation/apply-changes", json={"identifier": "555"})

    assert bundle.queue.wait_until_idle(timeout=5)
    assert bundle.driver.calls == ["555"]
    assert client.get("/health").json()["queue"]["queueLength"] == 0


def test_enqueue_failure_returns_500(client: TestClient, bundle: RuntimeBundle, monkeypatch) -> None:
    def explode(identifier: str, channel: Any = None) -> int:
        raise RuntimeError("queue unavailable")

    monkeypatch.setattr(bundle.queue, "enqueue", explode)

    response = client.post("/automation/apply-changes", json={"identifier": "555"})

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert response.json()["error"] == "queue unavailable"
    assert response.json()["details"] == "RuntimeError"


def test_admission_lookup_failure_returns_json_500(
    client: TestClient, bundle: RuntimeBundle, monkeypatch
) -> None:
    def locked(identifier: str) -> bool:
        raise RuntimeError("database is locked")

    monkeypatch.setattr(bundle.directory, "identifier_exists", locked)

    response = client.post("/automation/apply-changes", json={"identifier": "555"})

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == {
        "success": False,
        "error": "database is locked",
        "details": "RuntimeError",
    }
    assert bundle.queue.get_status().queue_length == 0


def test_unhandled_route_error_returns_json_500(bundle: RuntimeBundle, monkeypatch) -> None:
    def locked() -> list[dict[str, Any]]:
        raise RuntimeError("database is locked")

    monkeypatch.setattr(bundle.directory, "list_igg_ids", locked)

    with TestClient(create_app(bundle=bundle), raise_server_exceptions=False) as test_client:
        response = test_client.get("/igg-ids")

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert response.json()["error"] == "database is locked"
    assert response.json()["details"] == "RuntimeError"


def test_settings_round_trip(client: TestClient, bundle: RuntimeBundle) -> None:
    assert client.get("/settings/555").json() == {"gathering": {"enabled": False}}

    put = client.put("/settings/555", json={"gathering": {"enabled": True}, "shield": 8})
    assert put.status_code == 200
    assert client.get("/settings/555").json()["shield"] == 8

    patch = client.patch("/settings/555", json={"path": "gathering.enabled", "value": False})
    assert patch.json()["success"] is True
    assert client.get("/settings/555").json()["gathering"] == {"enabled": False}

    activity = bundle.directory.recent_activity()
    assert activity[0]["action"] == "UPDATE_SETTING"
    assert activity[0]["category"] == "gathering"
    assert bundle.directory.list_igg_ids()[0]["last_sync"] is not None


def test_settings_errors(client: TestClient) -> None:
    assert client.get("/settings/404").status_code == 404
    assert client.get("/settings/555/bank").status_code == 404
    missing_path = client.patch("/settings/555", json={"value": 1})
    assert missing_path.status_code == 400
    assert missing_path.json()["error"] == "Path is required"
    assert client.put("/settings/555", json=[1, 2]).status_code == 400


def test_bank_settings(client: TestClient) -> None:
    assert client.put("/settings/555/bank", json={"bank": {"gold": 1}}).status_code == 200
    client.patch("/settings/555/bank", json={"path": "bank.food", "value": 2})

    assert client.get("/settings/555/bank").json() == {"bank": {"gold": 1, "food": 2}}


def test_igg_ids_listing(client: TestClient) -> None:
    rows = client.get("/igg-ids").json()
    assert [row["igg_id"] for row in rows] == ["555", "999"]


def test_websocket_receives_queue_updates(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        initial = ws.receive_json()
        assert initial["event"] == "queue_update"
        assert initial["data"]["queueLength"] == 0

        client.post("/automation/apply-changes", json={"identifier": "555"})

        update = ws.receive_json()
        assert update == {
            "event": "queue_update",
            "data": {
                "isRunning": False,
                "queueLength": 1,
                "queuedIdentifiers": ["555"],
                "currentIdentifier": None,
            },
        }


def test_websocket_channel_subscription(client: TestClient) -> None:
    manager: ConnectionManager = client.app.state.ws_manager
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_text(json.dumps({"action": "subscribe", "identifier": "555"}))
        deadline = time.monotonic() + 5
        while not any(manager.connections.values()) and time.monotonic() < deadline:
            time.sleep(0.01)

        client.patch("/settings/555", json={"path": "gathering.enabled", "value": True})

        message = ws.receive_json()
        assert message["event"] == "setting-changed"
        assert message["data"]["iggId"] == "555"
        assert message["data"]["path"] == "gathering.enabled"


class FakeSocket:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def accept(self) -> None:
        return None

    async def send_json(self, message: dict[str, Any]) -> None:
        self.sent.append(message)


class DeadSocket(FakeSocket):
    async def send_json(self, message: dict[str, Any]) -> None:
        raise RuntimeError("closed")


def test_connection_manager_scopes_channel_broadcasts() -> None:
    manager = ConnectionManager()
    a, b, dead = FakeSocket(), FakeSocket(), DeadSocket()

    async def scenario() -> None:
        for ws in (a, b, dead):
            await manager.connect(ws)
        manager.subscribe(a, "1")
        manager.subscribe(dead, "1")
        await manager.broadcast("automation_status", {"status": "processing"}, channel="igg-1")
        await manager.broadcast("queue_update", {"queueLength": 0})

    asyncio.run(scenario())

    assert [m["event"] for m in a.sent] == ["automation_status", "queue_update"]
    assert [m["event"] for m in b.sent] == ["queue_update"]
    assert dead not in manager.connections


def test_publish_without_loop_is_dropped() -> None:
    manager = ConnectionManager()

    manager.publish("queue_update", {})
    manager.publish_to("igg-1", "automation_status", {})

    assert manager.connections == {}
