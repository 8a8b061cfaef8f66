"""Tests for the editor service endpoints."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from cognilab.persistence import InMemoryLabStore
from cognilab.service import LabService
from server import create_app


@pytest.fixture
def service(tmp_path, catalog) -> LabService:
    return LabService(config_yaml_path=str(tmp_path / "config.yaml"), dotenv_path=str(tmp_path / ".env"),
                      catalog=catalog, store=InMemoryLabStore(), configure_logging=False)


@pytest.fixture
def client(service):
    with TestClient(create_app(service)) as test_client:
        yield test_client


def _placement(type_id, pid):
    return {"id": pid, "equipmentId": type_id, "positionX": 0, "positionY": 0}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "catalog_size": 3}


def test_catalog(client):
    ids = [entry["id"] for entry in client.get("/api/catalog").json()]
    assert ids == ["power-supply", "resistor", "led"]


def test_validate(client):
    body = {
        "candidate": {"placements": [_placement("resistor", "a"), _placement("led", "b")], "connections": []},
        "reference": {
            "placements": [_placement("resistor", "p1"), _placement("led", "p2"), _placement("power-supply", "p3")],
            "connections": [{"id": "w1", "sourceEquipmentId": "p1", "targetEquipmentId": "p2"}],
        },
        "totalSteps": 2,
        "completedSteps": 2,
    }
    response = client.post("/api/validate", json=body)
    assert response.status_code == 200
    report = response.json()
    assert report["score"] == 25
    assert report["isValid"] is False
    assert "✗ Missing equipment: power-supply" in report["errors"]


@pytest.mark.parametrize("body", [
    {"candidate": {"placements": "nope"}, "reference": {}},
    {"candidate": {"placements": [{"positionX": 1}]}, "reference": {}},
    {"candidate": {}, "reference": {}, "totalSteps": 1, "completedSteps": 3},
    {"reference": {}},
])
def test_validate_rejects_malformed_body(client, body):
    assert client.post("/api/validate", json=body).status_code == 422


def test_websocket_editing_session(client):
    with client.websocket_connect("/ws/lab") as ws:
        ws.send_json({"type": "command", "name": "describe"})
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"type": "init", "lab_id": "lab-9", "session_id": "s-1"})
        init = ws.receive_json()
        assert init["type"] == "init_success"
        assert init["session_id"] == "s-1"
        assert init["lab"]["placements"] == []

        ws.send_json({"type": "command", "name": "add_placement", "request_id": "r1",
                      "arguments": {"equipment_type_id": "power-supply", "x": 0, "y": 0}})
        added = ws.receive_json()
        assert added["type"] == "command_result"
        assert added["request_id"] == "r1"
        assert added["status"] == "success"

        ws.send_json({"type": "command", "name": "save", "request_id": "r2"})
        saved = ws.receive_json()
        assert saved["status"] == "success"
        assert saved["data"]["composition"]["placements"][0]["id"]["kind"] == "persisted"

        ws.send_text("not json")
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"type": "dance"})
        assert ws.receive_json()["type"] == "error"


def test_websocket_reopens_saved_lab(client, service):
    with client.websocket_connect("/ws/lab") as ws:
        ws.send_json({"type": "init", "lab_id": "lab-3", "session_id": "author"})
        ws.receive_json()
        ws.send_json({"type": "command", "name": "add_placement",
                      "arguments": {"equipment_type_id": "led", "x": 1, "y": 1}})
        ws.receive_json()
        ws.send_json({"type": "command", "name": "save"})
        ws.receive_json()

    with client.websocket_connect("/ws/lab") as ws:
        ws.send_json({"type": "init", "lab_id": "lab-3", "session_id": "student", "mode": "practice"})
        init = ws.receive_json()
        assert init["lab"]["placements"] == []
        ws.send_json({"type": "command", "name": "check_progress"})
        result = ws.receive_json()
        assert result["data"]["score"] == 50


def test_init_requires_lab_id(client):
    with client.websocket_connect("/ws/lab") as ws:
        ws.send_json({"type": "init"})
        assert ws.receive_json()["type"] == "init_error"


def test_reused_session_must_keep_its_mode(client, service):
    with client.websocket_connect("/ws/lab") as ws:
        ws.send_json({"type": "init", "lab_id": "lab-4", "session_id": "s-mode"})
        assert ws.receive_json()["type"] == "init_success"

        ws.send_json({"type": "init", "lab_id": "lab-4", "session_id": "s-mode", "mode": "practice"})
        refused = ws.receive_json()
        assert refused["type"] == "init_error"
        assert "author" in refused["message"]

    handle = service.get_session("s-mode")
    assert handle is not None
    assert handle.session.mode == "author"


def test_practice_save_over_websocket_keeps_reference(client, service):
    with client.websocket_connect("/ws/lab") as ws:
        ws.send_json({"type": "init", "lab_id": "lab-5", "session_id": "instructor"})
        ws.receive_json()
        ws.send_json({"type": "command", "name": "add_placement",
                      "arguments": {"equipment_type_id": "resistor", "x": 0, "y": 0}})
        ws.receive_json()
        ws.send_json({"type": "command", "name": "save"})
        assert ws.receive_json()["status"] == "success"

        ws.send_json({"type": "init", "lab_id": "lab-5", "session_id": "pupil", "mode": "practice"})
        init = ws.receive_json()
        assert init["lab"]["mode"] == "practice"
        ws.send_json({"type": "command", "name": "save", "request_id": "r-save"})
        refused = ws.receive_json()
        assert refused["request_id"] == "r-save"
        assert refused["error"]["error_code"] == "SAVE_NOT_ALLOWED"

    lab = asyncio.run(service.store.load_lab("lab-5"))
    assert len(lab["labEquipments"]) == 1
