import asyncio
import json
import sys
import time
from pathlib import Path

import httpx
from fastapi.testclient import TestClient

sys.path.append(str(Path(__file__).resolve().parents[1]))

from hammock.core.config import Settings
from hammock.main import create_app


def _respond(request: httpx.Request):
    if request.url.path == "/slow":
        return _slow()
    return httpx.Response(200, json={"path": request.url.path, "accept": request.headers.get("Accept")})


async def _slow():
    await asyncio.sleep(0.5)
    return httpx.Response(200, text="slow")


def _client(tmp_path):
    settings = Settings(config_dir=tmp_path / "cfg", state_path=tmp_path / "state.json")
    return TestClient(create_app(settings, transport=httpx.MockTransport(_respond)))


def _wait_idle(client):
    for _ in range(200):
        if not client.get("/api/status").json()["pending"]:
            return
        time.sleep(0.01)
    raise AssertionError("request never finished")


def test_default_state_and_persist_on_shutdown(tmp_path):
    with _client(tmp_path) as client:
        state = client.get("/api/state").json()
        root = state["Collection"]
        assert root["Name"] == "Default"
        unnamed = root["Children"][0]
        assert unnamed["Name"] == "Unnamed"
        assert state["ActiveItem"] == unnamed["UUID"]
        assert state["SelectedItem"] == unnamed["UUID"]
        assert state["Dirty"] is True

    saved = json.loads((tmp_path / "state.json").read_text())
    assert saved["ActiveItem"] == unnamed["UUID"]


def test_build_and_send_request(tmp_path):
    with _client(tmp_path) as client:
        root_id = client.get("/api/state").json()["Collection"]["UUID"]
        group = client.post(f"/api/items/{root_id}/groups", json={"name": "Users"}).json()
        req = client.post(
            f"/api/items/{group['UUID']}/requests",
            json={"name": "List", "method": "get", "url": "http://api.local/users"},
        ).json()
        assert req["Method"] == "GET"

        res = client.put(f"/api/items/{req['UUID']}/headers/Accept", json={"value": "application/json; text/plain"})
        assert res.json() == {"Accept": "application/json; text/plain"}
        assert client.get(f"/api/items/{req['UUID']}").json()["Headers"] == {
            "Accept": ["application/json", "text/plain"]
        }

        assert client.post(f"/api/items/{req['UUID']}/activate").status_code == 200
        sent = client.post("/api/send")
        assert sent.status_code == 200
        assert sent.json()["item"] == req["UUID"]
        _wait_idle(client)

        result = client.get(f"/api/items/{req['UUID']}/result").json()
        assert result["status_code"] == 200
        assert result["body_is_json"] is True
        assert json.loads(result["body"]) == {"path": "/users", "accept": "application/json, text/plain"}
        assert result["body"].startswith("{\n  ")
        assert result["error"] is None
        assert client.get("/api/state").json()["LastError"] is None


def test_send_rejections(tmp_path):
    with _client(tmp_path) as client:
        # the default request has no URL yet
        assert client.post("/api/send").status_code == 422

        active = client.get("/api/state").json()["ActiveItem"]
        client.patch(f"/api/items/{active}", json={"url": "http://api.local/slow"})
        assert client.post("/api/send").status_code == 200
        again = client.post("/api/send")
        assert again.status_code == 409

        assert client.post("/api/cancel").json() == {"status": "cancelled"}
        assert client.get("/api/status").json() == {"pending": False, "state": "idle"}
        assert client.post("/api/cancel").json() == {"status": "idle"}


def test_clone_delete_and_format(tmp_path):
    with _client(tmp_path) as client:
        state = client.get("/api/state").json()
        root_id = state["Collection"]["UUID"]
        active = state["ActiveItem"]

        assert client.delete(f"/api/items/{root_id}").status_code == 400

        patched = client.patch(
            f"/api/items/{active}",
            json={"request_body": {"Payload": "{broken", "ContentType": "application/json"}},
        ).json()
        assert patched["RequestBody"]["Payload"] == "{broken"
        assert client.post(f"/api/items/{active}/body/format").status_code == 422
        assert client.get(f"/api/items/{active}").json()["RequestBody"]["Payload"] == "{broken"

        clone = client.post(f"/api/items/{active}/clone", json={"name": "Copy"}).json()
        children = client.get("/api/state").json()["Collection"]["Children"]
        assert [c["Name"] for c in children] == ["Unnamed", "Copy"]
        assert clone["UUID"] != active

        assert client.delete(f"/api/items/{active}").status_code == 200
        state = client.get("/api/state").json()
        assert state["ActiveItem"] == clone["UUID"]
        assert client.get(f"/api/items/{active}").status_code == 404


def test_patch_authentication(tmp_path):
    with _client(tmp_path) as client:
        active = client.get("/api/state").json()["ActiveItem"]
        item = client.patch(
            f"/api/items/{active}",
            json={"authentication": {"Type": "basic", "Data": {"Username": "u", "Password": "p"}}},
        ).json()
        assert item["Authentication"] == {"Type": "basic", "Data": {"Username": "u", "Password": "p"}}

        root_id = client.get("/api/state").json()["Collection"]["UUID"]
        assert client.patch(f"/api/items/{root_id}", json={"url": "http://x"}).status_code == 400
        assert client.patch(f"/api/items/{root_id}", json={"name": "Renamed"}).json()["Name"] == "Renamed"


def test_patch_rejects_malformed_authentication(tmp_path):
    with _client(tmp_path) as client:
        active = client.get("/api/state").json()["ActiveItem"]

        bad = client.patch(
            f"/api/items/{active}",
            json={"name": "Changed", "authentication": {"Type": "basic", "Data": "oops"}},
        )
        assert bad.status_code == 422
        item = client.get(f"/api/items/{active}").json()
        assert item["Name"] == "Unnamed"
        assert item["Authentication"] == {"Type": "none"}

        odd = client.patch(f"/api/items/{active}", json={"authentication": {"Type": ["x"]}})
        assert odd.status_code == 200
        assert odd.json()["Authentication"] == {"Type": "none"}
