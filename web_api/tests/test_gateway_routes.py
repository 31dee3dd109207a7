# web_api/tests/test_gateway_routes.py
"""Tests for the /api/exec and Telegram webhook endpoints."""

import json
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from fastapi.testclient import TestClient  # noqa: E402
from main import app  # noqa: E402


client = TestClient(app)

SECRET_HEADER = {"X-Telegram-Bot-Api-Secret-Token": "hook-secret"}


def start_update(message_id=1):
    return {
        "update_id": message_id,
        "message": {
            "message_id": message_id,
            "text": "/start",
            "chat": {"id": 555, "type": "private"},
            "from": {"id": 7, "username": "alice"},
        },
    }


class TestExecClientCalls:
    def test_get_reads_collections(self, api_services):
        response = client.get("/api/exec", params={"action": "get"})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert set(body["data"]) == {"cases", "reminders", "settings"}

    def test_login_default_admin(self, api_services):
        response = client.get("/api/exec", params={"action": "login", "u": "admin", "p": "admin"})

        assert response.json() == {"status": "success", "message": "Default Admin"}

    def test_text_plain_json_body_writes(self, api_services):
        payload = {
            "cases": [{"id": "c1", "clientName": "王小明", "attachments": [{"name": "a.jpg", "tempId": "t1"}]}],
            "uploads": [{"tempId": "t1", "base64": "aGk=", "fileName": "a.jpg", "mimeType": "image/jpeg"}],
        }

        response = client.post(
            "/api/exec",
            content=json.dumps(payload),
            headers={"Content-Type": "text/plain;charset=utf-8"},
        )

        body = response.json()
        assert body["status"] == "success"
        assert body["uploadedLinks"] == {"t1": "https://files.example.com/a.jpg"}
        assert api_services.store.cases[0].client_name == "王小明"

    def test_invalid_json_is_structured_error(self, api_services):
        response = client.post("/api/exec", content="{oops")

        assert response.status_code == 200
        assert response.json()["status"] == "error"

    def test_validation_error(self, api_services):
        response = client.post("/api/exec", json={"cases": [{"clientName": "no id"}]})

        assert response.json()["status"] == "error"
        assert api_services.store.saves["cases"] == 0


class TestExecChatUpdates:
    def test_update_requires_secret(self, api_services):
        response = client.post("/api/exec", json=start_update())

        assert response.status_code == 401
        assert api_services.dispatcher.sent == []

    def test_update_with_secret(self, api_services):
        response = client.post("/api/exec", json=start_update(), headers=SECRET_HEADER)

        assert response.json() == {"status": "ok"}
        assert "私訊" in api_services.dispatcher.sent[0]["text"]


class TestTelegramWebhook:
    def test_duplicate_delivery(self, api_services):
        first = client.post("/api/telegram/webhook", json=start_update(5), headers=SECRET_HEADER)
        second = client.post("/api/telegram/webhook", json=start_update(5), headers=SECRET_HEADER)

        assert first.json() == {"status": "ok"}
        assert second.json() == {"status": "ok", "duplicate": True}
        assert len(api_services.dispatcher.sent) == 1

    def test_wrong_secret(self, api_services):
        response = client.post(
            "/api/telegram/webhook",
            json=start_update(),
            headers={"X-Telegram-Bot-Api-Secret-Token": "nope"},
        )

        assert response.status_code == 401

    def test_empty_body_ignored(self, api_services):
        response = client.post("/api/telegram/webhook", headers=SECRET_HEADER)

        assert response.json() == {"status": "ok", "ignored": True}


class TestHealth:
    def test_health(self):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
