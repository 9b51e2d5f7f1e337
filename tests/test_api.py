"""Test suite for the local HTTP API."""

import pytest
from fastapi.testclient import TestClient

from pocket_chat.api.app import app, get_chat_service


@pytest.fixture
def client(chat_service):
    app.dependency_overrides[get_chat_service] = lambda: chat_service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_list_chats_starts_with_one_current_chat(client):
    response = client.get("/chats")
    assert response.status_code == 200
    chats = response.json()
    assert len(chats) == 1
    assert chats[0]["name"] == "Untitled"
    assert chats[0]["preview"] == "No messages yet"
    assert chats[0]["current"] is True
    assert "updatedAt" in chats[0]


def test_create_chat_goes_to_front_and_becomes_current(client):
    created = client.post("/chats").json()
    assert created["messages"] == []
    assert created["settings"]["systemInstructions"] == "You are a helpful assistant."
    assert "createdAt" in created

    chats = client.get("/chats").json()
    assert chats[0]["id"] == created["id"]
    assert client.get("/chats/current").json()["id"] == created["id"]


def test_set_current_chat(client):
    first_id = client.get("/chats").json()[0]["id"]
    client.post("/chats")

    response = client.put("/chats/current", json={"chatId": first_id})
    assert response.status_code == 200
    assert response.json()["id"] == first_id

    assert client.put("/chats/current", json={"chatId": "missing"}).status_code == 404


def test_send_message_round_trip(client):
    chat_id = client.get("/chats/current").json()["id"]

    response = client.post(
        f"/chats/{chat_id}/messages",
        json={"text": "Explain quantum computing simply please"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["userMessage"]["sender"] == "user"
    assert data["reply"]["text"] == "Hi there!"
    assert data["chatName"] == "Explain quantum computing simp..."

    chat = client.get(f"/chats/{chat_id}").json()
    assert [m["sender"] for m in chat["messages"]] == ["user", "ai"]
    assert client.get("/chats").json()[0]["preview"] == "Hi there!"


def test_send_message_with_data_url_attachment(client):
    chat_id = client.get("/chats/current").json()["id"]
    response = client.post(
        f"/chats/{chat_id}/messages",
        json={
            "text": "",
            "attachments": [
                {"name": "dot.png", "dataUrl": "data:image/png;base64,iVBORw0KGgo=", "size": 2048},
                {"name": "broken"},
            ],
        },
    )
    assert response.status_code == 200
    message = response.json()["userMessage"]
    assert message["attachments"] == [
        {"name": "dot.png", "mimeType": "image/png", "data": "iVBORw0KGgo=", "size": 2048}
    ]

    views = client.get(f"/chats/{chat_id}/messages/{message['id']}/attachments").json()
    assert views == [{"name": "dot.png", "mimeType": "image/png", "sizeLabel": "2.0 KB"}]


def test_send_errors(client):
    chat_id = client.get("/chats/current").json()["id"]
    assert client.post(f"/chats/{chat_id}/messages", json={"text": "   "}).status_code == 400
    assert client.post("/chats/missing/messages", json={"text": "hi"}).status_code == 404


def test_failed_completion_returns_fallback(client, chat_service):
    chat_service.settings.update({"apiKey": ""})
    chat_id = client.get("/chats/current").json()["id"]

    data = client.post(f"/chats/{chat_id}/messages", json={"text": "Hello"}).json()
    assert data["ok"] is False
    assert data["reply"]["text"] == "Sorry, something went wrong. Please try again."
    assert data["userMessage"]["text"] == "Hello"


def test_retry_and_delete_message(client):
    chat_id = client.get("/chats/current").json()["id"]
    sent = client.post(f"/chats/{chat_id}/messages", json={"text": "hello"}).json()

    retried = client.post(f"/chats/{chat_id}/messages/{sent['userMessage']['id']}/retry")
    assert retried.status_code == 200
    assert retried.json()["userMessage"]["text"] == "hello"

    assert client.post(f"/chats/{chat_id}/messages/{sent['reply']['id']}/retry").status_code == 400
    assert client.post(f"/chats/{chat_id}/messages/missing/retry").status_code == 404

    assert client.delete(f"/chats/{chat_id}/messages/{sent['reply']['id']}").status_code == 204
    assert client.delete(f"/chats/{chat_id}/messages/{sent['reply']['id']}").status_code == 404
    assert len(client.get(f"/chats/{chat_id}").json()["messages"]) == 3


def test_rename_and_chat_settings(client):
    chat_id = client.get("/chats/current").json()["id"]

    assert client.patch(f"/chats/{chat_id}", json={"name": "  Recipes "}).json()["name"] == "Recipes"
    assert client.patch(f"/chats/{chat_id}", json={"name": "  "}).json()["name"] == "Recipes"

    chat = client.put(
        f"/chats/{chat_id}/settings",
        json={"name": "Cooking", "userName": "", "aiName": "Chef", "systemInstructions": ""},
    ).json()
    assert chat["name"] == "Cooking"
    assert chat["settings"] == {"userName": "User", "aiName": "Chef", "systemInstructions": ""}

    assert client.patch("/chats/missing", json={"name": "x"}).status_code == 404


def test_delete_last_chat_creates_replacement(client):
    chat_id = client.get("/chats/current").json()["id"]
    assert client.delete(f"/chats/{chat_id}").status_code == 204

    chats = client.get("/chats").json()
    assert len(chats) == 1
    assert chats[0]["id"] != chat_id
    assert client.delete("/chats/missing").status_code == 404


def test_settings_are_clamped(client):
    data = client.put("/settings", json={"temperature": 5, "maxOutputTokens": 99999}).json()
    assert data["temperature"] == 1
    assert data["maxOutputTokens"] == 8192
    assert client.get("/settings").json()["temperature"] == 1

    response = client.put("/settings", json={"theme": "neon"})
    assert response.status_code == 200
    assert response.json()["theme"] == "system"
    assert client.get("/settings").json()["theme"] == "system"


def test_metrics_endpoint(client):
    client.get("/chats")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "requests_total" in response.text
