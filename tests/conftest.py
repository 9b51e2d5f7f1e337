"""Shared test fixtures."""

import json
from typing import Callable, List

import httpx
import pytest

from pocket_chat.repositories.chats import ChatRepository
from pocket_chat.services.chat import ChatService
from pocket_chat.services.llm import CompletionClient
from pocket_chat.services.settings import SettingsManager
from pocket_chat.storage.memory import MemoryStore

TEST_ENDPOINT = "https://provider.test/v1beta/models"


class FakeClock:
    """Millisecond clock that advances by one on every reading."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        self.now += 1
        return self.now


def gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


class RecordingHandler:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]) -> None:
        self.responder = responder
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    def payload(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository(store, clock):
    repo = ChatRepository(store, clock=clock).initialize()
    yield repo
    repo.dispose()


@pytest.fixture
def settings_manager(store):
    manager = SettingsManager(store)
    manager.load()
    return manager


@pytest.fixture
def handler():
    return RecordingHandler(lambda request: httpx.Response(200, json=gemini_reply("Hi there!")))


@pytest.fixture
def completion_client(handler):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CompletionClient(endpoint=TEST_ENDPOINT, http_client=http_client)


@pytest.fixture
def chat_service(repository, settings_manager, completion_client):
    settings_manager.update({"apiKey": "test-key"})
    return ChatService(repository, settings_manager, completion_client)
