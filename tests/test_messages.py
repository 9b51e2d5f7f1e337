"""Test suite for the message log and attachment model."""

import base64
import io

import pytest

from pocket_chat.domain.attachments import format_size, sanitize_attachments
from pocket_chat.domain.models import Attachment, dump_for_storage
from pocket_chat.repositories.chats import ChatRepository
from pocket_chat.services.attachments import attachment_from_data_url, ingest_file
from pocket_chat.services.messages import append_message, derive_initial_title
from pocket_chat.storage.base import CHATS_KEY


@pytest.mark.parametrize(
    "attachments",
    [
        [{"name": "a.txt", "mimeType": "text/plain"}],
        [{"name": "a.txt", "data": ""}],
        [{"name": "a.txt", "data": None}],
        [None, "string", 42, {"data": 7}],
        {"data": "AAA"},
        "not a list",
        None,
    ],
)
def test_sanitize_drops_entries_without_data(attachments):
    assert sanitize_attachments(attachments) == []


def test_sanitize_defaults_mime_type_and_checks_size():
    sanitized = sanitize_attachments([
        {"name": "blob", "data": "AAA", "size": "12"},
        {"data": "BBB", "mimeType": "image/png", "size": 2048},
        {"name": "flag", "data": "CCC", "size": True},
    ])

    assert [a.mime_type for a in sanitized] == ["application/octet-stream", "image/png", "application/octet-stream"]
    assert [a.size for a in sanitized] == [None, 2048, None]
    assert sanitized[1].name == ""


@pytest.mark.parametrize(
    "size, expected",
    [
        (0, ""),
        (-5, ""),
        (float("nan"), ""),
        (float("inf"), ""),
        (None, ""),
        (1, "1 B"),
        (1023, "1023 B"),
        (1024, "1.0 KB"),
        (1536, "1.5 KB"),
        (10 * 1024, "10 KB"),
        (5 * 1024 * 1024, "5.0 MB"),
        (3 * 1024 ** 4, "3072 GB"),
    ],
)
def test_format_size(size, expected):
    assert format_size(size) == expected


def test_append_message_persists_and_omits_empty_attachments(repository, store):
    chat = repository.get_current()
    message = append_message(repository, chat, "Hello", "user", [{"name": "nodata"}])

    assert message.attachments is None
    assert chat.messages[-1] is message
    stored = store.get(CHATS_KEY)[0]["messages"][0]
    assert stored["text"] == "Hello"
    assert stored["sender"] == "user"
    assert isinstance(stored["timestamp"], int)
    assert "attachments" not in stored


def test_append_message_round_trips_through_store(repository, store, clock):
    chat = repository.get_current()
    append_message(repository, chat, "look", "user", [
        {"name": "cat.png", "mimeType": "image/png", "data": "iVBORw0KGgo=", "size": 8},
        {"name": "skipped"},
    ])
    append_message(repository, chat, "A cat.", "ai")
    expected = [dump_for_storage(m) for m in chat.messages]
    repository.dispose()

    reloaded = ChatRepository(store, clock=clock).initialize()
    assert [dump_for_storage(m) for m in reloaded.get(chat.id).messages] == expected
    assert expected[0]["attachments"] == [
        {"name": "cat.png", "mimeType": "image/png", "data": "iVBORw0KGgo=", "size": 8}
    ]


def test_append_message_refreshes_updated_at(repository):
    chat = repository.get_current()
    before = chat.updated_at
    append_message(repository, chat, "hi", "user")
    assert chat.updated_at > before


def test_initial_title_truncates_long_text(repository):
    chat = repository.get_current()
    text = "Explain quantum computing simply please"
    append_message(repository, chat, text, "user")
    append_message(repository, chat, "Sure.", "ai")

    assert derive_initial_title(repository, chat, text) is True
    assert chat.name == "Explain quantum computing simp..."
    assert repository.get(chat.id).name == "Explain quantum computing simp..."


def test_initial_title_keeps_short_text_whole(repository):
    chat = repository.get_current()
    append_message(repository, chat, "Hi", "user")
    append_message(repository, chat, "Hello!", "ai")
    derive_initial_title(repository, chat, "Hi")
    assert chat.name == "Hi"


def test_initial_title_fires_only_once(repository):
    chat = repository.get_current()
    append_message(repository, chat, "first", "user")
    append_message(repository, chat, "reply", "ai")
    assert derive_initial_title(repository, chat, "first") is True

    repository.rename(chat.id, "Untitled")
    append_message(repository, chat, "second", "user")
    append_message(repository, chat, "reply", "ai")
    assert derive_initial_title(repository, chat, "second") is False
    assert chat.name == "Untitled"


def test_initial_title_skips_renamed_chat_and_blank_text(repository):
    chat = repository.get_current()
    repository.rename(chat.id, "Mine")
    append_message(repository, chat, "first", "user")
    append_message(repository, chat, "reply", "ai")
    assert derive_initial_title(repository, chat, "first") is False

    other = repository.create()
    append_message(repository, other, "", "user", [{"name": "a", "data": "AAA"}])
    append_message(repository, other, "reply", "ai")
    assert derive_initial_title(repository, other, "") is False
    assert other.name == "Untitled"


def test_attachment_from_data_url_resolves_mime_type():
    from_header = attachment_from_data_url("data:image/jpeg;base64,/9j/4AAQ", name="p.jpg")
    assert from_header.mime_type == "image/jpeg"
    assert from_header.data == "/9j/4AAQ"

    declared = attachment_from_data_url("data:image/jpeg;base64,/9j/", declared_type="image/x-custom")
    assert declared.mime_type == "image/x-custom"

    unknown = attachment_from_data_url("data:;base64,AAAA", name="raw")
    assert unknown.mime_type == "application/octet-stream"

    assert attachment_from_data_url("data:text/plain;base64,") is None
    assert attachment_from_data_url("no comma here") is None


@pytest.mark.asyncio
async def test_ingest_file_from_path(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_bytes(b"hello world")

    attachment = await ingest_file(path)

    assert isinstance(attachment, Attachment)
    assert attachment.name == "notes.txt"
    assert attachment.mime_type == "text/plain"
    assert base64.b64decode(attachment.data) == b"hello world"
    assert attachment.size == 11


@pytest.mark.asyncio
async def test_ingest_file_object_with_declared_type():
    handle = io.BytesIO(b"\x00\x01\x02")
    attachment = await ingest_file(handle, name="blob", declared_type="application/x-thing")
    assert attachment.mime_type == "application/x-thing"
    assert attachment.size == 3

    unnamed = await ingest_file(io.BytesIO(b"\x00"), name="mystery")
    assert unnamed.mime_type == "application/octet-stream"

    assert await ingest_file(io.BytesIO(b""), name="empty.txt") is None
