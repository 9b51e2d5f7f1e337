"""Load-time migration of stored chat data."""

from typing import Any, List, Tuple

import structlog

from ..domain.attachments import sanitize_attachments
from ..domain.models import dump_for_storage, new_message_id

logger = structlog.get_logger()

# 1: messages without ids, timestamps not guaranteed.
# 2: every message has an id and a numeric timestamp; attachments sanitized.
CURRENT_SCHEMA_VERSION = 2

_SENDERS = ("user", "ai")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _migrate_message(message: dict, index: int, timestamp_base: int) -> bool:
    changed = False

    if not _is_number(message.get("timestamp")):
        message["timestamp"] = timestamp_base + index
        changed = True
    elif isinstance(message["timestamp"], float):
        message["timestamp"] = int(message["timestamp"])
        changed = True

    if not isinstance(message.get("id"), str) or not message["id"]:
        message["id"] = new_message_id()
        changed = True

    if message.get("sender") not in _SENDERS:
        message["sender"] = "ai"
        changed = True

    if not isinstance(message.get("text"), str):
        message["text"] = "" if message.get("text") is None else str(message["text"])
        changed = True

    if "attachments" in message:
        sanitized = [dump_for_storage(att) for att in sanitize_attachments(message["attachments"])]
        if not sanitized:
            del message["attachments"]
            changed = True
        elif sanitized != message["attachments"]:
            message["attachments"] = sanitized
            changed = True

    return changed


def migrate_chats(raw_chats: Any, timestamp_base: int) -> Tuple[List[dict], bool]:
    """Bring stored chats up to the current schema.

    Messages missing a numeric timestamp get ``timestamp_base + position``,
    so the repair is deterministic for a given base. Returns the repaired
    chats and whether anything changed.
    """
    if not isinstance(raw_chats, list):
        return [], raw_chats is not None

    chats = []
    changed = False
    for chat in raw_chats:
        if not isinstance(chat, dict):
            changed = True
            continue

        if isinstance(chat.get("id"), int):
            chat["id"] = str(chat["id"])
            changed = True

        messages = chat.get("messages")
        if not isinstance(messages, list):
            chat["messages"] = messages = []
            changed = True

        kept = []
        for index, message in enumerate(messages):
            if not isinstance(message, dict):
                changed = True
                continue
            if _migrate_message(message, index, timestamp_base):
                changed = True
            kept.append(message)
        chat["messages"] = kept
        chats.append(chat)

    if changed:
        logger.info("chats_migrated", chats=len(chats), schema_version=CURRENT_SCHEMA_VERSION)
    return chats, changed
