"""Message log operations."""

from typing import Any, Optional

import structlog

from ..domain.attachments import sanitize_attachments
from ..domain.models import DEFAULT_CHAT_NAME, Chat, Message, now_ms
from ..repositories.chats import ChatRepository

logger = structlog.get_logger()

TITLE_LENGTH = 30
TITLE_ELLIPSIS = "..."


def append_message(
    repository: ChatRepository,
    chat: Chat,
    text: Optional[str] = "",
    sender: str = "user",
    attachments: Any = None,
) -> Message:
    """Append a message to ``chat`` and persist it.

    ``attachments`` is sanitized first; the field is left unset when nothing
    survives.
    """
    sanitized = sanitize_attachments(attachments)
    message = Message(
        text=text or "",
        sender=sender,
        timestamp=now_ms(),
        attachments=sanitized or None,
    )
    chat.messages.append(message)
    repository.update(chat.id, {"messages": chat.messages})
    logger.info(
        "message_added",
        chat_id=chat.id,
        message_id=message.id,
        sender=sender,
        attachments=len(sanitized),
    )
    return message


def derive_initial_title(repository: ChatRepository, chat: Chat, first_user_message_text: Optional[str]) -> bool:
    """Name a chat after its first user message once the first exchange lands.

    Only applies while the chat has exactly two messages and still carries
    the default name. Returns True when the chat was renamed.
    """
    if len(chat.messages) != 2 or chat.name != DEFAULT_CHAT_NAME:
        return False

    source = first_user_message_text or ""
    if not source.strip():
        return False

    title = source[:TITLE_LENGTH]
    if len(source) > TITLE_LENGTH:
        title += TITLE_ELLIPSIS

    chat.name = title
    repository.update(chat.id, {"name": title})
    logger.info("chat_titled", chat_id=chat.id, title=title)
    return True
