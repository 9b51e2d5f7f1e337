"""Conversion of a chat into a generateContent request body."""

from typing import Any, Dict, List

from ..domain.attachments import DEFAULT_MIME_TYPE, sanitize_attachments
from ..domain.errors import NoContentError
from ..domain.models import Chat, GlobalSettings, Message

MAX_CONVERSATION_MESSAGES = 512


def build_parts(message: Message) -> List[Dict[str, Any]]:
    """Text part (if any) followed by one inline-data part per attachment."""
    parts: List[Dict[str, Any]] = []

    text = (message.text or "").strip()
    if text:
        parts.append({"text": text})

    for attachment in sanitize_attachments(message.attachments or []):
        mime_type = (attachment.mime_type or DEFAULT_MIME_TYPE).strip()
        parts.append(
            {
                "inline_data": {
                    "mime_type": mime_type or DEFAULT_MIME_TYPE,
                    "data": attachment.data,
                }
            }
        )
    return parts


def build_conversation(chat: Chat, window: int = MAX_CONVERSATION_MESSAGES) -> List[Dict[str, Any]]:
    """Map the trailing window of the message log to provider turns.

    Messages with nothing transmissible are skipped. Raises NoContentError
    when no turn remains.
    """
    conversation = []
    for message in chat.messages[-window:]:
        parts = build_parts(message)
        if not parts:
            continue
        conversation.append({"role": "model" if message.sender == "ai" else "user", "parts": parts})

    if not conversation:
        raise NoContentError()
    return conversation


def build_payload(chat: Chat, settings: GlobalSettings) -> Dict[str, Any]:
    """Full request body, including the system instruction when the chat has one."""
    payload: Dict[str, Any] = {
        "contents": build_conversation(chat),
        "generationConfig": {
            "temperature": settings.temperature,
            "maxOutputTokens": settings.max_output_tokens,
        },
    }

    if chat.settings.system_instructions:
        payload["system_instruction"] = {"parts": [{"text": chat.settings.system_instructions}]}
    return payload
