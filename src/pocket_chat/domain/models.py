"""Domain models for the chat client."""

import time
from typing import List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_CHAT_NAME = "Untitled"
DEFAULT_USER_NAME = "User"
DEFAULT_AI_NAME = "Assistant"
DEFAULT_SYSTEM_INSTRUCTIONS = "You are a helpful assistant."

DEFAULT_MODEL = "gemini-1.5-flash"
DEFAULT_TEMPERATURE = 0.6
DEFAULT_MAX_OUTPUT_TOKENS = 1024


def now_ms() -> int:
    """Current time as integer milliseconds since the epoch."""
    return int(time.time() * 1000)


def new_message_id() -> str:
    return uuid4().hex


class CamelModel(BaseModel):
    """Base model stored and served with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Attachment(CamelModel):
    """A base64-encoded file carried by a message."""

    name: str = ""
    mime_type: str = "application/octet-stream"
    data: str
    size: Optional[Union[int, float]] = None


class Message(CamelModel):
    """Message model."""

    id: str = Field(default_factory=new_message_id)
    text: str = ""
    sender: Literal["user", "ai"]
    timestamp: int = Field(default_factory=now_ms)
    attachments: Optional[List[Attachment]] = None


class ChatSettings(CamelModel):
    """Per-chat assistant configuration."""

    user_name: str = DEFAULT_USER_NAME
    ai_name: str = DEFAULT_AI_NAME
    system_instructions: str = DEFAULT_SYSTEM_INSTRUCTIONS


class Chat(CamelModel):
    """Chat model."""

    id: str
    name: str = DEFAULT_CHAT_NAME
    messages: List[Message] = Field(default_factory=list)
    settings: ChatSettings = Field(default_factory=ChatSettings)
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)


class GlobalSettings(CamelModel):
    """Application-wide settings: credential, appearance and generation parameters."""

    api_key: str = ""
    theme: Literal["system", "light", "dark"] = "system"
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS


def dump_for_storage(model: BaseModel) -> dict:
    """Serialize a model the way it is written to the store.

    Optional fields that are unset (attachment size, empty attachment lists)
    are left out entirely.
    """
    return model.model_dump(by_alias=True, exclude_none=True)
