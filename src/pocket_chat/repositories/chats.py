"""Chat repository backed by a key-value store."""

from typing import Any, Callable, Dict, List, Optional

import structlog
from pydantic import TypeAdapter

from ..domain.models import (
    DEFAULT_AI_NAME,
    DEFAULT_CHAT_NAME,
    DEFAULT_USER_NAME,
    Chat,
    Message,
    dump_for_storage,
    now_ms,
)
from ..storage.base import (
    CHATS_KEY,
    CHATS_SCHEMA_VERSION_KEY,
    CURRENT_CHAT_KEY,
    KeyValueStore,
)
from .migrations import CURRENT_SCHEMA_VERSION, migrate_chats

logger = structlog.get_logger()

NO_MESSAGES_PREVIEW = "No messages yet"
PREVIEW_LENGTH = 50

# Fields a caller may merge into a chat; id and created_at never change.
_UPDATABLE_FIELDS = {"name", "messages", "settings", "updated_at"}
_FIELD_ALIASES = {"updatedAt": "updated_at"}
_FIELD_ADAPTERS = {name: TypeAdapter(Chat.model_fields[name].annotation) for name in _UPDATABLE_FIELDS}


def chat_preview(chat: Chat) -> str:
    """One-line description of a chat's last message for list display."""
    if not chat.messages:
        return NO_MESSAGES_PREVIEW

    last = chat.messages[-1]
    preview = (last.text or "").strip()
    if not preview and last.attachments:
        first = last.attachments[0]
        count = len(last.attachments)
        descriptor = f"{count} attachments" if count > 1 else (first.name or "Attachment")
        kind = "Image" if (first.mime_type or "").startswith("image/") else "Attachment"
        preview = f"{kind}: {descriptor}"

    return preview[:PREVIEW_LENGTH] if preview else NO_MESSAGES_PREVIEW


class ChatRepository:
    """Owns the ordered chat collection and the current-chat pointer.

    Every mutating call writes the whole collection back to the store before
    returning. Call :meth:`initialize` before use and :meth:`dispose` when
    done.
    """

    def __init__(self, store: KeyValueStore, clock: Callable[[], int] = now_ms) -> None:
        self._store = store
        self._clock = clock
        self._chats: List[Chat] = []
        self._current_id: Optional[str] = None
        self._last_id = 0
        self._initialized = False

    def initialize(self) -> "ChatRepository":
        """Load chats, run pending migrations and make sure a current chat exists."""
        raw_chats = self._store.get(CHATS_KEY, [])
        version = self._store.get(CHATS_SCHEMA_VERSION_KEY, 1)

        if version < CURRENT_SCHEMA_VERSION:
            raw_chats, changed = migrate_chats(raw_chats, self._clock())
            self._chats = [Chat.model_validate(raw) for raw in raw_chats]
            if changed:
                self._persist()
            self._store.set(CHATS_SCHEMA_VERSION_KEY, CURRENT_SCHEMA_VERSION)
        else:
            self._chats = [Chat.model_validate(raw) for raw in raw_chats]

        self._last_id = max((int(c.id) for c in self._chats if c.id.isdigit()), default=0)
        self._initialized = True

        if not self._chats:
            self.create()
        else:
            stored_current = self._store.get(CURRENT_CHAT_KEY, None)
            if not self.set_current(stored_current):
                self.set_current(self._chats[0].id)

        logger.info("repository_initialized", chats=len(self._chats), current_chat_id=self._current_id)
        return self

    def dispose(self) -> None:
        """Flush state to the store and release the in-memory collection."""
        if not self._initialized:
            return
        self._persist()
        self._chats = []
        self._current_id = None
        self._initialized = False
        logger.info("repository_disposed")

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("ChatRepository is not initialized")

    def _persist(self) -> None:
        self._store.set(CHATS_KEY, [dump_for_storage(chat) for chat in self._chats])

    def _next_id(self) -> str:
        candidate = self._clock()
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)

    def list(self) -> List[Chat]:
        """Chats in stored order, most recently created first."""
        self._require_initialized()
        return list(self._chats)

    def get(self, chat_id: Optional[str]) -> Optional[Chat]:
        self._require_initialized()
        for chat in self._chats:
            if chat.id == chat_id:
                return chat
        return None

    def create(self) -> Chat:
        """Create an empty chat at the front of the list and make it current."""
        self._require_initialized()
        now = self._clock()
        chat = Chat(id=self._next_id(), created_at=now, updated_at=now)
        self._chats.insert(0, chat)
        self._persist()
        self.set_current(chat.id)
        logger.info("chat_created", chat_id=chat.id)
        return chat

    def get_current(self) -> Optional[Chat]:
        self._require_initialized()
        return self.get(self._current_id)

    def set_current(self, chat_id: Optional[str]) -> bool:
        """Point at ``chat_id``; returns False and changes nothing if it is unknown."""
        self._require_initialized()
        if self.get(chat_id) is None:
            return False
        self._current_id = chat_id
        self._store.set(CURRENT_CHAT_KEY, chat_id)
        return True

    def update(self, chat_id: str, fields: Dict[str, Any]) -> Optional[Chat]:
        """Shallow-merge ``fields`` into a chat and refresh ``updated_at``.

        Unknown ids are ignored: the caller usually holds the live chat object
        already, and a concurrent delete must not turn into an error here.
        Values are validated against the chat model before anything is
        applied, so plain dicts become models and a bad value raises
        ``pydantic.ValidationError`` with the chat untouched. Model instances
        are kept as they are.
        """
        self._require_initialized()
        chat = self.get(chat_id)
        if chat is None:
            logger.warning("chat_update_ignored", chat_id=chat_id)
            return None

        validated = {}
        for key, value in fields.items():
            key = _FIELD_ALIASES.get(key, key)
            if key in _UPDATABLE_FIELDS:
                validated[key] = _FIELD_ADAPTERS[key].validate_python(value)

        for key, value in validated.items():
            setattr(chat, key, value)
        chat.updated_at = self._clock()
        self._persist()
        return chat

    def delete(self, chat_id: str) -> bool:
        """Remove a chat, re-pointing the current chat when needed."""
        self._require_initialized()
        chat = self.get(chat_id)
        if chat is None:
            return False

        self._chats.remove(chat)
        self._persist()
        logger.info("chat_deleted", chat_id=chat_id)

        if chat_id == self._current_id:
            if not self._chats:
                self.create()
            else:
                self.set_current(self._chats[0].id)
        return True

    def rename(self, chat_id: str, new_name: Optional[str]) -> Optional[Chat]:
        """Rename a chat; blank names keep the existing one."""
        self._require_initialized()
        chat = self.get(chat_id)
        if chat is None:
            return None

        name = (new_name or "").strip()
        if not name:
            logger.debug("chat_rename_rejected", chat_id=chat_id)
            return chat
        return self.update(chat_id, {"name": name})

    def update_settings(
        self,
        chat_id: str,
        name: Optional[str] = None,
        user_name: Optional[str] = None,
        ai_name: Optional[str] = None,
        system_instructions: Optional[str] = None,
    ) -> Optional[Chat]:
        """Save the per-chat settings form.

        Blank names fall back to their defaults; system instructions may be
        cleared.
        """
        self._require_initialized()
        chat = self.get(chat_id)
        if chat is None:
            return None

        settings = chat.settings.model_copy(
            update={
                "user_name": (user_name or "").strip() or DEFAULT_USER_NAME,
                "ai_name": (ai_name or "").strip() or DEFAULT_AI_NAME,
                "system_instructions": (system_instructions or "").strip(),
            }
        )
        return self.update(
            chat_id,
            {"name": (name or "").strip() or DEFAULT_CHAT_NAME, "settings": settings},
        )

    def find_message(self, chat_id: str, message_id: str) -> Optional[Message]:
        chat = self.get(chat_id)
        if chat is None:
            return None
        return next((m for m in chat.messages if m.id == message_id), None)

    def delete_message(self, chat_id: str, message_id: str) -> bool:
        """Remove one message by id."""
        self._require_initialized()
        chat = self.get(chat_id)
        message = self.find_message(chat_id, message_id)
        if chat is None or message is None:
            return False

        chat.messages.remove(message)
        self.update(chat_id, {"messages": chat.messages})
        logger.info("message_deleted", chat_id=chat_id, message_id=message_id)
        return True
