"""Send pipeline: user message, completion, reply."""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from ..domain.attachments import sanitize_attachments
from ..domain.errors import (
    ChatNotFoundError,
    CompletionError,
    MessageNotFoundError,
    NoContentError,
    RetryNotAllowedError,
)
from ..domain.models import Message
from ..repositories.chats import ChatRepository
from .llm import CompletionClient
from .messages import append_message, derive_initial_title
from .settings import SettingsManager

logger = structlog.get_logger()

FALLBACK_REPLY = "Sorry, something went wrong. Please try again."


@dataclass
class SendResult:
    """Outcome of one send: the stored user message, the stored reply and the failure, if any."""

    user_message: Message
    reply: Message
    error: Optional[CompletionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ChatService:
    """Coordinates repository, settings and completion client for a send.

    Sends to the same chat are queued: each one runs to completion before the
    next appends its user message. Sends to different chats run independently.
    """

    def __init__(
        self,
        repository: ChatRepository,
        settings: SettingsManager,
        completion_client: CompletionClient,
    ) -> None:
        self.repository = repository
        self.settings = settings
        self.completion_client = completion_client
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiting: Dict[str, int] = {}

    def pending_sends(self, chat_id: str) -> bool:
        lock = self._locks.get(chat_id)
        return lock is not None and lock.locked()

    async def send_message(self, chat_id: str, text: Optional[str] = "", attachments: Any = None) -> SendResult:
        """Append the user's message, ask for a completion and store the reply.

        The user message is kept even when the completion fails; the reply is
        then a fixed apology so the caller can offer a re-send.
        """
        text = (text or "").strip()
        attachments = sanitize_attachments(attachments)
        if not text and not attachments:
            raise NoContentError()

        if self.repository.get(chat_id) is None:
            raise ChatNotFoundError(chat_id)

        # A chat's lock lives only while some send holds or awaits it.
        lock = self._locks.setdefault(chat_id, asyncio.Lock())
        if lock.locked():
            logger.info("send_queued", chat_id=chat_id)
        self._waiting[chat_id] = self._waiting.get(chat_id, 0) + 1
        try:
            async with lock:
                return await self._exchange(chat_id, text, attachments)
        finally:
            self._waiting[chat_id] -= 1
            if not self._waiting[chat_id]:
                del self._waiting[chat_id]
                del self._locks[chat_id]

    async def _exchange(self, chat_id: str, text: str, attachments: Any) -> SendResult:
        chat = self.repository.get(chat_id)
        if chat is None:
            raise ChatNotFoundError(chat_id)

        user_message = append_message(self.repository, chat, text, "user", attachments)

        try:
            response = await self.completion_client.complete(chat, self.settings.current)
        except CompletionError as e:
            logger.error(
                "completion_failed",
                chat_id=chat_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            reply = append_message(self.repository, chat, FALLBACK_REPLY, "ai")
            return SendResult(user_message=user_message, reply=reply, error=e)

        reply = append_message(self.repository, chat, response, "ai")
        derive_initial_title(self.repository, chat, text)
        return SendResult(user_message=user_message, reply=reply)

    async def retry(self, chat_id: str, message_id: str) -> SendResult:
        """Re-send a stored user message as a new turn."""
        if self.repository.get(chat_id) is None:
            raise ChatNotFoundError(chat_id)
        message = self.repository.find_message(chat_id, message_id)
        if message is None:
            raise MessageNotFoundError(chat_id, message_id)
        if message.sender != "user":
            raise RetryNotAllowedError("Retry the previous user message to get a new AI response")

        logger.info("message_retry", chat_id=chat_id, message_id=message_id)
        return await self.send_message(chat_id, message.text, message.attachments or [])
