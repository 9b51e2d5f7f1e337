"""Exceptions raised by the chat pipeline."""

from typing import Optional


class CompletionError(Exception):
    """Base class for failures of a single completion exchange."""


class MissingKeyError(CompletionError):
    """No API credential is configured."""

    def __init__(self, message: str = "Gemini API key is missing.") -> None:
        super().__init__(message)


class NoContentError(CompletionError):
    """Nothing eligible to send."""

    def __init__(self, message: str = "No conversation content to send.") -> None:
        super().__init__(message)


class ApiError(CompletionError):
    """The provider rejected the request or reported an error."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        self.status_code = status_code
        if status_code is None:
            super().__init__(f"Gemini API request failed: {message}")
        else:
            super().__init__(f"Gemini API request failed ({status_code}): {message}")


class EmptyResponseError(CompletionError):
    """The provider answered without any usable text."""

    def __init__(self, message: str = "Gemini response did not include any text.") -> None:
        super().__init__(message)


class CompletionInFlightError(CompletionError):
    """A completion for the same chat is already running."""

    def __init__(self, chat_id: str) -> None:
        self.chat_id = chat_id
        super().__init__(f"A completion for chat {chat_id} is already in flight")


class ChatNotFoundError(LookupError):
    """Raised when a chat id does not resolve."""

    def __init__(self, chat_id: str) -> None:
        self.chat_id = chat_id
        super().__init__(f"Chat {chat_id} not found")


class MessageNotFoundError(LookupError):
    """Raised when a message id does not resolve within its chat."""

    def __init__(self, chat_id: str, message_id: str) -> None:
        self.chat_id = chat_id
        self.message_id = message_id
        super().__init__(f"Message {message_id} not found in chat {chat_id}")


class RetryNotAllowedError(ValueError):
    """Only user messages can be re-sent."""
