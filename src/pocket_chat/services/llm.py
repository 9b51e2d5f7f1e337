"""Completion client for the Gemini generateContent endpoint."""

import os
from typing import Any, Optional, Set

import httpx
import structlog

from ..domain.errors import (
    ApiError,
    CompletionInFlightError,
    EmptyResponseError,
    MissingKeyError,
)
from ..domain.models import DEFAULT_MODEL, Chat, GlobalSettings
from .request_builder import build_payload

logger = structlog.get_logger()

DEFAULT_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_TIMEOUT = 60.0


def extract_text(data: Any) -> str:
    """Concatenate the text parts of the first candidate, trimmed."""
    candidates = data.get("candidates") if isinstance(data, dict) else None
    if not isinstance(candidates, list) or not candidates:
        return ""

    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""

    texts = [part.get("text") for part in parts if isinstance(part, dict)]
    return "".join(text for text in texts if isinstance(text, str)).strip()


class CompletionClient:
    """One-shot completion exchange with the provider.

    Each call either returns the full reply text or raises exactly one
    CompletionError subclass. Nothing is retried.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.endpoint = (endpoint or os.getenv("POCKET_CHAT_API_ENDPOINT", DEFAULT_ENDPOINT)).rstrip("/")
        self.timeout = timeout if timeout is not None else float(
            os.getenv("POCKET_CHAT_REQUEST_TIMEOUT", DEFAULT_TIMEOUT)
        )
        self._client = http_client
        self._in_flight: Set[str] = set()
        logger.info("completion_client_init", endpoint=self.endpoint, timeout=self.timeout)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def is_in_flight(self, chat_id: str) -> bool:
        return chat_id in self._in_flight

    async def complete(self, chat: Chat, settings: GlobalSettings) -> str:
        """Send the chat's conversation and return the assistant's reply."""
        api_key = (settings.api_key or "").strip()
        if not api_key:
            raise MissingKeyError()

        payload = build_payload(chat, settings)
        model = (settings.model or "").strip() or DEFAULT_MODEL

        if chat.id in self._in_flight:
            logger.warning("completion_rejected_in_flight", chat_id=chat.id)
            raise CompletionInFlightError(chat.id)

        self._in_flight.add(chat.id)
        try:
            return await self._request(chat.id, model, api_key, payload)
        finally:
            self._in_flight.discard(chat.id)

    async def _request(self, chat_id: str, model: str, api_key: str, payload: dict) -> str:
        url = f"{self.endpoint}/{model}:generateContent"
        logger.info(
            "completion_request",
            chat_id=chat_id,
            model=model,
            turns=len(payload["contents"]),
        )

        try:
            response = await self._get_client().post(
                url,
                json=payload,
                headers={"Content-Type": "application/json", "x-goog-api-key": api_key},
            )
        except httpx.HTTPError as e:
            logger.error("completion_transport_error", chat_id=chat_id, error=str(e))
            raise ApiError(str(e)) from e

        if not response.is_success:
            logger.error("completion_http_error", chat_id=chat_id, status_code=response.status_code)
            raise ApiError(response.text, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise ApiError("Response body is not valid JSON", status_code=response.status_code) from e

        if isinstance(data, dict) and data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else None
            logger.error("completion_provider_error", chat_id=chat_id, message=message)
            raise ApiError(message or "Gemini API returned an error.", status_code=response.status_code)

        text = extract_text(data)
        if not text:
            raise EmptyResponseError()

        logger.info("completion_received", chat_id=chat_id, response_length=len(text))
        return text
