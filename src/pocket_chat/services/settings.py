"""Global settings management."""

import math
from collections.abc import Mapping
from typing import Any, Optional

import structlog

from ..domain.models import (
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_TEMPERATURE,
    GlobalSettings,
    dump_for_storage,
)
from ..storage.base import GLOBAL_SETTINGS_KEY, KeyValueStore

logger = structlog.get_logger()

MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 1.0
MIN_OUTPUT_TOKENS = 1
MAX_OUTPUT_TOKENS = 8192
THEMES = ("system", "light", "dark")
DEFAULT_THEME = "system"

_FIELD_ALIASES = {
    "api_key": "apiKey",
    "max_output_tokens": "maxOutputTokens",
}


def _as_finite_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_temperature(value: Any) -> float:
    """Clamp to [0, 1]; unparseable or non-finite input gives the default."""
    number = _as_finite_float(value)
    if number is None:
        return DEFAULT_TEMPERATURE
    return min(MAX_TEMPERATURE, max(MIN_TEMPERATURE, number))


def normalize_max_output_tokens(value: Any) -> int:
    """Clamp to [1, 8192] and floor; unparseable or non-finite input gives the default."""
    number = _as_finite_float(value)
    if number is None:
        return DEFAULT_MAX_OUTPUT_TOKENS
    return int(math.floor(min(MAX_OUTPUT_TOKENS, max(MIN_OUTPUT_TOKENS, number))))



def normalize_theme(value: Any) -> str:
    """Unknown or missing themes fall back to following the system."""
    return value if value in THEMES else DEFAULT_THEME


class SettingsManager:
    """Owns the global settings object and its store key."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._current: Optional[GlobalSettings] = None

    @property
    def current(self) -> GlobalSettings:
        if self._current is None:
            return self.load()
        return self._current

    def load(self) -> GlobalSettings:
        """Merge stored settings over the defaults and write the result back."""
        stored = self._store.get(GLOBAL_SETTINGS_KEY, None)
        if not isinstance(stored, Mapping):
            stored = {}

        defaults = dump_for_storage(GlobalSettings())
        merged = dict(defaults)
        merged.update(stored)
        for key in ("apiKey", "model"):
            if not isinstance(merged.get(key), str):
                merged[key] = defaults[key]
        merged["temperature"] = normalize_temperature(merged.get("temperature"))
        merged["maxOutputTokens"] = normalize_max_output_tokens(merged.get("maxOutputTokens"))
        merged["theme"] = normalize_theme(merged.get("theme"))

        settings = GlobalSettings.model_validate(merged)
        self._save(settings)
        logger.info("global_settings_loaded", model=settings.model, has_api_key=bool(settings.api_key))
        return settings

    def update(self, partial: Mapping) -> GlobalSettings:
        """Apply user-supplied settings.

        Numeric fields are clamped or defaulted and unknown themes fall back
        to "system" rather than being rejected. Keys may use either the stored
        camelCase names or the attribute names.
        """
        values = dump_for_storage(self.current)
        for key, value in partial.items():
            values[_FIELD_ALIASES.get(key, key)] = value

        if "temperature" in partial:
            values["temperature"] = normalize_temperature(partial["temperature"])
        tokens_key = "maxOutputTokens" if "maxOutputTokens" in partial else "max_output_tokens"
        if tokens_key in partial:
            values["maxOutputTokens"] = normalize_max_output_tokens(partial[tokens_key])
        if "theme" in partial:
            values["theme"] = normalize_theme(partial["theme"])

        settings = GlobalSettings.model_validate(values)
        self._save(settings)
        logger.info(
            "global_settings_updated",
            fields=sorted(partial.keys()),
            temperature=settings.temperature,
            max_output_tokens=settings.max_output_tokens,
        )
        return settings

    def _save(self, settings: GlobalSettings) -> None:
        self._store.set(GLOBAL_SETTINGS_KEY, dump_for_storage(settings))
        self._current = settings
