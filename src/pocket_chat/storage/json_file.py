"""Store backed by a single JSON document on disk."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Union

import structlog

from .base import KeyValueStore

logger = structlog.get_logger()


class JsonFileStore(KeyValueStore):
    """Key-value store persisted as one JSON object.

    The whole document is rewritten on every change through a temporary file
    and an atomic rename.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._items: Dict[str, Any] = self._read()
        logger.info("json_store_opened", path=str(self.path), keys=len(self._items))

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as handle:
            content = handle.read()
        if not content.strip():
            return {}
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError(f"Store file {self.path} does not contain a JSON object")
        return data

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".store-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self._items, handle)
            os.replace(tmp_path, self.path)
        except Exception:
            os.unlink(tmp_path)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        value = self._items.get(key)
        if value is None:
            return default
        # Hand out a copy so in-place edits never bypass set().
        return json.loads(json.dumps(value))

    def set(self, key: str, value: Any) -> None:
        self._items[key] = json.loads(json.dumps(value))
        self._write()

    def remove(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._write()
