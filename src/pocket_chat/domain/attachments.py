"""Attachment sanitization and display helpers."""

import math
from collections.abc import Mapping
from typing import Any, List

from .models import Attachment

DEFAULT_MIME_TYPE = "application/octet-stream"

_SIZE_UNITS = ["B", "KB", "MB", "GB"]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def sanitize_attachments(attachments: Any) -> List[Attachment]:
    """Normalize an arbitrary attachment sequence.

    Entries without base64 ``data`` are dropped, a missing MIME type becomes
    ``application/octet-stream`` and ``size`` survives only when it is a real
    number. Anything that is not a list or tuple yields no attachments.
    """
    if not isinstance(attachments, (list, tuple)):
        return []

    sanitized = []
    for item in attachments:
        if isinstance(item, Attachment):
            item = item.model_dump(by_alias=True)
        if not isinstance(item, Mapping):
            continue

        data = item.get("data")
        if not isinstance(data, str) or not data:
            continue

        size = item.get("size")
        sanitized.append(
            Attachment(
                name=item.get("name") or "",
                mime_type=item.get("mimeType") or item.get("mime_type") or DEFAULT_MIME_TYPE,
                data=data,
                size=size if _is_number(size) else None,
            )
        )
    return sanitized


def format_size(size: Any) -> str:
    """Render a byte count as a short human string, e.g. ``1.5 KB``."""
    if not _is_number(size) or not math.isfinite(size) or size <= 0:
        return ""

    value = float(size)
    unit_index = 0
    while value >= 1024 and unit_index < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit_index += 1

    precision = 0 if value >= 10 or unit_index == 0 else 1
    return f"{value:.{precision}f} {_SIZE_UNITS[unit_index]}"
