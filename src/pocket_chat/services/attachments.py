"""Turning files into message attachments."""

import asyncio
import base64
import mimetypes
import re
from pathlib import Path
from typing import BinaryIO, Optional, Union

import structlog

from ..domain.attachments import DEFAULT_MIME_TYPE
from ..domain.models import Attachment

logger = structlog.get_logger()

_DATA_URL_HEADER = re.compile(r"^data:(.*?);base64$", re.IGNORECASE)


def attachment_from_data_url(
    data_url: str,
    name: str = "",
    declared_type: Optional[str] = None,
    size: Optional[int] = None,
) -> Optional[Attachment]:
    """Build an attachment from a ``data:<mime>;base64,<payload>`` string.

    The declared type wins over the header's type. Returns None when the URL
    carries no payload.
    """
    header, _, payload = data_url.partition(",")
    if not payload:
        return None

    match = _DATA_URL_HEADER.match(header)
    mime_type = declared_type or (match.group(1) if match else "") or DEFAULT_MIME_TYPE
    return Attachment(name=name, mime_type=mime_type, data=payload, size=size)


def _read_bytes(source: Union[str, Path, BinaryIO]) -> bytes:
    if isinstance(source, (str, Path)):
        return Path(source).read_bytes()
    return source.read()


async def ingest_file(
    source: Union[str, Path, BinaryIO],
    name: Optional[str] = None,
    declared_type: Optional[str] = None,
) -> Optional[Attachment]:
    """Read a file and encode it as an attachment.

    ``source`` is a path or a binary file object. The MIME type is the
    declared one, else a guess from the file name. Empty files yield None.
    """
    if name is None:
        name = Path(source).name if isinstance(source, (str, Path)) else Path(getattr(source, "name", "") or "").name

    content = await asyncio.to_thread(_read_bytes, source)
    if not content:
        logger.warning("attachment_empty", name=name)
        return None

    if declared_type is None:
        declared_type, _ = mimetypes.guess_type(name)

    attachment = Attachment(
        name=name,
        mime_type=declared_type or DEFAULT_MIME_TYPE,
        data=base64.b64encode(content).decode("ascii"),
        size=len(content),
    )
    logger.info("attachment_ingested", name=name, mime_type=attachment.mime_type, size=len(content))
    return attachment
