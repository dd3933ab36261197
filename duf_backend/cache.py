# duf-serve/duf_backend/cache.py

import mimetypes
import os
from dataclasses import dataclass
from datetime import timezone
from email.utils import formatdate, parsedate_to_datetime
from pathlib import Path
from typing import Mapping, Optional

import aiofiles
import aiofiles.os
from fastapi.responses import Response, StreamingResponse

from duf_shared.logging_config import setup_logger

logger = setup_logger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class Validator:
    etag: str
    last_modified: str
    mtime: int  # whole seconds, the precision of HTTP dates

    def headers(self) -> dict:
        return {"ETag": self.etag, "Last-Modified": self.last_modified}


def make_validator(st: os.stat_result) -> Optional[Validator]:
    """Strong validator `"<epoch-millis>-<size>"`, or None if mtime predates the epoch."""
    if st.st_mtime_ns < 0:
        return None
    millis = st.st_mtime_ns // 1_000_000
    return Validator(
        etag=f'"{millis}-{st.st_size}"',
        last_modified=formatdate(st.st_mtime, usegmt=True),
        mtime=int(st.st_mtime),
    )


def etag_matches(if_none_match: str, etag: str) -> bool:
    """If-None-Match comparison: `*` or any listed tag equal to ours, ignoring W/ prefixes."""
    value = if_none_match.strip()
    if value == "*":
        return True
    for candidate in value.split(","):
        candidate = candidate.strip()
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate == etag:
            return True
    return False


def is_fresh(headers: Mapping[str, str], validator: Validator) -> bool:
    # If-None-Match takes precedence over If-Modified-Since
    if_none_match = headers.get("if-none-match")
    if if_none_match is not None:
        return etag_matches(if_none_match, validator.etag)
    if_modified_since = headers.get("if-modified-since")
    if if_modified_since:
        try:
            since = parsedate_to_datetime(if_modified_since)
        except (TypeError, ValueError, IndexError):
            logger.debug(f"Ignoring unparsable If-Modified-Since: {if_modified_since!r}")
            return False
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        return validator.mtime <= since.timestamp()
    return False


async def iter_file(path: Path, chunk_size: int = CHUNK_SIZE):
    # Opened lazily so a response that is never streamed holds no handle
    async with aiofiles.open(path, "rb") as file:
        while chunk := await file.read(chunk_size):
            yield chunk


async def send_file(path: Path, request_headers: Mapping[str, str]) -> Response:
    """Conditional GET for a regular file: 304 when fresh, otherwise a streamed body."""
    st = await aiofiles.os.stat(path)
    headers = {}
    validator = make_validator(st)
    if validator is not None:
        headers.update(validator.headers())
        if is_fresh(request_headers, validator):
            logger.debug(f"Not modified: {path}")
            return Response(status_code=304, headers=headers)

    media_type, _ = mimetypes.guess_type(path.name)
    logger.debug(f"Sending file {path} ({st.st_size} bytes, {media_type or 'unknown type'})")
    return StreamingResponse(iter_file(path), headers=headers, media_type=media_type)
