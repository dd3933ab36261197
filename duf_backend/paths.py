# duf-serve/duf_backend/paths.py

import os
import stat
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote_to_bytes

import aiofiles.os

from duf_shared.errors import Forbidden
from duf_shared.logging_config import setup_logger

logger = setup_logger(__name__)


def is_within(root: str, candidate: str) -> bool:
    """True if normalized absolute `candidate` is `root` or below it, compared by components."""
    try:
        return os.path.commonpath([root, candidate]) == root
    except ValueError:
        # Different drives, or a relative/absolute mix
        return False


def resolve_path(root: Path, url_path: str) -> Path:
    """
    Map a raw (still percent-encoded) URL path onto the filesystem under `root`.

    The decoded path is joined to the root and normalized; the result must be
    the root itself or lie below it, component-wise. Anything else, including
    `..` segments and absolute paths smuggled in as `//etc/passwd`, raises
    Forbidden. Symlinks are not resolved here.
    """
    try:
        decoded = unquote_to_bytes(url_path).decode("utf-8")
    except UnicodeDecodeError:
        logger.warning(f"Rejected undecodable path: {url_path!r}")
        raise Forbidden("Invalid path encoding")
    if "\x00" in decoded:
        raise Forbidden("Invalid path")

    relative = decoded[1:] if decoded.startswith("/") else decoded
    if os.sep != "/":
        relative = relative.replace("/", os.sep)

    root_str = os.path.normpath(str(root))
    full_path = os.path.normpath(os.path.join(root_str, relative))
    if not is_within(root_str, full_path):
        logger.warning(f"Path escapes root: {url_path!r} -> {full_path}")
        raise Forbidden("Access to this path is forbidden.")
    return Path(full_path)


@dataclass(frozen=True)
class PathState:
    exists: bool
    is_dir: bool


MISSING = PathState(exists=False, is_dir=False)


async def probe(path: Path) -> PathState:
    """Existence and kind of `path`, following symlinks. Any stat failure counts as missing."""
    try:
        st = await aiofiles.os.stat(path)
    except (OSError, ValueError):
        return MISSING
    return PathState(exists=True, is_dir=stat.S_ISDIR(st.st_mode))
