# duf-serve/duf_backend/upload.py

import asyncio
import os
import shutil
import stat
import zipfile
from pathlib import Path
from typing import AsyncIterator

import aiofiles
import aiofiles.os

from duf_backend.paths import is_within
from duf_shared.errors import Forbidden
from duf_shared.logging_config import setup_logger

logger = setup_logger(__name__)


async def ensure_parent(path: Path) -> None:
    """Create the parent directory of `path` if missing; refuse if it exists as a non-directory."""
    parent = path.parent
    if parent == path:
        raise Forbidden("Cannot upload to this path.")
    try:
        st = await aiofiles.os.stat(parent)
    except OSError:
        logger.debug(f"Creating missing parent directories for {path}")
        await aiofiles.os.makedirs(parent, exist_ok=True)
        return
    if not stat.S_ISDIR(st.st_mode):
        logger.warning(f"Upload parent is not a directory: {parent}")
        raise Forbidden("Destination parent is not a directory.")


async def save_stream(path: Path, body: AsyncIterator[bytes]) -> int:
    """Write the request body chunk by chunk into a new (truncated) file."""
    total_written = 0
    async with aiofiles.open(path, "wb") as out_file:
        async for chunk in body:
            if not chunk:
                continue
            await out_file.write(chunk)
            total_written += len(chunk)
    return total_written


def entry_target(dest_dir: Path, name: str) -> str:
    """Where archive member `name` lands under `dest_dir`; members escaping it are refused."""
    root = os.path.normpath(str(dest_dir))
    relative = name.replace("/", os.sep) if os.sep != "/" else name
    target = os.path.normpath(os.path.join(root, relative))
    if target == root or not is_within(root, target):
        raise Forbidden(f"Invalid path in zip: {name}")
    return target


def extract_zip(archive: Path, dest_dir: Path) -> int:
    """
    Unpack `archive` into `dest_dir`, then delete the archive. Runs in a
    worker thread. Every member name is checked before anything is written;
    a failure part way through leaves the already extracted files in place.
    """
    with zipfile.ZipFile(archive) as zipf:
        members = [(info, entry_target(dest_dir, info.filename)) for info in zipf.infolist()]
        total_files = len(members)
        for i, (info, target) in enumerate(members):
            if info.filename.endswith("/"):
                os.makedirs(target, exist_ok=True)
                continue
            parent = os.path.dirname(target)
            if not os.path.lexists(parent):
                os.makedirs(parent, exist_ok=True)
            with zipf.open(info) as source, open(target, "wb") as dest:
                shutil.copyfileobj(source, dest)
            if (i + 1) % 10 == 0:
                logger.debug(f"Extraction progress: {int(((i + 1) / total_files) * 100)}%")
    os.remove(archive)
    return total_files


async def handle_upload(path: Path, body: AsyncIterator[bytes], unzip: bool = False) -> None:
    await ensure_parent(path)
    logger.info(f"Uploading file to: {path}")
    total_written = await save_stream(path, body)
    logger.info(f"File successfully saved to {path} ({total_written} bytes)")
    if unzip:
        count = await asyncio.to_thread(extract_zip, path, path.parent)
        logger.info(f"Extracted {count} entries from {path.name} into {path.parent}")


async def handle_delete(path: Path, is_dir: bool) -> None:
    """Directories go recursively; files and symlinks (even to directories) go alone."""
    if is_dir and not await asyncio.to_thread(os.path.islink, path):
        await asyncio.to_thread(shutil.rmtree, path)
    else:
        await aiofiles.os.remove(path)
    logger.info(f"Deleted {'directory' if is_dir else 'file'}: {path}")
