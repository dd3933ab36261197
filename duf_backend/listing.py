# duf-serve/duf_backend/listing.py

import asyncio
import html
import os
import stat
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles.os
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from duf_shared.logging_config import setup_logger

logger = setup_logger(__name__)

ASSETS_DIR = Path(__file__).parent / "assets"


class PathType(str, Enum):
    DIR = "Dir"
    SYMLINK_DIR = "SymlinkDir"
    FILE = "File"
    SYMLINK_FILE = "SymlinkFile"


# Listing order of the kinds; the page relies on directories coming first
PATH_TYPE_RANK = {
    PathType.DIR: 0,
    PathType.SYMLINK_DIR: 1,
    PathType.FILE: 2,
    PathType.SYMLINK_FILE: 3,
}


class PathItem(BaseModel):
    path_type: PathType
    name: str  # relative to the listed directory, forward slashes
    mtime: int  # milliseconds since the epoch
    size: Optional[int] = None  # files only


class IndexData(BaseModel):
    breadcrumb: str
    paths: List[PathItem]
    readonly: bool


def sort_key(item: PathItem) -> Tuple[int, str, int, bool, int]:
    """Total order over (kind, name, mtime, size); a missing size sorts first."""
    return (
        PATH_TYPE_RANK[item.path_type],
        item.name,
        item.mtime,
        item.size is not None,
        item.size or 0,
    )


def classify(is_symlink: bool, is_dir: bool) -> PathType:
    if is_dir:
        return PathType.SYMLINK_DIR if is_symlink else PathType.DIR
    return PathType.SYMLINK_FILE if is_symlink else PathType.FILE


async def to_path_item(path: Path, base: Path) -> PathItem:
    """
    Build the descriptor for one entry. The target and the link itself are
    probed concurrently; either probe failing raises OSError.
    """
    meta, link_meta = await asyncio.gather(
        aiofiles.os.stat(path),
        asyncio.to_thread(os.lstat, path),
    )
    path_type = classify(stat.S_ISLNK(link_meta.st_mode), stat.S_ISDIR(meta.st_mode))
    is_file = path_type in (PathType.FILE, PathType.SYMLINK_FILE)
    return PathItem(
        path_type=path_type,
        name=path.relative_to(base).as_posix(),
        mtime=meta.st_mtime_ns // 1_000_000,
        size=meta.st_size if is_file else None,
    )


async def collect_items(paths: List[Path], base: Path) -> List[PathItem]:
    """Describe every path, silently dropping the ones whose metadata can't be read."""
    results = await asyncio.gather(
        *(to_path_item(p, base) for p in paths),
        return_exceptions=True,
    )
    items = []
    for p, result in zip(paths, results):
        if isinstance(result, PathItem):
            items.append(result)
        elif isinstance(result, (OSError, ValueError)):
            logger.debug(f"Skipping {p}: {result}")
        else:
            raise result
    return items


async def list_dir(path: Path) -> List[PathItem]:
    names = await asyncio.to_thread(os.listdir, path)
    items = await collect_items([path / name for name in names], path)
    logger.info(f"Listed contents of {path}: {len(items)} items")
    return items


def find_matches(path: Path, term: str) -> List[Path]:
    """Walk below `path` (links are not followed) and keep entries whose name contains `term`."""
    needle = term.lower()
    matches = []
    for dirpath, dirnames, filenames in os.walk(path):
        for name in dirnames + filenames:
            if needle not in name.lower():
                continue
            candidate = os.path.join(dirpath, name)
            if not os.path.lexists(candidate):
                # Removed since the directory was read
                continue
            matches.append(Path(candidate))
    return matches


async def search_dir(path: Path, term: str) -> List[PathItem]:
    candidates = await asyncio.to_thread(find_matches, path, term)
    items = await collect_items(candidates, path)
    logger.info(f"Search for {term!r} under {path}: {len(items)} matches")
    return items


def breadcrumb(root: Path, path: Path) -> str:
    """Display path of `path` relative to the parent of the served root."""
    parent = root.parent
    if parent == root:
        return path.as_posix()
    return path.relative_to(parent).as_posix()


@lru_cache(maxsize=None)
def load_asset(name: str) -> str:
    return (ASSETS_DIR / name).read_text(encoding="utf-8")


def render_index(root: Path, path: Path, items: List[PathItem], readonly: bool) -> HTMLResponse:
    """Render the listing page with the sorted payload embedded as `DATA`."""
    data = IndexData(
        breadcrumb=breadcrumb(root, path),
        paths=sorted(items, key=sort_key),
        readonly=readonly,
    )
    # Keep the payload from terminating the surrounding <script> element
    payload = data.model_dump_json().replace("</", "<\\/")
    slot = (
        f"\n<title>Files in {html.escape(data.breadcrumb)}/ - Duf</title>"
        f"\n<style>{load_asset('index.css')}</style>"
        f"\n<script>var DATA = {payload};</script>"
        f"\n<script>{load_asset('index.js')}</script>\n"
    )
    return HTMLResponse(load_asset("index.html").replace("__SLOT__", slot))
