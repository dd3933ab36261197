import json
import os
import re
from pathlib import Path

import pytest

from duf_backend.listing import (
    PathItem,
    PathType,
    breadcrumb,
    classify,
    list_dir,
    render_index,
    search_dir,
    sort_key,
    to_path_item,
)


def extract_data(html_text):
    match = re.search(r"var DATA = (.*?);</script>", html_text, re.S)
    assert match, "listing payload not found"
    return json.loads(match.group(1))


def test_classify():
    assert classify(is_symlink=False, is_dir=True) is PathType.DIR
    assert classify(is_symlink=True, is_dir=True) is PathType.SYMLINK_DIR
    assert classify(is_symlink=False, is_dir=False) is PathType.FILE
    assert classify(is_symlink=True, is_dir=False) is PathType.SYMLINK_FILE


def test_sort_order_is_kind_then_name_then_mtime_then_size():
    items = [
        PathItem(path_type=PathType.SYMLINK_FILE, name="a", mtime=1, size=1),
        PathItem(path_type=PathType.FILE, name="b", mtime=1, size=1),
        PathItem(path_type=PathType.FILE, name="a", mtime=2, size=1),
        PathItem(path_type=PathType.FILE, name="a", mtime=1, size=9),
        PathItem(path_type=PathType.FILE, name="a", mtime=1, size=3),
        PathItem(path_type=PathType.SYMLINK_DIR, name="a", mtime=1),
        PathItem(path_type=PathType.DIR, name="z", mtime=1),
    ]
    ordered = sorted(items, key=sort_key)
    assert [(i.path_type.value, i.name, i.mtime, i.size) for i in ordered] == [
        ("Dir", "z", 1, None),
        ("SymlinkDir", "a", 1, None),
        ("File", "a", 1, 3),
        ("File", "a", 1, 9),
        ("File", "a", 2, 1),
        ("File", "b", 1, 1),
        ("SymlinkFile", "a", 1, 1),
    ]


def test_missing_size_sorts_before_present_size():
    no_size = PathItem(path_type=PathType.FILE, name="a", mtime=1)
    zero = PathItem(path_type=PathType.FILE, name="a", mtime=1, size=0)
    assert sorted([zero, no_size], key=sort_key) == [no_size, zero]


def test_breadcrumb():
    root = Path("/srv/files")
    assert breadcrumb(root, root) == "files"
    assert breadcrumb(root, root / "docs" / "2024") == "files/docs/2024"
    assert breadcrumb(Path("/"), Path("/docs")) == "/docs"


@pytest.mark.asyncio
async def test_to_path_item(test_directory):
    os.utime(test_directory / "a.txt", (1_600_000_000, 1_600_000_000))
    item = await to_path_item(test_directory / "a.txt", test_directory)
    assert item == PathItem(path_type=PathType.FILE, name="a.txt", mtime=1_600_000_000_000, size=5)

    link = await to_path_item(test_directory / "link.txt", test_directory)
    assert link.path_type is PathType.SYMLINK_FILE
    assert link.size == 5

    sub = await to_path_item(test_directory / "sub", test_directory)
    assert sub.path_type is PathType.DIR
    assert sub.size is None


@pytest.mark.asyncio
async def test_list_dir_skips_broken_links(test_directory):
    os.symlink(test_directory / "sub", test_directory / "sublink")
    os.symlink(test_directory / "missing", test_directory / "dangling")

    items = {item.name: item.path_type for item in await list_dir(test_directory)}
    assert items == {
        "a.txt": PathType.FILE,
        "link.txt": PathType.SYMLINK_FILE,
        "sub": PathType.DIR,
        "sublink": PathType.SYMLINK_DIR,
    }


@pytest.mark.asyncio
async def test_list_dir_missing_directory_raises(root_dir):
    with pytest.raises(FileNotFoundError):
        await list_dir(root_dir / "nope")


@pytest.mark.asyncio
async def test_search_is_recursive_and_case_insensitive(root_dir):
    (root_dir / "Report.TXT").write_text("r1")
    (root_dir / "deep" / "er").mkdir(parents=True)
    (root_dir / "deep" / "er" / "report_final.md").write_text("r2")
    (root_dir / "notes.log").write_text("n")
    (root_dir / "Reports").mkdir()

    items = await search_dir(root_dir, "report")
    names = sorted(item.name for item in items)
    assert names == ["Report.TXT", "Reports", "deep/er/report_final.md"]


@pytest.mark.asyncio
async def test_search_drops_broken_links(root_dir):
    os.symlink(root_dir / "gone", root_dir / "report-link")
    (root_dir / "report.txt").write_text("x")
    items = await search_dir(root_dir, "REPORT")
    assert [item.name for item in items] == ["report.txt"]


def test_render_index_embeds_sorted_payload(root_dir):
    items = [
        PathItem(path_type=PathType.FILE, name="b.txt", mtime=2, size=1),
        PathItem(path_type=PathType.DIR, name="z", mtime=1),
    ]
    response = render_index(root_dir, root_dir, items, readonly=True)
    body = response.body.decode("utf-8")
    assert response.media_type == "text/html"
    assert f"<title>Files in {root_dir.name}/ - Duf</title>" in body

    data = extract_data(body)
    assert data == {
        "breadcrumb": root_dir.name,
        "paths": [
            {"path_type": "Dir", "name": "z", "mtime": 1, "size": None},
            {"path_type": "File", "name": "b.txt", "mtime": 2, "size": 1},
        ],
        "readonly": True,
    }


def test_render_index_escapes_script_breakout(root_dir):
    items = [PathItem(path_type=PathType.FILE, name="</script><b>x", mtime=1, size=1)]
    body = render_index(root_dir, root_dir, items, readonly=False).body.decode("utf-8")
    assert "</script><b>" not in body
    assert extract_data(body)["paths"][0]["name"] == "</script><b>x"
