import os
import sys
import shutil
import tempfile
import base64
from pathlib import Path

import pytest
import pytest_asyncio
import httpx
from fastapi.testclient import TestClient

# Keep test runs from writing into ./logs
os.environ.setdefault("DUF_LOG_DIR", tempfile.mkdtemp(prefix="duf-logs-"))

# Add the project root to Python path
project_root = str(Path(__file__).parent.parent)
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from duf_backend.server import create_app
from duf_shared.config import Settings

AUTH = "admin:secret"


@pytest.fixture
def basic_header():
    """Build an Authorization header for a `user:pass` credential"""
    def _header(credential: str = AUTH) -> dict:
        token = base64.b64encode(credential.encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {token}"}
    return _header


@pytest.fixture
def root_dir():
    """Create a temporary served root"""
    temp_dir = tempfile.mkdtemp()
    try:
        yield Path(temp_dir)
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def test_directory(root_dir):
    """Populate the root with files, a subdirectory and a symlink"""
    (root_dir / "a.txt").write_text("alpha")
    (root_dir / "sub").mkdir()
    (root_dir / "sub" / "b.txt").write_text("bravo")
    os.symlink(root_dir / "a.txt", root_dir / "link.txt")
    return root_dir


@pytest.fixture
def settings(root_dir):
    return Settings(root=root_dir)


@pytest.fixture
def make_client(root_dir):
    """Build a TestClient for settings overrides, e.g. make_client(readonly=True)"""
    def _make(**overrides):
        return TestClient(create_app(Settings(root=root_dir, **overrides)))
    return _make


@pytest.fixture
def client(make_client):
    return make_client()


@pytest_asyncio.fixture
async def async_client(settings):
    """Create an async test client"""
    app = create_app(settings)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
