import logging

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from authstudio.app import create_app
from authstudio.context import StudioContext
from authstudio.settings import StudioSettings


@pytest.fixture
def project(tmp_path):
    """An empty host project directory."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "package.json").write_text('{"name": "host"}')
    return root


@pytest.fixture
def settings():
    # Keep the upward search inside the pytest temp directory
    return StudioSettings(max_depth=2)


@pytest.fixture
def context(project, settings) -> StudioContext:
    return StudioContext(project, settings)


@pytest_asyncio.fixture
async def client(context) -> AsyncClient:
    transport = ASGITransport(app=create_app(context=context))
    async with AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture(autouse=True)
def debug_logging(caplog):
    caplog.set_level(logging.DEBUG, logger="authstudio")
