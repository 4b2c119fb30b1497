"""Shared fixtures for integration tests

Integration tests run the full FastAPI application in-process (TestClient),
with the lifespan handler, local artifact storage in a temp directory and the
real build worker pool. No network, no cloud services.

    pytest tests/integration/
    pytest -m 'not integration'     # skip them
"""

import pytest
from fastapi.testclient import TestClient

from keyword_search.config import Settings
from keyword_search.main import create_app


@pytest.fixture
def settings(tmp_path):
    return Settings(
        storage_dir=str(tmp_path / "indexes"),
        log_file="",
        build_workers=2,
        max_pending_builds=4,
    )


@pytest.fixture
def client(settings):
    """TestClient with lifespan (startup/shutdown) executed"""
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def download_path():
    """Path component of a download_url returned by the API"""
    def _path(download_url: str) -> str:
        return download_url.split("http://localhost:9069", 1)[1]

    return _path
