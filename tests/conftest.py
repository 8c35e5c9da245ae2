"""
Test configuration and fixtures for the scan pipeline API.

Every test gets its own temporary sqlite database; the app-wide engine points
at a throwaway file as well so the lifespan hook never touches a real store.
"""

import os
import tempfile
from typing import Generator

from dotenv import load_dotenv

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

load_dotenv()

test_db_url = os.getenv("TEST_DATABASE_URL")
if test_db_url:
    if "postgresql://" in test_db_url and "asyncpg" not in test_db_url:
        test_db_url = test_db_url.replace("postgresql://", "postgresql+asyncpg://")
    os.environ["DATABASE_URL"] = test_db_url
else:
    test_db_path = tempfile.mktemp(suffix=".db")
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{test_db_path}"


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from app.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    """
    Create a test client for making HTTP requests.
    Entering the client runs the lifespan hook, which creates the tables.
    """
    with TestClient(test_app) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh sqlite file with all scan tables created."""
    from app.platform.db.session import build_engine, build_session_factory, init_models

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'scan.db'}")
    await init_models(engine)
    yield build_session_factory(engine)
    await engine.dispose()
