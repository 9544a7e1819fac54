"""Pytest configuration and fixtures."""

import os
import tempfile
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from warera.database import Database
from warera.settings import Settings


def _remove_db_files(path: str) -> None:
    for ext in ["", "-wal", "-shm"]:
        p = path + ext
        if os.path.exists(p):
            os.unlink(p)


@pytest_asyncio.fixture
async def temp_db():
    """Connected database backed by a temporary file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    db = Database(db_path)
    await db.connect()

    yield db

    await db.close()
    db.remove_from_cache()
    _remove_db_files(db_path)


@pytest_asyncio.fixture
async def temp_settings(temp_db):
    """Settings backed by the temporary database."""
    settings = Settings()
    settings.use_database(temp_db)
    yield settings


@pytest.fixture
def mock_client():
    """RemoteClient stand-in; configure ``call.side_effect`` per test."""
    client = AsyncMock()
    client.call = AsyncMock()
    return client

