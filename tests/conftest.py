import os
import sqlite3
import uuid
from datetime import datetime, date
from pathlib import Path

import pytest
import pytest_asyncio

os.environ.setdefault("USE_SQLITE", "true")
os.environ.setdefault("SQLITE_URL", "sqlite+aiosqlite:///./data/test.db")
os.environ.setdefault("INIT_DB_ON_STARTUP", "false")
os.environ.setdefault("DB_STATEMENT_TIMEOUT", "30")

# Avoid deprecated sqlite3 default datetime adapters in Python 3.12+.
sqlite3.register_adapter(datetime, lambda value: value.isoformat(sep=" "))
sqlite3.register_adapter(date, lambda value: value.isoformat())


@pytest.fixture(scope="session")
def sqlite_db_path() -> Path:
    return Path("data/test.db")


@pytest.fixture(autouse=True, scope="session")
def _ensure_test_db_dir(sqlite_db_path: Path) -> None:
    sqlite_db_path.parent.mkdir(parents=True, exist_ok=True)
    for suffix in ("", "-wal", "-shm"):
        path = sqlite_db_path.with_name(sqlite_db_path.name + suffix)
        if path.exists():
            path.unlink()


@pytest_asyncio.fixture(autouse=True)
async def _dispose_engine():
    """Each test runs on its own event loop, so pooled connections must not outlive it."""
    yield
    from newsletter.database import dispose_engine

    await dispose_engine()


@pytest.fixture
def unique_email():
    """Return a fresh address so tests sharing the database never collide."""
    def _make(local: str = "subscriber") -> str:
        return f"{local}_{uuid.uuid4().hex[:12]}@example.com"

    return _make
