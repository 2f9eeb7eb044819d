from __future__ import annotations

import os
import tempfile

# Point settings at a throwaway database before any tipline module builds the engine.
_DB_DIR = tempfile.mkdtemp(prefix="tipline-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_DB_DIR}/tipline.db")
os.environ.setdefault("CRYPTO_MASTER_KEY", "11" * 32)
os.environ.setdefault("REPORTER_TOKEN_SECRET", "test-reporter-token-secret-0123456789abcdef")
os.environ.setdefault("REPORTER_PASSWORD_BCRYPT_ROUNDS", "4")

import pytest  # noqa: E402

from tipline.domain.models import Base  # noqa: E402
from tipline.persistence.db import engine  # noqa: E402
from tipline.services.telemetry import reset_counters  # noqa: E402


@pytest.fixture
async def db_schema() -> None:
    # Rebuild every table so each test starts from an empty database.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    reset_counters()
    yield
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()
