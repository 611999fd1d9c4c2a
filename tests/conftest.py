# tests/conftest.py
"""
Global test bootstrap
- Pins engine settings through env BEFORE anything imports `streampass`
- Mounts a mock Redis client into streampass.core.redis_client
- Wipes the mock between tests
- Pulls in catalog/commerce, SQL, and API client fixtures
"""

from __future__ import annotations

import os
import warnings

import pytest
from sqlalchemy.exc import SAWarning

# ──────────────────────────────────────────────────────────────────────────────
# 🌱 Test env (set before importing the package so `settings` picks it up)
# ──────────────────────────────────────────────────────────────────────────────
os.environ.setdefault("ENV", "development")
os.environ.setdefault("PLAYBACK_TOKEN_SECRET", "test-playback-secret")
os.environ.setdefault("DEVICE_SESSION_IDLE_TTL_SECONDS", "3600")
os.environ.setdefault("REDIS_KEY_PREFIX", "sp-test")
os.environ.pop("CATALOG_REPOSITORY_IMPL", None)
os.environ.pop("COMMERCE_REPOSITORY_IMPL", None)

# ──────────────────────────────────────────────────────────────────────────────
# 🧪 Install mock Redis globally before any tests run
# ──────────────────────────────────────────────────────────────────────────────
from streampass.core.redis_client import redis_wrapper
from tests.fixtures.mocks.redis import MockRedisClient

redis_wrapper._client = MockRedisClient()  # make the engine use the mock client

# Numeric columns on SQLite warn about Decimal emulation
warnings.filterwarnings("ignore", category=SAWarning, message=r".*Decimal objects natively.*")

# ──────────────────────────────────────────────────────────────────────────────
# 📦 Pull in the rest of the fixtures
# ──────────────────────────────────────────────────────────────────────────────
from tests.fixtures.catalog import *  # noqa: F401,F403,E402
from tests.fixtures.db import *       # noqa: F401,F403,E402
from tests.fixtures.app import *      # noqa: F401,F403,E402


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _fresh_redis():
    """Every test starts with an empty, reachable mock Redis."""
    client = redis_wrapper.client
    client.reset()
    yield
    client.reset()


@pytest.fixture()
def redis_client() -> MockRedisClient:
    """✅ Use this when you want to inspect or modify Redis directly in a test."""
    return redis_wrapper.client  # type: ignore[return-value]
