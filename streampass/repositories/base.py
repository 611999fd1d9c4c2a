from __future__ import annotations

"""Shared plumbing for repository implementations.

- `import_string()` resolves the `module.sub:ClassName` overrides used by the
  repository factories.
- `store_call()` turns backing-store failures into `UpstreamUnavailable` so the
  engine surfaces them instead of guessing.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from streampass.core.exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)

# OSError covers ConnectionError and TimeoutError raised by drivers.
STORE_ERRORS = (SQLAlchemyError, RedisError, OSError)


def import_string(path: str, *, setting: str):
    module_path, _, class_name = path.partition(":")
    if not module_path or not class_name:
        raise ValueError(f"{setting} must be 'module.sub:ClassName'")
    module = __import__(module_path, fromlist=[class_name])
    return getattr(module, class_name)


@asynccontextmanager
async def store_call(store: str, operation: str) -> AsyncIterator[None]:
    try:
        yield
    except STORE_ERRORS as e:
        logger.exception("%s store failed during %s", store, operation)
        raise UpstreamUnavailable(
            f"{store.capitalize()} store unavailable",
            details={"store": store, "operation": operation},
        ) from e


__all__ = ["STORE_ERRORS", "import_string", "store_call"]
