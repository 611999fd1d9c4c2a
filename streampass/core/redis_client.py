# streampass/core/redis_client.py
from __future__ import annotations

"""
StreamPass · Redis Client (Async)
=================================
Central, **single source of truth** for Redis access in the engine.

What this provides
------------------
• Resilient connection manager (standalone + cluster) with retries & backoff
• Pooled async client with health checks
• Atomic **Lua script** execution with SHA caching (`run_script`)
• Async **distributed lock** (native lock preferred; `SET NX` fallback)

Public API (imported as `redis_wrapper`)
----------------------------------------
- await redis_wrapper.connect() / await redis_wrapper.close() / await redis_wrapper.is_connected()
- redis_wrapper.client
- await redis_wrapper.run_script(script, keys=[...], args=[...])
- async with redis_wrapper.lock(name, timeout=10, blocking_timeout=0): ...

Design notes
------------
• Device-slot admission and release run as single Lua scripts, so the
  check-and-add is atomic per rental key.
• **Strict** on locks: raise `TimeoutError` if not acquired within `blocking_timeout`.
• Compatible with test mocks that lack some Redis methods (evalsha, blocking_timeout in lock).
"""

import asyncio
import hashlib
import inspect
import logging
import os
import random
import time
from contextlib import asynccontextmanager
from typing import Any, Optional, Protocol, Sequence
from urllib.parse import urlparse

import redis.asyncio as redis
from redis.asyncio.lock import Lock
from redis.exceptions import NoScriptError, RedisError

try:  # pragma: no cover
    from redis.asyncio.cluster import RedisCluster  # type: ignore
except ImportError:  # pragma: no cover
    RedisCluster = None  # type: ignore

from streampass.core.config import settings

logger = logging.getLogger("streampass.redis")

# ─────────────────────────────────────────────────────────────────────────────
# Tunables (env-aware sensible defaults)
# ─────────────────────────────────────────────────────────────────────────────
MAX_RETRIES = int(os.getenv("REDIS_CONNECT_MAX_RETRIES", "5"))
BASE_DELAY = float(os.getenv("REDIS_CONNECT_BASE_DELAY", "0.3"))  # seconds
HEALTH_CHECK_INTERVAL = int(os.getenv("REDIS_HEALTH_CHECK_INTERVAL", "30"))
SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", "3"))
SOCKET_CONNECT_TIMEOUT = float(os.getenv("REDIS_SOCKET_CONNECT_TIMEOUT", "3"))
POOL_MAX_CONNECTIONS = int(os.getenv("REDIS_POOL_MAX_CONNECTIONS", "64"))
CLIENT_NAME = os.getenv("REDIS_CLIENT_NAME", "streampass")


class _RedisProto(Protocol):
    async def ping(self) -> Any: ...
    async def evalsha(self, sha: str, numkeys: int, *keys_and_args: Any) -> Any: ...
    async def eval(self, script: str, numkeys: int, *keys_and_args: Any) -> Any: ...
    async def set(self, name: str, value: Any, *, ex: Optional[int] = None, nx: Optional[bool] = None) -> Any: ...
    async def get(self, name: str) -> Any: ...
    async def delete(self, *names: Any) -> Any: ...
    def lock(self, name: str, timeout: int = ..., blocking_timeout: int = ..., sleep: float = ...) -> Lock: ...
    async def close(self) -> Any: ...


def script_sha(script: str) -> str:
    """SHA1 digest Redis uses to address a loaded script."""
    return hashlib.sha1(script.encode("utf-8")).hexdigest()


# ─────────────────────────────────────────────────────────────────────────────
# Client
# ─────────────────────────────────────────────────────────────────────────────
class RedisClient:
    """
    Singleton Redis/RedisCluster connection manager (asyncio).

    Features
    --------
    • Resilient connect with exponential backoff + jitter
    • Optional Cluster support via `redis+cluster://` or `rediss+cluster://`
    • Lua helper with EVALSHA → EVAL fallback
    • Async distributed lock helper
    """

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self._client: Optional[_RedisProto] = None
        self._is_cluster: bool = self._detect_cluster(redis_url)

    # ── lifecycle ────────────────────────────────────────────────────────────
    async def connect(self) -> None:
        """
        Establish a connection with retries.

        Steps
        -----
        - **[Step 1]** Reuse a healthy client when possible.
        - **[Step 2]** Attempt connection with backoff and jitter.
        """
        if self._client:
            try:
                await self._client.ping()
                return
            except RedisError:
                self._client = None

        attempt = 0
        last_err: Optional[Exception] = None
        while attempt < MAX_RETRIES:
            attempt += 1
            try:
                self._client = await self._build_client()
                await self._client.ping()
                logger.info("Connected to Redis%s", " (cluster)" if self._is_cluster else "")
                return
            except (RedisError, OSError) as e:
                last_err = e
                delay = self._backoff(attempt)
                logger.warning(
                    "Redis connect attempt %s/%s failed: %r (retrying in %.2fs)",
                    attempt, MAX_RETRIES, e, delay,
                )
                await asyncio.sleep(delay)

        logger.error("Redis connection failed after %s retries.", MAX_RETRIES)
        raise RuntimeError("Redis connection failed") from last_err

    async def close(self) -> None:
        """Gracefully close connection & pool."""
        if not self._client:
            return
        try:
            await self._client.close()
            logger.info("Redis connection closed.")
        except RedisError as e:
            logger.warning("Error closing Redis connection: %s", e)
        finally:
            self._client = None

    async def is_connected(self) -> bool:
        if not self._client:
            return False
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    @property
    def client(self) -> _RedisProto:
        """Low-level client; ensure `connect()` was called at startup."""
        if not self._client:
            raise RuntimeError("Redis client not initialized. Call connect() first.")
        return self._client

    # ── helpers: scripts / lock ─────────────────────────────────────────────
    async def run_script(self, script: str, *, keys: Sequence[Any], args: Sequence[Any] = ()) -> Any:
        """
        Run a Lua script atomically.

        Prefers EVALSHA with the script digest and falls back to EVAL when the
        server has not cached it yet (or the client lacks EVALSHA).
        """
        return await run_script(self.client, script, keys=keys, args=args)

    @asynccontextmanager
    async def lock(
        self,
        name: str,
        *,
        timeout: int = 10,
        blocking_timeout: float = 3,
        sleep: float = 0.1,
    ):
        """
        Async distributed lock.

        Priority & Behavior
        -------------------
        1) **Native Redis lock** (`client.lock(...)`), with signature fallbacks
           for skinny clients/mocks.
        2) **SET NX spin-lock** when the client has no `lock()`; only the owner
           token releases the key.

        Failure semantics
        -----------------
        - If Redis is **not connected**, raise `RuntimeError`.
        - If not acquired within `blocking_timeout`, raise built-in `TimeoutError`.
          `blocking_timeout=0` makes a single attempt.
        """
        rc = self.client

        async def _maybe_await(res):
            return await res if inspect.isawaitable(res) else res

        if hasattr(rc, "lock"):
            try:
                lock_obj = rc.lock(name, timeout=timeout, blocking_timeout=blocking_timeout, sleep=sleep)
            except TypeError:
                lock_obj = rc.lock(name, timeout=timeout)

            try:
                res = lock_obj.acquire(blocking=blocking_timeout > 0, blocking_timeout=blocking_timeout or None)
            except TypeError:
                res = lock_obj.acquire()
            acquired = bool(await _maybe_await(res))
            if not acquired:
                raise TimeoutError(f"Failed to acquire lock: {name}")
            try:
                yield
            finally:
                try:
                    await _maybe_await(lock_obj.release())
                except RedisError:
                    logger.warning("Lock release failed for %s (expires in %ss)", name, timeout)
            return

        token = f"{time.time_ns()}-{os.getpid()}-{random.randint(0, 1_000_000)}"
        deadline = time.monotonic() + max(0.0, float(blocking_timeout))
        acquired = False
        while True:
            if await rc.set(name, token, ex=int(timeout), nx=True):
                acquired = True
                break
            if time.monotonic() >= deadline:
                break
            await asyncio.sleep(sleep)
        if not acquired:
            raise TimeoutError(f"Failed to acquire lock: {name}")
        try:
            yield
        finally:
            val = await rc.get(name)
            if isinstance(val, (bytes, bytearray)):
                val = val.decode("utf-8", errors="ignore")
            if val == token:
                await rc.delete(name)

    # ── internals ───────────────────────────────────────────────────────────
    async def _build_client(self) -> _RedisProto:
        url = self.redis_url.strip()
        parsed = urlparse(url)
        client_kwargs = dict(
            decode_responses=True,
            health_check_interval=HEALTH_CHECK_INTERVAL,
            socket_keepalive=True,
            socket_timeout=SOCKET_TIMEOUT,
            socket_connect_timeout=SOCKET_CONNECT_TIMEOUT,
            retry_on_timeout=True,
            max_connections=POOL_MAX_CONNECTIONS,
            client_name=CLIENT_NAME,
        )
        if parsed.scheme.startswith("rediss"):
            cert_reqs = os.getenv("REDIS_SSL_CERT_REQS", "required").lower()
            if cert_reqs == "none":  # dev only
                client_kwargs["ssl_cert_reqs"] = None  # type: ignore

        if self._is_cluster and RedisCluster is not None:
            return RedisCluster.from_url(url.replace("+cluster", ""), **client_kwargs)  # type: ignore
        return redis.Redis.from_url(url, **client_kwargs)

    @staticmethod
    def _detect_cluster(url: str) -> bool:
        return urlparse(url).scheme in ("redis+cluster", "rediss+cluster")

    @staticmethod
    def _backoff(attempt: int) -> float:
        return min(3.0, BASE_DELAY * (2 ** (attempt - 1))) + random.uniform(0, 0.25)


async def run_script(client: Any, script: str, *, keys: Sequence[Any], args: Sequence[Any] = ()) -> Any:
    """EVALSHA → EVAL against any client (real or mock)."""
    numkeys = len(keys)
    if hasattr(client, "evalsha"):
        try:
            return await client.evalsha(script_sha(script), numkeys, *keys, *args)
        except NoScriptError:
            pass
        except NotImplementedError:
            pass
    return await client.eval(script, numkeys, *keys, *args)


# ─────────────────────────────────────────────────────────────────────────────
# Singleton instance
# ─────────────────────────────────────────────────────────────────────────────
redis_wrapper = RedisClient(settings.REDIS_URL)
