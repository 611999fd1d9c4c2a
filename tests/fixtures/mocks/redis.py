from __future__ import annotations

"""
MockRedisClient (async), test-grade, wrapper-compatible
========================================================
Covers the subset of Redis the engine uses:

KV        : get/set (nx/ex/px)/delete/exists/pexpire/pttl
Sorted set: zadd/zrem/zscore/zcard/zrange (withscores)/zremrangebyscore
Health    : ping/close/flushdb/flushall
Lua       : eval()/evalsha() emulating the device-ledger scripts, matched by
            their `-- streampass:<name>` marker line:
            • device-admit           evict idle → re-admit or add under cap
            • device-touch           evict idle → refresh score if present
            • device-release-others  drop every member except one
Lock      : lock(name, timeout=..., blocking_timeout=..., sleep=...) → MockLock
Faults    : `down = True` makes every command raise `redis.exceptions.ConnectionError`

Design notes
------------
- Each emulated script runs without awaiting, so it is atomic with respect to
  other coroutines on the loop, like a real EVAL.
- Deterministic, minimal behavior for tests; not a byte-for-byte Redis emulation.
"""

import hashlib
import secrets
import time
from typing import Any, Dict, List, Optional, Tuple, Union

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import NoScriptError

_Score = Union[int, float, str]


def _now() -> float:
    return time.time()


def _score(v: _Score) -> float:
    if isinstance(v, str):
        if v in ("-inf", "+inf", "inf"):
            return float(v)
        if v.startswith("("):
            raise NotImplementedError("exclusive score bounds not supported in mock")
    return float(v)


class MockRedisClient:
    def __init__(self) -> None:
        self.store: Dict[str, Any] = {}
        self.zsets: Dict[str, Dict[str, float]] = {}
        self.expirations: Dict[str, Optional[float]] = {}
        self._sha_to_script: Dict[str, str] = {}
        self.eval_calls: List[Tuple[str, List[Any]]] = []
        self.down = False
        self._closed = False

    # ── housekeeping ──────────────────────────────────────────
    def _guard(self) -> None:
        if self.down:
            raise RedisConnectionError("mock redis is down")

    def reset(self) -> None:
        """Synchronous wipe for fixtures that run outside an event loop."""
        self.store.clear()
        self.zsets.clear()
        self.expirations.clear()
        self._sha_to_script.clear()
        self.eval_calls.clear()
        self.down = False

    async def ping(self) -> bool:
        self._guard()
        return True

    async def close(self) -> None:
        self._closed = True

    async def flushdb(self) -> None:
        self.reset()

    async def flushall(self) -> None:
        self.reset()

    # ── expiration helpers ────────────────────────────────────
    def _expired(self, key: str) -> bool:
        exp = self.expirations.get(key)
        return exp is not None and exp <= _now()

    def _purge_expired(self) -> None:
        for k in [k for k in self.expirations if self._expired(k)]:
            self.store.pop(k, None)
            self.zsets.pop(k, None)
            self.expirations.pop(k, None)

    def _exists(self, key: str) -> bool:
        return key in self.store or key in self.zsets

    # ─────────────────────────────────────────────────────────
    # String / KV commands
    # ─────────────────────────────────────────────────────────
    async def get(self, key: str) -> Optional[Any]:
        self._guard()
        self._purge_expired()
        return self.store.get(key)

    async def set(
        self,
        key: str,
        value: Any,
        ex: Optional[int] = None,
        px: Optional[int] = None,
        nx: bool = False,
        xx: bool = False,
    ) -> bool:
        self._guard()
        self._purge_expired()
        exists = key in self.store
        if (nx and exists) or (xx and not exists):
            return False
        self.store[key] = value
        if ex is not None:
            self.expirations[key] = _now() + int(ex)
        elif px is not None:
            self.expirations[key] = _now() + int(px) / 1000.0
        else:
            self.expirations.pop(key, None)
        return True

    async def delete(self, *keys: str) -> int:
        self._guard()
        removed = 0
        for k in keys:
            removed += int(self.store.pop(k, None) is not None)
            removed += int(self.zsets.pop(k, None) is not None)
            self.expirations.pop(k, None)
        return removed

    async def exists(self, *keys: str) -> int:
        self._guard()
        self._purge_expired()
        return sum(1 for k in keys if self._exists(k))

    def _pexpire(self, key: str, ms: int) -> bool:
        if not self._exists(key):
            return False
        self.expirations[key] = _now() + int(ms) / 1000.0
        return True

    async def pexpire(self, key: str, time_ms: int) -> bool:
        self._guard()
        return self._pexpire(key, time_ms)

    async def pttl(self, key: str) -> int:
        self._guard()
        self._purge_expired()
        if not self._exists(key):
            return -2
        exp = self.expirations.get(key)
        if exp is None:
            return -1
        return max(int(round((exp - _now()) * 1000)), 0)

    # ─────────────────────────────────────────────────────────
    # Sorted sets
    # ─────────────────────────────────────────────────────────
    def _z(self, key: str) -> Dict[str, float]:
        self._purge_expired()
        return self.zsets.setdefault(key, {})

    def _zdrop_if_empty(self, key: str) -> None:
        if key in self.zsets and not self.zsets[key]:
            self.zsets.pop(key, None)
            self.expirations.pop(key, None)

    async def zadd(self, key: str, mapping: Dict[str, _Score], nx: bool = False, xx: bool = False) -> int:
        self._guard()
        z = self._z(key)
        added = 0
        for member, score in mapping.items():
            present = member in z
            if (nx and present) or (xx and not present):
                continue
            added += int(not present)
            z[member] = _score(score)
        self._zdrop_if_empty(key)
        return added

    async def zrem(self, key: str, *members: str) -> int:
        self._guard()
        z = self._z(key)
        removed = sum(1 for m in members if z.pop(m, None) is not None)
        self._zdrop_if_empty(key)
        return removed

    async def zscore(self, key: str, member: str) -> Optional[float]:
        self._guard()
        score = self._z(key).get(member)
        self._zdrop_if_empty(key)
        return score

    async def zcard(self, key: str) -> int:
        self._guard()
        n = len(self._z(key))
        self._zdrop_if_empty(key)
        return n

    def _zsorted(self, key: str) -> List[Tuple[str, float]]:
        return sorted(self.zsets.get(key, {}).items(), key=lambda kv: (kv[1], kv[0]))

    async def zrange(self, key: str, start: int, end: int, withscores: bool = False) -> List[Any]:
        self._guard()
        self._purge_expired()
        items = self._zsorted(key)
        n = len(items)
        start = n + start if start < 0 else start
        end = n + end if end < 0 else end
        sliced = items[max(start, 0): end + 1] if n else []
        if withscores:
            return [(m, s) for m, s in sliced]
        return [m for m, _ in sliced]

    def _zremrangebyscore(self, key: str, lo: _Score, hi: _Score) -> int:
        z = self.zsets.get(key, {})
        lo_f, hi_f = _score(lo), _score(hi)
        doomed = [m for m, s in z.items() if lo_f <= s <= hi_f]
        for m in doomed:
            z.pop(m, None)
        self._zdrop_if_empty(key)
        return len(doomed)

    async def zremrangebyscore(self, key: str, min: _Score, max: _Score) -> int:
        self._guard()
        self._purge_expired()
        return self._zremrangebyscore(key, min, max)

    # ─────────────────────────────────────────────────────────
    # Lua: script_load / evalsha / eval
    # ─────────────────────────────────────────────────────────
    async def script_load(self, script: str) -> str:
        sha = hashlib.sha1(script.encode("utf-8")).hexdigest()
        self._sha_to_script[sha] = script
        return sha

    async def evalsha(self, sha: str, numkeys: int, *keys_and_args: Any) -> Any:
        self._guard()
        script = self._sha_to_script.get(sha)
        if script is None:
            raise NoScriptError("NOSCRIPT No matching script. Please use EVAL.")
        return await self.eval(script, numkeys, *keys_and_args)

    async def eval(self, script: str, numkeys: int, *keys_and_args: Any) -> Any:
        self._guard()
        await self.script_load(script)
        keys = [str(k) for k in keys_and_args[:numkeys]]
        argv = list(keys_and_args[numkeys:])
        self.eval_calls.append((script, [*keys, *argv]))
        self._purge_expired()

        if "streampass:device-admit" in script:
            return self._admit(keys[0], str(argv[0]), int(argv[1]), int(argv[2]), int(argv[3]), int(argv[4]))
        if "streampass:device-touch" in script:
            return self._touch(keys[0], str(argv[0]), int(argv[1]), int(argv[2]))
        if "streampass:device-release-others" in script:
            return self._release_others(keys[0], str(argv[0]))
        raise NotImplementedError("MockRedisClient.eval: script pattern not supported")

    def _admit(self, key: str, session: str, max_devices: int, now_ms: int, idle_ms: int, ttl_ms: int) -> List[int]:
        if idle_ms > 0:
            self._zremrangebyscore(key, "-inf", now_ms - idle_ms)
        z = self.zsets.setdefault(key, {})
        if session in z:
            z[session] = float(now_ms)
            if ttl_ms > 0:
                self._pexpire(key, ttl_ms)
            return [1, 0, len(z)]
        count = len(z)
        if count >= max_devices:
            self._zdrop_if_empty(key)
            return [0, 0, count]
        z[session] = float(now_ms)
        if ttl_ms > 0:
            self._pexpire(key, ttl_ms)
        return [1, 1, count + 1]

    def _touch(self, key: str, session: str, now_ms: int, idle_ms: int) -> int:
        if idle_ms > 0:
            self._zremrangebyscore(key, "-inf", now_ms - idle_ms)
        z = self.zsets.get(key, {})
        if session in z:
            z[session] = float(now_ms)
            return 1
        return 0

    def _release_others(self, key: str, keep: str) -> int:
        z = self.zsets.get(key, {})
        doomed = [m for m in z if m != keep]
        for m in doomed:
            z.pop(m, None)
        self._zdrop_if_empty(key)
        return len(doomed)

    # ─────────────────────────────────────────────────────────
    # Lock API (permissive signature for wrapper fallbacks)
    # ─────────────────────────────────────────────────────────
    def lock(
        self,
        name: str,
        timeout: Optional[int] = None,
        blocking_timeout: Optional[float] = None,
        sleep: Optional[float] = None,
    ) -> "MockLock":
        # Only `timeout` is used; acquisition is always a single attempt.
        return MockLock(self, name, timeout or 10)


class MockLock:
    """
    Tiny async lock with SET NX semantics.

    acquire(...) -> bool   # accepts blocking/blocking_timeout kwargs for compatibility
    release() -> None
    """

    def __init__(self, client: MockRedisClient, name: str, timeout: int) -> None:
        self.client = client
        self.name = name
        self.timeout = timeout
        self.token: Optional[str] = None
        self._key = f"lock:{name}"

    async def acquire(self, *_, **__) -> bool:
        token = self.token or secrets.token_urlsafe(12)
        ok = await self.client.set(self._key, token, ex=self.timeout, nx=True)
        if ok:
            self.token = token
        return bool(ok)

    async def release(self) -> None:
        val = await self.client.get(self._key)
        if val == self.token:
            await self.client.delete(self._key)
            self.token = None

    async def __aenter__(self) -> "MockLock":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()


__all__ = ["MockRedisClient", "MockLock"]
