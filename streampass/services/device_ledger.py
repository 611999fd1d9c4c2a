from __future__ import annotations

"""
Device session ledger
=====================

Tracks which device sessions are playing each rental and enforces the rental's
device cap.

Storage
-------
One sorted set per rental: `<prefix>:rental:<rental_id>:devices`, member = device
session id, score = last-activity time in milliseconds. The key expires when
the rental ends.

Atomicity
---------
Admission runs as a single Lua script: evict idle members, re-admit a known
session, or add a new one only while `ZCARD < max_devices`. Concurrent admits
on the same rental are serialized by Redis, so the cap holds under any
interleaving.

Idle expiry
-----------
Sessions not seen for `DEVICE_SESSION_IDLE_TTL_SECONDS` (0 disables) are
evicted the next time the rental is admitted against or touched.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from streampass.core.config import settings
from streampass.core.exceptions import DeviceLimitExceeded
from streampass.core.redis_client import RedisClient, redis_wrapper
from streampass.repositories.base import store_call
from streampass.schemas.policy import RentalRecord

logger = logging.getLogger(__name__)

# KEYS[1]=devices zset; ARGV: session, max_devices, now_ms, idle_ms, ttl_ms
# Returns {admitted, newly_admitted, active_count}
ADMIT_SCRIPT = """
-- streampass:device-admit
local key = KEYS[1]
local session = ARGV[1]
local max_devices = tonumber(ARGV[2])
local now_ms = tonumber(ARGV[3])
local idle_ms = tonumber(ARGV[4])
local ttl_ms = tonumber(ARGV[5])

if idle_ms > 0 then
  redis.call('ZREMRANGEBYSCORE', key, '-inf', now_ms - idle_ms)
end

if redis.call('ZSCORE', key, session) then
  redis.call('ZADD', key, now_ms, session)
  if ttl_ms > 0 then redis.call('PEXPIRE', key, ttl_ms) end
  return {1, 0, redis.call('ZCARD', key)}
end

local count = redis.call('ZCARD', key)
if count >= max_devices then
  return {0, 0, count}
end

redis.call('ZADD', key, now_ms, session)
if ttl_ms > 0 then redis.call('PEXPIRE', key, ttl_ms) end
return {1, 1, count + 1}
"""

# KEYS[1]=devices zset; ARGV: session, now_ms, idle_ms
TOUCH_SCRIPT = """
-- streampass:device-touch
local key = KEYS[1]
local idle_ms = tonumber(ARGV[3])
if idle_ms > 0 then
  redis.call('ZREMRANGEBYSCORE', key, '-inf', tonumber(ARGV[2]) - idle_ms)
end
if redis.call('ZSCORE', key, ARGV[1]) then
  redis.call('ZADD', key, ARGV[2], ARGV[1])
  return 1
end
return 0
"""

# KEYS[1]=devices zset; ARGV: session to keep
RELEASE_OTHERS_SCRIPT = """
-- streampass:device-release-others
local removed = 0
for _, member in ipairs(redis.call('ZRANGE', KEYS[1], 0, -1)) do
  if member ~= ARGV[1] then
    redis.call('ZREM', KEYS[1], member)
    removed = removed + 1
  end
end
return removed
"""


@dataclass(frozen=True)
class AdmitResult:
    rental_id: str
    device_session_id: str
    newly_admitted: bool
    active_sessions: int


def _ms(ts: float) -> int:
    return int(ts * 1000)


class DeviceSessionLedger:
    def __init__(
        self,
        redis: RedisClient = redis_wrapper,
        *,
        idle_ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self._idle_ttl = settings.DEVICE_SESSION_IDLE_TTL_SECONDS if idle_ttl_seconds is None else idle_ttl_seconds
        self._clock = clock

    @staticmethod
    def key_for(rental_id: str) -> str:
        return settings.redis_key("rental", rental_id, "devices")

    def _now_ms(self, now: Optional[datetime] = None) -> int:
        return _ms(now.timestamp() if now is not None else self._clock())

    async def admit(
        self,
        rental: RentalRecord,
        device_session_id: str,
        *,
        now: Optional[datetime] = None,
    ) -> AdmitResult:
        """
        Admit a device session against the rental's cap.

        Re-admitting a session that is already active refreshes it and succeeds
        without taking another slot. Raises `DeviceLimitExceeded` when every
        slot is taken by other live sessions.
        """
        now_ms = self._now_ms(now)
        ttl_ms = max(0, _ms(rental.ends_at.timestamp()) - now_ms)
        async with store_call("device_ledger", "admit"):
            raw = await self._redis.run_script(
                ADMIT_SCRIPT,
                keys=[self.key_for(rental.id)],
                args=[device_session_id, rental.max_devices, now_ms, self._idle_ttl * 1000, ttl_ms],
            )
        admitted, newly, count = (int(v) for v in raw)
        if not admitted:
            logger.info(
                "Device limit reached rental=%s max=%s active=%s",
                rental.id, rental.max_devices, count,
            )
            raise DeviceLimitExceeded(
                max_devices=rental.max_devices,
                active_sessions=count,
                rental_id=rental.id,
            )
        if newly:
            logger.info("Device admitted rental=%s active=%s/%s", rental.id, count, rental.max_devices)
        return AdmitResult(
            rental_id=rental.id,
            device_session_id=device_session_id,
            newly_admitted=bool(newly),
            active_sessions=count,
        )

    async def release(self, rental: RentalRecord, device_session_id: str) -> bool:
        """Free the session's slot. Releasing an unknown session is a no-op."""
        async with store_call("device_ledger", "release"):
            removed = await self._redis.client.zrem(self.key_for(rental.id), device_session_id)
        if removed:
            logger.info("Device released rental=%s", rental.id)
        return bool(removed)

    async def touch(
        self,
        rental: RentalRecord,
        device_session_id: str,
        *,
        now: Optional[datetime] = None,
    ) -> bool:
        """Record activity for a live session; False if it is not admitted."""
        async with store_call("device_ledger", "touch"):
            res = await self._redis.run_script(
                TOUCH_SCRIPT,
                keys=[self.key_for(rental.id)],
                args=[device_session_id, self._now_ms(now), self._idle_ttl * 1000],
            )
        return bool(int(res))

    async def active_sessions(self, rental: RentalRecord, *, now: Optional[datetime] = None) -> List[str]:
        """Live session ids, oldest activity first."""
        async with store_call("device_ledger", "active_sessions"):
            members = await self._redis.client.zrange(self.key_for(rental.id), 0, -1, withscores=True)
        if self._idle_ttl <= 0:
            return [m for m, _ in members]
        cutoff = self._now_ms(now) - self._idle_ttl * 1000
        return [m for m, score in members if score > cutoff]

    async def release_others(self, rental: RentalRecord, keep_device_session_id: str) -> int:
        """Sign out every device of the rental except one; returns how many were removed."""
        async with store_call("device_ledger", "release_others"):
            removed = await self._redis.run_script(
                RELEASE_OTHERS_SCRIPT,
                keys=[self.key_for(rental.id)],
                args=[keep_device_session_id],
            )
        logger.info("Released %s other device(s) rental=%s", removed, rental.id)
        return int(removed)


__all__ = [
    "ADMIT_SCRIPT",
    "TOUCH_SCRIPT",
    "RELEASE_OTHERS_SCRIPT",
    "AdmitResult",
    "DeviceSessionLedger",
]
