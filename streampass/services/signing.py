from __future__ import annotations

"""
Playback access tokens.

Each resolved descriptor carries a short-lived HMAC token binding the viewer,
the content (and episode), and the chosen source. A media edge can verify it
without calling back into the engine.

Token format: `<exp>.<hex sig>` where
`sig = HMAC-SHA256(secret, viewer|content|episode|source|exp)`.

Settings:
- PLAYBACK_TOKEN_SECRET: required outside development. In development a fixed
  dev secret is used with a warning.
- PLAYBACK_TOKEN_TTL_SECONDS: lifetime of a token (default 30 minutes).
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import status
from pydantic import BaseModel

from streampass.core.config import settings
from streampass.core.exceptions import AppException

logger = logging.getLogger(__name__)

_DEV_SECRET = "dev-playback-secret-change-me"


class PlaybackToken(BaseModel):
    """
    - token: `<exp>.<sig>` string handed to the client.
    - expires_at: Epoch seconds when the token stops being valid.
    """

    token: str
    expires_at: int


def _secret() -> bytes:
    if settings.PLAYBACK_TOKEN_SECRET is not None:
        value = settings.PLAYBACK_TOKEN_SECRET.get_secret_value()
        if value:
            return value.encode("utf-8")
    if settings.is_development:
        logger.warning("PLAYBACK_TOKEN_SECRET missing; using dev secret (DEV MODE)")
        return _DEV_SECRET.encode("utf-8")
    raise AppException(
        "Playback signing secret not configured",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="SIGNING_NOT_CONFIGURED",
    )


def _signature(viewer_id: str, content_id: str, episode_id: Optional[str], source_id: str, exp: int) -> str:
    to_sign = f"{viewer_id}|{content_id}|{episode_id or ''}|{source_id}|{exp}".encode("utf-8")
    return hmac.new(_secret(), to_sign, hashlib.sha256).hexdigest()


def issue_playback_token(
    *,
    viewer_id: str,
    content_id: str,
    source_id: str,
    episode_id: Optional[str] = None,
    expires_in: Optional[int] = None,
    now: Optional[float] = None,
) -> PlaybackToken:
    """Issue a token valid for `expires_in` seconds (defaults to the configured TTL)."""
    issued = int(now if now is not None else time.time())
    exp = issued + int(expires_in or settings.PLAYBACK_TOKEN_TTL_SECONDS)
    sig = _signature(viewer_id, content_id, episode_id, source_id, exp)
    return PlaybackToken(token=f"{exp}.{sig}", expires_at=exp)


def verify_playback_token(
    token: str,
    *,
    viewer_id: str,
    content_id: str,
    source_id: str,
    episode_id: Optional[str] = None,
    now: Optional[float] = None,
) -> bool:
    exp_part, _, sig = (token or "").partition(".")
    if not exp_part.isdigit() or not sig:
        return False
    exp = int(exp_part)
    if exp <= int(now if now is not None else time.time()):
        return False
    expected = _signature(viewer_id, content_id, episode_id, source_id, exp)
    return hmac.compare_digest(expected, sig)


__all__ = ["PlaybackToken", "issue_playback_token", "verify_playback_token"]
