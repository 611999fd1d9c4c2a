# streampass/core/exceptions.py
from __future__ import annotations

"""
StreamPass · Application Exceptions
===================================
A small, consistent layer on top of FastAPI/Starlette's `HTTPException` that
lets every engine refusal carry a stable machine code plus structured details.

Key ideas
---------
- One base `AppException` that carries `code`, `details`, `extra`.
- Playback and cascade errors inherit from it and set sane defaults, so the
  same object is a typed result for library callers and an HTTP error for the
  thin API layer.
- `to_problem()` renders the canonical body used by the exception handlers.

Taxonomy
--------
- `NotEntitled`            403  viewer lacks any valid basis
- `DeviceLimitExceeded`    409  valid rental, device cap reached
- `NoEligibleSource`       404  nothing playable for the granted tier/device
- `CascadeInProgress`      409  another cascade holds the series
- `CascadeIncomplete`      503  cascade stopped part-way; safe to retry
- `UpstreamUnavailable`    503  store read/write failed; caller retries
- `PolicyValidationError`  422  write-time policy/source validation
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

__all__ = [
    "AppException",
    "NotEntitled",
    "DeviceLimitExceeded",
    "NoEligibleSource",
    "CascadeInProgress",
    "CascadeIncomplete",
    "UpstreamUnavailable",
    "PolicyValidationError",
]


# ──────────────────────────────────────────────────────────────
# 📦 Core: AppException
# ──────────────────────────────────────────────────────────────
class AppException(HTTPException):
    """Base application-level exception with optional metadata.

    Attributes
    -----------
    status_code : int
        HTTP status code used when surfaced through the API layer.
    message : str
        Human-readable error message (serialized as `detail` as well).
    code : str
        Stable machine-readable error code (e.g. ``"NOT_ENTITLED"``).
    details : dict | list | str | None
        Machine-readable details (limits, counts, ids).
    extra : dict | None
        Additional non-sensitive metadata to surface to clients.
    """

    default_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "ERROR"
    default_message: str = "Unexpected error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Any] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        message = message or self.default_message
        status_code = status_code or self.default_status
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code: str = code or self.default_code
        self.message: str = message
        self.details: Optional[Any] = details
        self.extra: Dict[str, Any] = extra or {}

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_problem(self, *, request_id: Optional[str] = None) -> Dict[str, Any]:
        """Return a dict matching our problem-like JSON shape."""
        body: Dict[str, Any] = {
            "error": True,
            "message": self.message,
            "code": self.code,
            "request_id": request_id or "N/A",
        }
        if self.details is not None:
            body["details"] = self.details
        extra_sanitized = dict(self.extra) if self.extra else {}
        for k in ("token", "access_token", "authorization", "secret"):
            extra_sanitized.pop(k, None)
        body.update(extra_sanitized)
        return body


# ──────────────────────────────────────────────────────────────
# ▶️ Playback resolution
# ──────────────────────────────────────────────────────────────
class NotEntitled(AppException):
    """Viewer has no free, subscription, or rental basis for the content."""

    default_status = status.HTTP_403_FORBIDDEN
    default_code = "NOT_ENTITLED"
    default_message = "Upgrade or rent to watch this title"


class DeviceLimitExceeded(AppException):
    """The rental is valid but every device slot is taken."""

    default_status = status.HTTP_409_CONFLICT
    default_code = "DEVICE_LIMIT_EXCEEDED"
    default_message = "Too many devices are playing this rental; remove one to continue"

    def __init__(self, *, max_devices: int, active_sessions: int, rental_id: Optional[str] = None) -> None:
        super().__init__(
            details={
                "max_devices": max_devices,
                "active_sessions": active_sessions,
                "rental_id": rental_id,
            }
        )
        self.max_devices = max_devices
        self.active_sessions = active_sessions


class NoEligibleSource(AppException):
    """No video source matches the granted tier and requesting device."""

    default_status = status.HTTP_404_NOT_FOUND
    default_code = "NO_ELIGIBLE_SOURCE"
    default_message = "This title is unavailable on this device"


# ──────────────────────────────────────────────────────────────
# 🛠️ Admin: access cascade
# ──────────────────────────────────────────────────────────────
class CascadeInProgress(AppException):
    default_status = status.HTTP_409_CONFLICT
    default_code = "CASCADE_IN_PROGRESS"
    default_message = "An access change for this series is already running"

    def __init__(self, *, series_id: str) -> None:
        super().__init__(details={"series_id": series_id, "retryable": True})
        self.series_id = series_id


class CascadeIncomplete(AppException):
    """Cascade stopped part-way; re-running with the same tier finishes it."""

    default_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "CASCADE_INCOMPLETE"
    default_message = "Access change was only partially applied; retry to finish"

    def __init__(self, *, series_id: str, updated_count: int) -> None:
        super().__init__(
            details={"series_id": series_id, "updated_count": updated_count, "retryable": True}
        )
        self.series_id = series_id
        self.updated_count = updated_count


# ──────────────────────────────────────────────────────────────
# 🌐 Infrastructure & validation
# ──────────────────────────────────────────────────────────────
class UpstreamUnavailable(AppException):
    default_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "UPSTREAM_UNAVAILABLE"
    default_message = "A backing store is unavailable; retry the request"


class PolicyValidationError(AppException):
    default_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "POLICY_INVALID"
    default_message = "Content policy is invalid"
