# streampass/api/deps.py
from __future__ import annotations

"""
FastAPI dependencies for the thin HTTP surface.

Authentication is external: an upstream gateway sets the viewer id (and role)
headers after verifying the caller. These dependencies only read them and wire
repositories and engine services together; tests swap any of them through
`app.dependency_overrides`.
"""

from fastapi import Depends, HTTPException, Request, status

from streampass.core.config import settings
from streampass.core.redis_client import redis_wrapper
from streampass.repositories.catalog import CatalogRepositoryProtocol, get_catalog_repository
from streampass.repositories.commerce import CommerceRepositoryProtocol, get_commerce_repository
from streampass.services.access_cascade import AccessCascadeCoordinator
from streampass.services.device_ledger import DeviceSessionLedger
from streampass.services.playback import PlaybackResolutionFacade


def get_viewer_id(request: Request) -> str:
    viewer_id = (request.headers.get(settings.VIEWER_ID_HEADER) or "").strip()
    if not viewer_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing viewer identity")
    return viewer_id


def require_admin(request: Request, viewer_id: str = Depends(get_viewer_id)) -> str:
    role = (request.headers.get(settings.VIEWER_ROLE_HEADER) or "").strip().lower()
    if role not in {"admin", "superuser"}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return viewer_id


def get_catalog() -> CatalogRepositoryProtocol:
    return get_catalog_repository()


def get_commerce() -> CommerceRepositoryProtocol:
    return get_commerce_repository()


def get_device_ledger() -> DeviceSessionLedger:
    return DeviceSessionLedger(redis_wrapper)


def get_playback_facade(
    catalog: CatalogRepositoryProtocol = Depends(get_catalog),
    commerce: CommerceRepositoryProtocol = Depends(get_commerce),
    ledger: DeviceSessionLedger = Depends(get_device_ledger),
) -> PlaybackResolutionFacade:
    return PlaybackResolutionFacade(catalog, commerce, ledger)


def get_cascade_coordinator(
    catalog: CatalogRepositoryProtocol = Depends(get_catalog),
) -> AccessCascadeCoordinator:
    return AccessCascadeCoordinator(catalog, redis=redis_wrapper)


__all__ = [
    "get_viewer_id",
    "require_admin",
    "get_catalog",
    "get_commerce",
    "get_device_ledger",
    "get_playback_facade",
    "get_cascade_coordinator",
]
