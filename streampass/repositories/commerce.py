from __future__ import annotations

"""Commerce repository: viewer subscriptions and rentals.

Payment capture itself is external. This repository reads the resulting state
and records completed rentals, copying the title's device cap onto the rental
at purchase time. Rentals are never deleted on expiry; `list_rentals()` is the
viewer's history.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from streampass.core.config import settings
from streampass.core.exceptions import PolicyValidationError, UpstreamUnavailable
from streampass.db.models import Rental, Subscription
from streampass.db.session import get_session_maker, transactional_async_session
from streampass.repositories.base import import_string, store_call
from streampass.schemas.enums import PaymentStatus
from streampass.schemas.policy import ContentPolicy, RentalRecord, SubscriptionState, as_utc

logger = logging.getLogger(__name__)


class CommerceRepositoryProtocol:
    async def get_subscription(self, viewer_id: str) -> SubscriptionState:
        raise NotImplementedError

    async def get_rental(self, viewer_id: str, content_id: str) -> Optional[RentalRecord]:
        """The viewer's most relevant rental of a content item, if any."""
        raise NotImplementedError

    async def record_rental(
        self,
        viewer_id: str,
        policy: ContentPolicy,
        *,
        starts_at: Optional[datetime] = None,
        payment_status: PaymentStatus = PaymentStatus.COMPLETED,
    ) -> RentalRecord:
        raise NotImplementedError

    async def list_rentals(self, viewer_id: str) -> List[RentalRecord]:
        raise NotImplementedError


def _rental_terms(policy: ContentPolicy, starts_at: Optional[datetime]) -> Tuple[datetime, datetime]:
    if not policy.rental_period_days or policy.rental_price is None or policy.rental_price <= 0:
        raise PolicyValidationError(
            "Content item is not rentable",
            details={"content_id": policy.content_id},
        )
    start = as_utc(starts_at or datetime.now(timezone.utc))
    return start, start + timedelta(days=policy.rental_period_days)


def _pick_rental(records: List[RentalRecord]) -> Optional[RentalRecord]:
    """Latest-ending completed rental; else the latest record of any status."""
    if not records:
        return None
    completed = [r for r in records if r.payment_status is PaymentStatus.COMPLETED]
    pool = completed or records
    return max(pool, key=lambda r: r.ends_at)


# ──────────────────────────────────────────────────────────────
# 🧠 In-memory implementation
# ──────────────────────────────────────────────────────────────
class MemoryCommerceRepository(CommerceRepositoryProtocol):
    def __init__(self) -> None:
        self._subscriptions: Dict[str, SubscriptionState] = {}
        self._rentals: List[RentalRecord] = []
        self.unavailable = False

    def _check_available(self) -> None:
        if self.unavailable:
            raise UpstreamUnavailable("Commerce store unavailable", details={"store": "commerce"})

    # Helpers
    def set_subscription(self, viewer_id: str, state: SubscriptionState) -> None:
        self._subscriptions[viewer_id] = state

    def add_rental(self, record: RentalRecord) -> RentalRecord:
        self._rentals.append(record)
        return record

    # Interface
    async def get_subscription(self, viewer_id: str) -> SubscriptionState:
        self._check_available()
        return self._subscriptions.get(viewer_id) or SubscriptionState()

    async def get_rental(self, viewer_id: str, content_id: str) -> Optional[RentalRecord]:
        self._check_available()
        return _pick_rental([r for r in self._rentals if r.viewer_id == viewer_id and r.content_id == content_id])

    async def record_rental(
        self,
        viewer_id: str,
        policy: ContentPolicy,
        *,
        starts_at: Optional[datetime] = None,
        payment_status: PaymentStatus = PaymentStatus.COMPLETED,
    ) -> RentalRecord:
        self._check_available()
        start, end = _rental_terms(policy, starts_at)
        record = RentalRecord(
            id=uuid.uuid4().hex,
            viewer_id=viewer_id,
            content_id=policy.content_id,
            starts_at=start,
            ends_at=end,
            payment_status=payment_status,
            max_devices=policy.rental_max_devices,
            rental_price=policy.rental_price,
        )
        self._rentals.append(record)
        logger.info("Rental recorded viewer=%s content=%s rental=%s", viewer_id, policy.content_id, record.id)
        return record

    async def list_rentals(self, viewer_id: str) -> List[RentalRecord]:
        self._check_available()
        items = [r for r in self._rentals if r.viewer_id == viewer_id]
        items.sort(key=lambda r: r.starts_at, reverse=True)
        return items


# ──────────────────────────────────────────────────────────────
# 🗄️ SQLAlchemy implementation
# ──────────────────────────────────────────────────────────────
class SqlCommerceRepository(CommerceRepositoryProtocol):
    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None) -> None:
        self._session_maker = session_maker

    @property
    def session_maker(self) -> async_sessionmaker[AsyncSession]:
        if self._session_maker is None:
            self._session_maker = get_session_maker()
        return self._session_maker

    @staticmethod
    def _record_from_row(row: Rental) -> RentalRecord:
        return RentalRecord(
            id=row.id,
            viewer_id=row.viewer_id,
            content_id=row.title_id,
            starts_at=row.starts_at,
            ends_at=row.ends_at,
            payment_status=row.payment_status,
            max_devices=row.max_devices,
            rental_price=row.rental_price,
        )

    async def get_subscription(self, viewer_id: str) -> SubscriptionState:
        stmt = (
            select(Subscription)
            .where(Subscription.viewer_id == viewer_id, Subscription.is_active.is_(True))
            .order_by(Subscription.ends_at.desc())
            .limit(1)
        )
        async with store_call("commerce", "get_subscription"):
            async with self.session_maker() as session:
                row = (await session.execute(stmt)).scalars().first()
        if row is None:
            return SubscriptionState()
        return SubscriptionState(
            active=bool(row.is_active) and row.payment_status is PaymentStatus.COMPLETED,
            expires_at=row.ends_at,
        )

    async def get_rental(self, viewer_id: str, content_id: str) -> Optional[RentalRecord]:
        stmt = select(Rental).where(Rental.viewer_id == viewer_id, Rental.title_id == content_id)
        async with store_call("commerce", "get_rental"):
            async with self.session_maker() as session:
                rows = (await session.execute(stmt)).scalars().all()
        return _pick_rental([self._record_from_row(r) for r in rows])

    async def record_rental(
        self,
        viewer_id: str,
        policy: ContentPolicy,
        *,
        starts_at: Optional[datetime] = None,
        payment_status: PaymentStatus = PaymentStatus.COMPLETED,
    ) -> RentalRecord:
        start, end = _rental_terms(policy, starts_at)
        row = Rental(
            viewer_id=viewer_id,
            title_id=policy.content_id,
            starts_at=start,
            ends_at=end,
            payment_status=payment_status,
            max_devices=policy.rental_max_devices,
            rental_price=policy.rental_price,
        )
        async with store_call("commerce", "record_rental"):
            async with transactional_async_session(self.session_maker) as session:
                session.add(row)
                await session.flush()
        logger.info("Rental recorded viewer=%s content=%s rental=%s", viewer_id, policy.content_id, row.id)
        return self._record_from_row(row)

    async def list_rentals(self, viewer_id: str) -> List[RentalRecord]:
        stmt = select(Rental).where(Rental.viewer_id == viewer_id).order_by(Rental.starts_at.desc())
        async with store_call("commerce", "list_rentals"):
            async with self.session_maker() as session:
                rows = (await session.execute(stmt)).scalars().all()
        return [self._record_from_row(r) for r in rows]


# ──────────────────────────────────────────────────────────────
# 🏭 Factory
# ──────────────────────────────────────────────────────────────
_memory_commerce: Optional[MemoryCommerceRepository] = None


def get_commerce_repository() -> CommerceRepositoryProtocol:
    global _memory_commerce
    impl_path = settings.COMMERCE_REPOSITORY_IMPL
    if impl_path:
        cls = import_string(impl_path, setting="COMMERCE_REPOSITORY_IMPL")
        return cls()  # type: ignore
    if _memory_commerce is None:
        _memory_commerce = MemoryCommerceRepository()
    return _memory_commerce


__all__ = [
    "CommerceRepositoryProtocol",
    "MemoryCommerceRepository",
    "SqlCommerceRepository",
    "get_commerce_repository",
]
