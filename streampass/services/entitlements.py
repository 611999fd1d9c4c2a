from __future__ import annotations

"""
Entitlement evaluation.

Given a content item's effective policy and the viewer's commercial state,
decide whether playback is allowed and on which basis. The rules run in a
fixed order and the first match wins:

1. Free content                                   → basis=free,         tier=free
2. Vip content, not excluded, live subscription   → basis=subscription, tier=vip
3. Completed rental of this content, not expired  → basis=rental,       tier=rent
4. Anything else                                  → denied

A Rent-tier item never consults the subscription, and a Vip item excluded from
the plan can only be unlocked by a rental. When a viewer holds both a live
subscription and a rental of a plan-included Vip item, the subscription wins
because it does not consume the rental's device slots.

`now` is read once per evaluation so every comparison sees the same instant.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Callable, Optional

from streampass.schemas.enums import AccessTier, EntitlementBasis
from streampass.schemas.policy import ContentPolicy, Entitlement, RentalRecord, SubscriptionState, as_utc

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 24 * 60 * 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def remaining_days(ends_at: datetime, now: datetime) -> int:
    """Whole days left on a rental, rounded up (a rental ending in 1h has 1 day left)."""
    seconds = (as_utc(ends_at) - now).total_seconds()
    return max(0, math.ceil(seconds / _SECONDS_PER_DAY))


class EntitlementEvaluator:
    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    def evaluate(
        self,
        policy: ContentPolicy,
        subscription: SubscriptionState,
        rental: Optional[RentalRecord] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Entitlement:
        now = as_utc(now or self._clock())

        if policy.tier is AccessTier.FREE:
            return Entitlement(granted=True, basis=EntitlementBasis.FREE, granted_tier=AccessTier.FREE)

        if (
            policy.tier is AccessTier.VIP
            and not policy.exclude_from_plan
            and subscription.active
            and subscription.expires_at is not None
            and subscription.expires_at > now
        ):
            return Entitlement(
                granted=True,
                basis=EntitlementBasis.SUBSCRIPTION,
                granted_tier=AccessTier.VIP,
            )

        if rental is not None and rental.content_id == policy.content_id and rental.is_active(now):
            return Entitlement(
                granted=True,
                basis=EntitlementBasis.RENTAL,
                granted_tier=AccessTier.RENT,
                rental_record_id=rental.id,
                remaining_days=remaining_days(rental.ends_at, now),
            )

        logger.debug("Entitlement denied content=%s tier=%s", policy.content_id, policy.tier.value)
        return Entitlement.denied()


__all__ = ["EntitlementEvaluator", "remaining_days", "utcnow"]
