# tests/test_policy/test_policy_validation.py
from decimal import Decimal

import pytest
from pydantic import ValidationError

from streampass.core.exceptions import PolicyValidationError
from streampass.schemas.enums import AccessTier, Quality, SourceKind
from streampass.schemas.policy import ContentPolicy, VideoSource, validate_source_list
from tests.fixtures.catalog import make_source, mp4_urls


# ─────────────────────────────────────────────────────────────────────────────
# ContentPolicy
# ─────────────────────────────────────────────────────────────────────────────

def test_rent_tier_requires_positive_price_and_period():
    with pytest.raises(ValidationError):
        ContentPolicy(content_id="m", tier=AccessTier.RENT, rental_price=Decimal("0"), rental_period_days=3)
    with pytest.raises(ValidationError):
        ContentPolicy(content_id="m", tier=AccessTier.RENT, rental_price=Decimal("1.50"), rental_period_days=0)
    with pytest.raises(ValidationError):
        ContentPolicy(content_id="m", tier=AccessTier.RENT)

    ok = ContentPolicy(content_id="m", tier=AccessTier.RENT, rental_price=Decimal("1.50"), rental_period_days=2)
    assert ok.rental_period_days == 2


def test_free_tier_cannot_be_excluded_from_plan():
    with pytest.raises(ValidationError):
        ContentPolicy(content_id="m", tier=AccessTier.FREE, exclude_from_plan=True)


def test_max_devices_defaults_to_one_and_must_be_positive():
    assert ContentPolicy(content_id="m").rental_max_devices == 1
    assert ContentPolicy(content_id="m", rental_max_devices=None).rental_max_devices == 1
    with pytest.raises(ValidationError):
        ContentPolicy(content_id="m", rental_max_devices=0)


def test_with_tier_keeps_rental_terms():
    parent = ContentPolicy(
        content_id="s",
        tier=AccessTier.RENT,
        rental_price=Decimal("3.00"),
        rental_period_days=5,
        rental_max_devices=3,
    )
    ep = parent.with_tier(AccessTier.VIP)
    assert ep.tier is AccessTier.VIP
    assert ep.content_id == "s"
    assert ep.rental_max_devices == 3


# ─────────────────────────────────────────────────────────────────────────────
# VideoSource + list validation
# ─────────────────────────────────────────────────────────────────────────────

def test_iframe_and_hls_sources_need_a_url():
    with pytest.raises(ValidationError):
        VideoSource(id="a", kind=SourceKind.HLS)
    with pytest.raises(ValidationError):
        VideoSource(id="a", kind=SourceKind.IFRAME, url="   ")
    mp4 = VideoSource(id="a", kind=SourceKind.MP4, quality_urls=mp4_urls(Quality.P480))
    assert mp4.url is None


def test_two_default_sources_are_rejected():
    sources = [
        make_source("a", is_default=True),
        make_source("b", SourceKind.IFRAME, is_default=True),
    ]
    with pytest.raises(PolicyValidationError) as ei:
        validate_source_list(sources)
    assert ei.value.code == "POLICY_INVALID"
    assert ei.value.details == {"default_source_ids": ["a", "b"]}


def test_duplicate_source_ids_are_rejected():
    with pytest.raises(PolicyValidationError):
        validate_source_list([make_source("a"), make_source("a", SourceKind.IFRAME)])


def test_single_default_list_passes_through_in_order():
    sources = [make_source("a"), make_source("b", is_default=True), make_source("c")]
    assert [s.id for s in validate_source_list(sources)] == ["a", "b", "c"]


def test_tier_ranks_are_ordered():
    assert AccessTier.VIP.covers(AccessTier.RENT)
    assert AccessTier.RENT.covers(AccessTier.FREE)
    assert not AccessTier.RENT.covers(AccessTier.VIP)
    assert not AccessTier.FREE.covers(AccessTier.RENT)
