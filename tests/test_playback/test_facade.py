# tests/test_playback/test_facade.py
from datetime import timedelta

import pytest

from streampass.core.config import settings
from streampass.core.exceptions import (
    AppException,
    DeviceLimitExceeded,
    NoEligibleSource,
    NotEntitled,
    UpstreamUnavailable,
)
from streampass.schemas.enums import AccessTier, DeviceKind, EntitlementBasis, Quality, SourceKind
from streampass.services.playback import PlaybackResolutionFacade
from streampass.services.signing import verify_playback_token
from tests.fixtures.catalog import (
    NOW,
    live_subscription,
    make_policy,
    make_rental,
    make_source,
    mp4_urls,
    seed_series,
)

pytestmark = pytest.mark.anyio


@pytest.fixture()
def facade(catalog, commerce, ledger) -> PlaybackResolutionFacade:
    return PlaybackResolutionFacade(catalog, commerce, ledger, clock=lambda: NOW)


def _rent_title(catalog, commerce, *, max_devices=1, sources=None):
    catalog.add_policy(make_policy("movie-1", AccessTier.RENT, rental_max_devices=max_devices))
    catalog.add_sources("movie-1", sources or [make_source("hls", required_tier=AccessTier.RENT)])
    return commerce.add_rental(make_rental("viewer-1", "movie-1", max_devices=max_devices))


# ─────────────────────────────────────────────────────────────────────────────
# Free & subscription
# ─────────────────────────────────────────────────────────────────────────────

async def test_free_title_resolves_with_a_signed_token(catalog, facade):
    catalog.add_policy(make_policy("movie-1"))
    catalog.add_sources("movie-1", [make_source("hls")])

    desc = await facade.resolve_playback("viewer-1", "movie-1", DeviceKind.WEB, device_session_id="web-1")

    assert desc.basis is EntitlementBasis.FREE
    assert desc.kind is SourceKind.HLS
    assert desc.url == "https://cdn.example.com/hls"
    assert desc.expires_at == int(NOW.timestamp()) + 1800
    assert verify_playback_token(
        desc.access_token,
        viewer_id="viewer-1",
        content_id="movie-1",
        source_id="hls",
        now=NOW.timestamp(),
    )
    assert not verify_playback_token(
        desc.access_token,
        viewer_id="viewer-2",
        content_id="movie-1",
        source_id="hls",
        now=NOW.timestamp(),
    )


async def test_vip_title_with_subscription_takes_no_device_slot(catalog, commerce, ledger, facade):
    catalog.add_policy(make_policy("movie-1", AccessTier.VIP))
    catalog.add_sources("movie-1", [make_source("vip", required_tier=AccessTier.VIP)])
    commerce.set_subscription("viewer-1", live_subscription())
    rental = commerce.add_rental(make_rental("viewer-1", "movie-1"))

    desc = await facade.resolve_playback("viewer-1", "movie-1", DeviceKind.MOBILE, device_session_id="m-1")
    assert desc.basis is EntitlementBasis.SUBSCRIPTION
    assert desc.source_id == "vip"
    assert await ledger.active_sessions(rental) == []


async def test_vip_title_without_basis_is_refused(catalog, facade):
    catalog.add_policy(make_policy("movie-1", AccessTier.VIP))
    catalog.add_sources("movie-1", [make_source("vip", required_tier=AccessTier.VIP)])

    with pytest.raises(NotEntitled) as ei:
        await facade.resolve_playback("viewer-1", "movie-1", DeviceKind.WEB, device_session_id="web-1")
    assert ei.value.status_code == 403
    assert ei.value.details == {"content_id": "movie-1", "tier": "vip"}


async def test_unknown_content_has_no_source(facade):
    with pytest.raises(NoEligibleSource) as ei:
        await facade.resolve_playback("viewer-1", "nope", DeviceKind.WEB, device_session_id="web-1")
    assert ei.value.status_code == 404


# ─────────────────────────────────────────────────────────────────────────────
# Rentals & device slots
# ─────────────────────────────────────────────────────────────────────────────

async def test_rental_resolves_and_holds_a_slot(catalog, commerce, ledger, facade):
    rental = _rent_title(catalog, commerce)

    desc = await facade.resolve_playback("viewer-1", "movie-1", DeviceKind.WEB, device_session_id="web-1")
    assert desc.basis is EntitlementBasis.RENTAL
    assert desc.remaining_days == 3
    assert await ledger.active_sessions(rental) == ["web-1"]

    # same session again is fine
    await facade.resolve_playback("viewer-1", "movie-1", DeviceKind.WEB, device_session_id="web-1")

    with pytest.raises(DeviceLimitExceeded) as ei:
        await facade.resolve_playback("viewer-1", "movie-1", DeviceKind.MOBILE, device_session_id="m-1")
    assert ei.value.details["max_devices"] == 1
    assert ei.value.details["active_sessions"] == 1


async def test_expired_rental_is_refused(catalog, commerce, facade):
    catalog.add_policy(make_policy("movie-1", AccessTier.RENT))
    catalog.add_sources("movie-1", [make_source("hls")])
    commerce.add_rental(make_rental("viewer-1", "movie-1", ends_in=timedelta(hours=-1)))

    with pytest.raises(NotEntitled):
        await facade.resolve_playback("viewer-1", "movie-1", DeviceKind.WEB, device_session_id="web-1")


async def test_rental_never_unlocks_vip_sources(catalog, commerce, ledger, facade):
    rental = _rent_title(
        catalog,
        commerce,
        sources=[
            make_source("vip", required_tier=AccessTier.VIP, is_default=True),
            make_source("rent-mp4", SourceKind.MP4, required_tier=AccessTier.RENT, quality_urls=mp4_urls(Quality.P720)),
        ],
    )
    desc = await facade.resolve_playback(
        "viewer-1", "movie-1", DeviceKind.WEB, device_session_id="web-1", quality_hint=Quality.P1080
    )
    assert desc.source_id == "rent-mp4"
    assert desc.quality is Quality.P720
    assert await ledger.active_sessions(rental) == ["web-1"]


async def test_new_slot_is_given_back_when_no_source_fits(catalog, commerce, ledger, facade):
    rental = _rent_title(catalog, commerce, sources=[make_source("vip", required_tier=AccessTier.VIP)])

    with pytest.raises(NoEligibleSource):
        await facade.resolve_playback("viewer-1", "movie-1", DeviceKind.WEB, device_session_id="web-1")
    assert await ledger.active_sessions(rental) == []


async def test_existing_slot_survives_a_failed_resolution(catalog, commerce, ledger, facade):
    rental = _rent_title(catalog, commerce, sources=[make_source("vip", required_tier=AccessTier.VIP)])
    await ledger.admit(rental, "web-1")

    with pytest.raises(NoEligibleSource):
        await facade.resolve_playback("viewer-1", "movie-1", DeviceKind.WEB, device_session_id="web-1")
    assert await ledger.active_sessions(rental) == ["web-1"]


async def test_new_slot_is_given_back_when_signing_fails(catalog, commerce, ledger, facade, monkeypatch):
    rental = _rent_title(catalog, commerce)
    monkeypatch.setattr(settings, "PLAYBACK_TOKEN_SECRET", None)
    monkeypatch.setattr(settings, "ENV", "production")

    with pytest.raises(AppException) as exc:
        await facade.resolve_playback("viewer-1", "movie-1", DeviceKind.WEB, device_session_id="web-1")
    assert exc.value.code == "SIGNING_NOT_CONFIGURED"
    assert await ledger.active_sessions(rental) == []


async def test_release_playback_frees_the_slot(catalog, commerce, ledger, facade):
    rental = _rent_title(catalog, commerce)
    await facade.resolve_playback("viewer-1", "movie-1", DeviceKind.WEB, device_session_id="web-1")

    assert await facade.release_playback("viewer-1", "movie-1", "web-1") is True
    assert await ledger.active_sessions(rental) == []
    assert await facade.release_playback("viewer-1", "movie-1", "web-1") is False
    assert await facade.release_playback("viewer-2", "movie-1", "web-1") is False


# ─────────────────────────────────────────────────────────────────────────────
# Episodes
# ─────────────────────────────────────────────────────────────────────────────

async def test_episode_tier_overrides_the_series(catalog, commerce, facade):
    ids = seed_series(catalog, seasons=1, per_season=2)
    catalog.add_episode("series-1", episode_id=ids[1], season_number=1, episode_number=2, tier=AccessTier.VIP)
    for ep in ids:
        catalog.add_sources("series-1", [make_source(f"{ep}-hls")], episode_id=ep)

    first = await facade.resolve_playback(
        "viewer-1", "series-1", DeviceKind.WEB, device_session_id="web-1", episode_id=ids[0]
    )
    assert first.basis is EntitlementBasis.FREE
    assert first.source_id == f"{ids[0]}-hls"
    assert verify_playback_token(
        first.access_token,
        viewer_id="viewer-1",
        content_id="series-1",
        episode_id=ids[0],
        source_id=first.source_id,
        now=NOW.timestamp(),
    )

    with pytest.raises(NotEntitled):
        await facade.resolve_playback(
            "viewer-1", "series-1", DeviceKind.WEB, device_session_id="web-1", episode_id=ids[1]
        )

    commerce.set_subscription("viewer-1", live_subscription())
    second = await facade.resolve_playback(
        "viewer-1", "series-1", DeviceKind.WEB, device_session_id="web-1", episode_id=ids[1]
    )
    assert second.basis is EntitlementBasis.SUBSCRIPTION


async def test_episode_does_not_borrow_series_sources(catalog, facade):
    ids = seed_series(catalog, seasons=1, per_season=1)
    catalog.add_sources("series-1", [make_source("series-hls")])

    with pytest.raises(NoEligibleSource):
        await facade.resolve_playback(
            "viewer-1", "series-1", DeviceKind.WEB, device_session_id="web-1", episode_id=ids[0]
        )


async def test_episode_of_another_series_is_not_found(catalog, facade):
    seed_series(catalog, "series-1")
    other = seed_series(catalog, "series-2")
    with pytest.raises(NoEligibleSource):
        await facade.resolve_playback(
            "viewer-1", "series-1", DeviceKind.WEB, device_session_id="web-1", episode_id=other[0]
        )


# ─────────────────────────────────────────────────────────────────────────────
# Store failures
# ─────────────────────────────────────────────────────────────────────────────

async def test_commerce_outage_propagates(catalog, commerce, facade):
    catalog.add_policy(make_policy("movie-1", AccessTier.VIP))
    commerce.unavailable = True
    with pytest.raises(UpstreamUnavailable):
        await facade.resolve_playback("viewer-1", "movie-1", DeviceKind.WEB, device_session_id="web-1")


async def test_ledger_outage_propagates_for_rentals(catalog, commerce, redis_client, facade):
    _rent_title(catalog, commerce)
    redis_client.down = True
    with pytest.raises(UpstreamUnavailable):
        await facade.resolve_playback("viewer-1", "movie-1", DeviceKind.WEB, device_session_id="web-1")
