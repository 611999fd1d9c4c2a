# tests/test_api/test_admin_series_routes.py
from streampass.services.access_cascade import AccessCascadeCoordinator
from tests.fixtures.catalog import seed_series

URL = "/api/v1/admin/series/series-1/access"


def test_cascade_endpoint_returns_counts(client, catalog, admin_headers):
    seed_series(catalog)

    r = client.post(URL, json={"tier": "vip"}, headers=admin_headers)
    assert r.status_code == 200, r.text
    assert r.json() == {
        "series_id": "series-1",
        "tier": "vip",
        "episodes_updated": 6,
        "episodes_unchanged": 0,
        "parent_updated": True,
        "updated_count": 7,
    }


def test_non_admin_is_forbidden(client, catalog, viewer_headers):
    seed_series(catalog)
    r = client.post(URL, json={"tier": "vip"}, headers=viewer_headers)
    assert r.status_code == 403


def test_rent_without_terms_is_422(client, catalog, admin_headers):
    seed_series(catalog)
    r = client.post(URL, json={"tier": "rent"}, headers=admin_headers)
    assert r.status_code == 422
    assert r.json()["code"] == "POLICY_INVALID"


def test_partial_failure_is_503_and_retry_finishes(client, catalog, admin_headers):
    seed_series(catalog)
    catalog.fail_writes_after(3)

    r = client.post(URL, json={"tier": "vip"}, headers=admin_headers)
    assert r.status_code == 503
    assert r.json()["code"] == "CASCADE_INCOMPLETE"
    assert r.json()["details"]["updated_count"] == 3

    catalog.heal()
    r = client.post(URL, json={"tier": "vip"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["episodes_updated"] == 3


def test_concurrent_change_is_409(client, catalog, admin_headers, redis_client):
    seed_series(catalog)
    redis_client.store[f"lock:{AccessCascadeCoordinator.lock_name('series-1')}"] = "someone-else"

    r = client.post(URL, json={"tier": "free"}, headers=admin_headers)
    assert r.status_code == 409
    assert r.json()["code"] == "CASCADE_IN_PROGRESS"
