import json

import pytest

from edge_analytics.db import keys
from edge_analytics.main import normalize_path
from tests.conftest import CAFE_ID, CAFE_SLUG, HOTEL_SLUG


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["redis"] == "healthy"
    assert "x-process-time" in response.headers


def test_root(client):
    assert client.get("/").json()["status"] == "running"


def test_status_defaults_to_free(client):
    response = client.get("/api/status", params={"locationID": CAFE_SLUG})
    assert response.json() == {"locationID": CAFE_ID, "status": "free", "tier": "free"}


def test_status_reads_stored_record(client, store):
    store.put(keys.status_key(CAFE_ID), json.dumps({"status": "active", "tier": "pro"}))
    response = client.get("/api/status", params={"locationID": CAFE_ID})
    assert response.json() == {"locationID": CAFE_ID, "status": "active", "tier": "pro"}


def test_status_errors(client):
    assert client.get("/api/status").status_code == 400
    assert client.get("/api/status", params={"locationID": "nowhere"}).status_code == 404


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


def test_wrong_method(client):
    response = client.get(f"/hit/call/{CAFE_SLUG}")
    assert response.status_code == 405
    assert response.json()["error"]["code"] == "invalid_request"


def test_malformed_json_body(client):
    response = client.post("/api/track", content=b"{oops", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_request"


@pytest.mark.parametrize("raw,expected", [
    ("/", "/"),
    ("//", "/"),
    ("/api/health/", "/api/health"),
    ("/api//health", "/api/health"),
    ("//api///stats//", "/api/stats"),
])
def test_normalize_path(raw, expected):
    assert normalize_path(raw) == expected


def test_trailing_and_repeated_slashes_reach_the_route(client):
    assert client.get("/api/health/").status_code == 200
    assert client.get("/api//health").status_code == 200


def test_cors_preflight_for_allowed_origin(client):
    response = client.options("/api/track", headers={
        "Origin": "https://navigen.io",
        "Access-Control-Request-Method": "POST",
        "Access-Control-Request-Headers": "content-type",
    })
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "https://navigen.io"
    assert response.headers["access-control-allow-credentials"] == "true"


def test_cors_rejects_unknown_origin(client):
    response = client.options("/api/track", headers={
        "Origin": "https://evil.example",
        "Access-Control-Request-Method": "POST",
    })
    assert "access-control-allow-origin" not in response.headers

    response = client.get("/api/health", headers={"Origin": "https://evil.example"})
    assert "access-control-allow-origin" not in response.headers


class TestAdmin:
    def test_missing_token(self, client):
        response = client.post("/api/admin/purge-legacy")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthorized"

    def test_wrong_token(self, client):
        response = client.post("/api/admin/purge-legacy", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "forbidden"

    def test_purge_legacy_defaults_to_merge(self, client, store, admin_headers):
        store.put(keys.stat_key(CAFE_ID, "2025-06-01", "qr_scan"), "2")
        response = client.post("/api/admin/purge-legacy", headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == {"ok": True, "mode": "merge", "migrated": 1, "removed": 1}
        assert store.get(keys.stat_key(CAFE_ID, "2025-06-01", "qr-scan")) == "2"

    def test_purge_legacy_burn(self, client, store, admin_headers):
        store.put(keys.stat_key(CAFE_ID, "2025-06-01", "qr_scan"), "2")
        response = client.post("/api/admin/purge-legacy", json={"mode": "burn"}, headers=admin_headers)
        assert response.json()["mode"] == "burn"
        assert store.get(keys.stat_key(CAFE_ID, "2025-06-01", "qr-scan")) is None

    def test_purge_legacy_rejects_unknown_mode(self, client, admin_headers):
        response = client.post("/api/admin/purge-legacy", json={"mode": "shred"}, headers=admin_headers)
        assert response.status_code == 400

    def test_backfill_slug_stats(self, client, store, admin_headers):
        store.put(keys.stat_key(CAFE_SLUG, "2025-06-01", "call"), "3")
        response = client.post("/api/admin/backfill-slug-stats", headers=admin_headers)
        assert response.json() == {"ok": True, "moved": 1, "removed": 0, "skipped": 0}
        assert store.get(keys.stat_key(CAFE_ID, "2025-06-01", "call")) == "3"

    def test_seed_alias_ulids(self, client, store, admin_headers):
        store.delete(keys.alias_key(HOTEL_SLUG))
        response = client.post("/api/admin/seed-alias-ulids", headers=admin_headers)
        assert response.json() == {"ok": True, "wrote": 2, "skipped": 0, "total": 2}
        assert client.get("/api/status", params={"locationID": HOTEL_SLUG}).status_code == 200

    def test_seed_alias_ulids_needs_catalog(self, client, documents, admin_headers):
        documents.status["/data/profiles.json"] = 404
        response = client.post("/api/admin/seed-alias-ulids", headers=admin_headers)
        assert response.status_code == 502
