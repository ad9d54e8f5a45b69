import json
from datetime import datetime, timezone

from edge_analytics.db import keys
from edge_analytics.dependencies import get_stats
from edge_analytics.main import app
from edge_analytics.services.counter_service import day_key_for
from tests.conftest import CAFE_ID, CAFE_SLUG, HOTEL_ID

HU = {"CF-IPCountry": "HU"}


def test_stats_after_tracking(client):
    day = day_key_for(datetime.now(timezone.utc), country="HU")
    for _ in range(3):
        client.post(f"/hit/qr-scan/{CAFE_SLUG}", headers=HU)
    for score in (3, 4, 5):
        client.post("/api/track", json={"locationID": CAFE_SLUG, "event": "rating", "score": score}, headers=HU)

    response = client.get("/api/stats", params={"locationID": CAFE_SLUG, "from": day, "to": day})
    assert response.status_code == 200
    body = response.json()
    assert body["locationID"] == CAFE_ID
    assert body["locationName"] == "My Cafe"
    assert body["days"][day] == {"qr-scan": 3, "rating": 3}
    assert body["rated_sum"] == 3
    assert body["rating_avg"] == 4.0
    assert len(body["qrInfo"]) == 3
    assert body["campaigns"][0]["campaign"] == "PROMO1"
    assert body["campaigns"][0]["scans"] == 3


def test_stats_validation(client):
    response = client.get("/api/stats", params={"locationID": CAFE_SLUG, "from": "2025-06-01"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_request"

    response = client.get("/api/stats", params={"locationID": CAFE_SLUG, "from": "2025-06-02", "to": "2025-06-01"})
    assert response.status_code == 400

    response = client.get("/api/stats", params={"locationID": "nowhere", "from": "2025-06-01", "to": "2025-06-01"})
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


def test_entity_stats(client, store):
    store.put(keys.entity_locations_key("E1"), json.dumps([CAFE_SLUG, HOTEL_ID]))
    store.put(keys.stat_key(CAFE_ID, "2025-06-01", "call"), "2")
    store.put(keys.stat_key(HOTEL_ID, "2025-06-01", "call"), "1")

    response = client.get("/api/stats/entity", params={"entityID": "E1", "from": "2025-06-01", "to": "2025-06-30"})
    assert response.status_code == 200
    body = response.json()
    assert body["locations"] == [CAFE_ID, HOTEL_ID]
    assert body["days"] == {"2025-06-01": {"call": 3}}

    response = client.get("/api/stats/entity", params={"from": "2025-06-01", "to": "2025-06-30"})
    assert response.status_code == 400


def test_unhandled_fault_is_a_server_error(client):
    from fastapi.testclient import TestClient

    class Exploding:
        def location_stats(self, *args):
            raise RuntimeError("boom")

    app.dependency_overrides[get_stats] = lambda: Exploding()
    with TestClient(app, raise_server_exceptions=False) as raw_client:
        response = raw_client.get("/api/stats", params={"locationID": CAFE_SLUG, "from": "2025-06-01", "to": "2025-06-01"})
    assert response.status_code == 500
    assert response.json() == {"error": {"code": "server_error", "message": "An unexpected error occurred"}}


def test_server_error_keeps_cors_headers(client):
    from fastapi.testclient import TestClient

    class Exploding:
        def location_stats(self, *args):
            raise RuntimeError("boom")

    app.dependency_overrides[get_stats] = lambda: Exploding()
    with TestClient(app, raise_server_exceptions=False) as raw_client:
        response = raw_client.get(
            "/api/stats",
            params={"locationID": CAFE_SLUG, "from": "2025-06-01", "to": "2025-06-01"},
            headers={"Origin": "https://navigen.io"},
        )
    assert response.status_code == 500
    assert response.json()["error"]["code"] == "server_error"
    assert response.headers["access-control-allow-origin"] == "https://navigen.io"
    assert response.headers["access-control-allow-credentials"] == "true"
