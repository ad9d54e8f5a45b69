"""
Shared fixtures: an in-memory Redis, a catalog served by httpx.MockTransport,
and a TestClient wired to both through dependency overrides.
"""
import json

import fakeredis
import httpx
import pytest
from fastapi.testclient import TestClient

from edge_analytics.config import settings
from edge_analytics.db.kv import KVStore
from edge_analytics.dependencies import get_catalog, get_store
from edge_analytics.main import app
from edge_analytics.schemas import RequestMeta
from edge_analytics.services.catalog_service import CatalogService
from edge_analytics.services.counter_service import CounterStore
from edge_analytics.services.identity_service import IdentityResolver
from edge_analytics.services.scan_log_service import ScanLogService

CAFE_SLUG = "my-cafe"
CAFE_ID = "06A1YABW0103WA44T8RVABKK2G"
HOTEL_SLUG = "hotel-budapest"
HOTEL_ID = "06A1YABW0124W606PQNN6X73C4"

CATALOG_ORIGIN = "https://catalog.test"


def make_profiles():
    return {
        "locations": [
            {
                "locationID": CAFE_SLUG,
                "locationName": {"en": "My Cafe", "hu": "Kávézóm"},
                "qrUrl": "https://navigen.io/?lp=my-cafe&src=qr",
            },
            {
                "locationID": HOTEL_SLUG,
                "locationName": "Hotel Budapest",
            },
        ]
    }


def make_campaigns():
    return [
        {
            "locationID": CAFE_SLUG,
            "campaignKey": "PROMO1",
            "campaignName": "Spring coffee",
            "brand": "My Cafe",
            "context": "coffee",
            "startDate": "2000-01-01",
            "endDate": "2999-12-31",
            "status": "active",
        }
    ]


class CatalogDocuments:
    """Mutable documents behind the mock transport; tests edit them in place"""

    def __init__(self):
        self.profiles = make_profiles()
        self.campaigns = make_campaigns()
        self.status = {}
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        override = self.status.get(path)
        if override:
            return httpx.Response(override, text="unavailable")
        if path == "/data/profiles.json":
            return httpx.Response(200, text=json.dumps(self.profiles))
        if path == "/data/campaign.json":
            return httpx.Response(200, text=json.dumps(self.campaigns))
        return httpx.Response(404, text="not found")


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def store(redis_client):
    return KVStore(redis_client, scan_count=10)


@pytest.fixture
def documents():
    return CatalogDocuments()


@pytest.fixture
def catalog(store, documents):
    return CatalogService(
        store,
        origin=CATALOG_ORIGIN,
        transport=httpx.MockTransport(documents.handler),
        cache_ttl=0
    )


@pytest.fixture
def resolver(store):
    return IdentityResolver(store)


@pytest.fixture
def seeded(resolver):
    """Alias records for the two catalog locations"""
    resolver.put_alias(CAFE_SLUG, CAFE_ID)
    resolver.put_alias(HOTEL_SLUG, HOTEL_ID)
    return resolver


@pytest.fixture
def counters(store):
    return CounterStore(store)


@pytest.fixture
def scan_log(store, catalog, resolver):
    return ScanLogService(store, campaign_loader=lambda: catalog.load_campaigns(resolver))


@pytest.fixture
def meta():
    return RequestMeta(
        user_agent="Mozilla/5.0 (iPhone)",
        language="hu-HU,hu;q=0.9,en;q=0.8",
        country="HU",
        city="Budapest",
    )


@pytest.fixture
def client(store, catalog, seeded):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_catalog] = lambda: catalog
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {settings.ADMIN_TOKEN}"}
