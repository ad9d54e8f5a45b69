"""
FastAPI dependencies for the edge analytics service
"""
import secrets
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, Request
from pydantic import ValidationError

from edge_analytics.config import settings
from edge_analytics.db.kv import KVStore
from edge_analytics.errors import ForbiddenError, InvalidRequestError, UnauthorizedError
from edge_analytics.schemas import RequestMeta, TrackRequest
from edge_analytics.services.catalog_service import CatalogService
from edge_analytics.services.counter_service import CounterStore
from edge_analytics.services.identity_service import IdentityResolver
from edge_analytics.services.maintenance_service import MaintenanceService
from edge_analytics.services.rating_service import RatingAggregator
from edge_analytics.services.redeem_service import RedeemTokenStore, RedemptionService
from edge_analytics.services.scan_log_service import ScanLogService
from edge_analytics.services.stats_service import StatsService


@lru_cache()
def get_store() -> KVStore:
    """Shared store; redis-py keeps its own connection pool"""
    return KVStore.from_url(settings.REDIS_URL)


def get_catalog(store: KVStore = Depends(get_store)) -> CatalogService:
    return CatalogService(store)


def get_resolver(store: KVStore = Depends(get_store)) -> IdentityResolver:
    return IdentityResolver(store)


def get_counters(store: KVStore = Depends(get_store)) -> CounterStore:
    return CounterStore(store)


def get_ratings(counters: CounterStore = Depends(get_counters)) -> RatingAggregator:
    return RatingAggregator(counters)


def get_scan_log(
    store: KVStore = Depends(get_store),
    catalog: CatalogService = Depends(get_catalog),
    resolver: IdentityResolver = Depends(get_resolver)
) -> ScanLogService:
    return ScanLogService(store, campaign_loader=lambda: catalog.load_campaigns(resolver))


def get_tokens(store: KVStore = Depends(get_store)) -> RedeemTokenStore:
    return RedeemTokenStore(store)


def get_redemption(
    tokens: RedeemTokenStore = Depends(get_tokens),
    counters: CounterStore = Depends(get_counters),
    scan_log: ScanLogService = Depends(get_scan_log),
    catalog: CatalogService = Depends(get_catalog),
    resolver: IdentityResolver = Depends(get_resolver)
) -> RedemptionService:
    return RedemptionService(
        tokens,
        counters,
        scan_log,
        campaign_loader=lambda: catalog.load_campaigns(resolver)
    )


def get_stats(
    store: KVStore = Depends(get_store),
    resolver: IdentityResolver = Depends(get_resolver),
    catalog: CatalogService = Depends(get_catalog)
) -> StatsService:
    return StatsService(store, resolver, catalog)


def get_maintenance(
    store: KVStore = Depends(get_store),
    resolver: IdentityResolver = Depends(get_resolver),
    counters: CounterStore = Depends(get_counters)
) -> MaintenanceService:
    return MaintenanceService(store, resolver, counters)


async def verify_admin_token(authorization: Optional[str] = Header(None)) -> str:
    """Bearer token for administrative batch endpoints"""
    if not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("Bearer token required")
    token = authorization[len("Bearer "):].strip()
    if not token or not secrets.compare_digest(token.encode(), settings.ADMIN_TOKEN.encode()):
        raise ForbiddenError("Bad token")
    return token


def get_request_meta(request: Request) -> RequestMeta:
    """Coarse visitor metadata from request headers; no IP is read"""
    headers = request.headers
    return RequestMeta(
        user_agent=headers.get("user-agent", ""),
        language=headers.get("accept-language", ""),
        country=headers.get(settings.COUNTRY_HEADER, "").strip().upper(),
        city=headers.get(settings.CITY_HEADER, "").strip(),
    )


async def get_track_payload(request: Request) -> TrackRequest:
    """
    Beacon body as TrackRequest.

    navigator.sendBeacon posts strings as ``text/plain``, so the body is
    parsed as JSON whatever the declared content type.
    """
    body = await request.body()
    try:
        return TrackRequest.model_validate_json(body)
    except ValidationError:
        raise InvalidRequestError("JSON body required")
