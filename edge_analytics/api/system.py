"""
System Router - health checks and location status
"""
import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query

from edge_analytics.db import keys
from edge_analytics.db.kv import KVStore
from edge_analytics.dependencies import get_resolver, get_store
from edge_analytics.errors import InvalidRequestError, NotFoundError
from edge_analytics.services.identity_service import IdentityResolver

logger = logging.getLogger(__name__)
router = APIRouter(tags=["System"])

DEFAULT_STATUS = {"status": "free", "tier": "free"}


@router.get("/api/health")
def health_check(store: KVStore = Depends(get_store)):
    """Machine-readable health of the service and its key-value store"""
    redis_status = "unhealthy"
    try:
        if store.ping():
            redis_status = "healthy"
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")

    return {
        "status": "ok" if redis_status == "healthy" else "degraded",
        "redis": redis_status,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    }


@router.get("/api/status")
def location_status(
    location_id: str = Query("", alias="locationID"),
    store: KVStore = Depends(get_store),
    resolver: IdentityResolver = Depends(get_resolver)
):
    """Plan status of a location; locations without a record are on the free tier"""
    raw = (location_id or "").strip()
    if not raw:
        raise InvalidRequestError("locationID required")
    canonical = resolver.resolve(raw)
    if not canonical:
        raise NotFoundError(f"Unknown location: {raw}")

    record = dict(DEFAULT_STATUS)
    stored = store.get(keys.status_key(canonical))
    if stored:
        try:
            parsed = json.loads(stored)
        except ValueError:
            logger.warning(f"Malformed status record for {canonical}")
            parsed = None
        if isinstance(parsed, dict):
            for field_name in ("status", "tier"):
                if parsed.get(field_name):
                    record[field_name] = str(parsed[field_name])
    return {"locationID": canonical, **record}
