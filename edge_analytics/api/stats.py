"""
Stats Router - dashboard range queries
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from edge_analytics.dependencies import get_stats
from edge_analytics.services.stats_service import StatsService

router = APIRouter(tags=["Stats"])


@router.get("/api/stats")
def location_stats(
    location_id: str = Query("", alias="locationID"),
    date_from: str = Query("", alias="from"),
    date_to: str = Query("", alias="to"),
    tz: Optional[str] = Query(None, description="IANA zone the dashboard renders in"),
    stats: StatsService = Depends(get_stats)
):
    """
    Per-day counters, scan log rows and campaign aggregates for one location.

    ``locationID`` accepts a slug or canonical ID; the response always carries
    the canonical ID.
    """
    return stats.location_stats(location_id, date_from, date_to, tz)


@router.get("/api/stats/entity")
def entity_stats(
    entity_id: str = Query("", alias="entityID"),
    date_from: str = Query("", alias="from"),
    date_to: str = Query("", alias="to"),
    tz: Optional[str] = Query(None),
    stats: StatsService = Depends(get_stats)
):
    """Counters of every location belonging to an entity, folded together"""
    return stats.entity_stats(entity_id, date_from, date_to, tz)
