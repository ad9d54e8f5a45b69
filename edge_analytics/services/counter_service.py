"""
Counter Service - per-location, per-day event counters

Counters are bucketed by the location's local calendar day, not the UTC day,
so a venue's "today" lines up with its opening hours.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from edge_analytics.config import settings
from edge_analytics.db import keys
from edge_analytics.db.kv import KVStore
from edge_analytics.schemas import EventKey

logger = logging.getLogger(__name__)

# Coarse edge country -> IANA zone
TZ_BY_COUNTRY = {
    "HU": "Europe/Budapest",
    "DE": "Europe/Berlin",
    "AT": "Europe/Vienna",
    "CH": "Europe/Zurich",
    "GB": "Europe/London",
    "IE": "Europe/Dublin",
    "FR": "Europe/Paris",
    "IT": "Europe/Rome",
    "ES": "Europe/Madrid",
    "NL": "Europe/Amsterdam",
    "BE": "Europe/Brussels",
    "PL": "Europe/Warsaw",
    "CZ": "Europe/Prague",
    "SK": "Europe/Bratislava",
    "RO": "Europe/Bucharest",
    "HR": "Europe/Zagreb",
    "SI": "Europe/Ljubljana",
    "PT": "Europe/Lisbon",
}


def _load_zone(name: Optional[str]) -> Optional[ZoneInfo]:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug(f"Unknown timezone {name!r}")
        return None


def day_key_for(
    instant: datetime,
    tz: Optional[str] = None,
    country: Optional[str] = None,
    fallback: Optional[str] = None
) -> str:
    """
    Resolve the local ``YYYY-MM-DD`` for a UTC instant.

    Priority: explicit tz, the country's zone, the fallback zone, then the
    UTC date if no candidate can be loaded.
    """
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    candidates = (
        tz,
        TZ_BY_COUNTRY.get((country or "").strip().upper()),
        fallback if fallback is not None else settings.TZ_FALLBACK,
    )
    for name in candidates:
        zone = _load_zone(name)
        if zone is not None:
            return instant.astimezone(zone).date().isoformat()
    return instant.astimezone(timezone.utc).date().isoformat()


def normalize_event(raw: Optional[str]) -> Optional[EventKey]:
    """Lowercase, hyphenate legacy underscores, and map onto the vocabulary"""
    name = (raw or "").strip().lower().replace("_", "-")
    try:
        return EventKey(name)
    except ValueError:
        return None


def parse_count(raw: Optional[str]) -> int:
    try:
        return int(raw or 0)
    except (TypeError, ValueError):
        return 0


class CounterStore:
    """
    Read-increment-write counters over the KV store.

    Not atomic: two concurrent increments of one key can both read N and both
    write N+1, losing an update. Counts are approximate analytics, so the race
    is accepted. Every counter write goes through this class, which is the
    single place to change if the backend gains an atomic increment.
    """

    def __init__(self, store: KVStore, ttl: Optional[int] = None):
        self.store = store
        self.ttl = ttl or settings.COUNTER_TTL_SEC

    def get(self, location_id: str, day: str, key: str) -> int:
        return parse_count(self.store.get(keys.stat_key(location_id, day, key)))

    def add(self, location_id: str, day: str, key: str, amount: int) -> int:
        return self.add_to_key(keys.stat_key(location_id, day, key), amount)

    def add_to_key(self, name: str, amount: int) -> int:
        current = parse_count(self.store.get(name))
        value = current + amount
        self.store.put(name, str(value), ttl=self.ttl)
        return value

    def increment(self, location_id: str, day: str, event: EventKey) -> int:
        return self.add(location_id, day, EventKey(event).value, 1)
