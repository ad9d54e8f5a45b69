"""
Key layout for the shared namespace.

    alias:<slug>                          -> {"locationID": <canonical>}
    stats:<loc>:<YYYY-MM-DD>:<event>      -> integer counter
    qrlog:<loc>:<YYYY-MM-DD>:<scanId>     -> ScanLogEntry JSON
    redeem:<token>                        -> RedeemToken JSON
    status:<loc>                          -> {"status", "tier"}
    entity:<entityID>:locations           -> [locationID, ...]
    cache:catalog:<name>                  -> cached external JSON
"""
from typing import NamedTuple, Optional

ALIAS_PREFIX = "alias:"
STATS_PREFIX = "stats:"
QRLOG_PREFIX = "qrlog:"
REDEEM_PREFIX = "redeem:"
STATUS_PREFIX = "status:"
CACHE_PREFIX = "cache:catalog:"


class DayKey(NamedTuple):
    """A parsed 4-part ``<ns>:<loc>:<day>:<tail>`` key"""
    location_id: str
    day: str
    tail: str


def alias_key(slug: str) -> str:
    return f"{ALIAS_PREFIX}{slug}"


def stat_key(location_id: str, day: str, event: str) -> str:
    return f"{STATS_PREFIX}{location_id}:{day}:{event}"


def stats_prefix(location_id: str) -> str:
    return f"{STATS_PREFIX}{location_id}:"


def qrlog_key(location_id: str, day: str, scan_id: str) -> str:
    return f"{QRLOG_PREFIX}{location_id}:{day}:{scan_id}"


def qrlog_prefix(location_id: str) -> str:
    return f"{QRLOG_PREFIX}{location_id}:"


def redeem_key(token: str) -> str:
    return f"{REDEEM_PREFIX}{token}"


def status_key(location_id: str) -> str:
    return f"{STATUS_PREFIX}{location_id}"


def entity_locations_key(entity_id: str) -> str:
    return f"entity:{entity_id}:locations"


def cache_key(name: str) -> str:
    return f"{CACHE_PREFIX}{name}"


def split_day_key(name: str) -> Optional[DayKey]:
    """Split a stats/qrlog key; anything that is not exactly 4 parts is None"""
    parts = name.split(":")
    if len(parts) != 4:
        return None
    return DayKey(location_id=parts[1], day=parts[2], tail=parts[3])
