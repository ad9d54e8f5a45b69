"""
Stats Service - range queries over counters and scan logs

Folds ``stats:`` counters into a day -> event matrix and ``qrlog:`` entries
into a newest-first scan list plus per-campaign aggregates. Every listing
pages through the store with a cursor; nothing assumes a bounded read.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import ValidationError

from edge_analytics.config import settings
from edge_analytics.db import keys
from edge_analytics.db.kv import KVStore
from edge_analytics.errors import InvalidRequestError, NotFoundError
from edge_analytics.schemas import (
    CampaignDefinition,
    EVENT_ORDER,
    EventKey,
    RATING_SCORE_KEY,
    ScanLogEntry,
    ScanSignal,
)
from edge_analytics.services.campaign_service import find_campaign
from edge_analytics.services.catalog_service import CatalogService
from edge_analytics.services.counter_service import normalize_event, parse_count
from edge_analytics.services.identity_service import IdentityResolver
from edge_analytics.services.rating_service import rating_average

logger = logging.getLogger(__name__)

NO_CAMPAIGN_BUCKET = "_no_campaign"
_ISO_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_range(date_from: str, date_to: str) -> Tuple[str, str]:
    """Both bounds must be ISO calendar dates with from <= to"""
    date_from = (date_from or "").strip()
    date_to = (date_to or "").strip()
    if not _ISO_DAY.match(date_from) or not _ISO_DAY.match(date_to):
        raise InvalidRequestError("from, to required (YYYY-MM-DD)")
    try:
        start = date.fromisoformat(date_from)
        end = date.fromisoformat(date_to)
    except ValueError:
        raise InvalidRequestError("from, to must be valid calendar dates")
    if start > end:
        raise InvalidRequestError("from must not be after to")
    return date_from, date_to


@dataclass
class CounterTotals:
    days: Dict[str, Dict[str, int]] = field(default_factory=dict)
    rated_sum: int = 0
    rating_score_sum: int = 0

    @property
    def rating_avg(self) -> float:
        return rating_average(self.rated_sum, self.rating_score_sum)


@dataclass
class CampaignAggregate:
    """Per-campaign fold of scan log entries; lives only for one request"""
    campaign_key: str
    armed: int = 0
    scans: int = 0
    redemptions: int = 0
    invalids: int = 0
    unique_visitors: Set[str] = field(default_factory=set)
    repeat_visitors: Set[str] = field(default_factory=set)
    unique_redeemers: Set[str] = field(default_factory=set)
    repeat_redeemers: Set[str] = field(default_factory=set)
    langs: Set[str] = field(default_factory=set)
    countries: Set[str] = field(default_factory=set)

    def add(self, entry: ScanLogEntry) -> None:
        if entry.signal == ScanSignal.ARMED:
            self.armed += 1
        elif entry.signal == ScanSignal.REDEEM:
            self.redemptions += 1
        elif entry.signal == ScanSignal.INVALID:
            self.invalids += 1
        else:
            self.scans += 1

        visitor = entry.visitor_key()
        if visitor:
            if visitor in self.unique_visitors:
                self.repeat_visitors.add(visitor)
            else:
                self.unique_visitors.add(visitor)
            if entry.signal == ScanSignal.REDEEM:
                if visitor in self.unique_redeemers:
                    self.repeat_redeemers.add(visitor)
                else:
                    self.unique_redeemers.add(visitor)

        lang = entry.primary_lang()
        if lang:
            self.langs.add(lang)
        if entry.country:
            self.countries.add(entry.country)

    def to_row(self, meta: Optional[CampaignDefinition], date_from: str, date_to: str) -> Dict[str, Any]:
        if meta and meta.start_date and meta.end_date:
            period = f"{meta.start_date} → {meta.end_date}"
        else:
            period = f"{date_from} → {date_to}"
        return {
            "campaign": self.campaign_key,
            "campaignName": (meta.campaign_name or "") if meta else "",
            "target": (meta.context or "") if meta else "",
            "brand": (meta.brand or "") if meta else "",
            "period": period,
            "armed": self.armed,
            "scans": self.scans,
            "redemptions": self.redemptions,
            "invalids": self.invalids,
            "uniqueVisitors": len(self.unique_visitors),
            "repeatVisitors": len(self.repeat_visitors),
            "uniqueRedeemers": len(self.unique_redeemers),
            "repeatRedeemers": len(self.repeat_redeemers),
            "locations": len(self.countries),
            "countries": sorted(self.countries),
            "devices": [],
            "langs": sorted(self.langs),
            "signals": {},
        }


class StatsService:
    def __init__(self, store: KVStore, resolver: IdentityResolver, catalog: CatalogService):
        self.store = store
        self.resolver = resolver
        self.catalog = catalog

    def fold_counters(
        self,
        location_id: str,
        date_from: str,
        date_to: str,
        totals: Optional[CounterTotals] = None
    ) -> CounterTotals:
        """Add every in-range counter of one location to ``totals``"""
        if totals is None:
            totals = CounterTotals()
        for name in self.store.iter_keys(keys.stats_prefix(location_id)):
            parsed = keys.split_day_key(name)
            if parsed is None or parsed.location_id != location_id:
                continue
            if parsed.day < date_from or parsed.day > date_to:
                continue

            raw_event = parsed.tail.replace("_", "-")
            if raw_event == RATING_SCORE_KEY:
                totals.rating_score_sum += parse_count(self.store.get(name))
                continue

            event = normalize_event(raw_event)
            if event is None:
                continue
            count = parse_count(self.store.get(name))
            day_bucket = totals.days.setdefault(parsed.day, {})
            day_bucket[event.value] = day_bucket.get(event.value, 0) + count
            if event is EventKey.RATING:
                totals.rated_sum += count
        return totals

    def scan_entries(self, location_id: str, date_from: str, date_to: str) -> List[Tuple[str, ScanLogEntry]]:
        """In-range (scanId, entry) pairs; malformed entries are skipped"""
        entries = []
        for name in self.store.iter_keys(keys.qrlog_prefix(location_id)):
            parsed = keys.split_day_key(name)
            if parsed is None or parsed.day < date_from or parsed.day > date_to:
                continue
            raw = self.store.get(name)
            if not raw:
                continue
            try:
                entry = ScanLogEntry.model_validate_json(raw)
            except ValidationError:
                logger.debug(f"Skipping malformed scan log {name}")
                continue
            if entry.location_id != location_id:
                continue
            entries.append((parsed.tail, entry))
        return entries

    def location_stats(
        self,
        location_raw: str,
        date_from: str,
        date_to: str,
        tz: Optional[str] = None
    ) -> Dict[str, Any]:
        location_raw = (location_raw or "").strip()
        if not location_raw:
            raise InvalidRequestError("locationID, from, to required (YYYY-MM-DD)")
        date_from, date_to = validate_range(date_from, date_to)
        location_id = self.resolver.resolve(location_raw)
        if not location_id:
            raise NotFoundError(f"Unknown location: {location_raw}")

        totals = self.fold_counters(location_id, date_from, date_to)
        campaigns = self.catalog.load_campaigns(self.resolver)

        qr_info = []
        aggregates: Dict[str, CampaignAggregate] = {}
        for scan_id, entry in self.scan_entries(location_id, date_from, date_to):
            qr_info.append({
                "time": entry.time,
                "source": entry.source,
                "location": entry.country,
                "city": entry.city,
                "device": entry.ua,
                "browser": entry.ua,
                "lang": entry.lang,
                "scanId": scan_id,
                "visitor": entry.visitor,
                "campaign": entry.campaign_key,
                "signal": entry.signal.value,
            })
            bucket = entry.campaign_key or NO_CAMPAIGN_BUCKET
            if bucket not in aggregates:
                aggregates[bucket] = CampaignAggregate(campaign_key=entry.campaign_key)
            aggregates[bucket].add(entry)

        # ISO-8601 UTC strings sort chronologically
        qr_info.sort(key=lambda row: row["time"], reverse=True)

        campaign_rows = [
            agg.to_row(find_campaign(campaigns, location_id, agg.campaign_key), date_from, date_to)
            for _, agg in sorted(aggregates.items(), key=lambda kv: (kv[0] == NO_CAMPAIGN_BUCKET, kv[0]))
        ]

        return {
            "locationID": location_id,
            "locationName": self.catalog.location_name(location_raw, location_id, self.resolver),
            "from": date_from,
            "to": date_to,
            "tz": tz or settings.TZ_FALLBACK,
            "order": EVENT_ORDER,
            "days": totals.days,
            "rated_sum": totals.rated_sum,
            "rating_avg": totals.rating_avg,
            "qrInfo": qr_info,
            "campaigns": campaign_rows,
        }

    def entity_locations(self, entity_id: str) -> List[str]:
        raw = self.store.get(keys.entity_locations_key(entity_id))
        if not raw:
            return []
        try:
            members = json.loads(raw)
        except ValueError:
            logger.warning(f"Malformed location list for entity {entity_id}")
            return []
        if not isinstance(members, list):
            return []
        resolved = []
        for member in members:
            location_id = self.resolver.resolve(str(member)) if member else None
            if location_id and location_id not in resolved:
                resolved.append(location_id)
        return resolved

    def entity_stats(
        self,
        entity_id: str,
        date_from: str,
        date_to: str,
        tz: Optional[str] = None
    ) -> Dict[str, Any]:
        entity_id = (entity_id or "").strip()
        if not entity_id:
            raise InvalidRequestError("entityID, from, to required (YYYY-MM-DD)")
        date_from, date_to = validate_range(date_from, date_to)

        locations = self.entity_locations(entity_id)
        totals = CounterTotals()
        for location_id in locations:
            self.fold_counters(location_id, date_from, date_to, totals)

        return {
            "entityID": entity_id,
            "locations": locations,
            "from": date_from,
            "to": date_to,
            "tz": tz or settings.TZ_FALLBACK,
            "order": EVENT_ORDER,
            "days": totals.days,
            "rated_sum": totals.rated_sum,
            "rating_avg": totals.rating_avg,
        }
