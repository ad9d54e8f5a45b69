"""
Scan Log Service - per-interaction QR records for attribution and campaign analytics

Entries live under ``qrlog:<loc>:<day>:<scanId>`` and expire on their own.
Logging is best-effort: nothing in this module raises into the caller.
"""
import logging
import secrets
from datetime import datetime, timezone
from typing import Callable, List, Optional

from edge_analytics.config import settings
from edge_analytics.db import keys
from edge_analytics.db.kv import KVStore
from edge_analytics.schemas import (
    CampaignDefinition,
    RequestMeta,
    ScanLogEntry,
    ScanSignal,
)
from edge_analytics.services.campaign_service import pick_active_campaign
from edge_analytics.services.counter_service import day_key_for

logger = logging.getLogger(__name__)

CampaignLoader = Callable[[], List[CampaignDefinition]]


def new_scan_id() -> str:
    return secrets.token_hex(6)


class ScanLogService:
    """
    Writes ScanLogEntry records.

    ``campaign_loader`` is called lazily, only when an entry needs its
    campaign derived, so a plain scan with a known campaign costs no fetch.
    """

    def __init__(
        self,
        store: KVStore,
        campaign_loader: Optional[CampaignLoader] = None,
        ttl: Optional[int] = None
    ):
        self.store = store
        self.campaign_loader = campaign_loader
        self.ttl = ttl or settings.SCAN_LOG_TTL_SEC

    def _derive_campaign(self, location_id: str, day: str) -> str:
        if self.campaign_loader is None:
            return ""
        campaign = pick_active_campaign(self.campaign_loader(), location_id, day)
        return campaign.campaign_key if campaign else ""

    def log(
        self,
        location_id: str,
        meta: RequestMeta,
        signal: ScanSignal,
        campaign_key: Optional[str] = None,
        source: str = "qr-scan",
        now: Optional[datetime] = None,
        day: Optional[str] = None
    ) -> Optional[ScanLogEntry]:
        try:
            now = now or datetime.now(timezone.utc)
            day = day or day_key_for(now, country=meta.country)
            if campaign_key is None:
                campaign_key = self._derive_campaign(location_id, day)
            scan_id = new_scan_id()
            entry = ScanLogEntry(
                time=now.isoformat().replace("+00:00", "Z"),
                location_id=location_id,
                day=day,
                ua=meta.user_agent,
                lang=meta.language,
                country=meta.country,
                city=meta.city,
                source=source,
                signal=signal,
                visitor=meta.visitor,
                campaign_key=campaign_key,
            )
            self.store.put(
                keys.qrlog_key(location_id, day, scan_id),
                entry.model_dump_json(by_alias=True),
                ttl=self.ttl
            )
            return entry
        except Exception as e:
            logger.warning(f"Scan log write failed for {location_id} ({signal.value}): {e}")
            return None

    def log_scan(self, location_id: str, meta: RequestMeta, **kwargs) -> Optional[ScanLogEntry]:
        return self.log(location_id, meta, ScanSignal.SCAN, **kwargs)

    def log_armed(self, location_id: str, meta: RequestMeta, **kwargs) -> Optional[ScanLogEntry]:
        return self.log(location_id, meta, ScanSignal.ARMED, source="promo-qr", **kwargs)

    def log_redeem(self, location_id: str, meta: RequestMeta, **kwargs) -> Optional[ScanLogEntry]:
        return self.log(location_id, meta, ScanSignal.REDEEM, source="qr-redeem", **kwargs)

    def log_invalid(self, location_id: str, meta: RequestMeta, **kwargs) -> Optional[ScanLogEntry]:
        return self.log(location_id, meta, ScanSignal.INVALID, source="qr-redeem", **kwargs)
