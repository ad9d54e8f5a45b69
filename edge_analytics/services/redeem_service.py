"""
Redeem Service - one-time promotion tokens and the redemption flow

Token lifecycle: fresh -> redeemed (terminal). Any consume request that does
not match a fresh token exactly is rejected without changing the record.

Like the counters, the fresh -> redeemed transition is read-then-write on an
eventually consistent store. Two consume calls racing on one fresh token can
both read ``fresh`` and both succeed. That double redemption is an accepted
risk at this scale; there is no lock to take.
"""
import logging
import secrets
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import ValidationError

from edge_analytics.config import settings
from edge_analytics.db import keys
from edge_analytics.db.kv import KVStore
from edge_analytics.schemas import (
    CampaignDefinition,
    EventKey,
    RedeemOutcome,
    RedeemStatus,
    RedeemTokenRecord,
    RequestMeta,
)
from edge_analytics.services.campaign_service import find_campaign, is_campaign_active
from edge_analytics.services.counter_service import CounterStore, day_key_for
from edge_analytics.services.scan_log_service import ScanLogService

logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class RedeemTokenStore:
    """Create and consume single-use redeem tokens"""

    def __init__(self, store: KVStore, ttl: Optional[int] = None):
        self.store = store
        self.ttl = ttl or settings.REDEEM_TOKEN_TTL_SEC

    def create(self, location_id: str, campaign_key: str) -> str:
        token = secrets.token_urlsafe(16)
        record = RedeemTokenRecord(
            location_id=location_id,
            campaign_key=campaign_key,
            status=RedeemStatus.FRESH,
            created_at=_utc_now_iso(),
        )
        self.store.put(keys.redeem_key(token), record.model_dump_json(by_alias=True), ttl=self.ttl)
        return token

    def get(self, token: str) -> Optional[RedeemTokenRecord]:
        if not token:
            return None
        raw = self.store.get(keys.redeem_key(token))
        if not raw:
            return None
        try:
            return RedeemTokenRecord.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"Malformed redeem token record for {token[:6]}...")
            return None

    def consume(self, token: str, location_id: str, campaign_key: str) -> RedeemOutcome:
        record = self.get(token)
        if record is None:
            return RedeemOutcome.INVALID
        if record.status != RedeemStatus.FRESH:
            return RedeemOutcome.INVALID
        if record.location_id != location_id or record.campaign_key != campaign_key:
            return RedeemOutcome.INVALID

        record.status = RedeemStatus.REDEEMED
        record.redeemed_at = _utc_now_iso()
        self.store.put(keys.redeem_key(token), record.model_dump_json(by_alias=True), ttl=self.ttl)
        return RedeemOutcome.OK


class RedemptionService:
    """
    Physical redemption of a promotion.

    A redemption only counts when the named campaign is active for the
    location on the local day and the token consumes cleanly. Every rejected
    attempt is logged with signal ``invalid``.
    """

    def __init__(
        self,
        tokens: RedeemTokenStore,
        counters: CounterStore,
        scan_log: ScanLogService,
        campaign_loader: Callable[[], List[CampaignDefinition]]
    ):
        self.tokens = tokens
        self.counters = counters
        self.scan_log = scan_log
        self.campaign_loader = campaign_loader

    def redeem(
        self,
        token: Optional[str],
        location_id: str,
        campaign_key: Optional[str],
        meta: RequestMeta,
        now: Optional[datetime] = None
    ) -> RedeemOutcome:
        now = now or datetime.now(timezone.utc)
        day = day_key_for(now, country=meta.country)
        campaign_key = (campaign_key or "").strip()

        campaign = find_campaign(self.campaign_loader(), location_id, campaign_key) if campaign_key else None
        if not token or campaign is None or not is_campaign_active(campaign, day):
            logger.info(f"Rejected redemption for {location_id}: no active campaign {campaign_key!r}")
            self.scan_log.log_invalid(location_id, meta, campaign_key=campaign_key, now=now, day=day)
            return RedeemOutcome.INVALID

        outcome = self.tokens.consume(token, location_id, campaign_key)
        if outcome is RedeemOutcome.OK:
            self.counters.increment(location_id, day, EventKey.QR_REDEEM)
            self.scan_log.log_redeem(location_id, meta, campaign_key=campaign_key, now=now, day=day)
        else:
            logger.info(f"Rejected redemption for {location_id}: token not redeemable")
            self.scan_log.log_invalid(location_id, meta, campaign_key=campaign_key, now=now, day=day)
        return outcome
