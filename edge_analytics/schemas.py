"""
Pydantic schemas for stored records, external catalog rows and request bodies.

Stored JSON uses the camelCase field names the dashboard reads
(``locationID``, ``campaignKey`` ...); Python code uses snake_case.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# ============================================
# ENUMS
# ============================================
class EventKey(str, Enum):
    """Closed, ordered event vocabulary. Order is the dashboard column order."""
    LPM_OPEN = "lpm-open"
    CALL = "call"
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    TELEGRAM = "telegram"
    MESSENGER = "messenger"
    OFFICIAL = "official"
    BOOKING = "booking"
    NEWSLETTER = "newsletter"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    PINTEREST = "pinterest"
    SPOTIFY = "spotify"
    TIKTOK = "tiktok"
    YOUTUBE = "youtube"
    SHARE = "share"
    RATING = "rating"
    SAVE = "save"
    UNSAVE = "unsave"
    MAP = "map"
    QR_PRINT = "qr-print"
    QR_SCAN = "qr-scan"
    QR_VIEW = "qr-view"
    QR_REDEEM = "qr-redeem"
    REDEEM_CONFIRMATION_CASHIER = "redeem-confirmation-cashier"
    REDEEM_CONFIRMATION_CUSTOMER = "redeem-confirmation-customer"


EVENT_ORDER = [e.value for e in EventKey]

# Storage-only counter holding the sum of submitted 1-5 scores
RATING_SCORE_KEY = "rating-score"


class ScanSignal(str, Enum):
    SCAN = "scan"
    ARMED = "armed"
    REDEEM = "redeem"
    INVALID = "invalid"


class RedeemStatus(str, Enum):
    FRESH = "fresh"
    REDEEMED = "redeemed"


class RedeemOutcome(str, Enum):
    OK = "ok"
    INVALID = "invalid"


# ============================================
# HELPERS
# ============================================
_ISO_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def normalize_date(value: Any) -> Optional[str]:
    """Coerce a loose date value to ``YYYY-MM-DD``; unparseable values become None"""
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    try:
        if _ISO_DAY.match(s):
            return date.fromisoformat(s).isoformat()
        parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


def _loose_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (str, int, float)):
        return str(value).strip()
    return ""


def _optional_str(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


# ============================================
# REQUEST METADATA
# ============================================
@dataclass
class RequestMeta:
    """Coarse request metadata taken from headers at the HTTP boundary"""
    user_agent: str = ""
    language: str = ""
    country: str = ""
    city: str = ""

    @property
    def visitor(self) -> str:
        """Approximate visitor fingerprint; never includes an IP address"""
        return f"{self.user_agent}|{self.country}"


# ============================================
# STORED RECORDS
# ============================================
class ScanLogEntry(BaseModel):
    """One QR interaction. Written once, never updated."""
    model_config = ConfigDict(populate_by_name=True)

    time: str
    location_id: str = Field(alias="locationID")
    day: str
    ua: str = ""
    lang: str = ""
    country: str = ""
    city: str = ""
    source: str = "qr-scan"
    signal: ScanSignal = ScanSignal.SCAN
    visitor: str = ""
    campaign_key: str = Field("", alias="campaignKey")

    @field_validator("ua", "lang", "country", "city", "visitor", "campaign_key", mode="before")
    @classmethod
    def _loose(cls, v):
        return _loose_str(v)

    @field_validator("source", mode="before")
    @classmethod
    def _source(cls, v):
        return _loose_str(v) or "qr-scan"

    @field_validator("signal", mode="before")
    @classmethod
    def _signal(cls, v):
        # unrecognized signals from older writers count as plain scans
        try:
            return ScanSignal(_loose_str(v).lower())
        except ValueError:
            return ScanSignal.SCAN

    def visitor_key(self) -> str:
        visitor = self.visitor.strip()
        return visitor or f"{self.ua}|{self.country}"

    def primary_lang(self) -> str:
        return self.lang.split(",")[0].split(";")[0].strip()


class RedeemTokenRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    location_id: str = Field(alias="locationID")
    campaign_key: str = Field(alias="campaignKey")
    status: RedeemStatus = RedeemStatus.FRESH
    created_at: str = Field(alias="createdAt")
    redeemed_at: Optional[str] = Field(None, alias="redeemedAt")


# ============================================
# EXTERNAL CATALOG ROWS
# ============================================
class CampaignDefinition(BaseModel):
    """A promotional campaign as published in campaign.json"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    location_id: str = Field("", alias="locationID")
    campaign_key: str = Field("", alias="campaignKey")
    campaign_name: Optional[str] = Field(None, alias="campaignName")
    brand: Optional[str] = None
    context: Optional[str] = None
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")
    status: Optional[str] = None
    discount_kind: Optional[str] = Field(None, alias="discountKind")
    discount_value: Optional[float] = Field(None, alias="discountValue")

    @field_validator("location_id", "campaign_key", mode="before")
    @classmethod
    def _strip_ids(cls, v):
        return _loose_str(v)

    @field_validator("campaign_name", "brand", "context", "status", "discount_kind", mode="before")
    @classmethod
    def _text_or_none(cls, v):
        return _optional_str(v)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _dates(cls, v):
        return normalize_date(v)

    @field_validator("discount_value", mode="before")
    @classmethod
    def _discount(cls, v):
        if v is None or isinstance(v, bool):
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None

    @property
    def is_ended(self) -> bool:
        return bool(self.status) and self.status.strip().lower() == "ended"


class LocationProfile(BaseModel):
    """The subset of a profiles.json row this service reads"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    location_id: str = Field("", alias="locationID")
    id: Optional[str] = Field(None, validation_alias=AliasChoices("ID", "id"))
    location_name: Any = Field(
        None, validation_alias=AliasChoices("locationName", "name")
    )
    qr_url: Optional[str] = Field(None, alias="qrUrl")
    context: Optional[str] = None

    @field_validator("location_id", mode="before")
    @classmethod
    def _strip_slug(cls, v):
        return _loose_str(v)

    @field_validator("id", "qr_url", "context", mode="before")
    @classmethod
    def _text_or_none(cls, v):
        return _optional_str(v)

    @property
    def display_name(self) -> Optional[str]:
        name = self.location_name
        if isinstance(name, str):
            return name or None
        if isinstance(name, dict):
            for lang in ("en", "default"):
                if isinstance(name.get(lang), str):
                    return name[lang]
        return None


# ============================================
# REQUEST BODIES
# ============================================
class TrackRequest(BaseModel):
    """Beacon payload for POST /api/track"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    location_id: str = Field("", alias="locationID")
    event: str = ""
    action: Optional[str] = None
    tz: Optional[str] = None
    score: Any = Field(None, validation_alias=AliasChoices("score", "rating", "value"))

    @field_validator("location_id", "event", mode="before")
    @classmethod
    def _strip(cls, v):
        return _loose_str(v)


class PurgeLegacyRequest(BaseModel):
    mode: str = Field("merge", pattern="^(merge|burn)$")
