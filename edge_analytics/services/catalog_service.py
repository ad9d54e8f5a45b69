"""
Catalog Service - externally owned location profiles and campaign definitions

Both documents are published by the main site (``/data/profiles.json`` and
``/data/campaign.json``). They are fetched with httpx, retried on transient
failures, and cached briefly in the KV store. Loose JSON rows are parsed into
typed records here and nowhere else.
"""
import json
import logging
from typing import Any, Iterable, List, Optional

import httpx
from pydantic import ValidationError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from edge_analytics.config import settings
from edge_analytics.db import keys
from edge_analytics.db.kv import KVStore
from edge_analytics.errors import UpstreamError
from edge_analytics.schemas import CampaignDefinition, LocationProfile
from edge_analytics.services.identity_service import IdentityResolver

logger = logging.getLogger(__name__)

PROFILES_PATH = "/data/profiles.json"
CAMPAIGNS_PATH = "/data/campaign.json"


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


def _profile_rows(document: Any) -> List[Any]:
    """``locations`` may be a list or an id -> row map"""
    locations = document.get("locations") if isinstance(document, dict) else None
    if isinstance(locations, list):
        return locations
    if isinstance(locations, dict):
        return list(locations.values())
    return []


def _campaign_rows(document: Any) -> List[Any]:
    if isinstance(document, list):
        return document
    if isinstance(document, dict) and isinstance(document.get("campaigns"), list):
        return document["campaigns"]
    return []


def parse_profiles(document: Any) -> List[LocationProfile]:
    profiles = []
    for row in _profile_rows(document):
        if not isinstance(row, dict):
            continue
        try:
            profiles.append(LocationProfile.model_validate(row))
        except ValidationError as e:
            logger.debug(f"Skipping malformed profile row: {e}")
    return profiles


def parse_campaigns(
    document: Any,
    resolver: Optional[IdentityResolver] = None
) -> List[CampaignDefinition]:
    """
    Parse campaign rows, dropping rows without a location or key.

    With a resolver, ``locationID`` is normalized to the canonical ID and rows
    whose location cannot be resolved are dropped.
    """
    campaigns = []
    for row in _campaign_rows(document):
        if not isinstance(row, dict):
            continue
        try:
            campaign = CampaignDefinition.model_validate(row)
        except ValidationError as e:
            logger.debug(f"Skipping malformed campaign row: {e}")
            continue
        if not campaign.location_id or not campaign.campaign_key:
            continue
        if resolver is not None:
            canonical = resolver.resolve(campaign.location_id)
            if not canonical:
                logger.debug(f"Campaign {campaign.campaign_key} has unknown location {campaign.location_id}")
                continue
            campaign.location_id = canonical
        campaigns.append(campaign)
    return campaigns


def find_profile(
    profiles: Iterable[LocationProfile],
    raw_id: str,
    canonical_id: Optional[str] = None,
    resolver: Optional[IdentityResolver] = None
) -> Optional[LocationProfile]:
    """Match by slug or stored ID; a canonical ID is mapped back to its slug as a last resort"""
    profiles = list(profiles)
    wanted = {v for v in (raw_id, canonical_id) if v}
    for profile in profiles:
        if profile.location_id in wanted or (profile.id and profile.id in wanted):
            return profile
    if canonical_id and resolver is not None:
        slug = resolver.find_slug(canonical_id)
        if slug:
            for profile in profiles:
                if profile.location_id == slug:
                    return profile
    return None


class CatalogService:
    """Fetches and caches the site's profile and campaign documents"""

    def __init__(
        self,
        store: KVStore,
        origin: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        cache_ttl: Optional[int] = None,
        timeout: Optional[float] = None
    ):
        self.store = store
        self.origin = (origin or settings.SITE_ORIGIN).rstrip("/")
        self._transport = transport
        self._cache_ttl = cache_ttl if cache_ttl is not None else settings.CATALOG_CACHE_TTL_SEC
        self._timeout = timeout or settings.CATALOG_TIMEOUT_SEC

    def _get_cached(self, name: str) -> Optional[Any]:
        try:
            cached = self.store.get(keys.cache_key(name))
            if cached:
                return json.loads(cached)
        except Exception as e:
            logger.warning(f"Catalog cache read error for {name}: {e}")
        return None

    def _set_cached(self, name: str, body: str) -> None:
        if not self._cache_ttl:
            return
        try:
            self.store.put(keys.cache_key(name), body, ttl=self._cache_ttl)
        except Exception as e:
            logger.warning(f"Catalog cache write error for {name}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception(_is_transient),
        reraise=True
    )
    def _fetch(self, path: str) -> str:
        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            response = client.get(
                f"{self.origin}{path}",
                headers={"Accept": "application/json"}
            )
            response.raise_for_status()
            return response.text

    def _load_document(self, name: str, path: str) -> Any:
        cached = self._get_cached(name)
        if cached is not None:
            logger.debug(f"Catalog cache hit for {name}")
            return cached
        body = self._fetch(path)
        document = json.loads(body)
        self._set_cached(name, body)
        return document

    def load_profiles(self) -> List[LocationProfile]:
        """Load profiles.json; raises UpstreamError when it cannot be fetched"""
        try:
            document = self._load_document("profiles", PROFILES_PATH)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"profiles.json not reachable: {e}")
            raise UpstreamError("profiles.json not reachable")
        return parse_profiles(document)

    def load_campaigns(self, resolver: Optional[IdentityResolver] = None) -> List[CampaignDefinition]:
        """Load campaign.json; any failure degrades to an empty list"""
        try:
            document = self._load_document("campaigns", CAMPAIGNS_PATH)
        except Exception as e:
            logger.warning(f"campaign.json not reachable, continuing without campaigns: {e}")
            return []
        return parse_campaigns(document, resolver)

    def location_name(
        self,
        raw_id: str,
        canonical_id: Optional[str] = None,
        resolver: Optional[IdentityResolver] = None
    ) -> Optional[str]:
        """Best-effort display name; None when the catalog is unavailable"""
        try:
            profiles = self.load_profiles()
        except UpstreamError:
            return None
        profile = find_profile(profiles, raw_id, canonical_id, resolver)
        return profile.display_name if profile else None
