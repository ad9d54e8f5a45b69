"""
QR Router - printable location QR codes and one-time promotion QR codes
"""
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query, Response

from edge_analytics.config import settings
from edge_analytics.dependencies import (
    get_catalog,
    get_request_meta,
    get_resolver,
    get_scan_log,
    get_tokens,
)
from edge_analytics.errors import InvalidRequestError, NotFoundError, UpstreamError
from edge_analytics.schemas import RequestMeta
from edge_analytics.services.campaign_service import (
    find_campaign,
    is_campaign_active,
    pick_active_campaign,
)
from edge_analytics.services.catalog_service import CatalogService, find_profile
from edge_analytics.services.counter_service import day_key_for
from edge_analytics.services.identity_service import IdentityResolver, is_canonical
from edge_analytics.services.qr_service import FORMATS, clamp_size, render_qr
from edge_analytics.services.redeem_service import RedeemTokenStore
from edge_analytics.services.scan_log_service import ScanLogService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["QR"])


def _resolve(resolver: IdentityResolver, raw: str) -> str:
    raw = (raw or "").strip()
    if not raw:
        raise InvalidRequestError("locationID required")
    location_id = resolver.resolve(raw)
    if not location_id:
        raise NotFoundError(f"Unknown location: {raw}")
    return location_id


def landing_url(
    catalog: CatalogService,
    resolver: IdentityResolver,
    raw_id: str,
    location_id: str,
    strict: bool = True
) -> str:
    """
    Page a scanned code should land on: the profile's ``qrUrl`` when set,
    otherwise the site's location page for the slug.

    With ``strict`` an unreachable profile catalog raises UpstreamError;
    otherwise the slug fallback is used.
    """
    profile = None
    try:
        profile = find_profile(catalog.load_profiles(), raw_id, location_id, resolver)
    except UpstreamError:
        if strict:
            raise
    if profile is not None and profile.qr_url:
        return profile.qr_url

    slug = raw_id if not is_canonical(raw_id) else (resolver.find_slug(location_id) or location_id)
    return str(httpx.URL(f"{settings.SITE_ORIGIN.rstrip('/')}/", params={"lp": slug}))


def _image_response(data: str, fmt: str, size: Optional[int]) -> Response:
    try:
        body, media_type = render_qr(data, fmt, clamp_size(size or settings.QR_DEFAULT_SIZE))
    except ValueError as e:
        raise InvalidRequestError(str(e))
    return Response(content=body, media_type=media_type, headers={"Cache-Control": "no-store"})


@router.get("/api/qr")
def location_qr(
    location_id: str = Query("", alias="locationID"),
    fmt: str = Query("svg", description="svg or png"),
    size: Optional[int] = Query(None, description="Pixel size, clamped to 128-1024"),
    resolver: IdentityResolver = Depends(get_resolver),
    catalog: CatalogService = Depends(get_catalog)
):
    """
    QR code for a location's printed material.

    The code encodes a tracked ``/out/qr-scan`` link so every scan is counted
    before the visitor lands on the location page.
    """
    fmt = (fmt or "svg").lower()
    if fmt not in FORMATS:
        raise InvalidRequestError("fmt must be svg or png")
    raw = (location_id or "").strip()
    canonical = _resolve(resolver, raw)
    target = landing_url(catalog, resolver, raw, canonical)

    payload = httpx.URL(
        f"{settings.PUBLIC_BASE_URL.rstrip('/')}/out/qr-scan/{canonical}",
        params={"to": target}
    )
    return _image_response(str(payload), fmt, size)


@router.get("/api/promo-qr")
def promo_qr(
    location_id: str = Query("", alias="locationID"),
    campaign_key: Optional[str] = Query(None, alias="campaignKey"),
    fmt: str = Query("json", description="json, svg or png"),
    size: Optional[int] = Query(None),
    meta: RequestMeta = Depends(get_request_meta),
    resolver: IdentityResolver = Depends(get_resolver),
    catalog: CatalogService = Depends(get_catalog),
    tokens: RedeemTokenStore = Depends(get_tokens),
    scan_log: ScanLogService = Depends(get_scan_log)
):
    """
    Arm a promotion: mint a fresh redeem token for the named (or currently
    active) campaign and return its redeem URL, as JSON or as a QR image.

    Every call mints a new token and logs an ``armed`` scan log entry.
    """
    fmt = (fmt or "json").lower()
    if fmt != "json" and fmt not in FORMATS:
        raise InvalidRequestError("fmt must be json, svg or png")
    raw = (location_id or "").strip()
    canonical = _resolve(resolver, raw)

    now = datetime.now(timezone.utc)
    day = day_key_for(now, country=meta.country)
    campaigns = catalog.load_campaigns(resolver)
    campaign_key = (campaign_key or "").strip()
    if campaign_key:
        campaign = find_campaign(campaigns, canonical, campaign_key)
        if campaign is not None and not is_campaign_active(campaign, day):
            campaign = None
    else:
        campaign = pick_active_campaign(campaigns, canonical, day)
    if campaign is None:
        raise NotFoundError("No active campaign for this location")

    token = tokens.create(canonical, campaign.campaign_key)
    scan_log.log_armed(canonical, meta, campaign_key=campaign.campaign_key, now=now, day=day)
    logger.info(f"Armed promotion {campaign.campaign_key} for {canonical}")

    redeem_url = httpx.URL(
        f"{settings.PUBLIC_BASE_URL.rstrip('/')}/out/qr-redeem/{canonical}",
        params={
            "camp": campaign.campaign_key,
            "rt": token,
            "to": landing_url(catalog, resolver, raw, canonical, strict=False),
        }
    )
    if fmt == "json":
        return {
            "locationID": canonical,
            "campaignKey": campaign.campaign_key,
            "token": token,
            "redeemUrl": str(redeem_url),
        }
    return _image_response(str(redeem_url), fmt, size)
