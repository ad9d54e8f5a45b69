"""
Tracking Router - event ingestion

- POST /api/track: beacon ingestion (JSON body, any content type)
- GET /out/{event}/{id}?to=<https url>: tracked redirect
- POST /hit/{event}/{id}: non-redirect increment
"""
import logging
import re
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import RedirectResponse

from edge_analytics.config import settings
from edge_analytics.dependencies import (
    get_counters,
    get_ratings,
    get_redemption,
    get_request_meta,
    get_resolver,
    get_scan_log,
    get_track_payload,
)
from edge_analytics.errors import ForbiddenError, InvalidRequestError, NotFoundError
from edge_analytics.schemas import EventKey, RequestMeta, TrackRequest
from edge_analytics.services.counter_service import CounterStore, day_key_for, normalize_event
from edge_analytics.services.identity_service import IdentityResolver
from edge_analytics.services.rating_service import RatingAggregator, parse_score
from edge_analytics.services.redeem_service import RedemptionService
from edge_analytics.services.scan_log_service import ScanLogService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Tracking"])

_BOT_UA = re.compile(r"(bot|crawler|spider|facebookexternalhit|twitterbot|slackbot|preview)", re.I)
_NAV_MODES = re.compile(r"navigate|same-origin", re.I)
_HTTPS_URL = re.compile(r"^https://[^\s]+$", re.I)


def is_human_navigation(request: Request) -> bool:
    """Heuristic: skip link previews, prefetches and obvious bots"""
    if request.method != "GET":
        return False
    headers = request.headers
    fetch_mode = headers.get("sec-fetch-mode", "")
    if fetch_mode and not _NAV_MODES.search(fetch_mode):
        return False
    purpose = f"{headers.get('purpose', '')} {headers.get('sec-purpose', '')}".lower()
    if "prefetch" in purpose or "prerender" in purpose:
        return False
    return not _BOT_UA.search(headers.get("user-agent", ""))


def normalize_action(action: Optional[str]) -> str:
    """Map client action names onto dashboard event keys"""
    action = (action or "").strip().lower().replace("_", "-")
    if action.startswith("nav.") or action == "route":
        return "map"
    if action.startswith("social."):
        return action[len("social."):] or "other"
    if action.startswith("share"):
        return "share"
    return action


def _require_event(raw: str) -> EventKey:
    event = normalize_event(raw)
    if event is None:
        raise InvalidRequestError("unsupported event")
    return event


def _require_location(resolver: IdentityResolver, raw: str) -> str:
    location_id = resolver.resolve(raw)
    if not location_id:
        raise NotFoundError(f"Unknown location: {raw}")
    return location_id


def _require_score(raw) -> int:
    score = parse_score(raw)
    if score is None:
        raise InvalidRequestError("rating requires an integer score 1-5")
    return score


@router.post("/api/track", status_code=204)
def track(
    payload: TrackRequest = Depends(get_track_payload),
    meta: RequestMeta = Depends(get_request_meta),
    resolver: IdentityResolver = Depends(get_resolver),
    counters: CounterStore = Depends(get_counters),
    ratings: RatingAggregator = Depends(get_ratings)
):
    """
    Beacon ingestion from navigator.sendBeacon.

    Unknown locations are accepted as a silent no-op so the endpoint does
    not reveal which slugs exist. Event names outside the vocabulary are
    rejected. ``action`` stands in for ``event`` when only an action is sent.
    """
    location_id = resolver.resolve(payload.location_id)
    if not location_id:
        return Response(status_code=204)

    raw_event = payload.event or normalize_action(payload.action)
    if not raw_event:
        raise InvalidRequestError("locationID and event required")
    event = _require_event(raw_event)
    if event is EventKey.QR_REDEEM:
        raise ForbiddenError("qr-redeem is only counted through a redemption")

    day = day_key_for(datetime.now(timezone.utc), tz=payload.tz, country=meta.country)
    if event is EventKey.RATING:
        ratings.record(location_id, day, _require_score(payload.score))
    else:
        counters.increment(location_id, day, event)
    return Response(status_code=204)


@router.get("/out/{event}/{location}")
def tracked_redirect(
    event: str,
    location: str,
    request: Request,
    to: str = Query(""),
    rt: Optional[str] = Query(None, description="Redeem token (qr-redeem only)"),
    camp: Optional[str] = Query(None, description="Campaign key (qr-redeem only)"),
    meta: RequestMeta = Depends(get_request_meta),
    resolver: IdentityResolver = Depends(get_resolver),
    counters: CounterStore = Depends(get_counters),
    scan_log: ScanLogService = Depends(get_scan_log),
    redemption: RedemptionService = Depends(get_redemption)
):
    """
    Count a human navigation, then 302 to ``to``.

    For ``qr-redeem`` the redemption flow runs instead of a plain increment
    and its outcome is appended to the target as ``redeem=ok|invalid``.
    """
    ev = _require_event(event)
    location_id = _require_location(resolver, location)
    if not _HTTPS_URL.match(to):
        raise InvalidRequestError("https to= required")

    target = to
    if is_human_navigation(request):
        if ev is EventKey.QR_REDEEM:
            outcome = redemption.redeem(rt, location_id, camp, meta)
            target = str(httpx.URL(to).copy_add_param("redeem", outcome.value))
        else:
            try:
                day = day_key_for(datetime.now(timezone.utc), country=meta.country)
                counters.increment(location_id, day, ev)
            except Exception as e:
                logger.warning(f"Redirect count failed for {location_id}/{ev.value}: {e}")
            if ev is EventKey.QR_SCAN:
                scan_log.log_scan(location_id, meta)

    return RedirectResponse(target, status_code=302, headers={"Cache-Control": "no-store"})


@router.post("/hit/{event}/{location}")
def hit(
    event: str,
    location: str,
    request: Request,
    score: Optional[str] = Query(None, description="Rating score 1-5 (rating only)"),
    rt: Optional[str] = Query(None, description="Redeem token (qr-redeem only)"),
    camp: Optional[str] = Query(None, description="Campaign key (qr-redeem only)"),
    meta: RequestMeta = Depends(get_request_meta),
    resolver: IdentityResolver = Depends(get_resolver),
    counters: CounterStore = Depends(get_counters),
    ratings: RatingAggregator = Depends(get_ratings),
    scan_log: ScanLogService = Depends(get_scan_log),
    redemption: RedemptionService = Depends(get_redemption)
):
    """
    Non-redirect increment.

    ``qr-redeem`` is reserved for internal callers that send the marker
    header; it runs the redemption flow and returns ``{"status": ...}``.
    """
    ev = _require_event(event)
    location_id = _require_location(resolver, location)

    if ev is EventKey.QR_REDEEM:
        if not request.headers.get(settings.INTERNAL_REDEEM_HEADER):
            raise ForbiddenError("qr-redeem requires an internal caller")
        outcome = redemption.redeem(rt, location_id, camp, meta)
        return {"status": outcome.value}

    day = day_key_for(datetime.now(timezone.utc), country=meta.country)
    if ev is EventKey.RATING:
        ratings.record(location_id, day, _require_score(score))
    else:
        counters.increment(location_id, day, ev)
    if ev is EventKey.QR_SCAN:
        scan_log.log_scan(location_id, meta, day=day)
    return Response(status_code=204)
