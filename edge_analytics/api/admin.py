"""
Admin Router - bearer-gated maintenance jobs over the key namespace
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends

from edge_analytics.dependencies import get_catalog, get_maintenance, verify_admin_token
from edge_analytics.schemas import PurgeLegacyRequest
from edge_analytics.services.catalog_service import CatalogService
from edge_analytics.services.maintenance_service import MaintenanceService

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(verify_admin_token)]
)


@router.post("/purge-legacy")
def purge_legacy(
    payload: Optional[PurgeLegacyRequest] = None,
    maintenance: MaintenanceService = Depends(get_maintenance)
):
    """
    Fold or delete underscore-spelled event counters.

    - merge (default): add each legacy value into its hyphenated key, then delete it
    - burn: delete legacy keys outright
    """
    mode = payload.mode if payload is not None else "merge"
    return maintenance.purge_legacy(mode)


@router.post("/backfill-slug-stats")
def backfill_slug_stats(maintenance: MaintenanceService = Depends(get_maintenance)):
    """Move counters still keyed by slug onto canonical-ID keys"""
    return maintenance.backfill_slug_stats()


@router.post("/seed-alias-ulids")
def seed_alias_ulids(
    maintenance: MaintenanceService = Depends(get_maintenance),
    catalog: CatalogService = Depends(get_catalog)
):
    """Write deterministic canonical IDs for every profile slug in the catalog"""
    profiles = catalog.load_profiles()
    return maintenance.seed_aliases(profiles)
