"""
Campaign Service - picks the promotional campaign that applies to a location/day
"""
from typing import Iterable, List, Optional

from edge_analytics.schemas import CampaignDefinition


def is_campaign_active(campaign: CampaignDefinition, day: str) -> bool:
    """Not ended, and ``day`` inside [startDate, endDate] where those are set"""
    if campaign.is_ended:
        return False
    if campaign.start_date and day < campaign.start_date:
        return False
    if campaign.end_date and day > campaign.end_date:
        return False
    return True


def active_campaigns(
    campaigns: Iterable[CampaignDefinition],
    location_id: str,
    day: str
) -> List[CampaignDefinition]:
    return [
        c for c in campaigns
        if c.location_id == location_id and is_campaign_active(c, day)
    ]


def pick_active_campaign(
    campaigns: Iterable[CampaignDefinition],
    location_id: str,
    day: str
) -> Optional[CampaignDefinition]:
    """
    Return the campaign that applies to ``location_id`` on ``day``.

    When several overlap, the most recently started one wins; a campaign
    without a start date ranks as the oldest. Equal start dates keep the
    input order.
    """
    best: Optional[CampaignDefinition] = None
    for campaign in active_campaigns(campaigns, location_id, day):
        if best is None or (campaign.start_date or "") > (best.start_date or ""):
            best = campaign
    return best


def find_campaign(
    campaigns: Iterable[CampaignDefinition],
    location_id: str,
    campaign_key: str
) -> Optional[CampaignDefinition]:
    for campaign in campaigns:
        if campaign.location_id == location_id and campaign.campaign_key == campaign_key:
            return campaign
    return None
