from edge_analytics.schemas import CampaignDefinition
from edge_analytics.services.campaign_service import (
    find_campaign,
    is_campaign_active,
    pick_active_campaign,
)

LOC = "L1"
DAY = "2025-06-15"


def campaign(key, start=None, end=None, status=None, loc=LOC):
    return CampaignDefinition.model_validate({
        "locationID": loc,
        "campaignKey": key,
        "startDate": start,
        "endDate": end,
        "status": status,
    })


def test_window_bounds_are_inclusive():
    c = campaign("A", "2025-06-15", "2025-06-15")
    assert is_campaign_active(c, "2025-06-15")
    assert not is_campaign_active(c, "2025-06-14")
    assert not is_campaign_active(c, "2025-06-16")


def test_open_ended_windows():
    assert is_campaign_active(campaign("A"), DAY)
    assert is_campaign_active(campaign("A", start="2025-01-01"), DAY)
    assert not is_campaign_active(campaign("A", end="2025-06-14"), DAY)


def test_ended_status_excluded_case_insensitively():
    assert not is_campaign_active(campaign("A", status="Ended"), DAY)
    assert not is_campaign_active(campaign("A", status=" ENDED "), DAY)
    assert is_campaign_active(campaign("A", status="paused"), DAY)


def test_pick_returns_none_without_candidates():
    campaigns = [
        campaign("OLD", "2024-01-01", "2024-12-31"),
        campaign("GONE", status="ended"),
        campaign("ELSEWHERE", loc="L2"),
    ]
    assert pick_active_campaign(campaigns, LOC, DAY) is None
    assert pick_active_campaign([], LOC, DAY) is None


def test_latest_start_wins_regardless_of_order():
    early = campaign("EARLY", "2025-05-01", "2025-07-01")
    late = campaign("LATE", "2025-06-01", "2025-07-01")
    undated = campaign("UNDATED")
    assert pick_active_campaign([early, late, undated], LOC, DAY).campaign_key == "LATE"
    assert pick_active_campaign([undated, late, early], LOC, DAY).campaign_key == "LATE"
    assert pick_active_campaign([undated, early], LOC, DAY).campaign_key == "EARLY"


def test_equal_start_keeps_list_order():
    first = campaign("FIRST", "2025-06-01")
    second = campaign("SECOND", "2025-06-01")
    assert pick_active_campaign([first, second], LOC, DAY).campaign_key == "FIRST"
    assert pick_active_campaign([second, first], LOC, DAY).campaign_key == "SECOND"


def test_find_campaign_matches_location_and_key():
    campaigns = [campaign("A"), campaign("A", loc="L2"), campaign("B")]
    assert find_campaign(campaigns, "L2", "A").location_id == "L2"
    assert find_campaign(campaigns, LOC, "B").campaign_key == "B"
    assert find_campaign(campaigns, LOC, "C") is None


def test_loose_rows_are_typed_at_the_boundary():
    c = CampaignDefinition.model_validate({
        "locationID": " L1 ",
        "campaignKey": 42,
        "startDate": "2025-06-01T10:00:00Z",
        "endDate": "not a date",
        "discountValue": "15",
        "campaignName": {"en": "nested"},
    })
    assert c.location_id == "L1"
    assert c.campaign_key == "42"
    assert c.start_date == "2025-06-01"
    assert c.end_date is None
    assert c.discount_value == 15.0
    assert c.campaign_name is None
