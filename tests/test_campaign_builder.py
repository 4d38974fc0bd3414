from datetime import datetime, timezone

import pytest

from campaign_engine.errors import AuthorizationError, ConfigurationError, RemoteFatalError, ValidationError
from campaign_engine.schemas.campaigns import CampaignIntent
from campaign_engine.services.campaign_builder import (
    AccountIds,
    CampaignBuilder,
    default_creative_strategies,
    derive_adset_params,
    is_plan_complete,
)

FIXED_NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _ids(**overrides) -> AccountIds:
    values = {"ad_account_id": "act_123", "page_id": "page_1", "instagram_actor_id": "ig_1"}
    values.update(overrides)
    return AccountIds(**values)


def _intent(objective: str = "TRAFFIC", **overrides) -> CampaignIntent:
    data = {
        "name": "Monsoon Offer",
        "objective": objective,
        "budget": {"amount": 500, "currency": "INR"},
        "destination": {"websiteUrl": "https://sunrise.example.com"},
        "adSets": [
            {
                "creative": {
                    "imageUrl": "https://cdn.example.com/monsoon.jpg",
                    "primaryText": "Fresh laundry, delivered.",
                    "headline": "20% off this week",
                }
            }
        ],
    }
    data.update(overrides)
    return CampaignIntent.model_validate(data)


def _builder(fake_meta, ids=None) -> CampaignBuilder:
    return CampaignBuilder(fake_meta, ids or _ids(), now=lambda: FIXED_NOW)


def test_build_traffic_campaign_creates_full_chain(fake_meta):
    result = _builder(fake_meta).build(_intent())

    assert result.ok is True
    assert result.requestedObjective == "TRAFFIC"
    assert result.effectiveObjective == "TRAFFIC"
    assert len(result.adSetIds) == 1
    assert len(result.creativeIds) == 1
    assert len(result.adIds) == 1

    campaign = fake_meta.calls_to("create_campaign")[0]["payload"]
    assert campaign["objective"] == "OUTCOME_TRAFFIC"
    assert campaign["special_ad_categories"] == []
    assert campaign["status"] == "PAUSED"

    adset = fake_meta.calls_to("create_adset")[0]["payload"]
    assert adset["campaign_id"] == result.campaignId
    assert adset["optimization_goal"] == "LINK_CLICKS"
    assert adset["billing_event"] == "IMPRESSIONS"
    assert adset["daily_budget"] == 50000
    assert adset["start_time"] == FIXED_NOW.isoformat()
    assert "end_time" not in adset
    assert adset["targeting"]["geo_locations"] == {"countries": ["IN"]}
    assert adset["targeting"]["publisher_platforms"] == ["facebook", "instagram"]

    story = fake_meta.calls_to("create_adcreative")[0]["payload"]["object_story_spec"]
    assert story["page_id"] == "page_1"
    assert story["instagram_actor_id"] == "ig_1"
    assert story["link_data"]["link"] == "https://sunrise.example.com"
    assert story["link_data"]["call_to_action"]["type"] == "LEARN_MORE"

    ad = fake_meta.calls_to("create_ad")[0]["payload"]
    assert ad["adset_id"] == result.adSetIds[0]
    assert ad["creative"] == {"creative_id": result.creativeIds[0]}


def test_build_falls_back_to_next_objective(fake_meta, meta_error):
    fake_meta.fail("create_campaign", meta_error("Invalid parameter: objective not allowed"))
    intent = _intent("LEADS", destination={"websiteUrl": "https://sunrise.example.com", "leadFormId": "form_1"})

    result = _builder(fake_meta).build(intent)

    objectives_tried = [call["payload"]["objective"] for call in fake_meta.calls_to("create_campaign")]
    assert objectives_tried == ["OUTCOME_LEADS", "OUTCOME_TRAFFIC"]
    assert result.requestedObjective == "LEADS"
    assert result.effectiveObjective == "TRAFFIC"
    assert result.attempts[0].label == "LEADS"
    assert result.attempts[0].ok is False
    assert result.attempts[0].code == 100
    # Ad set parameters follow the objective that was actually created.
    assert fake_meta.calls_to("create_adset")[0]["payload"]["optimization_goal"] == "LINK_CLICKS"


def test_creative_fallback_reuses_adset_with_same_placements(fake_meta, meta_error):
    fake_meta.fail("create_adcreative", meta_error("Instagram account is not valid for this page"))

    result = _builder(fake_meta).build(_intent())

    creatives = fake_meta.calls_to("create_adcreative")
    assert len(creatives) == 2
    assert "instagram_actor_id" in creatives[0]["payload"]["object_story_spec"]
    assert "instagram_actor_id" not in creatives[1]["payload"]["object_story_spec"]
    assert len(fake_meta.calls_to("create_adset")) == 1
    assert len(result.adSetIds) == 1
    assert [a.label for a in result.attempts][-2:] == ["feed_and_stream_with_instagram_actor", "feed_and_stream"]


def test_creative_fallback_to_facebook_only_creates_new_adset(fake_meta, meta_error):
    rejection = meta_error("Invalid parameter: placement not supported")
    fake_meta.fail("create_adcreative", rejection, rejection)

    result = _builder(fake_meta).build(_intent())

    adsets = fake_meta.calls_to("create_adset")
    assert len(adsets) == 2
    assert adsets[1]["payload"]["targeting"]["publisher_platforms"] == ["facebook"]
    assert len(fake_meta.calls_to("create_adcreative")) == 3
    assert len(fake_meta.calls_to("create_ad")) == 1
    assert fake_meta.calls_to("create_ad")[0]["payload"]["adset_id"] == result.adSetIds[-1]


def test_sales_without_pixel_fails_before_any_remote_call(fake_meta):
    with pytest.raises(ConfigurationError):
        _builder(fake_meta).build(_intent("SALES"))

    assert fake_meta.calls == []


def test_missing_destination_url_fails_before_any_remote_call(fake_meta):
    intent = _intent(destination={})

    with pytest.raises(ValidationError):
        _builder(fake_meta).build(intent)

    assert fake_meta.calls == []


def test_destination_falls_back_to_business_website(fake_meta):
    intent = _intent(destination={})

    _builder(fake_meta, _ids(business_website="https://stored.example.com")).build(intent)

    story = fake_meta.calls_to("create_adcreative")[0]["payload"]["object_story_spec"]
    assert story["link_data"]["link"] == "https://stored.example.com"


def test_lead_form_without_form_id_fails_before_any_remote_call(fake_meta):
    with pytest.raises(ConfigurationError):
        _builder(fake_meta).build(_intent("LEADS"))

    assert fake_meta.calls == []


def test_missing_ad_account_is_configuration_error(fake_meta):
    with pytest.raises(ConfigurationError):
        _builder(fake_meta, _ids(ad_account_id=None)).build(_intent())

    assert fake_meta.calls == []


def test_preflight_failure_is_authorization_error(fake_meta, meta_error):
    fake_meta.fail("get_ad_account", meta_error("Unsupported get request", code=100, subcode=33))

    with pytest.raises(AuthorizationError) as excinfo:
        _builder(fake_meta).build(_intent())

    assert excinfo.value.details == {"code": 100, "subcode": 33}
    assert [name for name, _ in fake_meta.calls] == ["get_ad_account"]


def test_fatal_campaign_error_stops_immediately(fake_meta, meta_error):
    fake_meta.fail("create_campaign", meta_error("Error validating access token", code=190))

    with pytest.raises(RemoteFatalError) as excinfo:
        _builder(fake_meta).build(_intent())

    assert excinfo.value.code == 190
    assert len(fake_meta.calls_to("create_campaign")) == 1
    assert fake_meta.calls_to("create_adset") == []


def test_ad_failure_reports_created_resources(fake_meta, meta_error):
    fake_meta.fail("create_ad", meta_error("Ad account is disabled", code=2635))

    with pytest.raises(RemoteFatalError) as excinfo:
        _builder(fake_meta).build(_intent())

    created = excinfo.value.created
    assert created["campaignId"]
    assert len(created["adSetIds"]) == 1
    assert len(created["creativeIds"]) == 1
    assert created["adIds"] == []


def test_call_ads_use_normalized_phone(fake_meta):
    intent = _intent(destination={"phone": "98765 43210", "conversionLocation": "CALL"})

    _builder(fake_meta).build(intent)

    adset = fake_meta.calls_to("create_adset")[0]["payload"]
    assert adset["optimization_goal"] == "QUALITY_CALL"
    assert adset["destination_type"] == "PHONE_CALL"
    assert adset["promoted_object"] == {"page_id": "page_1"}
    link_data = fake_meta.calls_to("create_adcreative")[0]["payload"]["object_story_spec"]["link_data"]
    assert link_data["link"] == "tel:+919876543210"
    assert link_data["call_to_action"]["type"] == "CALL_NOW"


def test_call_ads_without_phone_fail_validation(fake_meta):
    intent = _intent(destination={"conversionLocation": "CALL"})

    with pytest.raises(ValidationError):
        _builder(fake_meta).build(intent)

    assert fake_meta.calls == []


def test_lifetime_budget_requires_duration(fake_meta):
    intent = _intent(budget={"amount": 3500, "type": "LIFETIME"})

    with pytest.raises(ValidationError):
        _builder(fake_meta).build(intent)

    assert fake_meta.calls == []


def test_lifetime_budget_sets_schedule(fake_meta):
    intent = _intent(budget={"amount": 3500, "type": "LIFETIME"}, durationDays=7)

    _builder(fake_meta).build(intent)

    adset = fake_meta.calls_to("create_adset")[0]["payload"]
    assert adset["lifetime_budget"] == 350000
    assert "daily_budget" not in adset
    assert adset["end_time"] == datetime(2026, 1, 8, tzinfo=timezone.utc).isoformat()


def test_awareness_uses_photo_creative(fake_meta):
    result = _builder(fake_meta).build(_intent("AWARENESS", destination={}))

    assert result.effectiveObjective == "AWARENESS"
    assert fake_meta.calls_to("create_adset")[0]["payload"]["optimization_goal"] == "REACH"
    story = fake_meta.calls_to("create_adcreative")[0]["payload"]["object_story_spec"]
    assert story["photo_data"] == {
        "url": "https://cdn.example.com/monsoon.jpg",
        "caption": "Fresh laundry, delivered.",
    }
    assert "link_data" not in story


def test_awareness_links_out_then_falls_back_to_photo(fake_meta, meta_error):
    rejection = meta_error("Invalid parameter: placement not supported")
    fake_meta.fail("create_adcreative", rejection, rejection, rejection)

    result = _builder(fake_meta).build(_intent("AWARENESS"))

    stories = [call["payload"]["object_story_spec"] for call in fake_meta.calls_to("create_adcreative")]
    assert len(stories) == 4
    assert stories[-2] != stories[-1]
    assert stories[-2]["link_data"]["link"] == "https://sunrise.example.com"
    assert "photo_data" not in stories[-2]
    assert stories[-1]["photo_data"]["url"] == "https://cdn.example.com/monsoon.jpg"
    assert "link_data" not in stories[-1]
    assert result.attempts[-1].label == "facebook_feed_photo_only"
    # Photo only shares the facebook feed placements, so its ad set is reused.
    assert len(fake_meta.calls_to("create_adset")) == 2


def test_instagram_actor_strategy_skipped_without_actor_id(fake_meta, meta_error):
    fake_meta.fail("create_adcreative", meta_error("Invalid parameter: placement not supported"))

    result = _builder(fake_meta, _ids(instagram_actor_id=None)).build(_intent())

    stories = [call["payload"]["object_story_spec"] for call in fake_meta.calls_to("create_adcreative")]
    assert len(stories) == 2
    assert all("instagram_actor_id" not in story for story in stories)
    assert len(fake_meta.calls_to("create_adset")) == 2
    assert [a.label for a in result.attempts][-2:] == ["feed_and_stream", "facebook_feed_only"]


def test_each_adset_descriptor_gets_its_own_adset(fake_meta):
    creative = {"imageUrl": "https://cdn.example.com/a.jpg", "primaryText": "Fresh laundry"}
    intent = _intent(adSets=[{"name": "Young", "creative": creative}, {"name": "Senior", "creative": creative}])

    result = _builder(fake_meta).build(intent)

    assert len(result.adSetIds) == 2
    assert len(set(result.adSetIds)) == 2
    assert len(result.adIds) == 2


def test_awareness_has_photo_only_last_resort():
    strategies = default_creative_strategies("AWARENESS")

    assert [s.label for s in strategies] == [
        "feed_and_stream_with_instagram_actor",
        "feed_and_stream",
        "facebook_feed_only",
        "facebook_feed_photo_only",
    ]
    assert strategies[0].signature() == strategies[1].signature()
    assert strategies[1].signature() != strategies[2].signature()
    assert len(default_creative_strategies("TRAFFIC")) == 3


def test_derive_adset_params_mapping():
    ids = _ids(pixel_id="px_1", app_id="app_1", app_store_url="https://play.google.com/store/apps/details?id=x")

    assert derive_adset_params("LEADS", "WEBSITE", ids).promoted_object == {
        "pixel_id": "px_1",
        "custom_event_type": "LEAD",
    }
    assert derive_adset_params("LEADS", None, ids).optimization_goal == "LEAD_GENERATION"
    assert derive_adset_params("SALES", None, ids).promoted_object["custom_event_type"] == "PURCHASE"
    whatsapp = derive_adset_params("ENGAGEMENT", "whatsapp", ids)
    assert whatsapp.optimization_goal == "CONVERSATIONS"
    assert whatsapp.destination_type == "WHATSAPP"
    assert derive_adset_params("ENGAGEMENT", "WEBSITE", ids).optimization_goal == "POST_ENGAGEMENT"
    assert derive_adset_params("APP_PROMOTION", None, ids).optimization_goal == "APP_INSTALLS"


def test_derive_adset_params_requires_ids():
    with pytest.raises(ConfigurationError):
        derive_adset_params("LEADS", "WEBSITE", _ids())
    with pytest.raises(ConfigurationError):
        derive_adset_params("APP_PROMOTION", None, _ids())


def test_is_plan_complete():
    plan = {
        "name": "Plan",
        "objective": "TRAFFIC",
        "adSets": [
            {"creative": {"destinationUrl": "https://x.example.com", "headline": "H", "primaryText": "P"}}
        ],
    }
    assert is_plan_complete(plan)
    plan["adSets"][0]["creative"]["headline"] = ""
    assert not is_plan_complete(plan)
    assert not is_plan_complete({})
    assert not is_plan_complete(None)
