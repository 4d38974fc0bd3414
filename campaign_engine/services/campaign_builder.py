from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from campaign_engine.config import settings
from campaign_engine.errors import (
    AuthorizationError,
    CampaignEngineError,
    ConfigurationError,
    RemoteFatalError,
    ValidationError,
)
from campaign_engine.schemas.campaigns import (
    AdSetDescriptor,
    BuildResult,
    Budget,
    CampaignIntent,
    StrategyAttempt,
)
from campaign_engine.services import objectives
from campaign_engine.services.extraction import normalize_phone
from campaign_engine.services.fallbacks import Strategy, run_fallback_chain
from campaign_engine.services.meta_ads import MetaAdsClient, MetaAdsError

logger = logging.getLogger("meta.campaigns")

WEBSITE = "WEBSITE"
CALL = "CALL"
LEAD_FORM = "LEAD_FORM"
MESSENGER = "MESSENGER"
WHATSAPP = "WHATSAPP"
ON_POST = "ON_POST"
APP = "APP"

_DEFAULT_LOCATION = {
    objectives.TRAFFIC: WEBSITE,
    objectives.LEADS: LEAD_FORM,
    objectives.SALES: WEBSITE,
    objectives.ENGAGEMENT: ON_POST,
    objectives.AWARENESS: None,
    objectives.APP_PROMOTION: APP,
}
_SUPPORTED_LOCATIONS = {
    objectives.TRAFFIC: {WEBSITE, CALL},
    objectives.LEADS: {LEAD_FORM, WEBSITE, CALL},
    objectives.SALES: {WEBSITE},
    objectives.ENGAGEMENT: {ON_POST, MESSENGER, WHATSAPP, CALL},
    objectives.AWARENESS: {None},
    objectives.APP_PROMOTION: {APP},
}

LEAD_FORM_LINK = "https://fb.me/"


@dataclass
class AccountIds:
    ad_account_id: Optional[str]
    page_id: Optional[str] = None
    instagram_actor_id: Optional[str] = None
    pixel_id: Optional[str] = None
    app_id: Optional[str] = None
    app_store_url: Optional[str] = None
    lead_form_id: Optional[str] = None
    business_website: Optional[str] = None
    business_phone: Optional[str] = None

    @classmethod
    def from_connection(cls, connection: Any) -> "AccountIds":
        return cls(
            ad_account_id=connection.fb_ad_account_id,
            page_id=connection.fb_page_id,
            instagram_actor_id=connection.instagram_actor_id or connection.ig_business_id,
            pixel_id=connection.pixel_id,
            app_id=connection.app_id,
            app_store_url=connection.app_store_url,
            business_website=connection.business_website,
            business_phone=connection.business_phone,
        )


@dataclass
class AdSetParams:
    objective: str
    conversion_location: Optional[str]
    optimization_goal: str
    billing_event: str = "IMPRESSIONS"
    destination_type: Optional[str] = None
    promoted_object: Optional[dict[str, Any]] = None


def resolve_conversion_location(objective: str, hint: Optional[str]) -> Optional[str]:
    location = hint.strip().upper() if hint else None
    if location in _SUPPORTED_LOCATIONS[objective]:
        return location
    return _DEFAULT_LOCATION[objective]


def _require(value: Optional[str], message: str) -> str:
    if not value:
        raise ConfigurationError(message)
    return value


def derive_adset_params(objective: str, conversion_location: Optional[str], ids: AccountIds) -> AdSetParams:
    """Ad set optimization settings for an effective objective. Raises ConfigurationError when a required id is missing."""
    location = resolve_conversion_location(objective, conversion_location)

    if location == CALL:
        page_id = _require(ids.page_id, "A Facebook page id is required for call ads.")
        return AdSetParams(
            objective=objective,
            conversion_location=location,
            optimization_goal="QUALITY_CALL",
            destination_type="PHONE_CALL",
            promoted_object={"page_id": page_id},
        )

    if objective == objectives.TRAFFIC:
        return AdSetParams(objective, location, optimization_goal="LINK_CLICKS", destination_type="WEBSITE")

    if objective == objectives.LEADS:
        if location == WEBSITE:
            pixel_id = _require(ids.pixel_id, "A Meta pixel id is required for website lead campaigns.")
            return AdSetParams(
                objective,
                location,
                optimization_goal="OFFSITE_CONVERSIONS",
                destination_type="WEBSITE",
                promoted_object={"pixel_id": pixel_id, "custom_event_type": "LEAD"},
            )
        page_id = _require(ids.page_id, "A Facebook page id is required for lead form campaigns.")
        return AdSetParams(
            objective,
            location,
            optimization_goal="LEAD_GENERATION",
            destination_type="ON_AD",
            promoted_object={"page_id": page_id},
        )

    if objective == objectives.SALES:
        pixel_id = _require(ids.pixel_id, "A Meta pixel id is required for sales campaigns.")
        return AdSetParams(
            objective,
            location,
            optimization_goal="OFFSITE_CONVERSIONS",
            destination_type="WEBSITE",
            promoted_object={"pixel_id": pixel_id, "custom_event_type": "PURCHASE"},
        )

    if objective == objectives.ENGAGEMENT:
        if location in (MESSENGER, WHATSAPP):
            page_id = _require(ids.page_id, "A Facebook page id is required for messaging campaigns.")
            return AdSetParams(
                objective,
                location,
                optimization_goal="CONVERSATIONS",
                destination_type=location,
                promoted_object={"page_id": page_id},
            )
        return AdSetParams(objective, location, optimization_goal="POST_ENGAGEMENT", destination_type="ON_POST")

    if objective == objectives.AWARENESS:
        return AdSetParams(objective, location, optimization_goal="REACH")

    if objective == objectives.APP_PROMOTION:
        app_id = _require(ids.app_id, "An application id is required for app promotion campaigns.")
        store_url = _require(ids.app_store_url, "An app store URL is required for app promotion campaigns.")
        return AdSetParams(
            objective,
            location,
            optimization_goal="APP_INSTALLS",
            promoted_object={"application_id": app_id, "object_store_url": store_url},
        )

    raise ConfigurationError(f"Unsupported objective: {objective}")


@dataclass(frozen=True)
class CreativeStrategy:
    label: str
    publisher_platforms: tuple[str, ...]
    facebook_positions: tuple[str, ...] = ()
    instagram_positions: tuple[str, ...] = ()
    use_instagram_actor: bool = False
    photo_only: bool = False

    def placements(self) -> dict[str, Any]:
        placements: dict[str, Any] = {"publisher_platforms": list(self.publisher_platforms)}
        if self.facebook_positions:
            placements["facebook_positions"] = list(self.facebook_positions)
        if self.instagram_positions:
            placements["instagram_positions"] = list(self.instagram_positions)
        return placements

    def signature(self) -> str:
        return json.dumps(self.placements(), sort_keys=True)


def default_creative_strategies(objective: str) -> list[CreativeStrategy]:
    strategies = [
        CreativeStrategy(
            label="feed_and_stream_with_instagram_actor",
            publisher_platforms=("facebook", "instagram"),
            facebook_positions=("feed",),
            instagram_positions=("stream",),
            use_instagram_actor=True,
        ),
        CreativeStrategy(
            label="feed_and_stream",
            publisher_platforms=("facebook", "instagram"),
            facebook_positions=("feed",),
            instagram_positions=("stream",),
        ),
        CreativeStrategy(
            label="facebook_feed_only",
            publisher_platforms=("facebook",),
            facebook_positions=("feed",),
        ),
    ]
    if objective == objectives.AWARENESS:
        strategies.append(
            CreativeStrategy(
                label="facebook_feed_photo_only",
                publisher_platforms=("facebook",),
                facebook_positions=("feed",),
                photo_only=True,
            )
        )
    return strategies


@dataclass
class CreatedAssets:
    """
    Remote ids created during one build, for reporting only.

    Ad sets are reused by placement signature within a single ad set descriptor. Separate
    descriptors always get their own ad sets since each carries its own targeting and budget.
    """

    campaign_id: Optional[str] = None
    adset_ids: list[str] = field(default_factory=list)
    creative_ids: list[str] = field(default_factory=list)
    ad_ids: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "campaignId": self.campaign_id,
            "adSetIds": list(self.adset_ids),
            "creativeIds": list(self.creative_ids),
            "adIds": list(self.ad_ids),
        }


def _require_id(response: dict[str, Any], what: str) -> str:
    resource_id = response.get("id") if isinstance(response, dict) else None
    if not resource_id:
        raise MetaAdsError(f"Meta {what} response did not include an id.", error_payload=response)
    return str(resource_id)


def is_plan_complete(plan: Optional[dict[str, Any]]) -> bool:
    if not plan:
        return False
    ad_sets = plan.get("adSets") or []
    creative = (ad_sets[0] or {}).get("creative") if ad_sets else None
    creative = creative or {}
    return bool(
        plan.get("name")
        and plan.get("objective")
        and creative.get("destinationUrl")
        and creative.get("headline")
        and creative.get("primaryText")
    )


class CampaignBuilder:
    """Creates campaign -> ad set -> creative -> ad for a resolved intent, with objective and creative fallbacks."""

    def __init__(
        self,
        client: MetaAdsClient,
        ids: AccountIds,
        *,
        strategy_factory: Callable[[str], list[CreativeStrategy]] = default_creative_strategies,
        status: Optional[str] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.client = client
        self.ids = ids
        self.strategy_factory = strategy_factory
        self.status = status or settings.META_DEFAULT_CAMPAIGN_STATUS
        self.now = now

    def _precheck(self, intent: CampaignIntent, objective: str) -> None:
        if not self.ids.ad_account_id:
            raise ConfigurationError("No ad account is connected. Please connect and sync your Meta business.")
        if not self.ids.page_id:
            raise ConfigurationError("No Facebook page is connected. Please sync your Meta business assets.")
        for descriptor in intent.adSets:
            location = descriptor.conversionLocation or intent.destination.conversionLocation
            params = derive_adset_params(objective, location, self.ids)
            self._budget_fields(descriptor.budget or intent.budget, intent.durationDays)
            self._resolve_destination(params, intent, descriptor)

    def _preflight(self) -> None:
        try:
            self.client.get_ad_account(ad_account_id=self.ids.ad_account_id)
        except MetaAdsError as exc:
            raise AuthorizationError(
                f"The Meta credential cannot access ad account {self.ids.ad_account_id}: {exc.detail}",
                details={"code": exc.code, "subcode": exc.subcode},
            ) from exc

    def _budget_fields(self, budget: Budget, duration_days: Optional[int]) -> dict[str, Any]:
        if budget.amount is None or budget.amount <= 0:
            raise ValidationError("A positive budget amount is required.")
        minor_units = int(round(budget.amount * 100))
        if budget.type == "LIFETIME":
            if not duration_days:
                raise ValidationError("A campaign duration is required for a lifetime budget.")
            return {"lifetime_budget": minor_units}
        return {"daily_budget": minor_units}

    @staticmethod
    def _creative_style(params: AdSetParams, *, photo_only: bool, has_link: bool = False) -> str:
        if photo_only:
            return "photo"
        if params.conversion_location is None and has_link:
            return "link"
        if params.conversion_location == CALL:
            return "call"
        if params.conversion_location == LEAD_FORM:
            return "lead_form"
        if params.conversion_location == APP:
            return "app"
        if params.conversion_location == WEBSITE:
            return "link"
        return "photo"

    def _link_url(self, intent: CampaignIntent, descriptor: AdSetDescriptor) -> Optional[str]:
        return descriptor.creative.destinationUrl or intent.destination.websiteUrl or self.ids.business_website

    def _resolve_destination(
        self, params: AdSetParams, intent: CampaignIntent, descriptor: AdSetDescriptor
    ) -> dict[str, Optional[str]]:
        style = self._creative_style(params, photo_only=False)
        if style == "link":
            url = self._link_url(intent, descriptor)
            if not url:
                raise ValidationError(
                    f"A destination website URL is required for {params.objective.lower()} campaigns."
                )
            return {"link": url}
        if style == "call":
            raw = descriptor.creative.phone or intent.destination.phone or self.ids.business_phone
            phone = normalize_phone(raw)
            if not phone:
                raise ValidationError("A valid phone number is required for call ads.")
            return {"phone": phone}
        if style == "lead_form" and not self.ids.lead_form_id:
            raise ConfigurationError("A lead form id is required for lead form campaigns.")
        return {}

    def _creative_payload(
        self,
        *,
        name: str,
        params: AdSetParams,
        strategy: CreativeStrategy,
        intent: CampaignIntent,
        descriptor: AdSetDescriptor,
    ) -> dict[str, Any]:
        creative = descriptor.creative
        story: dict[str, Any] = {"page_id": self.ids.page_id}
        if strategy.use_instagram_actor and self.ids.instagram_actor_id:
            story["instagram_actor_id"] = self.ids.instagram_actor_id

        link_url = self._link_url(intent, descriptor)
        style = self._creative_style(params, photo_only=strategy.photo_only, has_link=bool(link_url))
        if style == "photo":
            destination: dict[str, Optional[str]] = {}
        elif params.conversion_location is None:
            # Reach ads without a conversion location link to the known URL.
            destination = {"link": link_url}
        else:
            destination = self._resolve_destination(params, intent, descriptor)

        if style == "photo":
            story["photo_data"] = {"url": creative.imageUrl, "caption": creative.primaryText}
        elif style == "call":
            tel = f"tel:{destination['phone']}"
            story["link_data"] = {
                "link": tel,
                "message": creative.primaryText,
                "name": creative.headline,
                "picture": creative.imageUrl,
                "call_to_action": {"type": "CALL_NOW", "value": {"link": tel}},
            }
        elif style == "lead_form":
            story["link_data"] = {
                "link": LEAD_FORM_LINK,
                "message": creative.primaryText,
                "name": creative.headline,
                "picture": creative.imageUrl,
                "call_to_action": {
                    "type": creative.callToActionType or "SIGN_UP",
                    "value": {"lead_gen_form_id": self.ids.lead_form_id},
                },
            }
        elif style == "app":
            story["link_data"] = {
                "link": self.ids.app_store_url,
                "message": creative.primaryText,
                "name": creative.headline,
                "picture": creative.imageUrl,
                "call_to_action": {
                    "type": "INSTALL_MOBILE_APP",
                    "value": {"application": self.ids.app_id, "link": self.ids.app_store_url},
                },
            }
        else:
            link = destination["link"]
            story["link_data"] = {
                "link": link,
                "message": creative.primaryText,
                "name": creative.headline,
                "description": creative.description,
                "picture": creative.imageUrl,
                "call_to_action": {"type": creative.callToActionType or "LEARN_MORE", "value": {"link": link}},
            }
        for key in ("link_data", "photo_data"):
            if key in story:
                story[key] = {k: v for k, v in story[key].items() if v is not None}
        return {"name": name, "object_story_spec": story}

    def _create_campaign(self, intent: CampaignIntent, requested: str, created: CreatedAssets):
        def attempt(candidate: str) -> Callable[[], str]:
            def run() -> str:
                response = self.client.create_campaign(
                    ad_account_id=self.ids.ad_account_id,
                    payload={
                        "name": intent.name,
                        "objective": objectives.to_remote_objective(candidate),
                        "status": self.status,
                        # Meta requires this param even when empty.
                        "special_ad_categories": [],
                        "buying_type": "AUCTION",
                        "is_adset_budget_sharing_enabled": False,
                    },
                )
                return _require_id(response, "campaign")

            return run

        candidates = objectives.objective_fallback_chain(requested)
        chain = [Strategy(label=candidate, run=attempt(candidate)) for candidate in candidates]
        outcome = run_fallback_chain(chain, name="Campaign creation")
        created.campaign_id = outcome.value
        logger.info(
            "Meta campaign created",
            extra={"campaign_id": outcome.value, "requested_objective": requested, "effective_objective": outcome.label},
        )
        return outcome

    def _targeting(self, intent: CampaignIntent, descriptor: AdSetDescriptor, strategy: CreativeStrategy) -> dict[str, Any]:
        targeting: dict[str, Any] = {**intent.targeting, **(descriptor.targeting or {})}
        if not targeting.get("geo_locations"):
            targeting["geo_locations"] = {"countries": [settings.DEFAULT_TARGET_COUNTRY]}
        targeting.update(strategy.placements())
        return targeting

    def _adset_payload(
        self,
        *,
        name: str,
        params: AdSetParams,
        strategy: CreativeStrategy,
        intent: CampaignIntent,
        descriptor: AdSetDescriptor,
        campaign_id: str,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": name,
            "campaign_id": campaign_id,
            "status": self.status,
            "billing_event": params.billing_event,
            "optimization_goal": params.optimization_goal,
            "bid_strategy": "LOWEST_COST_WITHOUT_CAP",
            "destination_type": params.destination_type,
            "promoted_object": params.promoted_object,
            "targeting": self._targeting(intent, descriptor, strategy),
        }
        payload.update(self._budget_fields(descriptor.budget or intent.budget, intent.durationDays))
        start = self.now()
        payload["start_time"] = start.isoformat()
        if intent.durationDays:
            payload["end_time"] = (start + timedelta(days=intent.durationDays)).isoformat()
        return payload

    def _build_adset(
        self,
        *,
        index: int,
        intent: CampaignIntent,
        descriptor: AdSetDescriptor,
        effective: str,
        created: CreatedAssets,
    ) -> list[StrategyAttempt]:
        location = descriptor.conversionLocation or intent.destination.conversionLocation
        params = derive_adset_params(effective, location, self.ids)
        base_name = descriptor.name or f"{intent.name} - Ad Set {index + 1}"
        # Placement signature -> ad set id, for this descriptor only.
        adsets_by_signature: dict[str, str] = {}

        def attempt(strategy: CreativeStrategy) -> Callable[[], tuple[str, str]]:
            def run() -> tuple[str, str]:
                signature = strategy.signature()
                adset_id = adsets_by_signature.get(signature)
                if adset_id is None:
                    response = self.client.create_adset(
                        ad_account_id=self.ids.ad_account_id,
                        payload=self._adset_payload(
                            name=f"{base_name} ({strategy.label})",
                            params=params,
                            strategy=strategy,
                            intent=intent,
                            descriptor=descriptor,
                            campaign_id=created.campaign_id,
                        ),
                    )
                    adset_id = _require_id(response, "ad set")
                    adsets_by_signature[signature] = adset_id
                    created.adset_ids.append(adset_id)
                    logger.info(
                        "Meta ad set created",
                        extra={"adset_id": adset_id, "strategy": strategy.label, "optimization_goal": params.optimization_goal},
                    )
                else:
                    logger.info("Reusing ad set for placement signature", extra={"adset_id": adset_id, "strategy": strategy.label})

                response = self.client.create_adcreative(
                    ad_account_id=self.ids.ad_account_id,
                    payload=self._creative_payload(
                        name=descriptor.creative.name or f"{base_name} Creative",
                        params=params,
                        strategy=strategy,
                        intent=intent,
                        descriptor=descriptor,
                    ),
                )
                creative_id = _require_id(response, "creative")
                created.creative_ids.append(creative_id)
                return adset_id, creative_id

            return run

        strategies = [
            Strategy(label=s.label, run=attempt(s))
            for s in self.strategy_factory(effective)
            if not (s.use_instagram_actor and not self.ids.instagram_actor_id)
        ]
        outcome = run_fallback_chain(strategies, name="Creative creation")
        adset_id, creative_id = outcome.value

        try:
            response = self.client.create_ad(
                ad_account_id=self.ids.ad_account_id,
                payload={
                    "name": f"{base_name} Ad",
                    "adset_id": adset_id,
                    "creative": {"creative_id": creative_id},
                    "status": self.status,
                },
            )
            ad_id = _require_id(response, "ad")
        except MetaAdsError as exc:
            raise RemoteFatalError(
                f"Ad creation failed: {exc.detail}",
                remote_message=exc.detail,
                code=exc.code,
                subcode=exc.subcode,
            ) from exc
        created.ad_ids.append(ad_id)
        logger.info("Meta ad created", extra={"ad_id": ad_id, "adset_id": adset_id, "creative_id": creative_id})
        return [StrategyAttempt(**a.as_dict()) for a in outcome.attempts]

    def build(self, intent: CampaignIntent) -> BuildResult:
        requested = objectives.normalize_objective(intent.objective)
        if intent.destination.leadFormId and not self.ids.lead_form_id:
            self.ids = replace(self.ids, lead_form_id=intent.destination.leadFormId)
        self._precheck(intent, requested)
        self._preflight()

        created = CreatedAssets()
        attempts: list[StrategyAttempt] = []
        try:
            campaign = self._create_campaign(intent, requested, created)
            attempts.extend(StrategyAttempt(**a.as_dict()) for a in campaign.attempts)
            effective = campaign.label
            for index, descriptor in enumerate(intent.adSets):
                attempts.extend(
                    self._build_adset(
                        index=index,
                        intent=intent,
                        descriptor=descriptor,
                        effective=effective,
                        created=created,
                    )
                )
        except CampaignEngineError as exc:
            if created.campaign_id:
                logger.warning("Campaign build failed after partial creation", extra={"created": created.as_dict()})
                if isinstance(exc, RemoteFatalError):
                    exc.created = created.as_dict()
                else:
                    exc.details["created"] = created.as_dict()
            raise

        return BuildResult(
            ok=True,
            campaignId=created.campaign_id,
            adSetIds=created.adset_ids,
            creativeIds=created.creative_ids,
            adIds=created.ad_ids,
            requestedObjective=requested,
            effectiveObjective=effective,
            attempts=attempts,
        )
