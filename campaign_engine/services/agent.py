from __future__ import annotations

import logging
import re
from typing import Any, Callable, Optional

from campaign_engine.config import settings
from campaign_engine.db.models import MetaConnection
from campaign_engine.errors import CampaignEngineError, ConfigurationError
from campaign_engine.schemas.campaigns import (
    AdSetDescriptor,
    CampaignIntent,
    CampaignState,
    CreativeDescriptor,
    Destination,
)
from campaign_engine.schemas.meta import InstagramPublishResult
from campaign_engine.schemas.turns import TurnResponse
from campaign_engine.services import objectives
from campaign_engine.services.campaign_builder import AccountIds, CampaignBuilder, is_plan_complete
from campaign_engine.services.extraction import extract_campaign_fields, extract_direct_post
from campaign_engine.services.image_urls import validate_image_url
from campaign_engine.services.intake import (
    CANCEL_RE,
    PUBLISH_INTENT,
    IntakeStateMachine,
    is_intake_trigger,
)
from campaign_engine.services.meta_ads import MetaAdsClient
from campaign_engine.services.organic_publisher import OrganicPublisher
from campaign_engine.services.state_store import CAMPAIGN_SECTION, StateStore, find_campaign_state
from campaign_engine.services.turn_context import TurnContext

logger = logging.getLogger(__name__)

INSTAGRAM_MODE = "instagram_post"
META_ADS_MODE = "meta_ads"

LAUNCH_RE = re.compile(r"\b(yes|launch|go ahead|confirm|ok|do it)\b", re.IGNORECASE)
CAMPAIGN_TRIGGER_RE = re.compile(r"\b(campaign|ads?|boost|promote)\b", re.IGNORECASE)

HELP_TEXT = "I can publish an Instagram post or set up a Meta ad campaign. What would you like to do?"

PublisherFactory = Callable[[Optional[MetaConnection]], OrganicPublisher]
BuilderFactory = Callable[[MetaConnection], CampaignBuilder]


def default_publisher_factory(connection: Optional[MetaConnection]) -> OrganicPublisher:
    return OrganicPublisher.for_connection(connection)


def default_builder_factory(connection: MetaConnection) -> CampaignBuilder:
    return CampaignBuilder(MetaAdsClient.for_connection(connection), AccountIds.from_connection(connection))


def campaign_business_key(connection: Optional[MetaConnection]) -> str:
    if connection is None:
        return "default"
    return connection.fb_ad_account_id or connection.instagram_id or connection.fb_page_id or "default"


def intent_from_campaign_state(state: CampaignState, *, business_name: Optional[str] = None) -> CampaignIntent:
    if is_plan_complete(state.plan):
        return CampaignIntent.model_validate(state.plan)
    creative = state.creative
    return CampaignIntent(
        name=state.campaignName or f"{business_name or 'Business'} Campaign",
        objective=state.objective or objectives.DEFAULT_OBJECTIVE,
        budget={
            "amount": state.budget.amount,
            "currency": state.budget.currency or settings.DEFAULT_CURRENCY,
            "type": state.budget.type,
        },
        targeting=state.targeting,
        durationDays=state.durationDays,
        destination=Destination(websiteUrl=creative.destinationUrl, phone=creative.phone),
        adSets=[
            AdSetDescriptor(
                creative=CreativeDescriptor(
                    imageUrl=creative.imageUrl,
                    primaryText=creative.primaryText,
                    headline=creative.headline,
                    destinationUrl=creative.destinationUrl,
                    phone=creative.phone,
                    callToActionType=creative.callToActionType,
                )
            )
        ],
    )


def _missing_campaign_fields(state: CampaignState) -> list[str]:
    missing = []
    if not state.creative.imageUrl:
        missing.append("image URL (Image URL: https://...)")
    if not state.creative.primaryText:
        missing.append("primary text (Primary text: ...)")
    if not state.budget.amount:
        missing.append("daily budget (Budget: 500)")
    return missing


def _launch_summary(state: CampaignState) -> str:
    budget = state.budget
    per = "per day" if budget.type == "DAILY" else "lifetime"
    lines = [
        f"Campaign: {state.campaignName or 'Untitled'}",
        f"Objective: {objectives.normalize_objective(state.objective)}",
        f"Budget: {budget.amount:g} {budget.currency or settings.DEFAULT_CURRENCY} {per}",
    ]
    if state.durationDays:
        lines.append(f"Duration: {state.durationDays} days")
    lines.append(f"Primary text: {state.creative.primaryText}")
    if state.creative.headline:
        lines.append(f"Headline: {state.creative.headline}")
    lines.append(f"Image: {state.creative.imageUrl}")
    if state.creative.destinationUrl:
        lines.append(f"Destination: {state.creative.destinationUrl}")
    lines.append("Reply 'launch' to create the campaign, or send changes.")
    return "\n".join(lines)


class AgentService:
    """Routes one operator instruction to the direct publish path, the post intake, or the paid campaign intake."""

    def __init__(
        self,
        store: StateStore,
        intake: IntakeStateMachine,
        *,
        publisher_factory: PublisherFactory = default_publisher_factory,
        builder_factory: BuilderFactory = default_builder_factory,
        image_validator: Callable[[str], str] = validate_image_url,
    ) -> None:
        self.store = store
        self.intake = intake
        self.publisher_factory = publisher_factory
        self.builder_factory = builder_factory
        self.image_validator = image_validator

    def handle_turn(self, ctx: TurnContext, instruction: str, mode: Optional[str] = None) -> TurnResponse:
        try:
            direct = extract_direct_post(instruction)
            if direct is not None:
                # Explicit assets win over any half-finished intake.
                self.intake.cancel(ctx.identity)
                result = self.publish(ctx, direct.imageUrl, direct.final_caption())
                return TurnResponse(result=result.model_dump())

            if mode == META_ADS_MODE:
                return self.handle_campaign_turn(ctx, instruction)

            # Post requests and open post sessions win over campaign keywords and stored drafts.
            if mode == INSTAGRAM_MODE or self.intake.has_active_session(ctx.identity) or is_intake_trigger(instruction):
                return self._handle_intake_turn(ctx, instruction)

            if mode is None and self._wants_campaign(ctx, instruction):
                return self.handle_campaign_turn(ctx, instruction)
        except CampaignEngineError as exc:
            logger.warning("Agent turn failed", extra={"identity": ctx.identity, "error": exc.message})
            return TurnResponse(error=exc.message)

        return TurnResponse(question=HELP_TEXT)

    def _wants_campaign(self, ctx: TurnContext, instruction: str) -> bool:
        if CAMPAIGN_TRIGGER_RE.search(instruction):
            return True
        _, state = find_campaign_state(self.store, ctx.identity, [campaign_business_key(ctx.connection)])
        return bool(state) and state.get("stage") != "COMPLETED"

    def publish(self, ctx: TurnContext, image_url: str, caption: str) -> InstagramPublishResult:
        image_url = self.image_validator(image_url)
        publisher = self.publisher_factory(ctx.connection)
        return publisher.publish(image_url, caption)

    def _handle_intake_turn(self, ctx: TurnContext, instruction: str) -> TurnResponse:
        response = self.intake.handle(ctx, instruction)
        if response.intent != PUBLISH_INTENT:
            return response
        payload = response.payload or {}
        try:
            result = self.publish(ctx, payload.get("imageUrl"), payload.get("caption") or "")
        except CampaignEngineError as exc:
            logger.warning("Publishing the generated post failed", extra={"identity": ctx.identity, "error": exc.message})
            return TurnResponse(intent=response.intent, payload=payload, error=exc.message)
        self.intake.complete(ctx.identity)
        return TurnResponse(intent=response.intent, payload=payload, result=result.model_dump())

    def handle_campaign_turn(self, ctx: TurnContext, instruction: str) -> TurnResponse:
        if ctx.connection is None:
            raise ConfigurationError("No Meta connection found. Please connect Facebook/Instagram first.")
        business_key = campaign_business_key(ctx.connection)

        if CANCEL_RE.search(instruction):
            self.store.clear(ctx.identity, business_key, section=CAMPAIGN_SECTION)
            return TurnResponse(question="Campaign setup canceled. How can I help?")

        fields = extract_campaign_fields(instruction)
        preferred = objectives.normalize_objective(fields.objective) if fields.objective else None
        key, stored = find_campaign_state(self.store, ctx.identity, [business_key], preferred_objective=preferred)
        key = key or business_key

        if stored and stored.get("stage") == "COMPLETED":
            self.store.clear(ctx.identity, key, section=CAMPAIGN_SECTION)
            stored = None

        if stored and stored.get("stage") == "READY_TO_LAUNCH" and LAUNCH_RE.search(instruction) and fields.is_empty():
            return self._launch(ctx, key, CampaignState.model_validate(stored))

        if not fields.is_empty():
            self.store.put(ctx.identity, key, {CAMPAIGN_SECTION: fields.to_campaign_state()})
        document = self.store.get(ctx.identity, key) or {}
        state = CampaignState.model_validate(document.get(CAMPAIGN_SECTION) or {})

        missing = _missing_campaign_fields(state)
        if missing:
            return TurnResponse(question=f"To set up your ad I still need the {', '.join(missing)}.")

        self.store.put(ctx.identity, key, {CAMPAIGN_SECTION: {"stage": "READY_TO_LAUNCH"}})
        state.stage = "READY_TO_LAUNCH"
        return TurnResponse(question=_launch_summary(state))

    def _launch(self, ctx: TurnContext, key: str, state: CampaignState) -> TurnResponse:
        intent = intent_from_campaign_state(state, business_name=ctx.connection.business_name)
        builder = self.builder_factory(ctx.connection)
        result = builder.build(intent)
        created: dict[str, Any] = result.model_dump()
        self.store.put(
            ctx.identity,
            key,
            {CAMPAIGN_SECTION: {"stage": "COMPLETED", "createdIds": created, "objective": result.effectiveObjective}},
        )
        logger.info(
            "Campaign launched from conversation",
            extra={"identity": ctx.identity, "campaign_id": result.campaignId, "objective": result.effectiveObjective},
        )
        return TurnResponse(result=created)
