from __future__ import annotations

import logging
import re
from typing import Callable, Optional

from campaign_engine.config import settings
from campaign_engine.errors import CampaignEngineError, ConfigurationError
from campaign_engine.schemas.intake import IntakeStage, IntakeState
from campaign_engine.schemas.turns import TurnResponse
from campaign_engine.services.business_sync import BusinessCandidate, eligible_businesses
from campaign_engine.services.creative_generation import CreativeGenerator, compose_preview
from campaign_engine.services.extraction import URL_RE, find_phone, find_website, normalize_phone
from campaign_engine.services.state_store import INTAKE_SECTION, StateStore
from campaign_engine.services.turn_context import TurnContext

logger = logging.getLogger(__name__)

PENDING_BUSINESS_KEY = "__pending__"
PUBLISH_INTENT = "PUBLISH"

CANCELED_TEXT = "Creative mode canceled. How can I help?"
COMPLETED_TEXT = "Flow completed."
SERVICE_QUESTION = "What service do you want this Instagram post to focus on? (e.g., 'Laundry Service', 'Fitness Centre')"

CANCEL_RE = re.compile(r"\b(cancel|stop|start over|reset)\b", re.IGNORECASE)
CONFIRM_RE = re.compile(r"\b(yes|publish|go ahead|confirm|ok|do it)\b", re.IGNORECASE)
AFFIRMATIVE_RE = re.compile(r"\b(yes|ok|okay|sure|this one|confirm)\b", re.IGNORECASE)
GENERIC_TRIGGER_RE = re.compile(
    r"^\s*(?:publish|create|make|post)\s+(?:an?\s+)?(?:new\s+)?(?:instagram|insta|ig)\s+post\s*[.!]?\s*$",
    re.IGNORECASE,
)
INTAKE_TRIGGER_RE = re.compile(r"\b(?:instagram|insta|ig)\s+(?:post|creative)\b|\bcreative mode\b", re.IGNORECASE)
_FILLER_RE = re.compile(
    r"\b(publish|post|create|make|generate|an?|the|instagram|insta|ig|please|for|my|about|on|yes|no|ok|sure|"
    r"start|new|i|want|to|is|it)\b",
    re.IGNORECASE,
)

Transition = Callable[[IntakeStage, IntakeStage], None]


def is_generic_trigger(instruction: str) -> bool:
    return bool(GENERIC_TRIGGER_RE.match(instruction or ""))


def is_intake_trigger(instruction: str) -> bool:
    return bool(INTAKE_TRIGGER_RE.search(instruction or ""))


def strip_filler(instruction: str) -> str:
    text = URL_RE.sub(" ", instruction or "")
    text = _FILLER_RE.sub(" ", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip(" .,!?:;-")


class IntakeStateMachine:
    """
    Turn-by-turn intake for an organic Instagram post.

    Each call consumes one operator instruction, advances as far as the collected information
    allows, persists the state after every completed step, and returns either a question or a
    PUBLISH intent. A confirmed draft stays at PREVIEW until the caller reports a successful
    publish through ``complete``, so a failed publish can be retried with another confirmation.
    """

    def __init__(
        self,
        store: StateStore,
        generator: CreativeGenerator,
        *,
        on_transition: Optional[Transition] = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.on_transition = on_transition

    def find_active(self, identity: str) -> tuple[Optional[str], Optional[IntakeState]]:
        for key in self.store.keys(identity):
            document = self.store.get(identity, key) or {}
            intake = document.get(INTAKE_SECTION)
            if intake:
                return key, IntakeState.model_validate(intake)
        return None, None

    def has_active_session(self, identity: str) -> bool:
        key, _ = self.find_active(identity)
        return key is not None

    def cancel(self, identity: str) -> None:
        key, _ = self.find_active(identity)
        while key is not None:
            self.store.clear(identity, key, section=INTAKE_SECTION)
            key, _ = self.find_active(identity)

    def complete(self, identity: str) -> None:
        key, state = self.find_active(identity)
        if state is None or state.stage != IntakeStage.PREVIEW:
            return
        self._move(state, IntakeStage.COMPLETED)
        self._save(identity, key, state)

    def _save(self, identity: str, key: str, state: IntakeState) -> None:
        self.store.put(identity, key, {INTAKE_SECTION: state.to_document()})

    def _start(self, identity: str, key: str, state: IntakeState) -> None:
        # A new session replaces whatever intake section the key held; other sections survive.
        document = self.store.get(identity, key) or {}
        document[INTAKE_SECTION] = state.to_document()
        self.store.replace(identity, key, document)

    def _move(self, state: IntakeState, stage: IntakeStage) -> None:
        previous = state.stage
        state.stage = stage
        logger.info("Intake stage transition", extra={"from": previous.value, "to": stage.value})
        if self.on_transition:
            self.on_transition(previous, stage)

    def handle(self, ctx: TurnContext, instruction: str) -> TurnResponse:
        instruction = instruction or ""
        if CANCEL_RE.search(instruction):
            self.cancel(ctx.identity)
            return TurnResponse(question=CANCELED_TEXT)

        if is_generic_trigger(instruction):
            self.cancel(ctx.identity)

        key, state = self.find_active(ctx.identity)
        if state is None:
            key, state = PENDING_BUSINESS_KEY, IntakeState()
            self._start(ctx.identity, key, state)

        try:
            return self._advance(ctx, key, state, instruction)
        except CampaignEngineError as exc:
            logger.warning("Intake step failed", extra={"identity": ctx.identity, "stage": state.stage.value, "error": exc.message})
            return TurnResponse(error=exc.message)
        except Exception as exc:
            logger.exception("Intake step crashed", extra={"identity": ctx.identity, "stage": state.stage.value})
            return TurnResponse(error=f"Creative Mode Error: {exc}")

    def _select_business(self, ctx: TurnContext, key: str, state: IntakeState, business: BusinessCandidate) -> str:
        state.businessId = business.business_id
        state.businessName = business.name
        if ctx.connection is not None:
            state.businessCategory = ctx.connection.business_category
        self._move(state, IntakeStage.CONTEXT_RESOLUTION)
        if key != business.business_id:
            self.store.clear(ctx.identity, key, section=INTAKE_SECTION)
            self._start(ctx.identity, business.business_id, state)
        else:
            self._save(ctx.identity, key, state)
        return business.business_id

    @staticmethod
    def _business_question(candidates: list[BusinessCandidate]) -> str:
        names = ", ".join(candidate.name for candidate in candidates)
        return f"I found several connected Instagram accounts: {names}. Which one should I use for this post?"

    def _advance(self, ctx: TurnContext, key: str, state: IntakeState, instruction: str) -> TurnResponse:
        if state.stage == IntakeStage.BUSINESS_RESOLUTION:
            candidates = eligible_businesses(ctx.connection)
            if not candidates:
                raise ConfigurationError(
                    "No Instagram business account found. Please connect Facebook/Instagram first."
                )
            if len(candidates) > 1:
                self._move(state, IntakeStage.BUSINESS_RESOLUTION_WAITING)
                self._save(ctx.identity, key, state)
                return TurnResponse(question=self._business_question(candidates))
            key = self._select_business(ctx, key, state, candidates[0])

        if state.stage == IntakeStage.BUSINESS_RESOLUTION_WAITING:
            candidates = eligible_businesses(ctx.connection)
            if not candidates:
                raise ConfigurationError(
                    "No Instagram business account found. Please connect Facebook/Instagram first."
                )
            lowered = instruction.lower()
            chosen = next((c for c in candidates if c.name.lower() in lowered), None)
            if chosen is None and AFFIRMATIVE_RE.search(instruction):
                chosen = candidates[0]
            if chosen is None:
                return TurnResponse(question=self._business_question(candidates))
            self._select_business(ctx, key, state, chosen)
            return TurnResponse(question=f"Great, I'll use {chosen.name}. Now, what service are we highlighting?")

        if state.stage == IntakeStage.CONTEXT_RESOLUTION:
            website = find_website(instruction)
            fragment = strip_filler(instruction)
            if website:
                state.context.website = website
            if fragment:
                state.context.rawIntent = f"{state.context.rawIntent or ''} {fragment}".strip()
                state.context.topic = state.context.topic or fragment
                state.context.service = state.context.rawIntent
            complete = bool(state.context.website) or len(state.context.rawIntent or "") > settings.CONTEXT_MIN_TEXT_LENGTH
            if not complete:
                self._save(ctx.identity, key, state)
                return TurnResponse(question=SERVICE_QUESTION)
            self._move(state, IntakeStage.ASSET_RESOLUTION)
            self._save(ctx.identity, key, state)

        if state.stage == IntakeStage.ASSET_RESOLUTION:
            self._resolve_assets(ctx, state)
            self._move(state, IntakeStage.CONTENT_GENERATION)
            self._save(ctx.identity, key, state)

        if state.stage == IntakeStage.CONTENT_GENERATION:
            state.content = self.generator.generate(state)
            self._move(state, IntakeStage.PREVIEW)
            self._save(ctx.identity, key, state)
            return TurnResponse(question=compose_preview(state))

        if state.stage == IntakeStage.PREVIEW:
            if CONFIRM_RE.search(instruction):
                hashtags = " ".join(state.content.hashtags)
                caption = f"{state.content.caption}\n\n{hashtags}" if hashtags else state.content.caption
                return TurnResponse(
                    intent=PUBLISH_INTENT,
                    payload={
                        "imageUrl": state.content.imageUrl,
                        "caption": caption,
                        "businessId": state.businessId,
                    },
                )
            state.context.rawIntent = f"{state.context.rawIntent or ''} {instruction.strip()}".strip()
            self._move(state, IntakeStage.CONTENT_GENERATION)
            self._save(ctx.identity, key, state)
            state.content = self.generator.generate(state)
            self._move(state, IntakeStage.PREVIEW)
            self._save(ctx.identity, key, state)
            return TurnResponse(question=compose_preview(state))

        if state.stage == IntakeStage.COMPLETED:
            self.store.clear(ctx.identity, key, section=INTAKE_SECTION)
            return TurnResponse(question=COMPLETED_TEXT)

        return TurnResponse(error="Internal intake error.")

    def _resolve_assets(self, ctx: TurnContext, state: IntakeState) -> None:
        connection = ctx.connection
        assets = state.assets
        if assets.logoUrl:
            assets.source = "state"
        elif connection is not None and connection.logo_url:
            assets.logoUrl = connection.logo_url
            assets.source = "stored"
        else:
            assets.source = "text"

        assets.websiteUrl = assets.websiteUrl or state.context.website or (connection.business_website if connection else None)
        assets.phone = (
            assets.phone
            or normalize_phone(find_phone(state.context.rawIntent or ""))
            or (normalize_phone(connection.business_phone) if connection and connection.business_phone else None)
        )
        if assets.websiteUrl:
            assets.footer = f"Website: {assets.websiteUrl}"
        elif assets.phone:
            assets.footer = f"Phone: {assets.phone}"
