from __future__ import annotations

from typing import Any, Callable

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from campaign_engine.auth.dependencies import AuthContext, get_current_user
from campaign_engine.db.deps import get_session
from campaign_engine.db.repositories.meta_connections import MetaConnectionsRepository
from campaign_engine.schemas.turns import TurnRequest
from campaign_engine.services.agent import (
    AgentService,
    BuilderFactory,
    PublisherFactory,
    default_builder_factory,
    default_publisher_factory,
)
from campaign_engine.services.creative_generation import CreativeGenerator
from campaign_engine.services.image_urls import validate_image_url
from campaign_engine.services.intake import IntakeStateMachine
from campaign_engine.services.state_store import SqlStateStore
from campaign_engine.services.turn_context import TurnContext

router = APIRouter(prefix="/agent", tags=["agent"])


def get_creative_generator() -> CreativeGenerator:
    return CreativeGenerator()


def get_publisher_factory() -> PublisherFactory:
    return default_publisher_factory


def get_builder_factory() -> BuilderFactory:
    return default_builder_factory


def get_image_validator() -> Callable[[str], str]:
    return validate_image_url


def get_agent_service(
    session: Session = Depends(get_session),
    generator: CreativeGenerator = Depends(get_creative_generator),
    publisher_factory: PublisherFactory = Depends(get_publisher_factory),
    builder_factory: BuilderFactory = Depends(get_builder_factory),
    image_validator: Callable[[str], str] = Depends(get_image_validator),
) -> AgentService:
    store = SqlStateStore(session)
    return AgentService(
        store,
        IntakeStateMachine(store, generator),
        publisher_factory=publisher_factory,
        builder_factory=builder_factory,
        image_validator=image_validator,
    )


@router.post("/turn")
def agent_turn(
    payload: TurnRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    agent: AgentService = Depends(get_agent_service),
) -> dict[str, Any]:
    connection = MetaConnectionsRepository(session).get_by_email(auth.email)
    ctx = TurnContext(identity=auth.email, connection=connection)
    response = agent.handle_turn(ctx, payload.instruction, payload.mode)
    return response.to_wire()
