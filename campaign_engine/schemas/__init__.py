from campaign_engine.schemas.campaigns import (
    AdSetDescriptor,
    BuildResult,
    Budget,
    CampaignCreative,
    CampaignIntent,
    CampaignState,
    CreativeDescriptor,
    Destination,
)
from campaign_engine.schemas.intake import IntakeStage, IntakeState
from campaign_engine.schemas.turns import TurnRequest, TurnResponse
