from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class Budget(BaseModel):
    amount: Optional[float] = None
    currency: Optional[str] = None
    type: Literal["DAILY", "LIFETIME"] = "DAILY"


class CampaignCreative(BaseModel):
    imageUrl: Optional[str] = None
    primaryText: Optional[str] = None
    headline: Optional[str] = None
    destinationUrl: Optional[str] = None
    phone: Optional[str] = None
    callToActionType: Optional[str] = None
    hashtags: list[str] = Field(default_factory=list)


class CampaignState(BaseModel):
    """Durable, mergeable record of a paid campaign in progress."""

    campaignName: Optional[str] = None
    objective: Optional[str] = None
    budget: Budget = Field(default_factory=Budget)
    durationDays: Optional[int] = None
    targeting: dict[str, Any] = Field(default_factory=dict)
    creative: CampaignCreative = Field(default_factory=CampaignCreative)
    stage: Optional[Literal["READY_TO_LAUNCH", "COMPLETED"]] = None
    plan: Optional[dict[str, Any]] = None
    createdIds: Optional[dict[str, Any]] = None

    def is_launchable(self) -> bool:
        return bool(self.creative.imageUrl and self.creative.primaryText)


class Destination(BaseModel):
    websiteUrl: Optional[str] = None
    phone: Optional[str] = None
    # WEBSITE, CALL, LEAD_FORM, MESSENGER, WHATSAPP, ON_POST or APP
    conversionLocation: Optional[str] = None
    leadFormId: Optional[str] = None


class CreativeDescriptor(BaseModel):
    name: Optional[str] = None
    imageUrl: str
    primaryText: str
    headline: Optional[str] = None
    description: Optional[str] = None
    destinationUrl: Optional[str] = None
    phone: Optional[str] = None
    callToActionType: Optional[str] = None


class AdSetDescriptor(BaseModel):
    name: Optional[str] = None
    targeting: Optional[dict[str, Any]] = None
    budget: Optional[Budget] = None
    conversionLocation: Optional[str] = None
    creative: CreativeDescriptor


class CampaignIntent(BaseModel):
    name: str
    objective: str
    budget: Budget
    targeting: dict[str, Any] = Field(default_factory=dict)
    durationDays: Optional[int] = None
    destination: Destination = Field(default_factory=Destination)
    adSets: list[AdSetDescriptor] = Field(min_length=1)


class StrategyAttempt(BaseModel):
    label: str
    ok: bool
    error: Optional[str] = None
    code: Optional[int] = None
    subcode: Optional[int] = None


class BuildResult(BaseModel):
    ok: bool = True
    campaignId: str
    adSetIds: list[str] = Field(default_factory=list)
    creativeIds: list[str] = Field(default_factory=list)
    adIds: list[str] = Field(default_factory=list)
    requestedObjective: str
    effectiveObjective: str
    attempts: list[StrategyAttempt] = Field(default_factory=list)
