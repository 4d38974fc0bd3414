from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class IntakeStage(str, Enum):
    BUSINESS_RESOLUTION = "BUSINESS_RESOLUTION"
    BUSINESS_RESOLUTION_WAITING = "BUSINESS_RESOLUTION_WAITING"
    CONTEXT_RESOLUTION = "CONTEXT_RESOLUTION"
    ASSET_RESOLUTION = "ASSET_RESOLUTION"
    CONTENT_GENERATION = "CONTENT_GENERATION"
    PREVIEW = "PREVIEW"
    COMPLETED = "COMPLETED"


class IntakeContext(BaseModel):
    rawIntent: Optional[str] = None
    website: Optional[str] = None
    service: Optional[str] = None
    topic: Optional[str] = None


class IntakeAssets(BaseModel):
    logoUrl: Optional[str] = None
    websiteUrl: Optional[str] = None
    phone: Optional[str] = None
    # "state", "stored" or "text"
    source: Optional[str] = None
    footer: Optional[str] = None


class IntakeContent(BaseModel):
    caption: Optional[str] = None
    hashtags: list[str] = Field(default_factory=list)
    imageUrl: Optional[str] = None
    imagePrompt: Optional[str] = None


class IntakeState(BaseModel):
    stage: IntakeStage = IntakeStage.BUSINESS_RESOLUTION
    businessId: Optional[str] = None
    businessName: Optional[str] = None
    businessCategory: Optional[str] = None
    context: IntakeContext = Field(default_factory=IntakeContext)
    assets: IntakeAssets = Field(default_factory=IntakeAssets)
    content: IntakeContent = Field(default_factory=IntakeContent)

    def to_document(self) -> dict:
        return self.model_dump(mode="json")
