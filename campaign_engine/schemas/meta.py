from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class InstagramPublishRequest(BaseModel):
    imageUrl: str
    caption: str = ""


class InstagramPublishResult(BaseModel):
    ok: bool = True
    containerId: str
    mediaId: str
    instagramId: str
    readyConfirmed: bool


class BusinessSyncResponse(BaseModel):
    email: str
    fbBusinessId: Optional[str] = None
    fbAdAccountId: Optional[str] = None
    fbPageId: Optional[str] = None
    instagramId: Optional[str] = None
    businessName: Optional[str] = None
    businessPhone: Optional[str] = None
    businessWebsite: Optional[str] = None
    businessCategory: Optional[str] = None
    eligibleInstagramAccounts: list[dict] = Field(default_factory=list)
    businessInfoSynced: bool = False
