from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from campaign_engine.db.base import Base


def _uuid() -> str:
    return str(uuid4())


class AgentState(Base):
    __tablename__ = "agent_states"
    __table_args__ = (UniqueConstraint("identity", "business_key", name="uq_agent_states_identity_business"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    identity: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    business_key: Mapped[str] = mapped_column(Text, nullable=False)
    # {"intake": {...}, "campaignState": {...}}; either section may be absent.
    state: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class MetaConnection(Base):
    __tablename__ = "meta_connections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    fb_business_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fb_ad_account_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fb_page_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    instagram_actor_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ig_business_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    business_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    business_phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    business_website: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    business_category: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    logo_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pixel_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    app_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    app_store_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    verified_assets: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    business_info_synced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @property
    def instagram_id(self) -> Optional[str]:
        return self.instagram_actor_id or self.ig_business_id
