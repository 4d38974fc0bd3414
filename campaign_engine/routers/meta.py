from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from campaign_engine.auth.dependencies import AuthContext, get_current_user
from campaign_engine.db.deps import get_session
from campaign_engine.db.models import MetaConnection
from campaign_engine.db.repositories.meta_connections import MetaConnectionsRepository
from campaign_engine.errors import ConfigurationError
from campaign_engine.routers.agent import get_builder_factory, get_image_validator, get_publisher_factory
from campaign_engine.schemas.campaigns import BuildResult, CampaignIntent
from campaign_engine.schemas.meta import BusinessSyncResponse, InstagramPublishRequest, InstagramPublishResult
from campaign_engine.services.agent import BuilderFactory, PublisherFactory
from campaign_engine.services.business_sync import BusinessSyncService
from campaign_engine.services.meta_ads import MetaAdsClient

router = APIRouter(prefix="/meta", tags=["meta"])


def get_meta_client_factory() -> Callable[[MetaConnection], MetaAdsClient]:
    return MetaAdsClient.for_connection


def _require_connection(session: Session, auth: AuthContext) -> MetaConnection:
    connection = MetaConnectionsRepository(session).get_by_email(auth.email)
    if connection is None:
        raise ConfigurationError(
            "Meta connection not found. Please connect your Facebook/Instagram account in the dashboard."
        )
    return connection


@router.post("/campaigns", response_model=BuildResult)
def create_campaign(
    payload: CampaignIntent,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    builder_factory: BuilderFactory = Depends(get_builder_factory),
) -> BuildResult:
    connection = _require_connection(session, auth)
    return builder_factory(connection).build(payload)


@router.post("/instagram/publish", response_model=InstagramPublishResult)
def publish_instagram_post(
    payload: InstagramPublishRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    publisher_factory: PublisherFactory = Depends(get_publisher_factory),
    image_validator: Callable[[str], str] = Depends(get_image_validator),
) -> InstagramPublishResult:
    connection = _require_connection(session, auth)
    image_url = image_validator(payload.imageUrl)
    return publisher_factory(connection).publish(image_url, payload.caption)


@router.post("/business/sync", response_model=BusinessSyncResponse)
def sync_business(
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    client_factory: Callable[[MetaConnection], MetaAdsClient] = Depends(get_meta_client_factory),
) -> BusinessSyncResponse:
    connection = _require_connection(session, auth)
    repo = MetaConnectionsRepository(session)
    synced = BusinessSyncService(client_factory(connection), repo).sync(connection)
    verified = synced.verified_assets or {}
    return BusinessSyncResponse(
        email=synced.email,
        fbBusinessId=synced.fb_business_id,
        fbAdAccountId=synced.fb_ad_account_id,
        fbPageId=synced.fb_page_id,
        instagramId=synced.instagram_id,
        businessName=synced.business_name,
        businessPhone=synced.business_phone,
        businessWebsite=synced.business_website,
        businessCategory=synced.business_category,
        eligibleInstagramAccounts=verified.get("instagramAccounts") or [],
        businessInfoSynced=synced.business_info_synced,
    )
