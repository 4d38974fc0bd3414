from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from campaign_engine.config import settings
from campaign_engine.errors import ConfigurationError, OrganicPublishError
from campaign_engine.schemas.meta import InstagramPublishResult
from campaign_engine.services.image_urls import check_image_url_shape
from campaign_engine.services.meta_ads import MetaAdsClient, MetaAdsError
from campaign_engine.services.polling import PollPolicy, poll_until

logger = logging.getLogger("meta.instagram")

READY_STATUSES = {"FINISHED", "PUBLISHED"}
ERROR_STATUS = "ERROR"


class OrganicPublisher:
    """Two-phase Instagram publish: stage a media container, wait for it (best effort), publish it."""

    def __init__(
        self,
        client: MetaAdsClient,
        instagram_id: str,
        *,
        poll_policy: Optional[PollPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.instagram_id = instagram_id
        self.poll_policy = poll_policy or PollPolicy(
            max_attempts=settings.ORGANIC_PUBLISH_POLL_ATTEMPTS,
            delay_seconds=settings.ORGANIC_PUBLISH_POLL_DELAY_SECONDS,
        )
        self.sleep = sleep

    @classmethod
    def for_connection(cls, connection: Any, **kwargs) -> "OrganicPublisher":
        if connection is None:
            raise ConfigurationError(
                "Meta connection not found. Please connect your Facebook/Instagram account in the dashboard."
            )
        instagram_id = connection.instagram_actor_id or connection.ig_business_id
        if not instagram_id:
            raise ConfigurationError(
                "Instagram Publishing ID not found. Please re-sync your business assets in the dashboard."
            )
        return cls(MetaAdsClient.for_connection(connection), instagram_id, **kwargs)

    def _create_container(self, image_url: str, caption: str) -> str:
        try:
            response = self.client.create_media_container(
                instagram_id=self.instagram_id, image_url=image_url, caption=caption
            )
        except MetaAdsError as exc:
            raise OrganicPublishError(
                f"Instagram Media Container Creation Failed: {exc.detail}",
                remote_message=exc.detail,
                code=exc.code,
                subcode=exc.subcode,
            ) from exc
        container_id = response.get("id")
        if not container_id:
            raise OrganicPublishError(
                "Instagram Media Container Creation Failed: response did not include a container id.",
                details={"response": response},
            )
        return str(container_id)

    def _fetch_status(self, container_id: str) -> Optional[str]:
        try:
            response = self.client.get_media_container_status(container_id=container_id)
        except MetaAdsError as exc:
            logger.warning(
                "Media container status check failed",
                extra={"container_id": container_id, "error": exc.detail},
            )
            return None
        status_code = response.get("status_code")
        if status_code == ERROR_STATUS:
            raise OrganicPublishError(
                f"Instagram Media Processing Failed for container {container_id}.",
                details={"response": response},
            )
        return status_code

    def publish(self, image_url: str, caption: str) -> InstagramPublishResult:
        image_url = check_image_url_shape(image_url)
        container_id = self._create_container(image_url, caption)
        logger.info("Instagram media container created", extra={"container_id": container_id})

        outcome = poll_until(
            lambda: self._fetch_status(container_id),
            lambda status: status in READY_STATUSES,
            self.poll_policy,
            sleep=self.sleep,
        )
        if not outcome.satisfied:
            logger.warning(
                "Media container readiness not confirmed; publishing anyway",
                extra={"container_id": container_id, "attempts": outcome.attempts, "last_status": outcome.last},
            )

        try:
            response = self.client.publish_media(instagram_id=self.instagram_id, creation_id=container_id)
        except MetaAdsError as exc:
            raise OrganicPublishError(
                f"Instagram Publish Failed: {exc.detail}",
                remote_message=exc.detail,
                code=exc.code,
                subcode=exc.subcode,
                created={"containerId": container_id},
            ) from exc
        media_id = response.get("id")
        if not media_id:
            raise OrganicPublishError(
                "Instagram Publish Failed: response did not include a media id.",
                created={"containerId": container_id},
                details={"response": response},
            )
        logger.info("Instagram media published", extra={"container_id": container_id, "media_id": media_id})
        return InstagramPublishResult(
            containerId=container_id,
            mediaId=str(media_id),
            instagramId=self.instagram_id,
            readyConfirmed=outcome.satisfied,
        )
