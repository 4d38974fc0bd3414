from __future__ import annotations

import logging
from typing import Optional

import httpx

from campaign_engine.config import settings
from campaign_engine.errors import ValidationError
from campaign_engine.services.extraction import is_drive_link

logger = logging.getLogger(__name__)


def check_image_url_shape(url: Optional[str]) -> str:
    """Reject URLs the platform can never fetch directly. No network access."""
    if not url or not isinstance(url, str):
        raise ValidationError("An image URL is required.")
    url = url.strip()
    if not url.lower().startswith(("http://", "https://")):
        raise ValidationError("Instagram image must be a publicly accessible URL (http/https).")
    if is_drive_link(url):
        raise ValidationError(
            "Google Drive links cannot be published directly. Please share a direct image URL instead."
        )
    return url


def validate_image_url(url: Optional[str], *, timeout_seconds: Optional[float] = None) -> str:
    """Confirm the URL is a live, directly fetchable image: HEAD must answer 2xx with an image/* content type."""
    url = check_image_url_shape(url)
    timeout = httpx.Timeout(timeout_seconds or settings.IMAGE_URL_VALIDATION_TIMEOUT_SECONDS)
    try:
        response = httpx.request("HEAD", url, follow_redirects=True, timeout=timeout)
    except httpx.RequestError as exc:
        logger.info("Image URL not reachable", extra={"url": url, "error": str(exc)})
        raise ValidationError(f"Image URL is not reachable: {url}") from exc

    if not response.is_success:
        raise ValidationError(f"Image URL returned HTTP {response.status_code}: {url}")
    content_type = (response.headers.get("content-type") or "").split(";")[0].strip().lower()
    if not content_type.startswith("image/"):
        raise ValidationError(f"URL does not point to an image (content type: {content_type or 'unknown'}).")
    return url
