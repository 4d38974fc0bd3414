from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from campaign_engine.config import settings
from campaign_engine.errors import ConfigurationError

logger = logging.getLogger("meta.ads")


class MetaAdsError(RuntimeError):
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_payload = error_payload
        error = _error_object(error_payload)
        self.remote_message: Optional[str] = error.get("message") if error else None
        self.code: Optional[int] = _as_int(error.get("code")) if error else None
        self.subcode: Optional[int] = _as_int(error.get("error_subcode")) if error else None
        self.user_message: Optional[str] = error.get("error_user_msg") if error else None

    @property
    def detail(self) -> str:
        return self.user_message or self.remote_message or str(self)


def _error_object(payload: Any) -> Optional[dict[str, Any]]:
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        return payload["error"]
    return None


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _normalize_ad_account_id(ad_account_id: str) -> str:
    if ad_account_id.startswith("act_"):
        return ad_account_id
    return f"act_{ad_account_id}"


def _encode_payload(payload: dict[str, Any]) -> dict[str, Any]:
    encoded: dict[str, Any] = {}
    for key, value in payload.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
            continue
        if isinstance(value, (dict, list)):
            encoded[key] = json.dumps(value)
            continue
        encoded[key] = value
    return encoded


class MetaAdsClient:
    def __init__(
        self,
        *,
        access_token: str,
        api_version: str,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.access_token = access_token
        self.api_version = api_version
        self.base_url = (base_url or "https://graph.facebook.com").rstrip("/")
        self.timeout = httpx.Timeout(timeout_seconds or settings.META_REQUEST_TIMEOUT_SECONDS)

    @classmethod
    def for_connection(cls, connection: Any) -> "MetaAdsClient":
        """Build a client for a stored connection. A configured system user token wins over the user token."""
        access_token = settings.META_SYSTEM_USER_TOKEN or getattr(connection, "access_token", None)
        if not access_token:
            raise ConfigurationError("Meta access token unavailable. Please re-connect your account.")
        if not settings.META_GRAPH_API_VERSION:
            raise ConfigurationError("META_GRAPH_API_VERSION is required to use Meta integration.")
        return cls(
            access_token=access_token,
            api_version=settings.META_GRAPH_API_VERSION,
            base_url=settings.META_GRAPH_API_BASE_URL,
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}/{self.api_version}/{path.lstrip('/')}"
        merged_params = {**(params or {}), "access_token": self.access_token}
        try:
            response = httpx.request(
                method,
                url,
                params=merged_params,
                data=data,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            error_payload: Any = None
            try:
                error_payload = response.json()
            except ValueError:
                error_payload = {"text": response.text}
            error = _error_object(error_payload)
            remote = error.get("message") if error else None
            message = remote or f"Meta Graph API error ({response.status_code})."
            logger.warning(
                "Meta Graph API request failed",
                extra={"path": path, "status_code": response.status_code, "meta_error": error},
            )
            raise MetaAdsError(message, status_code=response.status_code, error_payload=error_payload) from exc
        except httpx.RequestError as exc:
            message = f"Meta Graph API request failed: {exc}"
            raise MetaAdsError(message) from exc

        try:
            body = response.json()
        except ValueError as exc:
            message = "Meta Graph API returned a non-JSON response."
            raise MetaAdsError(message, status_code=response.status_code) from exc

        # Graph occasionally reports failures with a 200 status and an error object.
        error = _error_object(body)
        if error:
            message = error.get("message") or "Meta Graph API returned an error object."
            raise MetaAdsError(message, status_code=response.status_code, error_payload=body)
        if not isinstance(body, dict):
            raise MetaAdsError("Meta Graph API returned an unexpected payload.", status_code=response.status_code)
        return body

    def get_ad_account(self, *, ad_account_id: str, fields: str = "id,name,account_status,currency") -> dict[str, Any]:
        return self._request("GET", _normalize_ad_account_id(ad_account_id), params={"fields": fields})

    def create_campaign(self, *, ad_account_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        path = f"{_normalize_ad_account_id(ad_account_id)}/campaigns"
        return self._request("POST", path, data=_encode_payload(payload))

    def create_adset(self, *, ad_account_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        path = f"{_normalize_ad_account_id(ad_account_id)}/adsets"
        return self._request("POST", path, data=_encode_payload(payload))

    def create_adcreative(self, *, ad_account_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        path = f"{_normalize_ad_account_id(ad_account_id)}/adcreatives"
        return self._request("POST", path, data=_encode_payload(payload))

    def create_ad(self, *, ad_account_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        path = f"{_normalize_ad_account_id(ad_account_id)}/ads"
        return self._request("POST", path, data=_encode_payload(payload))

    def create_media_container(self, *, instagram_id: str, image_url: str, caption: str) -> dict[str, Any]:
        payload = {"image_url": image_url, "caption": caption or ""}
        return self._request("POST", f"{instagram_id}/media", data=_encode_payload(payload))

    def get_media_container_status(self, *, container_id: str) -> dict[str, Any]:
        return self._request("GET", container_id, params={"fields": "status_code"})

    def publish_media(self, *, instagram_id: str, creation_id: str) -> dict[str, Any]:
        return self._request(
            "POST",
            f"{instagram_id}/media_publish",
            data=_encode_payload({"creation_id": creation_id}),
        )

    def list_businesses(self, *, fields: str = "id,name") -> dict[str, Any]:
        return self._request("GET", "me/businesses", params={"fields": fields})

    def list_owned_ad_accounts(self, *, business_id: str, fields: str = "id,name,account_status") -> dict[str, Any]:
        return self._request("GET", f"{business_id}/owned_ad_accounts", params={"fields": fields})

    def list_pages(
        self,
        *,
        fields: str = "id,name,access_token,instagram_business_account{id,username}",
        limit: Optional[int] = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"fields": fields}
        if limit is not None:
            params["limit"] = limit
        return self._request("GET", "me/accounts", params=params)

    def get_page(self, *, page_id: str, fields: str = "id,name,phone,website,category") -> dict[str, Any]:
        return self._request("GET", page_id, params={"fields": fields})
