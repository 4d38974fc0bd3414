from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from campaign_engine.db.models import MetaConnection
from campaign_engine.db.repositories.meta_connections import MetaConnectionsRepository
from campaign_engine.errors import ConfigurationError, RemoteFatalError
from campaign_engine.services.meta_ads import MetaAdsClient, MetaAdsError

logger = logging.getLogger("meta.sync")

_ACTIVE_AD_ACCOUNT_STATUS = 1


@dataclass
class BusinessCandidate:
    business_id: str
    name: str
    page_id: Optional[str] = None


def eligible_businesses(connection: Optional[MetaConnection]) -> list[BusinessCandidate]:
    """Instagram business accounts the operator can publish to, from the stored connection only."""
    if connection is None:
        return []
    candidates: list[BusinessCandidate] = []
    verified = connection.verified_assets or {}
    for account in verified.get("instagramAccounts") or []:
        account_id = account.get("id")
        if not account_id:
            continue
        name = account.get("username") or account.get("pageName") or connection.business_name or account_id
        candidates.append(BusinessCandidate(business_id=str(account_id), name=name, page_id=account.get("pageId")))
    if not candidates and connection.instagram_id:
        candidates.append(
            BusinessCandidate(
                business_id=connection.instagram_id,
                name=connection.business_name or "your Instagram account",
                page_id=connection.fb_page_id,
            )
        )
    return candidates


def _data(response: dict[str, Any]) -> list[dict[str, Any]]:
    data = response.get("data") if isinstance(response, dict) else None
    return [item for item in data or [] if isinstance(item, dict)]


class BusinessSyncService:
    def __init__(self, client: MetaAdsClient, repo: MetaConnectionsRepository) -> None:
        self.client = client
        self.repo = repo

    def _pick_ad_account(self, business_id: Optional[str]) -> Optional[str]:
        if not business_id:
            return None
        accounts = _data(self.client.list_owned_ad_accounts(business_id=business_id))
        if not accounts:
            return None
        active = [a for a in accounts if a.get("account_status") == _ACTIVE_AD_ACCOUNT_STATUS]
        return str((active or accounts)[0].get("id"))

    def sync(self, connection: MetaConnection) -> MetaConnection:
        try:
            businesses = _data(self.client.list_businesses())
            business_id = str(businesses[0]["id"]) if businesses and businesses[0].get("id") else None
            ad_account_id = self._pick_ad_account(business_id)
            pages = _data(self.client.list_pages())
            if not pages:
                raise ConfigurationError("No Facebook pages found for this account. Please connect a page first.")

            eligible = [page for page in pages if (page.get("instagram_business_account") or {}).get("id")]
            page = next((p for p in pages if p.get("id") == connection.fb_page_id), None)
            if page is None:
                page = (eligible or pages)[0]
            details = self.client.get_page(page_id=str(page["id"]))
        except MetaAdsError as exc:
            raise RemoteFatalError(
                f"Business sync failed: {exc.detail}",
                remote_message=exc.detail,
                code=exc.code,
                subcode=exc.subcode,
            ) from exc

        instagram = page.get("instagram_business_account") or {}
        verified_assets = {
            "pages": [{"id": p.get("id"), "name": p.get("name")} for p in pages],
            "instagramAccounts": [
                {
                    "id": p["instagram_business_account"]["id"],
                    "username": p["instagram_business_account"].get("username"),
                    "pageId": p.get("id"),
                    "pageName": p.get("name"),
                }
                for p in eligible
            ],
        }
        fields: dict[str, Any] = {
            "fb_page_id": str(page["id"]),
            "business_name": details.get("name") or page.get("name"),
            "business_phone": details.get("phone"),
            "business_website": details.get("website"),
            "business_category": details.get("category"),
            "verified_assets": verified_assets,
            "business_info_synced": True,
        }
        if business_id:
            fields["fb_business_id"] = business_id
        if ad_account_id:
            fields["fb_ad_account_id"] = ad_account_id
        if instagram.get("id"):
            fields["ig_business_id"] = str(instagram["id"])

        logger.info(
            "Business info synced",
            extra={
                "email": connection.email,
                "page_id": fields["fb_page_id"],
                "ad_account_id": ad_account_id,
                "instagram_accounts": len(verified_assets["instagramAccounts"]),
            },
        )
        return self.repo.update(connection, **fields)
