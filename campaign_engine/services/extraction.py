"""Free-text field extraction used by the conversational flows.

Everything here is a pure function of its input text so it can be tested without a
conversation around it.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from campaign_engine.config import settings

URL_RE = re.compile(r"https?://[^\s<>\"')]+", re.IGNORECASE)
BARE_DOMAIN_RE = re.compile(
    r"(?<![@\w.-])(?:www\.[a-z0-9-]+(?:\.[a-z0-9-]+)*\.[a-z]{2,}|[a-z0-9-]+(?:\.[a-z0-9-]+)*\.(?:com|in|net|org|io|co|biz|shop|store|app|dev))\b(?:/[^\s]*)?",
    re.IGNORECASE,
)
PHONE_RE = re.compile(r"\+?\d[\d\s-]{8,15}\d")

_BUDGET_LABEL_RE = re.compile(
    r"\b(?:daily budget|budget|amount|day)\s*[:=]\s*(?:₹|\$|rs\.?|inr|usd)?\s*(\d+(?:\.\d+)?)", re.IGNORECASE
)
_BUDGET_CURRENCY_RE = re.compile(r"(₹|\$|\b(?:rs\.?|inr|usd))\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
_DURATION_RE = re.compile(r"(\d+)\s*days?\b", re.IGNORECASE)
_LIFETIME_RE = re.compile(r"\b(lifetime|total budget|overall)\b", re.IGNORECASE)


def _label_re(*labels: str) -> re.Pattern[str]:
    joined = "|".join(labels)
    return re.compile(rf"(?:^|\n|\b)(?:{joined})\s*:\s*(.+?)(?=\n|$)", re.IGNORECASE)


_CAMPAIGN_NAME_RE = _label_re("campaign name", "name")
_HEADLINE_RE = _label_re("headline", "title")
_PRIMARY_TEXT_RE = _label_re("primary text", "ad text", "body", "message")
_OBJECTIVE_RE = _label_re("objective", "goal")
_IMAGE_URL_RE = _label_re("image url", "image")
_DESTINATION_RE = _label_re("destination url", "website", "landing page", "link")
_CTA_RE = _label_re("cta", "call to action")
_CAPTION_RE = _label_re("caption")
_HASHTAGS_RE = _label_re("hashtags", "tags")
_HASHTAG_TOKEN_RE = re.compile(r"#\w+")

_CURRENCY_CODES = {"₹": "INR", "rs": "INR", "rs.": "INR", "inr": "INR", "$": "USD", "usd": "USD"}


@dataclass
class CampaignFields:
    campaignName: Optional[str] = None
    objective: Optional[str] = None
    budgetAmount: Optional[float] = None
    budgetCurrency: Optional[str] = None
    budgetType: Optional[str] = None
    durationDays: Optional[int] = None
    headline: Optional[str] = None
    primaryText: Optional[str] = None
    imageUrl: Optional[str] = None
    destinationUrl: Optional[str] = None
    phone: Optional[str] = None
    callToAction: Optional[str] = None

    def is_empty(self) -> bool:
        return not any(value is not None for value in asdict(self).values())

    def to_campaign_state(self) -> dict[str, Any]:
        """Shape the extracted fields as a partial campaign-state document for merging."""
        return {
            "campaignName": self.campaignName,
            "objective": self.objective,
            "durationDays": self.durationDays,
            "budget": {
                "amount": self.budgetAmount,
                "currency": self.budgetCurrency,
                "type": self.budgetType,
            },
            "creative": {
                "imageUrl": self.imageUrl,
                "primaryText": self.primaryText,
                "headline": self.headline,
                "destinationUrl": self.destinationUrl,
                "phone": self.phone,
                "callToActionType": self.callToAction,
            },
        }


@dataclass
class DirectPost:
    imageUrl: str
    caption: str
    hashtags: list[str] = field(default_factory=list)

    def final_caption(self) -> str:
        if not self.hashtags:
            return self.caption
        return f"{self.caption}\n\n{' '.join(self.hashtags)}"


def _first(pattern: re.Pattern[str], text: str) -> Optional[str]:
    match = pattern.search(text)
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def find_url(text: str) -> Optional[str]:
    match = URL_RE.search(text or "")
    if match:
        return match.group(0).rstrip(".,;")
    return None


def find_website(text: str) -> Optional[str]:
    """Like find_url but also accepts bare domains, returned with an https:// scheme."""
    url = find_url(text)
    if url:
        return url
    match = BARE_DOMAIN_RE.search(text or "")
    if not match:
        return None
    return f"https://{match.group(0).rstrip('.,;')}"


def find_phone(text: str) -> Optional[str]:
    match = PHONE_RE.search(text or "")
    return match.group(0).strip() if match else None


def normalize_phone(raw: Optional[str], *, country_code: Optional[str] = None) -> Optional[str]:
    """
    Coerce a phone number to ``+<digits>``.

    Numbers already written with a leading ``+`` keep their digits. Bare 10-digit numbers get
    the default country code, as do 11-digit numbers with a trunk ``0``. Numbers that already
    start with the country code are kept. Anything else is rejected with ``None``.
    """
    if not raw:
        return None
    code = country_code or settings.DEFAULT_PHONE_COUNTRY_CODE
    stripped = raw.strip()
    digits = re.sub(r"\D", "", stripped)
    if not digits:
        return None
    if stripped.startswith("+"):
        return f"+{digits}" if 8 <= len(digits) <= 15 else None
    if len(digits) == 10:
        return f"+{code}{digits}"
    if len(digits) == 11 and digits.startswith("0"):
        return f"+{code}{digits[1:]}"
    if len(digits) == len(code) + 10 and digits.startswith(code):
        return f"+{digits}"
    return None


def is_drive_link(url: str) -> bool:
    lowered = url.lower()
    return "drive.google.com" in lowered or "docs.google.com" in lowered


def _parse_budget(text: str) -> tuple[Optional[float], Optional[str]]:
    currency_match = _BUDGET_CURRENCY_RE.search(text)
    label_match = _BUDGET_LABEL_RE.search(text)
    amount: Optional[float] = None
    currency: Optional[str] = None
    if label_match:
        amount = float(label_match.group(1))
    if currency_match:
        currency = _CURRENCY_CODES.get(currency_match.group(1).lower())
        if amount is None:
            amount = float(currency_match.group(2))
    return amount, currency


def extract_campaign_fields(text: str) -> CampaignFields:
    """Scrape labelled campaign fields (``Headline: ...``, ``Budget: 500`` ...) out of free text."""
    text = text or ""
    fields = CampaignFields()

    fields.campaignName = _first(_CAMPAIGN_NAME_RE, text)
    fields.objective = _first(_OBJECTIVE_RE, text)
    fields.headline = _first(_HEADLINE_RE, text)
    fields.primaryText = _first(_PRIMARY_TEXT_RE, text)
    fields.callToAction = _first(_CTA_RE, text)
    if fields.callToAction:
        fields.callToAction = re.sub(r"[\s-]+", "_", fields.callToAction.strip().upper())

    amount, currency = _parse_budget(text)
    fields.budgetAmount = amount
    fields.budgetCurrency = currency
    if amount is not None:
        fields.budgetType = "LIFETIME" if _LIFETIME_RE.search(text) else "DAILY"

    duration = _DURATION_RE.search(text)
    if duration:
        fields.durationDays = int(duration.group(1))

    image_label = _first(_IMAGE_URL_RE, text)
    if image_label:
        fields.imageUrl = find_url(image_label)

    destination_label = _first(_DESTINATION_RE, text)
    if destination_label:
        fields.destinationUrl = find_website(destination_label)
    if not fields.destinationUrl:
        for match in URL_RE.finditer(text):
            url = match.group(0).rstrip(".,;")
            if url != fields.imageUrl:
                fields.destinationUrl = url
                break

    phone = find_phone(URL_RE.sub(" ", text))
    if phone:
        fields.phone = normalize_phone(phone)

    return fields


def extract_direct_post(text: str) -> Optional[DirectPost]:
    """Recognise an instruction that already carries an image URL and a ``Caption:`` line."""
    text = text or ""
    caption = _first(_CAPTION_RE, text)
    if not caption:
        return None
    image_label = _first(_IMAGE_URL_RE, text)
    image_url = find_url(image_label) if image_label else find_url(text)
    if not image_url:
        return None
    hashtags_line = _first(_HASHTAGS_RE, text)
    hashtags = _HASHTAG_TOKEN_RE.findall(hashtags_line) if hashtags_line else []
    return DirectPost(imageUrl=image_url, caption=caption, hashtags=hashtags)
