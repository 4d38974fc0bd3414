from __future__ import annotations

import re
from typing import Optional

TRAFFIC = "TRAFFIC"
LEADS = "LEADS"
SALES = "SALES"
ENGAGEMENT = "ENGAGEMENT"
AWARENESS = "AWARENESS"
APP_PROMOTION = "APP_PROMOTION"

OBJECTIVES: tuple[str, ...] = (TRAFFIC, LEADS, SALES, ENGAGEMENT, AWARENESS, APP_PROMOTION)
DEFAULT_OBJECTIVE = TRAFFIC

_EXACT: dict[str, str] = {
    "TRAFFIC": TRAFFIC,
    "OUTCOME_TRAFFIC": TRAFFIC,
    "LINK_CLICKS": TRAFFIC,
    "WEBSITE_TRAFFIC": TRAFFIC,
    "CLICKS": TRAFFIC,
    "LEADS": LEADS,
    "LEAD": LEADS,
    "OUTCOME_LEADS": LEADS,
    "LEAD_GENERATION": LEADS,
    "SALES": SALES,
    "OUTCOME_SALES": SALES,
    "CONVERSIONS": SALES,
    "PRODUCT_CATALOG_SALES": SALES,
    "ENGAGEMENT": ENGAGEMENT,
    "OUTCOME_ENGAGEMENT": ENGAGEMENT,
    "POST_ENGAGEMENT": ENGAGEMENT,
    "MESSAGES": ENGAGEMENT,
    "AWARENESS": AWARENESS,
    "OUTCOME_AWARENESS": AWARENESS,
    "BRAND_AWARENESS": AWARENESS,
    "REACH": AWARENESS,
    "APP_PROMOTION": APP_PROMOTION,
    "OUTCOME_APP_PROMOTION": APP_PROMOTION,
    "APP_INSTALLS": APP_PROMOTION,
}

# Evaluated in order; the first rule with a matching token wins.
_FUZZY_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    (TRAFFIC, ("TRAFFIC", "CLICK", "VISIT", "WEBSITE")),
    (LEADS, ("LEAD", "SIGNUP", "SIGN_UP", "FORM", "CALL", "ENQUIR", "INQUIR")),
    (SALES, ("SALE", "PURCHASE", "CONVERSION", "BUY", "SHOP", "ORDER")),
    (ENGAGEMENT, ("MESSAGE", "MESSENGER", "WHATSAPP", "CHAT", "ENGAGE", "LIKE", "COMMENT", "FOLLOW")),
    (AWARENESS, ("AWARE", "REACH", "BRAND", "IMPRESSION", "VIEW")),
)


def _canonical_key(value: str) -> str:
    return re.sub(r"[\s\-]+", "_", value.strip().upper())


def normalize_objective(value: Optional[str]) -> str:
    """Map free text or a platform label to one of OBJECTIVES. Unknown input falls back to TRAFFIC."""
    if not value or not value.strip():
        return DEFAULT_OBJECTIVE
    key = _canonical_key(value)
    exact = _EXACT.get(key)
    if exact:
        return exact
    for objective, tokens in _FUZZY_RULES:
        if any(token in key for token in tokens):
            return objective
    return DEFAULT_OBJECTIVE


def to_remote_objective(objective: str) -> str:
    return f"OUTCOME_{normalize_objective(objective)}"


def objective_fallback_chain(objective: str) -> list[str]:
    chain: list[str] = []
    for candidate in (normalize_objective(objective), TRAFFIC, AWARENESS, ENGAGEMENT):
        if candidate not in chain:
            chain.append(candidate)
    return chain
