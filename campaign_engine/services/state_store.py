from __future__ import annotations

import copy
import logging
from typing import Any, Iterable, Optional, Protocol

from sqlalchemy.orm import Session

from campaign_engine.db.repositories.agent_states import AgentStatesRepository
from campaign_engine.services.objectives import normalize_objective

logger = logging.getLogger(__name__)

INTAKE_SECTION = "intake"
CAMPAIGN_SECTION = "campaignState"


def _is_absent(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, dict)) and not value:
        return True
    return False


def merge_state(current: Optional[dict[str, Any]], update: Optional[dict[str, Any]]) -> dict[str, Any]:
    """
    Recursively merge ``update`` into ``current`` and return a new document.

    An absent value in ``update`` (None, empty string, empty list, empty dict) never replaces a
    present value in ``current`` and is not written at all. Nested dicts merge key by key. Any
    other present value wins.
    Neither input is mutated.
    """
    merged: dict[str, Any] = copy.deepcopy(current) if current else {}
    if not update:
        return merged
    for key, value in update.items():
        if _is_absent(value):
            continue
        existing = merged.get(key)
        if isinstance(value, dict) and isinstance(existing, dict):
            merged[key] = merge_state(existing, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class StateStore(Protocol):
    def get(self, identity: str, business: str) -> Optional[dict[str, Any]]:
        ...

    def put(self, identity: str, business: str, state: dict[str, Any]) -> None:
        ...

    def replace(self, identity: str, business: str, state: dict[str, Any]) -> None:
        ...

    def clear(self, identity: str, business: str, section: Optional[str] = None) -> None:
        ...

    def keys(self, identity: str) -> list[str]:
        ...


class SqlStateStore:
    """Per-identity, per-business JSON documents in the agent_states table."""

    def __init__(self, session: Session) -> None:
        self.repo = AgentStatesRepository(session)

    @staticmethod
    def _identity(identity: str) -> str:
        return identity.strip().lower()

    def get(self, identity: str, business: str) -> Optional[dict[str, Any]]:
        record = self.repo.get(identity=self._identity(identity), business_key=business)
        if record is None:
            return None
        return copy.deepcopy(record.state)

    def put(self, identity: str, business: str, state: dict[str, Any]) -> None:
        current = self.get(identity, business)
        merged = merge_state(current, state)
        self.repo.upsert(identity=self._identity(identity), business_key=business, state=merged)

    def replace(self, identity: str, business: str, state: dict[str, Any]) -> None:
        self.repo.upsert(identity=self._identity(identity), business_key=business, state=copy.deepcopy(state))

    def clear(self, identity: str, business: str, section: Optional[str] = None) -> None:
        if section is None:
            self.repo.delete(identity=self._identity(identity), business_key=business)
            return
        current = self.get(identity, business)
        if not current or section not in current:
            return
        current.pop(section)
        if current:
            self.repo.upsert(identity=self._identity(identity), business_key=business, state=current)
        else:
            self.repo.delete(identity=self._identity(identity), business_key=business)

    def keys(self, identity: str) -> list[str]:
        return self.repo.list_business_keys(identity=self._identity(identity))


def find_campaign_state(
    store: StateStore,
    identity: str,
    keys: Iterable[Optional[str]],
    preferred_objective: Optional[str] = None,
) -> tuple[Optional[str], Optional[dict[str, Any]]]:
    """
    Scan candidate business keys for a stored campaign state.

    Explicit keys are checked first, then every key stored for the identity. Preference order:
    a state whose objective equals ``preferred_objective``, then one with a non-empty plan, then
    the first one found.
    """
    candidates: list[str] = []
    for key in [*keys, *store.keys(identity)]:
        if key and key not in candidates:
            candidates.append(key)

    found: list[tuple[str, dict[str, Any]]] = []
    for key in candidates:
        document = store.get(identity, key) or {}
        campaign_state = document.get(CAMPAIGN_SECTION)
        if campaign_state:
            found.append((key, campaign_state))

    if not found:
        return None, None

    if preferred_objective:
        wanted = normalize_objective(preferred_objective)
        for key, campaign_state in found:
            objective = campaign_state.get("objective")
            if objective and normalize_objective(objective) == wanted:
                return key, campaign_state
    for key, campaign_state in found:
        if campaign_state.get("plan"):
            return key, campaign_state
    logger.debug("No preferred campaign state matched; using first found", extra={"keys": candidates})
    return found[0]
