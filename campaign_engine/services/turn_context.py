from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from campaign_engine.db.models import MetaConnection


@dataclass
class TurnContext:
    """Who is talking and which business connection they have. Passed explicitly through every call."""

    identity: str
    connection: Optional[MetaConnection] = None
