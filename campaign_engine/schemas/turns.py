from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class TurnRequest(BaseModel):
    instruction: str = Field(min_length=1)
    mode: Optional[Literal["instagram_post", "meta_ads"]] = None


class TurnResponse(BaseModel):
    question: Optional[str] = None
    intent: Optional[str] = None
    payload: Optional[dict[str, Any]] = None
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
