from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from campaign_engine.db.models import AgentState


class AgentStatesRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, *, identity: str, business_key: str) -> Optional[AgentState]:
        stmt = select(AgentState).where(
            AgentState.identity == identity,
            AgentState.business_key == business_key,
        )
        return self.session.scalars(stmt).first()

    def list_business_keys(self, *, identity: str) -> list[str]:
        stmt = (
            select(AgentState.business_key)
            .where(AgentState.identity == identity)
            .order_by(AgentState.updated_at.desc(), AgentState.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def upsert(self, *, identity: str, business_key: str, state: dict[str, Any]) -> AgentState:
        record = self.get(identity=identity, business_key=business_key)
        if record is None:
            record = AgentState(identity=identity, business_key=business_key, state=state)
            self.session.add(record)
        else:
            # Reassign so the JSON column is flagged dirty.
            record.state = state
        self.session.commit()
        self.session.refresh(record)
        return record

    def delete(self, *, identity: str, business_key: str) -> bool:
        record = self.get(identity=identity, business_key=business_key)
        if record is None:
            return False
        self.session.delete(record)
        self.session.commit()
        return True
