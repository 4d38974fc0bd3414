from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from campaign_engine.db.models import MetaConnection


class MetaConnectionsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get_by_email(self, email: str) -> Optional[MetaConnection]:
        stmt = select(MetaConnection).where(MetaConnection.email == email.strip().lower())
        return self.session.scalars(stmt).first()

    def create(self, **fields) -> MetaConnection:
        if "email" in fields and fields["email"]:
            fields["email"] = fields["email"].strip().lower()
        record = MetaConnection(**fields)
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def update(self, record: MetaConnection, **fields) -> MetaConnection:
        for key, value in fields.items():
            setattr(record, key, value)
        self.session.commit()
        self.session.refresh(record)
        return record
