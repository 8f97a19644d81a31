import json
import uuid
from datetime import datetime, UTC

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.types import TEXT, TypeDecorator

from notebook_bridge.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class JSONType(TypeDecorator):
    """Store JSON values as TEXT for SQLite/Postgres compatibility."""

    impl = TEXT
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            value = json.dumps(value)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            return json.loads(value)
        return value


class Notebook(Base):
    __tablename__ = "notebooks"

    id = Column(String(32), primary_key=True, default=lambda: str(uuid.uuid4()).replace("-", ""))
    name = Column(String, nullable=False)
    url = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    topics = Column(JSONType, nullable=True)

    is_active = Column(Boolean, nullable=False, default=False)
    use_count = Column(Integer, nullable=False, default=0)
    last_used_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "description": self.description,
            "topics": self.topics or [],
            "is_active": bool(self.is_active),
            "use_count": self.use_count or 0,
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
