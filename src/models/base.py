"""
Declarative base shared by every order-engine table.

BaseModel supplies the surrogate integer key, a UUID that is safe to hand to
other systems, created/updated timestamps in UTC and a to_dict() used by the
services for their return values.
"""

import enum
import uuid as uuid_lib
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import declarative_base, validates

from src.utils.datetime_utils import as_utc, utc_now

Base = declarative_base()


class BaseModel(Base):
    """
    Abstract base with id, uuid, created_at and updated_at.

    SQLite drops timezone information, so datetimes read back from the
    database are naive UTC; to_dict() renders every datetime with an explicit
    +00:00 offset either way.
    """

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)

    uuid = Column(
        String(36), unique=True, nullable=False, default=lambda: str(uuid_lib.uuid4()), index=True
    )

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        """Column values keyed by column name; enums as values, datetimes as ISO strings."""
        result = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, datetime):
                value = as_utc(value).isoformat()
            elif isinstance(value, enum.Enum):
                value = value.value
            result[column.name] = value
        return result

    @validates("uuid")
    def _validate_uuid(self, _key: str, value: Any) -> str:
        # uuid.UUID objects are stored as their string form
        if value is None:
            return value
        return str(value)

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        if getattr(self, "id", None) is not None:
            return f"{class_name}(id={self.id})"
        return f"{class_name}()"
