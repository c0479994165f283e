"""Base models and mixins for database models"""

from sqlalchemy import Column, DateTime, Uuid
from sqlalchemy.orm import DeclarativeBase, declared_attr
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict
import uuid

from goalmania.utils.helpers import utcnow


class Base(DeclarativeBase):
    pass


class TimestampedModel:
    """Mixin for adding created_at and updated_at timestamps"""

    @declared_attr
    def created_at(cls):
        return Column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            index=True
        )

    @declared_attr
    def updated_at(cls):
        return Column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            onupdate=utcnow
        )


class UUIDModel:
    """Mixin for adding UUID primary key"""

    @declared_attr
    def id(cls):
        return Column(
            Uuid(as_uuid=True),
            primary_key=True,
            default=uuid.uuid4,
            nullable=False
        )


class BaseModel(Base, UUIDModel, TimestampedModel):
    """Abstract base model with common functionality"""

    __abstract__ = True

    def to_dict(self) -> Dict[str, Any]:
        """Column values with datetimes, UUIDs and Decimals made JSON-friendly"""
        result = {}

        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, uuid.UUID):
                value = str(value)
            elif isinstance(value, Decimal):
                value = float(value)
            result[column.name] = value

        return result

    def __repr__(self):
        return f"<{self.__class__.__name__}(id={self.id!r})>"
