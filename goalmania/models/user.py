"""User model"""

from sqlalchemy import Column, String, Boolean, Enum
import enum

from .base import BaseModel


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"
    PREMIUM = "premium"
    JOURNALIST = "journalist"


class User(BaseModel):
    """Storefront account; only the fields orders and notifications need"""

    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False)
    language = Column(String(5), default="it", nullable=False)
    password_hash = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
