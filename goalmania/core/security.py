"""
Security utilities for authentication and authorization
Handles JWT tokens, password hashing, and permission checks
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
import hmac

from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .config import settings
from .exceptions import UnauthorizedException, ForbiddenException

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Security scheme
security = HTTPBearer(auto_error=False)

ROLES = ("admin", "user", "premium", "journalist")


class SecurityUtils:
    """Security utility functions"""

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verify password against hash"""
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash password using bcrypt"""
        return pwd_context.hash(password)

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_minutes: Optional[int] = None) -> str:
        """Create JWT access token"""
        to_encode = data.copy()
        lifetime = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
        expire = datetime.now(timezone.utc) + timedelta(minutes=lifetime)
        to_encode.update({"exp": expire, "type": "access"})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> Dict[str, Any]:
        """Decode and validate JWT token"""
        try:
            return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except JWTError:
            raise UnauthorizedException("Invalid authentication credentials")


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Dict[str, Any]:
    """Extract the {id, role, email} principal from the bearer token"""
    if credentials is None:
        raise UnauthorizedException("Authentication required")

    payload = SecurityUtils.decode_token(credentials.credentials)

    if payload.get("type") != "access" or not payload.get("sub"):
        raise UnauthorizedException("Invalid token type")

    role = payload.get("role") or "user"
    if role not in ROLES:
        raise UnauthorizedException("Unknown role")

    return {
        "id": payload["sub"],
        "role": role,
        "email": payload.get("email"),
    }


def require_role(allowed_roles: list[str]):
    """Dependency factory checking the principal's role"""
    async def role_checker(current_user: dict = Depends(get_current_user)):
        if current_user.get("role") not in allowed_roles:
            raise ForbiddenException("Insufficient permissions")
        return current_user
    return role_checker


# Specific role dependencies
require_admin = require_role(["admin"])
require_coupon_holder = require_role(["premium", "admin"])


def is_admin(user: Dict[str, Any]) -> bool:
    return user.get("role") == "admin"


async def require_admin_or_revalidate_token(
    x_revalidate_token: Optional[str] = Header(None, alias="X-Revalidate-Token"),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Dict[str, Any]:
    """Cache revalidation accepts the shared token or an admin session"""
    if x_revalidate_token and settings.REVALIDATE_TOKEN:
        if not hmac.compare_digest(x_revalidate_token, settings.REVALIDATE_TOKEN):
            raise UnauthorizedException("Invalid revalidation token")
        return {"id": None, "role": "service", "email": None}

    user = await get_current_user(credentials)
    if not is_admin(user):
        raise ForbiddenException("Insufficient permissions")
    return user
