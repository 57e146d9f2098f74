"""
JWT Service for access token validation.

Tokens are issued by the MediConnect auth service. This backend shares the
signing key and only needs to decode them; create_access_token is kept for
tooling and tests.
"""

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from pydantic import BaseModel

from core.config import JWT_SECRET_KEY, JWT_ACCESS_TOKEN_EXPIRE_MINUTES


class TokenPayload(BaseModel):
    """Payload structure for JWT tokens."""
    sub: str  # Account id in the auth service
    role: str  # "PATIENT", "DOCTOR" or "ADMIN"
    profile_id: Optional[int] = None  # Doctor or patient id, null for admins
    name: str
    iat: Optional[int] = None  # Set by JWT service
    exp: Optional[int] = None  # Set by JWT service


class JWTService:
    """Service for JWT token operations."""

    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = JWT_ACCESS_TOKEN_EXPIRE_MINUTES

    @classmethod
    def create_access_token(cls, payload: TokenPayload, expires_in_minutes: Optional[int] = None) -> str:
        """Create a JWT access token."""
        to_encode = payload.model_dump()
        minutes = cls.ACCESS_TOKEN_EXPIRE_MINUTES if expires_in_minutes is None else expires_in_minutes
        now = datetime.now(timezone.utc)
        to_encode.update({"exp": now + timedelta(minutes=minutes), "iat": now})
        return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=cls.ALGORITHM)

    @classmethod
    def verify_token(cls, token: str) -> Optional[TokenPayload]:
        """Verify and decode a JWT token."""
        try:
            payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[cls.ALGORITHM])
            return TokenPayload(**payload)
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None


# Global instance
jwt_service = JWTService()
