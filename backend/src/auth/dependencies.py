# pyright: reportMissingTypeStubs=false
"""
Authentication and authorization dependencies for FastAPI.

Provides dependency injection functions for user authentication and
role-based access control.
"""

import logging
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from auth.user_context import UserContext, ROLE_ADMIN, ROLE_DOCTOR, ROLE_PATIENT, VALID_ROLES
from core.database import get_db
from services.jwt_service import jwt_service, TokenPayload
from models import Doctor, Patient

logger = logging.getLogger(__name__)


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenPayload]:
    """Extract and validate JWT token payload."""
    if not credentials:
        return None

    try:
        return jwt_service.verify_token(credentials.credentials)
    except PydanticValidationError:
        logger.warning("Token payload has an unexpected shape")
        return None


def get_current_user(
    payload: Optional[TokenPayload] = Depends(get_token_payload),
    db: Session = Depends(get_db)
) -> UserContext:
    """Get authenticated user context from JWT token."""
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credentials not provided"
        )

    role = payload.role.upper()
    if role not in VALID_ROLES:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user role"
        )

    if role == ROLE_DOCTOR:
        doctor = db.query(Doctor).filter(Doctor.id == payload.profile_id).first() if payload.profile_id else None
        if not doctor:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Doctor profile not found"
            )
    elif role == ROLE_PATIENT:
        patient = db.query(Patient).filter(Patient.id == payload.profile_id).first() if payload.profile_id else None
        if not patient:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Patient profile not found"
            )

    return UserContext(
        user_id=payload.sub,
        role=role,
        name=payload.name,
        profile_id=payload.profile_id if role != ROLE_ADMIN else None,
    )


# Role-based authorization dependencies
def require_authenticated(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require any authenticated user."""
    return user


def require_doctor(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require a doctor account."""
    if not user.is_doctor():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Doctor access required"
        )
    return user


def require_patient(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require a patient account."""
    if not user.is_patient():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Patient access required"
        )
    return user


def require_doctor_or_admin(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require a doctor or an admin."""
    if not (user.is_doctor() or user.is_admin()):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Doctor or admin access required"
        )
    return user


def ensure_doctor_access(user: UserContext, doctor_id: int) -> None:
    """Allow a doctor to read only their own data; admins may read any doctor's."""
    if user.is_admin():
        return
    if user.is_doctor() and user.doctor_id == doctor_id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Access denied"
    )
