"""Authenticated caller passed from the API layer into services."""

from typing import Optional

ROLE_PATIENT = "PATIENT"
ROLE_DOCTOR = "DOCTOR"
ROLE_ADMIN = "ADMIN"

VALID_ROLES = (ROLE_PATIENT, ROLE_DOCTOR, ROLE_ADMIN)


class UserContext:
    """Authenticated user context extracted from JWT token."""

    def __init__(
        self,
        user_id: str,
        role: str,
        name: str,
        profile_id: Optional[int] = None,
    ):
        self.user_id = user_id  # Account id issued by the auth service
        self.role = role  # "PATIENT", "DOCTOR" or "ADMIN"
        self.name = name
        self.profile_id = profile_id  # Doctor or patient id for that role, None for admins

    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def is_doctor(self) -> bool:
        return self.role == ROLE_DOCTOR

    def is_patient(self) -> bool:
        return self.role == ROLE_PATIENT

    @property
    def doctor_id(self) -> Optional[int]:
        return self.profile_id if self.is_doctor() else None

    @property
    def patient_id(self) -> Optional[int]:
        return self.profile_id if self.is_patient() else None

    def __repr__(self) -> str:
        return f"UserContext(role='{self.role}', user_id='{self.user_id}', profile_id={self.profile_id})"
