"""
Patient model representing people who book appointments.

Patient profiles (medical history, documents) live in other services; only
identity and contact details are kept here.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Patient(Base):
    """Patient entity that books sessions and waits in doctor queues."""

    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the patient."""

    full_name: Mapped[str] = mapped_column(String(255))
    """Full name of the patient."""

    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    """Contact phone number, shown to the doctor in the queue view."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # Relationships
    appointments = relationship("Appointment", back_populates="patient")

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, name='{self.full_name}')>"
