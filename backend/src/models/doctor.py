"""
Doctor model.

Doctor profiles are owned by the hospital/admin services; this subsystem only
needs enough of the profile to own slot rules, serve a queue and appear in
booking responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Boolean, Numeric, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Doctor(Base):
    """
    Doctor who publishes weekly availability and sees patients in queue order.

    The row also serves as the per-doctor lock for booking and queue
    mutations: writers take ``SELECT ... FOR UPDATE`` on it before they read
    session counts or queue numbers.
    """

    __tablename__ = "doctors"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the doctor."""

    full_name: Mapped[str] = mapped_column(String(255))
    """Display name of the doctor."""

    email: Mapped[str] = mapped_column(String(255), unique=True)
    """Login email, unique across doctors."""

    specialization: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    consultation_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    """Fee in BDT, shown alongside booked appointments."""

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    """Inactive doctors keep their history but cannot be booked."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # Relationships
    slot_rules = relationship("SlotRule", back_populates="doctor")
    appointments = relationship("Appointment", back_populates="doctor")

    def __repr__(self) -> str:
        return f"<Doctor(id={self.id}, name='{self.full_name}', active={self.is_active})>"
