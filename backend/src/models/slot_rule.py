"""
Slot rule model for a doctor's recurring weekly availability.

A slot rule says "every <day> from <start> to <end> this doctor sees up to
<max_patients> patients of <consultation_type>". Concrete dated sessions are
computed from the active rules on demand and are never stored.
"""

from datetime import time, datetime
from enum import Enum
from typing import Optional
from sqlalchemy import String, Time, TIMESTAMP, ForeignKey, Index, Boolean, Integer, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class DayOfWeek(str, Enum):
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"


class ConsultationType(str, Enum):
    """How the consultation is held. BOTH is only valid on a slot rule."""

    PHYSICAL = "PHYSICAL"
    TELEMEDICINE = "TELEMEDICINE"
    BOTH = "BOTH"


class SlotRule(Base):
    """
    Recurring weekly availability template for a doctor.

    Rules are never hard-deleted. Deactivating a rule hides its future
    sessions while existing appointments keep pointing at it.

    Invariants enforced by SlotRuleService:
    - start_time < end_time
    - max_patients >= 1
    - active rules of one doctor on one day never overlap in time
    """

    __tablename__ = "doctor_slot_rules"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the rule."""

    doctor_id: Mapped[int] = mapped_column(ForeignKey("doctors.id"))
    """Doctor who owns this rule."""

    day_of_week: Mapped[str] = mapped_column(String(10))
    """Upper-case weekday name, SATURDAY through FRIDAY."""

    start_time: Mapped[time] = mapped_column(Time)
    """Session start; also the appointment_time of every booking in the session."""

    end_time: Mapped[time] = mapped_column(Time)
    """Session end."""

    consultation_type: Mapped[str] = mapped_column(String(20), default=ConsultationType.PHYSICAL.value)
    """PHYSICAL, TELEMEDICINE or BOTH."""

    max_patients: Mapped[int] = mapped_column(Integer, default=1)
    """Session capacity."""

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    """False once the rule has been deactivated."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # Relationships
    doctor = relationship("Doctor", back_populates="slot_rules")
    appointments = relationship("Appointment", back_populates="slot_rule")

    __table_args__ = (
        Index('idx_slot_rules_doctor_day', 'doctor_id', 'day_of_week'),
        Index('idx_slot_rules_doctor_day_time', 'doctor_id', 'day_of_week', 'start_time'),
        CheckConstraint('start_time < end_time', name='ck_slot_rules_time_order'),
        CheckConstraint('max_patients >= 1', name='ck_slot_rules_capacity'),
    )

    def serves(self, requested_type: Optional[str]) -> bool:
        """
        Check whether this rule serves a requested consultation type.

        A BOTH rule serves any request. A request for BOTH is only served
        by a BOTH rule. No request matches everything.
        """
        if not requested_type:
            return True
        if self.consultation_type == ConsultationType.BOTH.value:
            return True
        return self.consultation_type == requested_type

    def __repr__(self) -> str:
        return (
            f"<SlotRule(id={self.id}, doctor_id={self.doctor_id}, day={self.day_of_week}, "
            f"{self.start_time}-{self.end_time}, cap={self.max_patients}, active={self.is_active})>"
        )
