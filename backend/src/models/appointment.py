"""
Appointment model representing one patient's seat in a dated session.

Appointments are also the queue: the queue of a doctor's day is the set of
that day's appointments ordered by queue_number. There is no separate
queue table to keep in sync.
"""

from datetime import date, time, datetime
from enum import Enum
from typing import Optional
from sqlalchemy import String, Date, Time, TIMESTAMP, ForeignKey, Index, Integer, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


# Statuses that hold a seat in a session
ACTIVE_STATUSES = (
    AppointmentStatus.PENDING.value,
    AppointmentStatus.CONFIRMED.value,
    AppointmentStatus.IN_PROGRESS.value,
    AppointmentStatus.COMPLETED.value,
)

# Statuses still waiting to be seen or being seen
WAITING_STATUSES = (
    AppointmentStatus.PENDING.value,
    AppointmentStatus.CONFIRMED.value,
)

TERMINAL_CANCELLED_STATUSES = (
    AppointmentStatus.CANCELLED.value,
    AppointmentStatus.REJECTED.value,
)

_NOT_CANCELLED_SQL = "status NOT IN ('CANCELLED', 'REJECTED')"


class Appointment(Base):
    """
    Appointment entity for a patient booked into a doctor's session.

    Status machine: PENDING -> CONFIRMED -> IN_PROGRESS -> COMPLETED, with
    CANCELLED (patient/admin) and REJECTED (doctor) as terminal alternatives
    from PENDING or CONFIRMED. Rows are never deleted.

    Two partial unique indexes over non-cancelled rows back the booking
    logic at the database level:
    - (doctor_id, appointment_date, appointment_time, seat_number): a
      session can never hold more than capacity seats
    - (doctor_id, appointment_date, queue_number): queue numbers are unique
      per doctor per day
    """

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the appointment."""

    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"))
    """Patient who booked."""

    doctor_id: Mapped[int] = mapped_column(ForeignKey("doctors.id"))
    """Doctor being consulted."""

    slot_rule_id: Mapped[Optional[int]] = mapped_column(ForeignKey("doctor_slot_rules.id"), nullable=True)
    """Rule whose session this appointment was booked into."""

    appointment_date: Mapped[date] = mapped_column(Date)
    """Session date (Dhaka calendar day)."""

    appointment_time: Mapped[time] = mapped_column(Time)
    """Session start time."""

    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    """Session end time, copied from the rule at booking time."""

    consultation_type: Mapped[str] = mapped_column(String(20))
    """Concrete consultation type: PHYSICAL or TELEMEDICINE."""

    status: Mapped[str] = mapped_column(String(20), default=AppointmentStatus.CONFIRMED.value)
    """Current status, one of AppointmentStatus."""

    reason_for_visit: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    """Patient-provided symptoms or reason."""

    queue_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Position in the doctor's day, 1-based. NULL only while a reset renumbers."""

    seat_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Seat index inside the session, 1..capacity."""

    called_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # Relationships
    patient = relationship("Patient", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")
    slot_rule = relationship("SlotRule", back_populates="appointments")

    __table_args__ = (
        Index('idx_appointments_doctor_date', 'doctor_id', 'appointment_date'),
        Index('idx_appointments_patient', 'patient_id'),
        Index(
            'uq_appointments_session_seat',
            'doctor_id', 'appointment_date', 'appointment_time', 'seat_number',
            unique=True,
            postgresql_where=text(_NOT_CANCELLED_SQL),
            sqlite_where=text(_NOT_CANCELLED_SQL),
        ),
        Index(
            'uq_appointments_doctor_day_queue',
            'doctor_id', 'appointment_date', 'queue_number',
            unique=True,
            postgresql_where=text(_NOT_CANCELLED_SQL),
            sqlite_where=text(_NOT_CANCELLED_SQL),
        ),
    )

    @property
    def is_cancelled(self) -> bool:
        return self.status in TERMINAL_CANCELLED_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, doctor_id={self.doctor_id}, patient_id={self.patient_id}, "
            f"{self.appointment_date} {self.appointment_time}, status={self.status}, queue={self.queue_number})>"
        )
