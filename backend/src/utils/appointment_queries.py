"""
Utility functions for consistent appointment queries.

This module contains reusable query functions so that the booking writer,
the session materializer and the queue sequencer agree on which rows hold a
seat, which rows are waiting, and how a doctor's row is locked.
"""

from datetime import date, time
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError
from models import Appointment, Doctor, Patient
from models.appointment import ACTIVE_STATUSES


def get_doctor(db: Session, doctor_id: int, active_only: bool = False) -> Doctor:
    """
    Load a doctor by id.

    Raises:
        NotFoundError: If the doctor does not exist, or is inactive when active_only is set
    """
    query = db.query(Doctor).filter(Doctor.id == doctor_id)
    if active_only:
        query = query.filter(Doctor.is_active == True)
    doctor = query.first()
    if not doctor:
        raise NotFoundError("Doctor not found")
    return doctor


def lock_doctor(db: Session, doctor_id: int, active_only: bool = True) -> Doctor:
    """
    Lock the doctor's row for the rest of the transaction.

    All writers that read session counts or queue numbers for a doctor take
    this lock first, so their read-then-write sequences never interleave.

    Raises:
        NotFoundError: If the doctor does not exist, or is inactive when active_only is set
    """
    query = db.query(Doctor).filter(Doctor.id == doctor_id)
    if active_only:
        query = query.filter(Doctor.is_active == True)
    doctor = query.with_for_update().first()
    if not doctor:
        raise NotFoundError("Doctor not found or inactive")
    return doctor


def get_patient(db: Session, patient_id: int) -> Patient:
    """
    Load a patient by id.

    Raises:
        NotFoundError: If the patient does not exist
    """
    patient = db.query(Patient).filter(Patient.id == patient_id).first()
    if not patient:
        raise NotFoundError("Patient not found")
    return patient


def count_session_bookings(db: Session, doctor_id: int, session_date: date, start_time: time) -> int:
    """Count appointments holding a seat in one session."""
    return db.query(func.count(Appointment.id)).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == session_date,
        Appointment.appointment_time == start_time,
        Appointment.status.in_(ACTIVE_STATUSES)
    ).scalar() or 0


def count_bookings_by_session(
    db: Session,
    doctor_id: int,
    start_date: date,
    end_date: date
) -> Dict[Tuple[date, time], int]:
    """
    Count seat-holding appointments per (date, start time) in one query.

    Returns:
        Mapping of (appointment_date, appointment_time) to booked count
    """
    rows = db.query(
        Appointment.appointment_date,
        Appointment.appointment_time,
        func.count(Appointment.id)
    ).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date >= start_date,
        Appointment.appointment_date <= end_date,
        Appointment.status.in_(ACTIVE_STATUSES)
    ).group_by(
        Appointment.appointment_date,
        Appointment.appointment_time
    ).all()

    return {(row[0], row[1]): row[2] for row in rows}


def get_taken_seats(db: Session, doctor_id: int, session_date: date, start_time: time) -> List[int]:
    """Seat numbers already held in a session."""
    rows = db.query(Appointment.seat_number).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == session_date,
        Appointment.appointment_time == start_time,
        Appointment.status.in_(ACTIVE_STATUSES),
        Appointment.seat_number.isnot(None)
    ).all()
    return [row[0] for row in rows]


def get_max_queue_number(
    db: Session,
    doctor_id: int,
    queue_date: date,
    statuses: Optional[Tuple[str, ...]] = None
) -> int:
    """
    Highest queue number issued for a doctor's day.

    Args:
        statuses: Restrict to these statuses; None counts every row, cancelled included

    Returns:
        The highest number, or 0 if none was issued
    """
    query = db.query(func.max(Appointment.queue_number)).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == queue_date
    )
    if statuses is not None:
        query = query.filter(Appointment.status.in_(statuses))
    return query.scalar() or 0
