"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
the slot, appointment and queue routers. JSON field names are camelCase to
match the web client; Python attribute names stay snake_case.
"""

from datetime import date as date_type, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from models import Appointment, SlotRule
from shared_types.availability import SessionSlot
from shared_types.queue import QueuePosition, QueueStats
from utils.datetime_utils import format_time


class CamelModel(BaseModel):
    """Base model that reads snake_case and writes camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SlotRuleResponse(CamelModel):
    """Response model for a weekly slot rule."""
    id: int
    doctor_id: int
    day_of_week: str
    start_time: str  # Format: "HH:MM"
    end_time: str    # Format: "HH:MM"
    consultation_type: str
    max_patients: int
    is_active: bool
    booked_count: Optional[int] = None  # Upcoming bookings, only on the doctor's own listing


class SlotRuleListResponse(CamelModel):
    success: bool = True
    count: int
    slots: List[SlotRuleResponse]


class SlotRuleMutationResponse(CamelModel):
    success: bool = True
    message: str
    slot: SlotRuleResponse


class SessionResponse(CamelModel):
    """Response model for one bookable dated session."""
    id: str  # Session key "<ruleId>-<YYYYMMDD>-<HHMM>", used as slotId when booking
    slot_rule_id: int
    doctor_id: int
    date: date_type
    day_of_week: str
    start_time: str
    end_time: str
    consultation_type: str
    max_patients: int
    booked_count: int
    available_spots: int


class AvailableSessionsResponse(CamelModel):
    success: bool = True
    count: int
    slots: List[SessionResponse]
    slots_by_date: Dict[str, List[SessionResponse]]


class AppointmentResponse(CamelModel):
    """Response model for an appointment (also used for queue entries)."""
    id: int
    patient_id: int
    patient_name: Optional[str] = None
    patient_phone: Optional[str] = None
    doctor_id: int
    doctor_name: Optional[str] = None
    specialization: Optional[str] = None
    slot_rule_id: Optional[int] = None
    date: date_type
    time: str
    end_time: Optional[str] = None
    consultation_type: str
    status: str
    reason_for_visit: Optional[str] = None
    queue_number: Optional[int] = None
    seat_number: Optional[int] = None
    called_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AppointmentMutationResponse(CamelModel):
    success: bool = True
    message: str
    appointment: AppointmentResponse


class AppointmentListResponse(CamelModel):
    success: bool = True
    count: int
    appointments: List[AppointmentResponse]


class QueueStatsResponse(CamelModel):
    total: int
    waiting: int
    in_progress: int
    completed: int


class QueueResponse(CamelModel):
    success: bool = True
    doctor_id: int
    date: date_type
    queue: List[AppointmentResponse]
    stats: QueueStatsResponse
    current_patient: Optional[AppointmentResponse] = None


class QueueAdvanceResponse(CamelModel):
    success: bool = True
    message: str
    queue_empty: bool = False
    already_in_progress: bool = False
    appointment: Optional[AppointmentResponse] = None
    completed_appointment: Optional[AppointmentResponse] = None


class QueueResetResponse(CamelModel):
    success: bool = True
    message: str
    date: date_type
    renumbered: int
    queue: List[AppointmentResponse]


class QueueDateResponse(CamelModel):
    date: date_type
    count: int


class QueueDatesResponse(CamelModel):
    success: bool = True
    dates: List[QueueDateResponse]


class QueuePositionResponse(CamelModel):
    appointment_id: int
    queue_number: Optional[int] = None
    status: str
    queue_status: str  # "waiting", "in_progress", "completed", "cancelled" or "rejected"
    date: date_type
    time: str
    doctor_id: int
    doctor_name: Optional[str] = None
    specialization: Optional[str] = None
    patients_ahead: int
    estimated_wait_minutes: int
    current_queue_number: Optional[int] = None
    is_your_turn: bool


class QueuePositionEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: Optional[QueuePositionResponse] = None


# ===== Converters =====

def rule_to_response(rule: SlotRule, booked_count: Optional[int] = None) -> SlotRuleResponse:
    return SlotRuleResponse(
        id=rule.id,
        doctor_id=rule.doctor_id,
        day_of_week=rule.day_of_week,
        start_time=format_time(rule.start_time),
        end_time=format_time(rule.end_time),
        consultation_type=rule.consultation_type,
        max_patients=rule.max_patients,
        is_active=rule.is_active,
        booked_count=booked_count,
    )


def session_to_response(session: SessionSlot) -> SessionResponse:
    return SessionResponse(
        id=session.session_id,
        slot_rule_id=session.slot_rule_id,
        doctor_id=session.doctor_id,
        date=session.session_date,
        day_of_week=session.day_of_week,
        start_time=format_time(session.start_time),
        end_time=format_time(session.end_time),
        consultation_type=session.consultation_type,
        max_patients=session.capacity,
        booked_count=session.booked_count,
        available_spots=session.available_spots,
    )


def appointment_to_response(appointment: Appointment) -> AppointmentResponse:
    patient = appointment.patient
    doctor = appointment.doctor
    return AppointmentResponse(
        id=appointment.id,
        patient_id=appointment.patient_id,
        patient_name=patient.full_name if patient else None,
        patient_phone=patient.phone if patient else None,
        doctor_id=appointment.doctor_id,
        doctor_name=doctor.full_name if doctor else None,
        specialization=doctor.specialization if doctor else None,
        slot_rule_id=appointment.slot_rule_id,
        date=appointment.appointment_date,
        time=format_time(appointment.appointment_time),
        end_time=format_time(appointment.end_time) if appointment.end_time else None,
        consultation_type=appointment.consultation_type,
        status=appointment.status,
        reason_for_visit=appointment.reason_for_visit,
        queue_number=appointment.queue_number,
        seat_number=appointment.seat_number,
        called_at=appointment.called_at,
        started_at=appointment.started_at,
        completed_at=appointment.completed_at,
        cancelled_at=appointment.cancelled_at,
        created_at=appointment.created_at,
    )


def stats_to_response(stats: QueueStats) -> QueueStatsResponse:
    return QueueStatsResponse(
        total=stats.total,
        waiting=stats.waiting,
        in_progress=stats.in_progress,
        completed=stats.completed,
    )


def position_to_response(position: QueuePosition) -> QueuePositionResponse:
    appointment = position.appointment
    doctor = appointment.doctor
    status = appointment.status
    if status in ("PENDING", "CONFIRMED"):
        queue_status = "waiting"
    else:
        queue_status = status.lower()
    return QueuePositionResponse(
        appointment_id=appointment.id,
        queue_number=appointment.queue_number,
        status=status,
        queue_status=queue_status,
        date=appointment.appointment_date,
        time=format_time(appointment.appointment_time),
        doctor_id=appointment.doctor_id,
        doctor_name=doctor.full_name if doctor else None,
        specialization=doctor.specialization if doctor else None,
        patients_ahead=position.patients_ahead,
        estimated_wait_minutes=position.estimated_wait_minutes,
        current_queue_number=position.current_queue_number,
        is_your_turn=status == "IN_PROGRESS",
    )
