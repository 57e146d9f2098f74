# pyright: reportMissingTypeStubs=false
"""
Queue API endpoints.

Doctors run their same-day queue here; patients check their position.
"""

import logging
from datetime import date as date_type
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from api.responses import (
    CamelModel, QueueAdvanceResponse, QueueDateResponse, QueueDatesResponse,
    QueuePositionEnvelope, QueueResetResponse, QueueResponse,
    AppointmentMutationResponse, appointment_to_response, position_to_response, stats_to_response
)
from auth.dependencies import ensure_doctor_access, require_doctor, require_doctor_or_admin, require_patient, UserContext
from core.database import get_db
from core.exceptions import SchedulingError, ValidationError
from services.queue_service import QueueService
from utils.datetime_utils import dhaka_today, parse_date_string

logger = logging.getLogger(__name__)

router = APIRouter()


class CallNextRequest(CamelModel):
    current_appointment_id: Optional[int] = None  # Appointment to mark completed first
    date: Optional[str] = None  # Default today


class ResetQueueRequest(CamelModel):
    date: Optional[str] = None  # Default today


def _parse_queue_date(value: Optional[str]) -> date_type:
    """Parse an optional YYYY-MM-DD query/body value, defaulting to today in Dhaka."""
    if not value:
        return dhaka_today()
    try:
        return parse_date_string(value)
    except ValueError:
        raise ValidationError("Invalid date format (expected YYYY-MM-DD)")


def _queue_response(db: Session, doctor_id: int, queue_date: date_type) -> QueueResponse:
    snapshot = QueueService.get_queue_snapshot(db, doctor_id, queue_date)
    return QueueResponse(
        doctor_id=doctor_id,
        date=snapshot.queue_date,
        queue=[appointment_to_response(a) for a in snapshot.queue],
        stats=stats_to_response(snapshot.stats),
        current_patient=appointment_to_response(snapshot.current) if snapshot.current else None,
    )


@router.get("/doctor/{doctor_id}/today",
            summary="Get a doctor's queue for today")
async def get_today_queue(
    doctor_id: int,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_doctor_or_admin)
) -> QueueResponse:
    """Today's queue in queue-number order with counters and the current patient."""
    ensure_doctor_access(current_user, doctor_id)
    return _queue_response(db, doctor_id, dhaka_today())


@router.get("/doctor/{doctor_id}",
            summary="Get a doctor's queue for a date")
async def get_queue_by_date(
    doctor_id: int,
    date: Optional[str] = Query(None, description="YYYY-MM-DD, default today"),
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_doctor_or_admin)
) -> QueueResponse:
    ensure_doctor_access(current_user, doctor_id)
    return _queue_response(db, doctor_id, _parse_queue_date(date))


@router.get("/dates",
            summary="List upcoming dates with a queue")
async def get_queue_dates(
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_doctor)
) -> QueueDatesResponse:
    rows = QueueService.get_queue_dates(db, current_user.doctor_id)  # type: ignore[arg-type]
    return QueueDatesResponse(dates=[QueueDateResponse(date=day, count=count) for day, count in rows])


@router.post("/next",
             summary="Call the next patient")
async def call_next_patient(
    request: CallNextRequest,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_doctor)
) -> QueueAdvanceResponse:
    """
    Complete the current patient (if given) and call the lowest queue number still waiting.

    If a patient is already in progress it is returned unchanged. An empty
    queue is reported with ``queueEmpty: true``.
    """
    try:
        advance = QueueService.call_next(
            db,
            current_user.doctor_id,  # type: ignore[arg-type]
            queue_date=_parse_queue_date(request.date),
            current_appointment_id=request.current_appointment_id,
        )

        if advance.queue_empty:
            message = "No more patients in queue"
        elif advance.already_in_progress:
            message = "A patient is already in progress"
        else:
            message = f"Called queue #{advance.called.queue_number}"  # type: ignore[union-attr]

        return QueueAdvanceResponse(
            message=message,
            queue_empty=advance.queue_empty,
            already_in_progress=advance.already_in_progress,
            appointment=appointment_to_response(advance.called) if advance.called else None,
            completed_appointment=appointment_to_response(advance.completed) if advance.completed else None,
        )
    except (HTTPException, SchedulingError):
        raise
    except Exception as e:
        logger.exception(f"Failed to call next patient: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to call next patient"
        )


@router.put("/{appointment_id}/start",
            summary="Start an appointment")
async def start_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_doctor)
) -> AppointmentMutationResponse:
    appointment = QueueService.start_appointment(db, appointment_id, current_user.doctor_id)  # type: ignore[arg-type]
    return AppointmentMutationResponse(
        message="Appointment started",
        appointment=appointment_to_response(appointment),
    )


@router.put("/{appointment_id}/complete",
            summary="Complete an appointment")
async def complete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_doctor)
) -> AppointmentMutationResponse:
    appointment = QueueService.complete_appointment(db, appointment_id, current_user.doctor_id)  # type: ignore[arg-type]
    return AppointmentMutationResponse(
        message="Appointment completed",
        appointment=appointment_to_response(appointment),
    )


@router.post("/reset",
             summary="Renumber a day's queue")
async def reset_queue(
    request: ResetQueueRequest,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_doctor)
) -> QueueResetResponse:
    """Renumber waiting and in-progress appointments in appointment-time order."""
    queue_date = _parse_queue_date(request.date)
    renumbered = QueueService.reset_queue(db, current_user.doctor_id, queue_date)  # type: ignore[arg-type]
    return QueueResetResponse(
        message="Queue reset successfully",
        date=queue_date,
        renumbered=len(renumbered),
        queue=[appointment_to_response(a) for a in renumbered],
    )


@router.get("/my-position",
            summary="Get the current patient's queue position today")
async def get_my_position(
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_patient)
) -> QueuePositionEnvelope:
    position = QueueService.get_patient_position(db, current_user.patient_id)  # type: ignore[arg-type]
    if position is None:
        return QueuePositionEnvelope(message="No active appointments for today")
    return QueuePositionEnvelope(data=position_to_response(position))


@router.get("/patient/{appointment_id}",
            summary="Get queue status for one appointment")
async def get_appointment_queue_status(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_patient)
) -> QueuePositionEnvelope:
    position = QueueService.get_appointment_queue_status(
        db, appointment_id, current_user.patient_id  # type: ignore[arg-type]
    )
    return QueuePositionEnvelope(data=position_to_response(position))
