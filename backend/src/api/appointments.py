# pyright: reportMissingTypeStubs=false
"""
Appointment API endpoints.

Booking, listing, rescheduling and cancellation of appointments.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field
from sqlalchemy.orm import Session

from api.responses import (
    AppointmentListResponse, AppointmentMutationResponse, CamelModel, appointment_to_response
)
from auth.dependencies import require_authenticated, require_patient, UserContext
from core.constants import MAX_REASON_LENGTH
from core.database import get_db
from core.exceptions import SchedulingError
from services.appointment_service import AppointmentService

logger = logging.getLogger(__name__)

router = APIRouter()


class BookAppointmentRequest(CamelModel):
    """Request model for booking a session."""
    doctor_id: int
    slot_id: str  # Session id from GET /api/slots/available/{doctorId}
    appointment_type: Optional[str] = None  # PHYSICAL or TELEMEDICINE
    symptoms: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)


@router.post("",
             summary="Book an appointment",
             status_code=status.HTTP_201_CREATED)
async def book_appointment(
    request: BookAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_patient)
) -> AppointmentMutationResponse:
    """
    Book the current patient into a session.

    Returns 409 with type ``capacity_exceeded`` when the session is full and
    type ``conflict`` when the patient already holds a seat in it or a
    concurrent booking won the race.
    """
    try:
        appointment = AppointmentService.book_appointment(
            db,
            patient_id=current_user.patient_id,  # type: ignore[arg-type]
            doctor_id=request.doctor_id,
            session_id=request.slot_id,
            consultation_type=request.appointment_type,
            reason=request.symptoms,
        )
        return AppointmentMutationResponse(
            message="Appointment booked successfully",
            appointment=appointment_to_response(appointment),
        )
    except (HTTPException, SchedulingError):
        raise
    except Exception as e:
        logger.exception(f"Failed to book appointment: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to book appointment"
        )


@router.get("/my-appointments",
            summary="List the current user's appointments")
async def get_my_appointments(
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_authenticated)
) -> AppointmentListResponse:
    """Patients see their bookings; doctors see bookings made with them."""
    if current_user.is_patient():
        appointments = AppointmentService.list_appointments_for_patient(db, current_user.patient_id)  # type: ignore[arg-type]
    elif current_user.is_doctor():
        appointments = AppointmentService.list_appointments_for_doctor(db, current_user.doctor_id)  # type: ignore[arg-type]
    else:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Patient or doctor access required"
        )

    return AppointmentListResponse(
        count=len(appointments),
        appointments=[appointment_to_response(a) for a in appointments],
    )


@router.patch("/{appointment_id}/cancel",
              summary="Cancel an appointment")
async def cancel_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_authenticated)
) -> AppointmentMutationResponse:
    """
    Cancel an appointment and free its seat.

    A doctor cancelling marks it REJECTED; a patient or admin marks it CANCELLED.
    Cancelling twice returns the appointment unchanged.
    """
    appointment = AppointmentService.cancel_appointment(db, appointment_id, current_user)
    return AppointmentMutationResponse(
        message=f"Appointment {appointment.status.lower()}",
        appointment=appointment_to_response(appointment),
    )


class RescheduleAppointmentRequest(CamelModel):
    """Request model for moving a booking to another session."""
    slot_id: str  # Target session id from GET /api/slots/available/{doctorId}
    appointment_type: Optional[str] = None


@router.put("/{appointment_id}",
            summary="Reschedule an appointment")
async def reschedule_appointment(
    appointment_id: int,
    request: RescheduleAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_authenticated)
) -> AppointmentMutationResponse:
    """
    Move a waiting appointment to another session of the same doctor.

    The appointment gets a seat in the new session and a fresh queue number
    for its day. Returns 409 when the target session is full.
    """
    appointment = AppointmentService.reschedule_appointment(
        db,
        appointment_id,
        current_user,
        session_id=request.slot_id,
        consultation_type=request.appointment_type,
    )
    return AppointmentMutationResponse(
        message="Appointment rescheduled",
        appointment=appointment_to_response(appointment),
    )
