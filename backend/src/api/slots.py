# pyright: reportMissingTypeStubs=false
"""
Slot API endpoints.

Doctors manage their weekly slot rules here; patients browse the bookable
sessions materialized from them.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from api.responses import (
    AvailableSessionsResponse, CamelModel, SlotRuleListResponse, SlotRuleMutationResponse,
    rule_to_response, session_to_response
)
from auth.dependencies import require_doctor, require_doctor_or_admin, UserContext
from core.database import get_db
from core.exceptions import SchedulingError, ValidationError
from services.availability_service import AvailabilityService
from services.slot_rule_service import SlotRuleService

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request Models =====

class SlotRuleCreateRequest(CamelModel):
    """Request model for creating a weekly slot rule."""
    day_of_week: str
    start_time: str  # Format: "HH:MM"
    end_time: str    # Format: "HH:MM"
    consultation_type: Optional[str] = None
    max_patients: int = 1
    doctor_id: Optional[int] = None  # Required when an admin creates a rule


class SlotRuleUpdateRequest(CamelModel):
    """Request model for a partial slot rule update."""
    day_of_week: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    consultation_type: Optional[str] = None
    max_patients: Optional[int] = None
    is_active: Optional[bool] = None


# ===== Endpoints =====

@router.get("/doctor/{doctor_id}",
            summary="List a doctor's active weekly slots")
async def get_doctor_slots(
    doctor_id: int,
    db: Session = Depends(get_db)
) -> SlotRuleListResponse:
    """Public listing of active slot rules in week order (Saturday first)."""
    rules = SlotRuleService.list_rules(db, doctor_id)
    return SlotRuleListResponse(count=len(rules), slots=[rule_to_response(rule) for rule in rules])


@router.get("/available/{doctor_id}",
            summary="List bookable sessions for a doctor")
async def get_available_slots(
    doctor_id: int,
    start_date: Optional[str] = Query(None, alias="startDate", description="YYYY-MM-DD, default today"),
    end_date: Optional[str] = Query(None, alias="endDate", description="YYYY-MM-DD, default today + 14 days"),
    appointment_type: Optional[str] = Query(None, alias="appointmentType", description="PHYSICAL, TELEMEDICINE or BOTH"),
    db: Session = Depends(get_db)
) -> AvailableSessionsResponse:
    """
    List dated sessions with free seats.

    Sessions are grouped by date in ``slotsByDate``; each session id is the
    ``slotId`` to send when booking.
    """
    availability = AvailabilityService.get_available_sessions(
        db, doctor_id, start_date, end_date, appointment_type
    )
    slots = [session_to_response(session) for session in availability.sessions]
    slots_by_date = {
        day: [session_to_response(session) for session in sessions]
        for day, sessions in availability.by_date.items()
    }
    return AvailableSessionsResponse(count=len(slots), slots=slots, slots_by_date=slots_by_date)


@router.get("/my-slots",
            summary="List the current doctor's slots with booking counts")
async def get_my_slots(
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_doctor)
) -> SlotRuleListResponse:
    """All of the doctor's rules, including inactive ones, with upcoming booking counts."""
    rows = SlotRuleService.list_rules_with_bookings(db, current_user.doctor_id)  # type: ignore[arg-type]
    return SlotRuleListResponse(
        count=len(rows),
        slots=[rule_to_response(rule, booked_count=booked) for rule, booked in rows],
    )


@router.post("",
             summary="Create a weekly slot",
             status_code=status.HTTP_201_CREATED)
async def create_slot(
    request: SlotRuleCreateRequest,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_doctor_or_admin)
) -> SlotRuleMutationResponse:
    """Doctors create slots for themselves; admins must name the doctor."""
    try:
        doctor_id = current_user.doctor_id if current_user.is_doctor() else request.doctor_id
        if doctor_id is None:
            raise ValidationError("doctorId is required")

        rule = SlotRuleService.create_rule(
            db,
            doctor_id=doctor_id,
            day_of_week=request.day_of_week,
            start_time=request.start_time,
            end_time=request.end_time,
            consultation_type=request.consultation_type,
            max_patients=request.max_patients,
        )
        return SlotRuleMutationResponse(message="Slot created successfully", slot=rule_to_response(rule))
    except (HTTPException, SchedulingError):
        raise
    except Exception as e:
        logger.exception(f"Failed to create slot: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create slot"
        )


@router.put("/{slot_id}",
            summary="Update a weekly slot")
async def update_slot(
    slot_id: int,
    request: SlotRuleUpdateRequest,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_doctor_or_admin)
) -> SlotRuleMutationResponse:
    """Partial update; only the owning doctor or an admin may edit."""
    rule = SlotRuleService.update_rule(
        db, slot_id, current_user, request.model_dump(exclude_unset=True)
    )
    return SlotRuleMutationResponse(message="Slot updated successfully", slot=rule_to_response(rule))


@router.delete("/{slot_id}",
               summary="Deactivate a weekly slot")
async def delete_slot(
    slot_id: int,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_doctor_or_admin)
) -> SlotRuleMutationResponse:
    """Soft delete: the rule stops producing sessions, existing bookings are kept."""
    rule = SlotRuleService.deactivate_rule(db, slot_id, current_user)
    return SlotRuleMutationResponse(message="Slot deactivated successfully", slot=rule_to_response(rule))
