"""
Slot rule service.

Doctors maintain their weekly availability as slot rules. This service owns
the rule invariants (ordered times, positive capacity, no overlapping active
rules on one day) and the ownership checks for edits.
"""

import logging
from datetime import time
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from auth.user_context import UserContext
from core.constants import WEEK_ORDER
from core.database import atomic
from core.exceptions import AuthorizationError, NotFoundError, ValidationError
from models import Appointment, SlotRule, ConsultationType, DayOfWeek
from models.appointment import ACTIVE_STATUSES
from utils.appointment_queries import get_doctor, lock_doctor
from utils.datetime_utils import dhaka_today, parse_time_string, format_time

logger = logging.getLogger(__name__)

# Fields a caller may change through update_rule
UPDATABLE_FIELDS = ("day_of_week", "start_time", "end_time", "consultation_type", "max_patients", "is_active")


def _normalize_day(value: Any) -> str:
    if not value:
        raise ValidationError("dayOfWeek is required")
    day = str(value).strip().upper()
    if day not in DayOfWeek.__members__:
        raise ValidationError(f"Invalid day of week: {value}")
    return day


def _normalize_consultation_type(value: Any) -> str:
    if not value:
        return ConsultationType.PHYSICAL.value
    consultation_type = str(value).strip().upper()
    if consultation_type not in ConsultationType.__members__:
        raise ValidationError(f"Invalid consultation type: {value}")
    return consultation_type


def _coerce_time(value: Any, field_name: str) -> time:
    if isinstance(value, time):
        return value
    if not value:
        raise ValidationError(f"{field_name} is required")
    try:
        return parse_time_string(str(value))
    except ValueError as e:
        raise ValidationError(str(e)) from e


def _coerce_capacity(value: Any) -> int:
    if value is None or isinstance(value, bool):
        raise ValidationError("maxPatients is required")
    try:
        capacity = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid maxPatients: {value}") from e
    if capacity < 1:
        raise ValidationError("maxPatients must be at least 1")
    return capacity


def _week_sort_key(rule: SlotRule) -> Tuple[int, time]:
    return (WEEK_ORDER.index(rule.day_of_week), rule.start_time)


class SlotRuleService:
    """
    Service class for slot rule operations.

    Mutating operations lock the doctor's row first so that two concurrent
    edits cannot both pass the overlap check.
    """

    @staticmethod
    def _check_times(start_time: time, end_time: time) -> None:
        if start_time >= end_time:
            raise ValidationError("Start time must be before end time")

    @staticmethod
    def _find_overlap(
        db: Session,
        doctor_id: int,
        day_of_week: str,
        start_time: time,
        end_time: time,
        exclude_rule_id: Optional[int] = None
    ) -> Optional[SlotRule]:
        """Return an active rule of the doctor on that day whose time range intersects [start, end)."""
        query = db.query(SlotRule).filter(
            SlotRule.doctor_id == doctor_id,
            SlotRule.day_of_week == day_of_week,
            SlotRule.is_active == True,
            SlotRule.start_time < end_time,
            SlotRule.end_time > start_time
        )
        if exclude_rule_id is not None:
            query = query.filter(SlotRule.id != exclude_rule_id)
        return query.first()

    @staticmethod
    def _raise_if_overlapping(
        db: Session,
        doctor_id: int,
        day_of_week: str,
        start_time: time,
        end_time: time,
        exclude_rule_id: Optional[int] = None
    ) -> None:
        overlapping = SlotRuleService._find_overlap(
            db, doctor_id, day_of_week, start_time, end_time, exclude_rule_id
        )
        if overlapping:
            raise ValidationError(
                f"Slot overlaps an existing {day_of_week} slot "
                f"({format_time(overlapping.start_time)}-{format_time(overlapping.end_time)})"
            )

    @staticmethod
    def _authorize(rule: SlotRule, caller: UserContext) -> None:
        if caller.is_admin():
            return
        if caller.is_doctor() and caller.doctor_id == rule.doctor_id:
            return
        raise AuthorizationError("Not authorized to modify this slot")

    @staticmethod
    def get_rule(db: Session, rule_id: int) -> SlotRule:
        """
        Load a rule by id.

        Raises:
            NotFoundError: If no such rule exists
        """
        rule = db.query(SlotRule).filter(SlotRule.id == rule_id).first()
        if not rule:
            raise NotFoundError("Slot not found")
        return rule

    @staticmethod
    def create_rule(
        db: Session,
        doctor_id: int,
        day_of_week: Any,
        start_time: Any,
        end_time: Any,
        consultation_type: Any = None,
        max_patients: Any = 1
    ) -> SlotRule:
        """
        Create a weekly slot rule for a doctor.

        Args:
            db: Database session
            doctor_id: Owning doctor
            day_of_week: SATURDAY..FRIDAY (case-insensitive)
            start_time: time or HH:MM string
            end_time: time or HH:MM string
            consultation_type: PHYSICAL, TELEMEDICINE or BOTH (default PHYSICAL)
            max_patients: Session capacity, at least 1

        Returns:
            The persisted rule

        Raises:
            ValidationError: If a field is missing or invalid, or the rule overlaps another active rule
            NotFoundError: If the doctor does not exist
        """
        day = _normalize_day(day_of_week)
        start = _coerce_time(start_time, "startTime")
        end = _coerce_time(end_time, "endTime")
        SlotRuleService._check_times(start, end)
        capacity = _coerce_capacity(max_patients)
        rule_type = _normalize_consultation_type(consultation_type)

        get_doctor(db, doctor_id)

        with atomic(db, "create slot"):
            lock_doctor(db, doctor_id)
            SlotRuleService._raise_if_overlapping(db, doctor_id, day, start, end)

            rule = SlotRule(
                doctor_id=doctor_id,
                day_of_week=day,
                start_time=start,
                end_time=end,
                consultation_type=rule_type,
                max_patients=capacity,
                is_active=True,
            )
            db.add(rule)

        db.refresh(rule)
        logger.info(f"Created slot rule {rule.id} for doctor {doctor_id}: {day} {start}-{end} cap={capacity}")
        return rule

    @staticmethod
    def max_upcoming_session_bookings(db: Session, rule: SlotRule) -> int:
        """Largest number of seat-holding bookings in any session of this rule from today on."""
        counts = db.query(func.count(Appointment.id)).filter(
            Appointment.slot_rule_id == rule.id,
            Appointment.appointment_date >= dhaka_today(),
            Appointment.status.in_(ACTIVE_STATUSES)
        ).group_by(
            Appointment.appointment_date,
            Appointment.appointment_time
        ).all()
        return max((row[0] for row in counts), default=0)

    @staticmethod
    def update_rule(db: Session, rule_id: int, caller: UserContext, patch: Dict[str, Any]) -> SlotRule:
        """
        Apply a partial update to a rule.

        The merged rule is validated as a whole, including the overlap check
        when the result is active.

        Raises:
            NotFoundError: If the rule does not exist
            AuthorizationError: If the caller does not own the rule and is not an admin
            ValidationError: If the result is invalid, capacity drops below existing bookings,
                or the day or start time changes while upcoming sessions hold bookings
        """
        rule = SlotRuleService.get_rule(db, rule_id)
        SlotRuleService._authorize(rule, caller)

        changes = {key: value for key, value in patch.items() if key in UPDATABLE_FIELDS and value is not None}

        day = _normalize_day(changes.get("day_of_week", rule.day_of_week))
        start = _coerce_time(changes.get("start_time", rule.start_time), "startTime")
        end = _coerce_time(changes.get("end_time", rule.end_time), "endTime")
        SlotRuleService._check_times(start, end)
        rule_type = _normalize_consultation_type(changes.get("consultation_type", rule.consultation_type))
        capacity = _coerce_capacity(changes.get("max_patients", rule.max_patients))
        is_active = bool(changes.get("is_active", rule.is_active))

        with atomic(db, "update slot"):
            lock_doctor(db, rule.doctor_id)

            if is_active:
                SlotRuleService._raise_if_overlapping(db, rule.doctor_id, day, start, end, exclude_rule_id=rule.id)

            # Bookings are keyed by date and start time, so they cannot follow a moved session
            moves_sessions = day != rule.day_of_week or start != rule.start_time
            if moves_sessions or capacity < rule.max_patients:
                booked = SlotRuleService.max_upcoming_session_bookings(db, rule)
                if moves_sessions and booked > 0:
                    raise ValidationError(
                        "Cannot change the day or start time of a slot with upcoming bookings; "
                        "deactivate it and create a new slot instead"
                    )
                if capacity < booked:
                    raise ValidationError(
                        f"Cannot reduce maxPatients below current bookings ({booked})"
                    )

            rule.day_of_week = day
            rule.start_time = start
            rule.end_time = end
            rule.consultation_type = rule_type
            rule.max_patients = capacity
            rule.is_active = is_active

        logger.info(f"Updated slot rule {rule.id} by {caller}: {sorted(changes)}")
        return rule

    @staticmethod
    def deactivate_rule(db: Session, rule_id: int, caller: UserContext) -> SlotRule:
        """
        Soft-delete a rule. Deactivating an inactive rule is a no-op.

        Existing appointments keep their rule reference and stay valid.
        """
        rule = SlotRuleService.get_rule(db, rule_id)
        SlotRuleService._authorize(rule, caller)

        if not rule.is_active:
            return rule

        with atomic(db, "deactivate slot"):
            rule.is_active = False

        logger.info(f"Deactivated slot rule {rule.id} (doctor {rule.doctor_id})")
        return rule

    @staticmethod
    def list_rules(db: Session, doctor_id: int) -> List[SlotRule]:
        """
        Active rules of a doctor ordered by week day (Saturday first) then start time.

        Raises:
            NotFoundError: If the doctor does not exist
        """
        get_doctor(db, doctor_id)
        rules = db.query(SlotRule).filter(
            SlotRule.doctor_id == doctor_id,
            SlotRule.is_active == True
        ).all()
        return sorted(rules, key=_week_sort_key)

    @staticmethod
    def list_rules_with_bookings(db: Session, doctor_id: int) -> List[Tuple[SlotRule, int]]:
        """
        Every rule of a doctor, active or not, with its upcoming booking count.

        Returns:
            (rule, upcoming seat-holding bookings from today on) pairs in week order
        """
        rules = db.query(SlotRule).filter(SlotRule.doctor_id == doctor_id).all()

        counts = dict(
            db.query(Appointment.slot_rule_id, func.count(Appointment.id)).filter(
                Appointment.doctor_id == doctor_id,
                Appointment.appointment_date >= dhaka_today(),
                Appointment.status.in_(ACTIVE_STATUSES)
            ).group_by(Appointment.slot_rule_id).all()
        )

        return [(rule, counts.get(rule.id, 0)) for rule in sorted(rules, key=_week_sort_key)]
