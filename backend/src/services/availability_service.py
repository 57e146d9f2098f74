"""
Availability service (session materializer).

Turns a doctor's active weekly slot rules into concrete dated sessions for a
date window and reports how many seats are left in each. Read-only.
"""

import logging
from datetime import date, timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from core.config import MAX_BOOKING_WINDOW_DAYS, SESSION_LOOKAHEAD_DAYS
from core.exceptions import ValidationError
from models import SlotRule, ConsultationType
from shared_types.availability import SessionAvailability, SessionSlot
from utils.appointment_queries import count_bookings_by_session, get_doctor
from utils.datetime_utils import day_name, dhaka_today, iter_dates, parse_date_string

logger = logging.getLogger(__name__)


class AvailabilityService:
    """
    Service class for availability operations.

    Sessions are derived on every request from the active rules and one
    grouped count over the window, so availability always reflects the
    current bookings.
    """

    @staticmethod
    def _parse_optional_date(value: Optional[str | date], field_name: str) -> Optional[date]:
        if value is None or value == "":
            return None
        if isinstance(value, date):
            return value
        try:
            return parse_date_string(value)
        except ValueError:
            raise ValidationError(f"Invalid {field_name} (expected YYYY-MM-DD)")

    @staticmethod
    def resolve_window(
        start_date: Optional[str | date] = None,
        end_date: Optional[str | date] = None
    ) -> Tuple[date, date]:
        """
        Resolve the requested date window.

        Defaults to today through today + SESSION_LOOKAHEAD_DAYS. A start in
        the past is clamped to today.

        Raises:
            ValidationError: If a date is malformed, end precedes start, or the
                window reaches past the booking window
        """
        today = dhaka_today()
        start = AvailabilityService._parse_optional_date(start_date, "startDate") or today
        end = AvailabilityService._parse_optional_date(end_date, "endDate")

        if start < today:
            start = today
        if end is None:
            end = start + timedelta(days=SESSION_LOOKAHEAD_DAYS)

        if end < start:
            raise ValidationError("endDate must not be before startDate")

        max_date = today + timedelta(days=MAX_BOOKING_WINDOW_DAYS)
        if end > max_date:
            raise ValidationError(f"Sessions can only be booked up to {MAX_BOOKING_WINDOW_DAYS} days ahead")

        return start, end

    @staticmethod
    def _normalize_type_filter(consultation_type: Optional[str]) -> Optional[str]:
        if not consultation_type:
            return None
        value = consultation_type.strip().upper()
        if value not in ConsultationType.__members__:
            raise ValidationError(f"Invalid consultation type: {consultation_type}")
        return value

    @staticmethod
    def get_available_sessions(
        db: Session,
        doctor_id: int,
        start_date: Optional[str | date] = None,
        end_date: Optional[str | date] = None,
        consultation_type: Optional[str] = None
    ) -> SessionAvailability:
        """
        List bookable sessions for a doctor.

        Args:
            db: Database session
            doctor_id: Doctor to list sessions for
            start_date: First date (inclusive), default today
            end_date: Last date (inclusive), default start + lookahead
            consultation_type: Optional PHYSICAL/TELEMEDICINE/BOTH filter

        Returns:
            Sessions with at least one free seat, ordered by date then start time

        Raises:
            NotFoundError: If the doctor does not exist
            ValidationError: If the window or type filter is invalid
        """
        get_doctor(db, doctor_id)
        start, end = AvailabilityService.resolve_window(start_date, end_date)
        type_filter = AvailabilityService._normalize_type_filter(consultation_type)

        rules = db.query(SlotRule).filter(
            SlotRule.doctor_id == doctor_id,
            SlotRule.is_active == True
        ).order_by(SlotRule.start_time).all()
        rules = [rule for rule in rules if rule.serves(type_filter)]

        result = SessionAvailability(doctor_id=doctor_id, start_date=start, end_date=end)
        if not rules:
            return result

        # One grouped count for the whole window
        booked = count_bookings_by_session(db, doctor_id, start, end)

        rules_by_day: dict[str, list[SlotRule]] = {}
        for rule in rules:
            rules_by_day.setdefault(rule.day_of_week, []).append(rule)

        for current in iter_dates(start, end):
            weekday = day_name(current)
            for rule in rules_by_day.get(weekday, []):
                session = SessionSlot(
                    slot_rule_id=rule.id,
                    doctor_id=doctor_id,
                    session_date=current,
                    day_of_week=weekday,
                    start_time=rule.start_time,
                    end_time=rule.end_time,
                    consultation_type=rule.consultation_type,
                    capacity=rule.max_patients,
                    booked_count=booked.get((current, rule.start_time), 0),
                )
                if session.available_spots > 0:
                    result.sessions.append(session)

        logger.debug(
            f"Materialized {len(result.sessions)} sessions for doctor {doctor_id} "
            f"between {start} and {end}"
        )
        return result
