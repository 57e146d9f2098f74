"""
Appointment service (booking writer).

Books patients into sessions, moves bookings between sessions and cancels
them. Every booking runs in a single transaction that locks the doctor's row,
re-validates the session, re-counts seats and assigns the seat and queue
numbers before writing, so concurrent requests for the last seat cannot both
succeed.
"""

import logging
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from auth.user_context import UserContext
from core.config import MAX_BOOKING_WINDOW_DAYS
from core.database import atomic
from core.exceptions import (
    AuthorizationError, CapacityExceededError, ConflictError, NotFoundError, ValidationError
)
from models import Appointment, AppointmentStatus, ConsultationType, SlotRule
from models.appointment import ACTIVE_STATUSES, WAITING_STATUSES
from services.notification_service import NotificationService
from utils.appointment_queries import (
    count_session_bookings, get_max_queue_number, get_patient, get_taken_seats, lock_doctor
)
from utils.datetime_utils import day_name, dhaka_now, dhaka_today
from utils.session_keys import SessionKey

logger = logging.getLogger(__name__)


class AppointmentService:
    """
    Service class for appointment operations.

    Notifications are emitted only after the transaction commits.
    """

    @staticmethod
    def _validate_session_date(key: SessionKey) -> None:
        today = dhaka_today()
        if key.session_date < today:
            raise ValidationError("Cannot book appointments for past dates")
        if key.session_date > today + timedelta(days=MAX_BOOKING_WINDOW_DAYS):
            raise ValidationError(f"Appointments can only be booked up to {MAX_BOOKING_WINDOW_DAYS} days ahead")

    @staticmethod
    def _load_session_rule(db: Session, doctor_id: int, key: SessionKey) -> SlotRule:
        """
        Load the rule behind a session and check it still describes that session.

        Raises:
            NotFoundError: If the rule is missing, inactive, owned by another
                doctor, or no longer falls on the session's weekday and start time
        """
        rule = db.query(SlotRule).filter(SlotRule.id == key.rule_id).first()
        if not rule or rule.doctor_id != doctor_id:
            raise NotFoundError("Slot not found")
        if not rule.is_active:
            raise NotFoundError("This slot is no longer available")
        if rule.day_of_week != day_name(key.session_date):
            raise NotFoundError("Slot is not available on the selected date")
        if rule.start_time.strftime("%H%M") != key.start_time.strftime("%H%M"):
            raise NotFoundError("Slot time has changed, please pick the session again")
        return rule

    @staticmethod
    def _resolve_consultation_type(rule: SlotRule, requested: Optional[str]) -> str:
        """
        Pick the concrete consultation type for a booking.

        A BOTH rule with no requested type books PHYSICAL.

        Raises:
            ValidationError: If the rule does not offer the requested type
        """
        if not requested:
            if rule.consultation_type == ConsultationType.BOTH.value:
                return ConsultationType.PHYSICAL.value
            return rule.consultation_type

        value = requested.strip().upper()
        if value not in (ConsultationType.PHYSICAL.value, ConsultationType.TELEMEDICINE.value):
            raise ValidationError(f"Invalid appointment type: {requested}")
        if not rule.serves(value):
            raise ValidationError(f"This slot does not offer {value.lower()} consultations")
        return value

    @staticmethod
    def _raise_if_duplicate(db: Session, patient_id: int, doctor_id: int, key: SessionKey, rule: SlotRule) -> None:
        duplicate = db.query(Appointment).filter(
            Appointment.patient_id == patient_id,
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == key.session_date,
            Appointment.appointment_time == rule.start_time,
            Appointment.status.in_(ACTIVE_STATUSES)
        ).first()
        if duplicate:
            raise ConflictError("You already have an appointment in this slot")

    @staticmethod
    def _claim_seat(db: Session, doctor_id: int, key: SessionKey, rule: SlotRule) -> Tuple[int, int]:
        """
        Re-count the session and pick a free seat and the next queue number.

        Must run under the doctor lock.

        Returns:
            (seat_number, queue_number)

        Raises:
            CapacityExceededError: If the session is full
        """
        booked = count_session_bookings(db, doctor_id, key.session_date, rule.start_time)
        if booked >= rule.max_patients:
            raise CapacityExceededError("This slot is fully booked")

        taken = set(get_taken_seats(db, doctor_id, key.session_date, rule.start_time))
        seat_number = next(seat for seat in range(1, rule.max_patients + 1) if seat not in taken)
        queue_number = get_max_queue_number(db, doctor_id, key.session_date) + 1
        return seat_number, queue_number

    @staticmethod
    def book_appointment(
        db: Session,
        patient_id: int,
        doctor_id: int,
        session_id: str,
        consultation_type: Optional[str] = None,
        reason: Optional[str] = None
    ) -> Appointment:
        """
        Book a patient into a session.

        Args:
            db: Database session
            patient_id: Patient booking the session
            doctor_id: Doctor the session belongs to
            session_id: Session key as returned by the availability listing
            consultation_type: PHYSICAL or TELEMEDICINE, optional
            reason: Symptoms or reason for the visit

        Returns:
            The CONFIRMED appointment with seat and queue numbers assigned

        Raises:
            ValidationError: Malformed session id, date outside the booking window,
                or consultation type not offered
            NotFoundError: Unknown patient, doctor or session
            ConflictError: Patient already holds a seat in this session, or a
                concurrent write won the race
            CapacityExceededError: Session is full
        """
        key = SessionKey.parse(session_id)
        AppointmentService._validate_session_date(key)
        get_patient(db, patient_id)

        with atomic(db, "book appointment"):
            lock_doctor(db, doctor_id)
            rule = AppointmentService._load_session_rule(db, doctor_id, key)
            resolved_type = AppointmentService._resolve_consultation_type(rule, consultation_type)

            AppointmentService._raise_if_duplicate(db, patient_id, doctor_id, key, rule)
            seat_number, queue_number = AppointmentService._claim_seat(db, doctor_id, key, rule)

            appointment = Appointment(
                patient_id=patient_id,
                doctor_id=doctor_id,
                slot_rule_id=rule.id,
                appointment_date=key.session_date,
                appointment_time=rule.start_time,
                end_time=rule.end_time,
                consultation_type=resolved_type,
                status=AppointmentStatus.CONFIRMED.value,
                reason_for_visit=reason,
                queue_number=queue_number,
                seat_number=seat_number,
            )
            db.add(appointment)

        db.refresh(appointment)
        logger.info(
            f"Booked appointment {appointment.id}: patient {patient_id} with doctor {doctor_id} "
            f"on {key.session_date} {rule.start_time} (seat {seat_number}, queue #{queue_number})"
        )

        NotificationService.emit(NotificationService.appointment_confirmed(appointment))
        return appointment

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Appointment:
        """
        Raises:
            NotFoundError: If the appointment does not exist
        """
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    @staticmethod
    def cancel_appointment(db: Session, appointment_id: int, actor: UserContext) -> Appointment:
        """
        Cancel an appointment and release its seat.

        Patients and admins cancel (CANCELLED); the doctor rejects (REJECTED).
        Cancelling an already cancelled or rejected appointment returns it
        unchanged without emitting anything.

        Raises:
            NotFoundError: If the appointment does not exist
            AuthorizationError: If the actor is neither its patient, its doctor nor an admin
            ValidationError: If the visit is already in progress or completed
        """
        appointment = AppointmentService.get_appointment(db, appointment_id)

        is_owner_patient = actor.is_patient() and actor.patient_id == appointment.patient_id
        is_owner_doctor = actor.is_doctor() and actor.doctor_id == appointment.doctor_id
        if not (is_owner_patient or is_owner_doctor or actor.is_admin()):
            raise AuthorizationError("Not authorized to cancel this appointment")

        if appointment.is_cancelled:
            logger.info(f"Appointment {appointment_id} already {appointment.status}, nothing to cancel")
            return appointment

        with atomic(db, "cancel appointment"):
            lock_doctor(db, appointment.doctor_id, active_only=False)
            db.refresh(appointment)

            if appointment.is_cancelled:
                return appointment
            if appointment.status in (AppointmentStatus.IN_PROGRESS.value, AppointmentStatus.COMPLETED.value):
                raise ValidationError(f"Cannot cancel an appointment that is {appointment.status.lower()}")

            appointment.status = (
                AppointmentStatus.REJECTED.value if is_owner_doctor else AppointmentStatus.CANCELLED.value
            )
            appointment.cancelled_at = dhaka_now()

        cancelled_by = "doctor" if is_owner_doctor else ("patient" if is_owner_patient else "admin")
        logger.info(f"Appointment {appointment_id} {appointment.status} by {cancelled_by}")

        NotificationService.emit_all(NotificationService.appointment_cancelled(appointment, cancelled_by))
        return appointment

    @staticmethod
    def reschedule_appointment(
        db: Session,
        appointment_id: int,
        actor: UserContext,
        session_id: str,
        consultation_type: Optional[str] = None
    ) -> Appointment:
        """
        Move a waiting appointment to another session of the same doctor.

        The appointment releases its old seat, takes a free seat in the target
        session and a fresh queue number for the target day. Moving it to the
        session it already holds returns it unchanged without emitting anything.

        Args:
            db: Database session
            appointment_id: Appointment to move
            actor: Its patient, its doctor or an admin
            session_id: Target session key
            consultation_type: PHYSICAL or TELEMEDICINE, default the current type

        Raises:
            NotFoundError: Unknown appointment or target session
            AuthorizationError: If the actor is neither its patient, its doctor nor an admin
            ValidationError: Malformed session id, date outside the booking window,
                appointment no longer waiting, or consultation type not offered
            ConflictError: Patient already holds a seat in the target session
            CapacityExceededError: Target session is full
        """
        key = SessionKey.parse(session_id)
        appointment = AppointmentService.get_appointment(db, appointment_id)

        is_owner_patient = actor.is_patient() and actor.patient_id == appointment.patient_id
        is_owner_doctor = actor.is_doctor() and actor.doctor_id == appointment.doctor_id
        if not (is_owner_patient or is_owner_doctor or actor.is_admin()):
            raise AuthorizationError("Not authorized to reschedule this appointment")

        AppointmentService._validate_session_date(key)

        same_session = (
            appointment.slot_rule_id == key.rule_id
            and appointment.appointment_date == key.session_date
            and appointment.appointment_time.strftime("%H%M") == key.start_time.strftime("%H%M")
        )
        if same_session and appointment.status in WAITING_STATUSES:
            return appointment

        previous_date = appointment.appointment_date
        previous_time = appointment.appointment_time

        with atomic(db, "reschedule appointment"):
            lock_doctor(db, appointment.doctor_id)
            db.refresh(appointment)

            if appointment.status not in WAITING_STATUSES:
                raise ValidationError(f"Cannot reschedule an appointment that is {appointment.status.lower()}")

            rule = AppointmentService._load_session_rule(db, appointment.doctor_id, key)
            resolved_type = AppointmentService._resolve_consultation_type(
                rule, consultation_type or appointment.consultation_type
            )
            AppointmentService._raise_if_duplicate(db, appointment.patient_id, appointment.doctor_id, key, rule)
            seat_number, queue_number = AppointmentService._claim_seat(db, appointment.doctor_id, key, rule)

            appointment.slot_rule_id = rule.id
            appointment.appointment_date = key.session_date
            appointment.appointment_time = rule.start_time
            appointment.end_time = rule.end_time
            appointment.consultation_type = resolved_type
            appointment.seat_number = seat_number
            appointment.queue_number = queue_number

        logger.info(
            f"Rescheduled appointment {appointment_id} from {previous_date} {previous_time} "
            f"to {key.session_date} {rule.start_time} (seat {seat_number}, queue #{queue_number})"
        )

        NotificationService.emit_all(
            NotificationService.appointment_rescheduled(appointment, previous_date, previous_time)
        )
        return appointment

    @staticmethod
    def list_appointments_for_patient(db: Session, patient_id: int) -> List[Appointment]:
        """All appointments of a patient, newest first."""
        return db.query(Appointment).filter(
            Appointment.patient_id == patient_id
        ).order_by(
            Appointment.appointment_date.desc(),
            Appointment.appointment_time.desc()
        ).all()

    @staticmethod
    def list_appointments_for_doctor(db: Session, doctor_id: int) -> List[Appointment]:
        """All appointments with a doctor, newest first."""
        return db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id
        ).order_by(
            Appointment.appointment_date.desc(),
            Appointment.appointment_time.desc()
        ).all()
