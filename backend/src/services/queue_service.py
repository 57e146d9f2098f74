"""
Queue service (queue sequencer).

A doctor's queue for a day is the set of that day's appointments ordered by
queue_number. The doctor calls patients one at a time; every mutation locks
the doctor's row so two concurrent "call next" requests cannot pick the same
patient or skip one.
"""

import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import func, nulls_last
from sqlalchemy.orm import Session

from core.constants import ESTIMATED_MINUTES_PER_PATIENT
from core.database import atomic
from core.exceptions import NotFoundError, ValidationError
from models import Appointment, AppointmentStatus
from models.appointment import WAITING_STATUSES
from services.notification_service import NotificationEvent, NotificationService
from shared_types.queue import QueueAdvance, QueuePosition, QueueSnapshot, QueueStats
from utils.appointment_queries import get_doctor, get_max_queue_number, lock_doctor
from utils.datetime_utils import dhaka_now, dhaka_today

logger = logging.getLogger(__name__)

# Appointments that are part of the live queue
QUEUE_STATUSES = (
    AppointmentStatus.PENDING.value,
    AppointmentStatus.CONFIRMED.value,
    AppointmentStatus.IN_PROGRESS.value,
)

_QUEUE_ORDER = (
    nulls_last(Appointment.queue_number.asc()),
    Appointment.appointment_time.asc(),
    Appointment.id.asc(),
)


class QueueService:
    """Service class for same-day queue operations."""

    @staticmethod
    def _get_doctor_appointment(db: Session, appointment_id: int, doctor_id: int) -> Appointment:
        """
        Raises:
            NotFoundError: If the appointment does not exist or belongs to another doctor
        """
        appointment = db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.doctor_id == doctor_id
        ).first()
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    @staticmethod
    def get_queue(db: Session, doctor_id: int, queue_date: Optional[date] = None) -> List[Appointment]:
        """
        Live queue for a doctor's day: waiting and in-progress appointments in queue order.
        """
        queue_date = queue_date or dhaka_today()
        return db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == queue_date,
            Appointment.status.in_(QUEUE_STATUSES)
        ).order_by(*_QUEUE_ORDER).all()

    @staticmethod
    def get_queue_snapshot(db: Session, doctor_id: int, queue_date: Optional[date] = None) -> QueueSnapshot:
        """
        Queue plus day counters and the patient currently being seen.

        Raises:
            NotFoundError: If the doctor does not exist
        """
        get_doctor(db, doctor_id)
        queue_date = queue_date or dhaka_today()

        queue = QueueService.get_queue(db, doctor_id, queue_date)
        completed = db.query(func.count(Appointment.id)).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == queue_date,
            Appointment.status == AppointmentStatus.COMPLETED.value
        ).scalar() or 0

        stats = QueueStats(
            total=len(queue) + completed,
            waiting=sum(1 for a in queue if a.status in WAITING_STATUSES),
            in_progress=sum(1 for a in queue if a.status == AppointmentStatus.IN_PROGRESS.value),
            completed=completed,
        )
        current = next((a for a in queue if a.status == AppointmentStatus.IN_PROGRESS.value), None)

        return QueueSnapshot(
            doctor_id=doctor_id,
            queue_date=queue_date,
            queue=queue,
            stats=stats,
            current=current,
        )

    @staticmethod
    def call_next(
        db: Session,
        doctor_id: int,
        queue_date: Optional[date] = None,
        current_appointment_id: Optional[int] = None
    ) -> QueueAdvance:
        """
        Finish the current patient (if given) and call the next one.

        If a patient is already in progress after completing the current one,
        that patient is returned unchanged. Repeating a call with the same
        current id therefore never advances the queue twice.

        Args:
            db: Database session
            doctor_id: Doctor whose queue advances
            queue_date: Queue day, default today
            current_appointment_id: Appointment to mark COMPLETED first

        Returns:
            QueueAdvance with the called appointment, or queue_empty=True

        Raises:
            NotFoundError: If the doctor or the current appointment does not exist
        """
        queue_date = queue_date or dhaka_today()
        events: List[NotificationEvent] = []

        with atomic(db, "call next patient"):
            lock_doctor(db, doctor_id, active_only=False)
            now = dhaka_now()

            completed = None
            if current_appointment_id is not None:
                current = QueueService._get_doctor_appointment(db, current_appointment_id, doctor_id)
                if current.status in QUEUE_STATUSES:
                    current.status = AppointmentStatus.COMPLETED.value
                    current.completed_at = now
                    completed = current
                    events.append(NotificationService.appointment_completed(current))

            db.flush()

            in_progress = db.query(Appointment).filter(
                Appointment.doctor_id == doctor_id,
                Appointment.appointment_date == queue_date,
                Appointment.status == AppointmentStatus.IN_PROGRESS.value
            ).order_by(*_QUEUE_ORDER).first()

            if in_progress:
                result = QueueAdvance(called=in_progress, completed=completed, already_in_progress=True)
            else:
                next_up = db.query(Appointment).filter(
                    Appointment.doctor_id == doctor_id,
                    Appointment.appointment_date == queue_date,
                    Appointment.status.in_(WAITING_STATUSES)
                ).order_by(*_QUEUE_ORDER).first()

                if next_up is None:
                    result = QueueAdvance(called=None, completed=completed, queue_empty=True)
                else:
                    next_up.status = AppointmentStatus.IN_PROGRESS.value
                    next_up.called_at = now
                    next_up.started_at = now
                    result = QueueAdvance(called=next_up, completed=completed)
                    events.extend(NotificationService.queue_called(next_up))

        if result.called is not None and not result.already_in_progress:
            logger.info(
                f"Doctor {doctor_id} called appointment {result.called.id} "
                f"(queue #{result.called.queue_number}) on {queue_date}"
            )
        elif result.queue_empty:
            logger.info(f"Doctor {doctor_id} queue for {queue_date} is empty")

        NotificationService.emit_all(events)
        return result

    @staticmethod
    def start_appointment(db: Session, appointment_id: int, doctor_id: int) -> Appointment:
        """
        Move a waiting appointment to IN_PROGRESS.

        Raises:
            NotFoundError: If the appointment does not belong to the doctor
            ValidationError: If it is already in progress, completed or cancelled
        """
        with atomic(db, "start appointment"):
            lock_doctor(db, doctor_id, active_only=False)
            appointment = QueueService._get_doctor_appointment(db, appointment_id, doctor_id)

            if appointment.status == AppointmentStatus.IN_PROGRESS.value:
                raise ValidationError("Appointment already in progress")
            if appointment.status == AppointmentStatus.COMPLETED.value:
                raise ValidationError("Appointment already completed")
            if appointment.is_cancelled:
                raise ValidationError("Cannot start a cancelled appointment")

            now = dhaka_now()
            appointment.status = AppointmentStatus.IN_PROGRESS.value
            appointment.started_at = now
            if appointment.called_at is None:
                appointment.called_at = now

        logger.info(f"Appointment {appointment_id} started by doctor {doctor_id}")
        NotificationService.emit(NotificationService.appointment_started(appointment))
        return appointment

    @staticmethod
    def complete_appointment(db: Session, appointment_id: int, doctor_id: int) -> Appointment:
        """
        Mark an appointment COMPLETED. Completing it twice is a no-op.

        Raises:
            NotFoundError: If the appointment does not belong to the doctor
            ValidationError: If it was cancelled
        """
        with atomic(db, "complete appointment"):
            lock_doctor(db, doctor_id, active_only=False)
            appointment = QueueService._get_doctor_appointment(db, appointment_id, doctor_id)

            if appointment.status == AppointmentStatus.COMPLETED.value:
                return appointment
            if appointment.is_cancelled:
                raise ValidationError("Cannot complete a cancelled appointment")

            appointment.status = AppointmentStatus.COMPLETED.value
            appointment.completed_at = dhaka_now()

        logger.info(f"Appointment {appointment_id} completed by doctor {doctor_id}")
        NotificationService.emit(NotificationService.appointment_completed(appointment))
        return appointment

    @staticmethod
    def reset_queue(db: Session, doctor_id: int, queue_date: Optional[date] = None) -> List[Appointment]:
        """
        Renumber the live queue of a day in appointment-time order.

        Numbers continue after the highest number held by a completed visit
        that day (1..N when nobody has been seen yet), so they stay unique
        among non-cancelled appointments. Old numbers are cleared and flushed
        before new ones are written, all in one transaction.

        Returns:
            The renumbered appointments in their new order
        """
        queue_date = queue_date or dhaka_today()

        with atomic(db, "reset queue"):
            lock_doctor(db, doctor_id, active_only=False)

            targets = db.query(Appointment).filter(
                Appointment.doctor_id == doctor_id,
                Appointment.appointment_date == queue_date,
                Appointment.status.in_(QUEUE_STATUSES)
            ).order_by(
                Appointment.appointment_time.asc(),
                Appointment.id.asc()
            ).all()

            base = get_max_queue_number(
                db, doctor_id, queue_date, statuses=(AppointmentStatus.COMPLETED.value,)
            )

            for appointment in targets:
                appointment.queue_number = None
            db.flush()

            for position, appointment in enumerate(targets, start=base + 1):
                appointment.queue_number = position

        logger.info(f"Reset queue for doctor {doctor_id} on {queue_date}: {len(targets)} renumbered from {base + 1}")
        NotificationService.emit_all(NotificationService.queue_reset(doctor_id, queue_date, targets))
        return targets

    @staticmethod
    def get_queue_dates(db: Session, doctor_id: int) -> List[Tuple[date, int]]:
        """
        Upcoming days on which the doctor has a live queue.

        Returns:
            (date, number of waiting or in-progress appointments) pairs from today on
        """
        rows = db.query(
            Appointment.appointment_date,
            func.count(Appointment.id)
        ).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date >= dhaka_today(),
            Appointment.status.in_(QUEUE_STATUSES)
        ).group_by(
            Appointment.appointment_date
        ).order_by(
            Appointment.appointment_date.asc()
        ).all()
        return [(row[0], row[1]) for row in rows]

    @staticmethod
    def _position_of(db: Session, appointment: Appointment) -> QueuePosition:
        patients_ahead = 0
        if appointment.status in WAITING_STATUSES and appointment.queue_number is not None:
            patients_ahead = db.query(func.count(Appointment.id)).filter(
                Appointment.doctor_id == appointment.doctor_id,
                Appointment.appointment_date == appointment.appointment_date,
                Appointment.status.in_(WAITING_STATUSES),
                Appointment.queue_number < appointment.queue_number
            ).scalar() or 0

        current_number = db.query(Appointment.queue_number).filter(
            Appointment.doctor_id == appointment.doctor_id,
            Appointment.appointment_date == appointment.appointment_date,
            Appointment.status == AppointmentStatus.IN_PROGRESS.value
        ).order_by(*_QUEUE_ORDER).limit(1).scalar()

        return QueuePosition(
            appointment=appointment,
            patients_ahead=patients_ahead,
            estimated_wait_minutes=patients_ahead * ESTIMATED_MINUTES_PER_PATIENT,
            current_queue_number=current_number,
        )

    @staticmethod
    def get_patient_position(db: Session, patient_id: int) -> Optional[QueuePosition]:
        """
        Position of the patient's first live appointment today.

        Returns:
            The position, or None when the patient has nothing queued today
        """
        appointment = db.query(Appointment).filter(
            Appointment.patient_id == patient_id,
            Appointment.appointment_date == dhaka_today(),
            Appointment.status.in_(QUEUE_STATUSES)
        ).order_by(
            Appointment.appointment_time.asc(),
            *_QUEUE_ORDER
        ).first()

        if not appointment:
            return None
        return QueueService._position_of(db, appointment)

    @staticmethod
    def get_appointment_queue_status(db: Session, appointment_id: int, patient_id: int) -> QueuePosition:
        """
        Queue status of one of the patient's appointments.

        Raises:
            NotFoundError: If the appointment does not exist or belongs to another patient
        """
        appointment = db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.patient_id == patient_id
        ).first()
        if not appointment:
            raise NotFoundError("Appointment not found")
        return QueueService._position_of(db, appointment)
