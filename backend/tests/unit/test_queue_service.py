"""
Unit tests for QueueService.
"""

import pytest
from datetime import date, time, timedelta
from unittest.mock import patch

from core.exceptions import NotFoundError, ValidationError
from models import Appointment
from services.queue_service import QueueService
from tests.conftest import create_appointment, create_doctor, create_patient
from utils.datetime_utils import dhaka_today

QUEUE_DAY = date(2026, 3, 7)


@pytest.fixture
def doctor(db_session):
    return create_doctor(db_session)


def add_patients(db_session, doctor, statuses, queue_date=QUEUE_DAY, times=None):
    """Create one appointment per status with queue numbers 1..N."""
    appointments = []
    for index, status in enumerate(statuses):
        patient = create_patient(db_session, full_name=f"Patient {index + 1}")
        appointment_time = times[index] if times else time(9, 0)
        appointments.append(
            create_appointment(
                db_session, doctor, patient, queue_date, index + 1,
                status=status, appointment_time=appointment_time
            )
        )
    return appointments


class TestQueueViews:
    def test_queue_in_number_order_excludes_done(self, db_session, doctor):
        a1, a2, a3, a4 = add_patients(db_session, doctor, ["COMPLETED", "CONFIRMED", "CANCELLED", "PENDING"])
        # Insert out of order to make sure ordering is by number
        late = create_appointment(
            db_session, doctor, create_patient(db_session, full_name="Walk-in"), QUEUE_DAY, 0
        )

        queue = QueueService.get_queue(db_session, doctor.id, QUEUE_DAY)

        assert [a.id for a in queue] == [late.id, a2.id, a4.id]

    def test_snapshot_stats(self, db_session, doctor):
        appointments = add_patients(
            db_session, doctor, ["COMPLETED", "IN_PROGRESS", "CONFIRMED", "PENDING", "REJECTED"]
        )

        snapshot = QueueService.get_queue_snapshot(db_session, doctor.id, QUEUE_DAY)

        assert snapshot.stats.total == 4
        assert snapshot.stats.waiting == 2
        assert snapshot.stats.in_progress == 1
        assert snapshot.stats.completed == 1
        assert snapshot.current.id == appointments[1].id
        assert [a.queue_number for a in snapshot.queue] == [2, 3, 4]

    def test_snapshot_queue_is_the_live_queue(self, db_session, doctor):
        add_patients(db_session, doctor, ["COMPLETED", "CONFIRMED", "CANCELLED", "IN_PROGRESS"])

        with patch.object(QueueService, "get_queue", wraps=QueueService.get_queue) as get_queue:
            snapshot = QueueService.get_queue_snapshot(db_session, doctor.id, QUEUE_DAY)

        get_queue.assert_called_once_with(db_session, doctor.id, QUEUE_DAY)
        live = QueueService.get_queue(db_session, doctor.id, QUEUE_DAY)
        assert [a.id for a in snapshot.queue] == [a.id for a in live]
        assert snapshot.stats.total == 3
        assert snapshot.stats.completed == 1

    def test_snapshot_unknown_doctor(self, db_session):
        with pytest.raises(NotFoundError):
            QueueService.get_queue_snapshot(db_session, 999999, QUEUE_DAY)

    def test_queue_dates(self, db_session, doctor):
        today = dhaka_today()
        add_patients(db_session, doctor, ["CONFIRMED", "CONFIRMED"], queue_date=today + timedelta(days=1))
        add_patients(db_session, doctor, ["CONFIRMED", "CANCELLED"], queue_date=today + timedelta(days=3))
        add_patients(db_session, doctor, ["CONFIRMED"], queue_date=today - timedelta(days=2))

        assert QueueService.get_queue_dates(db_session, doctor.id) == [
            (today + timedelta(days=1), 2),
            (today + timedelta(days=3), 1),
        ]


class TestCallNext:
    def test_calls_lowest_waiting_number(self, db_session, doctor, notifications):
        a1, a2, a3 = add_patients(db_session, doctor, ["CONFIRMED", "CONFIRMED", "PENDING"])

        advance = QueueService.call_next(db_session, doctor.id, QUEUE_DAY)

        assert advance.called.id == a1.id
        assert advance.called.status == "IN_PROGRESS"
        assert advance.called.called_at is not None
        assert advance.called.started_at is not None
        assert advance.completed is None
        assert advance.queue_empty is False
        assert notifications.types() == ["QUEUE_CALLED", "QUEUE_NEXT"]
        assert notifications.events[0].channel == f"patient-{a1.patient_id}"
        assert notifications.events[1].channel == f"doctor-{doctor.id}"

    def test_completes_current_then_calls_next(self, db_session, doctor, notifications):
        a1, a2 = add_patients(db_session, doctor, ["IN_PROGRESS", "CONFIRMED"])

        advance = QueueService.call_next(db_session, doctor.id, QUEUE_DAY, current_appointment_id=a1.id)

        assert advance.completed.id == a1.id
        assert advance.completed.status == "COMPLETED"
        assert advance.completed.completed_at is not None
        assert advance.called.id == a2.id
        assert notifications.types() == ["APPOINTMENT_COMPLETED", "QUEUE_CALLED", "QUEUE_NEXT"]

    def test_repeated_call_does_not_advance_twice(self, db_session, doctor, notifications):
        a1, a2, a3 = add_patients(db_session, doctor, ["IN_PROGRESS", "CONFIRMED", "CONFIRMED"])

        first = QueueService.call_next(db_session, doctor.id, QUEUE_DAY, current_appointment_id=a1.id)
        second = QueueService.call_next(db_session, doctor.id, QUEUE_DAY, current_appointment_id=a1.id)

        assert first.called.id == a2.id
        assert second.called.id == a2.id
        assert second.already_in_progress is True
        assert second.completed is None
        db_session.refresh(a3)
        assert a3.status == "CONFIRMED"

    def test_in_progress_returned_unchanged(self, db_session, doctor, notifications):
        a1, a2 = add_patients(db_session, doctor, ["IN_PROGRESS", "CONFIRMED"])

        advance = QueueService.call_next(db_session, doctor.id, QUEUE_DAY)

        assert advance.called.id == a1.id
        assert advance.already_in_progress is True
        assert notifications.events == []

    def test_empty_queue(self, db_session, doctor, notifications):
        add_patients(db_session, doctor, ["COMPLETED", "CANCELLED"])

        advance = QueueService.call_next(db_session, doctor.id, QUEUE_DAY)

        assert advance.queue_empty is True
        assert advance.called is None

    def test_completing_last_patient_empties_queue(self, db_session, doctor, notifications):
        (only,) = add_patients(db_session, doctor, ["IN_PROGRESS"])

        advance = QueueService.call_next(db_session, doctor.id, QUEUE_DAY, current_appointment_id=only.id)

        assert advance.queue_empty is True
        assert advance.completed.id == only.id

    def test_skips_cancelled(self, db_session, doctor, notifications):
        a1, a2, a3 = add_patients(db_session, doctor, ["COMPLETED", "CANCELLED", "CONFIRMED"])

        advance = QueueService.call_next(db_session, doctor.id, QUEUE_DAY)

        assert advance.called.id == a3.id

    def test_other_doctors_appointment(self, db_session, doctor):
        other = create_doctor(db_session, full_name="Dr. Akter")
        (foreign,) = add_patients(db_session, other, ["IN_PROGRESS"])

        with pytest.raises(NotFoundError):
            QueueService.call_next(db_session, doctor.id, QUEUE_DAY, current_appointment_id=foreign.id)

    def test_unknown_doctor(self, db_session):
        with pytest.raises(NotFoundError):
            QueueService.call_next(db_session, 999999, QUEUE_DAY)

    def test_only_that_day(self, db_session, doctor, notifications):
        add_patients(db_session, doctor, ["CONFIRMED"], queue_date=QUEUE_DAY + timedelta(days=1))

        advance = QueueService.call_next(db_session, doctor.id, QUEUE_DAY)

        assert advance.queue_empty is True


class TestStartAndComplete:
    def test_start(self, db_session, doctor, notifications):
        (appointment,) = add_patients(db_session, doctor, ["CONFIRMED"])

        started = QueueService.start_appointment(db_session, appointment.id, doctor.id)

        assert started.status == "IN_PROGRESS"
        assert started.started_at is not None
        assert started.called_at is not None
        assert notifications.types() == ["APPOINTMENT_STARTED"]

    @pytest.mark.parametrize("status", ["IN_PROGRESS", "COMPLETED", "CANCELLED", "REJECTED"])
    def test_start_invalid_status(self, db_session, doctor, status):
        (appointment,) = add_patients(db_session, doctor, [status])

        with pytest.raises(ValidationError):
            QueueService.start_appointment(db_session, appointment.id, doctor.id)

    def test_start_other_doctor(self, db_session, doctor):
        other = create_doctor(db_session, full_name="Dr. Akter")
        (appointment,) = add_patients(db_session, doctor, ["CONFIRMED"])

        with pytest.raises(NotFoundError):
            QueueService.start_appointment(db_session, appointment.id, other.id)

    def test_complete_is_idempotent(self, db_session, doctor, notifications):
        (appointment,) = add_patients(db_session, doctor, ["IN_PROGRESS"])

        first = QueueService.complete_appointment(db_session, appointment.id, doctor.id)
        completed_at = first.completed_at
        second = QueueService.complete_appointment(db_session, appointment.id, doctor.id)

        assert second.status == "COMPLETED"
        assert second.completed_at == completed_at
        assert notifications.types() == ["APPOINTMENT_COMPLETED"]

    def test_complete_cancelled(self, db_session, doctor):
        (appointment,) = add_patients(db_session, doctor, ["CANCELLED"])

        with pytest.raises(ValidationError):
            QueueService.complete_appointment(db_session, appointment.id, doctor.id)


class TestResetQueue:
    def test_renumbers_by_time_from_one(self, db_session, doctor, notifications):
        a1, a2, a3 = add_patients(
            db_session, doctor, ["CONFIRMED", "CONFIRMED", "PENDING"],
            times=[time(17, 0), time(9, 0), time(9, 0)]
        )

        renumbered = QueueService.reset_queue(db_session, doctor.id, QUEUE_DAY)

        assert [a.id for a in renumbered] == [a2.id, a3.id, a1.id]
        assert [a.queue_number for a in renumbered] == [1, 2, 3]
        assert notifications.types() == ["QUEUE_RESET"] * 4
        assert notifications.events[0].channel == f"doctor-{doctor.id}"

    def test_numbers_continue_after_completed(self, db_session, doctor, notifications):
        done, gone, waiting_a, waiting_b = add_patients(
            db_session, doctor, ["COMPLETED", "CANCELLED", "CONFIRMED", "IN_PROGRESS"]
        )

        renumbered = QueueService.reset_queue(db_session, doctor.id, QUEUE_DAY)

        assert [a.queue_number for a in renumbered] == [2, 3]
        db_session.refresh(done)
        db_session.refresh(gone)
        assert done.queue_number == 1
        assert gone.queue_number == 2  # cancelled rows keep their number

        live = db_session.query(Appointment).filter(
            Appointment.doctor_id == doctor.id,
            Appointment.appointment_date == QUEUE_DAY,
            Appointment.status.notin_(("CANCELLED", "REJECTED"))
        ).all()
        numbers = [a.queue_number for a in live]
        assert len(numbers) == len(set(numbers))

    def test_reset_empty_day(self, db_session, doctor, notifications):
        assert QueueService.reset_queue(db_session, doctor.id, QUEUE_DAY) == []


class TestPatientPosition:
    def test_position_and_wait(self, db_session, doctor):
        today = dhaka_today()
        a1, a2, a3, a4 = add_patients(
            db_session, doctor, ["IN_PROGRESS", "CONFIRMED", "CANCELLED", "CONFIRMED"], queue_date=today
        )

        position = QueueService.get_patient_position(db_session, a4.patient_id)

        assert position.appointment.id == a4.id
        assert position.patients_ahead == 1
        assert position.estimated_wait_minutes == 15
        assert position.current_queue_number == 1

    def test_in_progress_has_nobody_ahead(self, db_session, doctor):
        today = dhaka_today()
        a1, a2 = add_patients(db_session, doctor, ["IN_PROGRESS", "CONFIRMED"], queue_date=today)

        position = QueueService.get_patient_position(db_session, a1.patient_id)

        assert position.patients_ahead == 0
        assert position.estimated_wait_minutes == 0

    def test_no_appointment_today(self, db_session, doctor):
        (appointment,) = add_patients(
            db_session, doctor, ["CONFIRMED"], queue_date=dhaka_today() + timedelta(days=1)
        )

        assert QueueService.get_patient_position(db_session, appointment.patient_id) is None

    def test_appointment_queue_status(self, db_session, doctor):
        a1, a2, a3 = add_patients(db_session, doctor, ["CONFIRMED", "CONFIRMED", "CONFIRMED"])

        position = QueueService.get_appointment_queue_status(db_session, a3.id, a3.patient_id)

        assert position.patients_ahead == 2
        assert position.estimated_wait_minutes == 30
        assert position.current_queue_number is None

    def test_appointment_queue_status_other_patient(self, db_session, doctor):
        a1, a2 = add_patients(db_session, doctor, ["CONFIRMED", "CONFIRMED"])

        with pytest.raises(NotFoundError):
            QueueService.get_appointment_queue_status(db_session, a1.id, a2.patient_id)
