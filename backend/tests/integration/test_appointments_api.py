"""
Integration tests for the appointment API.
"""

import pytest
from datetime import timedelta

from tests.conftest import (
    auth_headers, create_doctor, create_patient, create_slot_rule, next_date_for
)
from utils.session_keys import SessionKey


@pytest.fixture
def session_setup(db_session):
    doctor = create_doctor(db_session, specialization="Medicine")
    rule = create_slot_rule(db_session, doctor, "SATURDAY", max_patients=1, consultation_type="BOTH")
    saturday = next_date_for("SATURDAY")
    slot_id = SessionKey(rule.id, saturday, rule.start_time).encode()
    return doctor, rule, saturday, slot_id


def book(client, patient, doctor, slot_id, **extra):
    return client.post(
        "/api/appointments",
        json={"doctorId": doctor.id, "slotId": slot_id, **extra},
        headers=auth_headers("PATIENT", patient.id),
    )


class TestBooking:
    def test_book_success(self, client, db_session, session_setup, notifications):
        doctor, rule, saturday, slot_id = session_setup
        patient = create_patient(db_session, phone="01819000000")

        response = book(client, patient, doctor, slot_id, appointmentType="TELEMEDICINE", symptoms="Fever")

        assert response.status_code == 201
        appointment = response.json()["appointment"]
        assert appointment["status"] == "CONFIRMED"
        assert appointment["queueNumber"] == 1
        assert appointment["seatNumber"] == 1
        assert appointment["consultationType"] == "TELEMEDICINE"
        assert appointment["date"] == saturday.isoformat()
        assert appointment["time"] == "09:00"
        assert appointment["doctorName"] == doctor.full_name
        assert appointment["specialization"] == "Medicine"
        assert appointment["patientPhone"] == "01819000000"
        assert appointment["reasonForVisit"] == "Fever"
        assert notifications.types() == ["APPOINTMENT_CONFIRMED"]

    def test_full_session_returns_capacity_exceeded(self, client, db_session, session_setup, notifications):
        doctor, rule, saturday, slot_id = session_setup
        book(client, create_patient(db_session, full_name="First"), doctor, slot_id)

        response = book(client, create_patient(db_session, full_name="Second"), doctor, slot_id)

        assert response.status_code == 409
        assert response.json()["type"] == "capacity_exceeded"
        assert response.json()["retryable"] is False

    def test_duplicate_returns_conflict(self, client, db_session, notifications):
        doctor = create_doctor(db_session)
        rule = create_slot_rule(db_session, doctor, "SATURDAY", max_patients=3)
        slot_id = SessionKey(rule.id, next_date_for("SATURDAY"), rule.start_time).encode()
        patient = create_patient(db_session)
        book(client, patient, doctor, slot_id)

        response = book(client, patient, doctor, slot_id)

        assert response.status_code == 409
        assert response.json()["type"] == "conflict"

    def test_bad_slot_id(self, client, db_session, session_setup):
        doctor, _, _, _ = session_setup
        response = book(client, create_patient(db_session), doctor, "12-tomorrow-0900")
        assert response.status_code == 400

    def test_doctor_cannot_book(self, client, session_setup):
        doctor, _, _, slot_id = session_setup
        response = client.post(
            "/api/appointments",
            json={"doctorId": doctor.id, "slotId": slot_id},
            headers=auth_headers("DOCTOR", doctor.id),
        )
        assert response.status_code == 403

    def test_symptoms_length_limit(self, client, db_session, session_setup):
        doctor, _, _, slot_id = session_setup
        response = book(client, create_patient(db_session), doctor, slot_id, symptoms="x" * 1001)
        assert response.status_code == 422


class TestListing:
    def test_patient_and_doctor_views(self, client, db_session, session_setup, notifications):
        doctor, _, _, slot_id = session_setup
        patient = create_patient(db_session)
        book(client, patient, doctor, slot_id)

        mine = client.get("/api/appointments/my-appointments", headers=auth_headers("PATIENT", patient.id))
        theirs = client.get("/api/appointments/my-appointments", headers=auth_headers("DOCTOR", doctor.id))
        admin = client.get("/api/appointments/my-appointments", headers=auth_headers("ADMIN"))

        assert mine.json()["count"] == 1
        assert theirs.json()["count"] == 1
        assert admin.status_code == 403


class TestCancel:
    def test_patient_cancel_frees_seat(self, client, db_session, session_setup, notifications):
        doctor, rule, saturday, slot_id = session_setup
        patient = create_patient(db_session)
        appointment_id = book(client, patient, doctor, slot_id).json()["appointment"]["id"]

        response = client.patch(
            f"/api/appointments/{appointment_id}/cancel", headers=auth_headers("PATIENT", patient.id)
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Appointment cancelled"
        assert response.json()["appointment"]["status"] == "CANCELLED"

        available = client.get(
            f"/api/slots/available/{doctor.id}",
            params={"startDate": saturday.isoformat(), "endDate": saturday.isoformat()},
        ).json()
        assert available["slots"][0]["availableSpots"] == 1

    def test_doctor_cancel_rejects(self, client, db_session, session_setup, notifications):
        doctor, _, _, slot_id = session_setup
        appointment_id = book(client, create_patient(db_session), doctor, slot_id).json()["appointment"]["id"]

        response = client.patch(
            f"/api/appointments/{appointment_id}/cancel", headers=auth_headers("DOCTOR", doctor.id)
        )

        assert response.json()["appointment"]["status"] == "REJECTED"
        assert response.json()["message"] == "Appointment rejected"

    def test_stranger_forbidden(self, client, db_session, session_setup, notifications):
        doctor, _, _, slot_id = session_setup
        appointment_id = book(client, create_patient(db_session), doctor, slot_id).json()["appointment"]["id"]
        stranger = create_patient(db_session, full_name="Stranger")

        response = client.patch(
            f"/api/appointments/{appointment_id}/cancel", headers=auth_headers("PATIENT", stranger.id)
        )

        assert response.status_code == 403

    def test_missing_appointment(self, client):
        response = client.patch("/api/appointments/999999/cancel", headers=auth_headers("ADMIN"))
        assert response.status_code == 404


class TestReschedule:
    def test_reschedule_to_next_week(self, client, db_session, session_setup, notifications):
        doctor, rule, saturday, slot_id = session_setup
        patient = create_patient(db_session)
        appointment_id = book(client, patient, doctor, slot_id).json()["appointment"]["id"]
        next_week = saturday + timedelta(days=7)

        response = client.put(
            f"/api/appointments/{appointment_id}",
            json={"slotId": SessionKey(rule.id, next_week, rule.start_time).encode()},
            headers=auth_headers("PATIENT", patient.id),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Appointment rescheduled"
        assert data["appointment"]["date"] == next_week.isoformat()
        assert data["appointment"]["queueNumber"] == 1
        assert "APPOINTMENT_RESCHEDULED" in notifications.types()

        # The original single-seat session is bookable again
        reopened = client.get(
            f"/api/slots/available/{doctor.id}",
            params={"startDate": saturday.isoformat(), "endDate": saturday.isoformat()},
        ).json()
        assert reopened["slots"][0]["availableSpots"] == 1

    def test_reschedule_into_full_session(self, client, db_session, session_setup, notifications):
        doctor, rule, saturday, slot_id = session_setup
        next_week_slot = SessionKey(rule.id, saturday + timedelta(days=7), rule.start_time).encode()
        book(client, create_patient(db_session, full_name="Holder"), doctor, next_week_slot)
        patient = create_patient(db_session)
        appointment_id = book(client, patient, doctor, slot_id).json()["appointment"]["id"]

        response = client.put(
            f"/api/appointments/{appointment_id}",
            json={"slotId": next_week_slot},
            headers=auth_headers("PATIENT", patient.id),
        )

        assert response.status_code == 409
        assert response.json()["type"] == "capacity_exceeded"

    def test_stranger_forbidden(self, client, db_session, session_setup, notifications):
        doctor, rule, saturday, slot_id = session_setup
        appointment_id = book(client, create_patient(db_session), doctor, slot_id).json()["appointment"]["id"]
        stranger = create_patient(db_session, full_name="Stranger")

        response = client.put(
            f"/api/appointments/{appointment_id}",
            json={"slotId": SessionKey(rule.id, saturday + timedelta(days=7), rule.start_time).encode()},
            headers=auth_headers("PATIENT", stranger.id),
        )

        assert response.status_code == 403

    def test_missing_appointment(self, client, session_setup):
        _, _, _, slot_id = session_setup
        response = client.put("/api/appointments/999999", json={"slotId": slot_id}, headers=auth_headers("ADMIN"))
        assert response.status_code == 404

    def test_requires_authentication(self, client, session_setup):
        _, _, _, slot_id = session_setup
        response = client.put("/api/appointments/1", json={"slotId": slot_id})
        assert response.status_code == 401
