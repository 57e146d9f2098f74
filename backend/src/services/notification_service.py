# pyright: reportUnknownMemberType=false, reportMissingTypeStubs=false
"""
Status/notification bridge.

Booking and queue services call NotificationService after their transaction
commits. Each event is handed to every registered sink; a failing sink is
logged and skipped so that delivery problems never undo or block a
committed state change.

Events are addressed to channels named ``patient-<id>`` or ``doctor-<id>``,
which the realtime gateway maps to its rooms.
"""

import logging
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from core.config import NOTIFICATION_WEBHOOK_URL, NOTIFICATION_WEBHOOK_TIMEOUT_SECONDS
from models import Appointment
from utils.datetime_utils import dhaka_now, format_time

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    APPOINTMENT_CONFIRMED = "APPOINTMENT_CONFIRMED"
    APPOINTMENT_CANCELLED = "APPOINTMENT_CANCELLED"
    APPOINTMENT_RESCHEDULED = "APPOINTMENT_RESCHEDULED"
    APPOINTMENT_STARTED = "APPOINTMENT_STARTED"
    APPOINTMENT_COMPLETED = "APPOINTMENT_COMPLETED"
    QUEUE_CALLED = "QUEUE_CALLED"
    QUEUE_NEXT = "QUEUE_NEXT"
    QUEUE_RESET = "QUEUE_RESET"


class RecipientType(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"


class NotificationEvent(BaseModel):
    """A single status change addressed to one patient or doctor."""

    type: NotificationType
    recipient_type: RecipientType
    recipient_id: int
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=dhaka_now)

    @property
    def channel(self) -> str:
        return f"{self.recipient_type.value}-{self.recipient_id}"


class NotificationSink:
    """Delivery target for notification events."""

    name = "sink"

    def send(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class LoggingNotificationSink(NotificationSink):
    """Writes every event to the application log."""

    name = "log"

    def send(self, event: NotificationEvent) -> None:
        logger.info(f"📣 {event.type.value} -> {event.channel}: {event.payload}")


class WebhookNotificationSink(NotificationSink):
    """Posts events as JSON to the realtime gateway."""

    name = "webhook"

    def __init__(self, url: str, timeout: float = NOTIFICATION_WEBHOOK_TIMEOUT_SECONDS):
        self.url = url
        self.timeout = timeout

    def send(self, event: NotificationEvent) -> None:
        body = event.model_dump(mode="json")
        body["channel"] = event.channel
        response = httpx.post(self.url, json=body, timeout=self.timeout)
        response.raise_for_status()


def appointment_payload(appointment: Appointment) -> Dict[str, Any]:
    """Serialize the fields clients need to refresh an appointment view."""
    return {
        "appointmentId": appointment.id,
        "doctorId": appointment.doctor_id,
        "patientId": appointment.patient_id,
        "date": appointment.appointment_date.isoformat(),
        "time": format_time(appointment.appointment_time),
        "status": appointment.status,
        "queueNumber": appointment.queue_number,
    }


class NotificationService:
    """Fan-out of status events to the registered sinks."""

    _sinks: List[NotificationSink] = [LoggingNotificationSink()]

    @classmethod
    def register_sink(cls, sink: NotificationSink) -> None:
        cls._sinks.append(sink)

    @classmethod
    def clear_sinks(cls) -> None:
        cls._sinks = []

    @classmethod
    def configure_default_sinks(cls, webhook_url: Optional[str] = None) -> None:
        """
        Reset sinks to the logging sink plus the webhook sink when a URL is configured.

        Args:
            webhook_url: Gateway URL, defaults to NOTIFICATION_WEBHOOK_URL
        """
        url = NOTIFICATION_WEBHOOK_URL if webhook_url is None else webhook_url
        cls._sinks = [LoggingNotificationSink()]
        if url:
            cls._sinks.append(WebhookNotificationSink(url))
            logger.info(f"Notification webhook enabled: {url}")

    @classmethod
    def emit(cls, event: NotificationEvent) -> int:
        """
        Deliver an event to every sink.

        Returns:
            Number of sinks that accepted the event
        """
        delivered = 0
        for sink in list(cls._sinks):
            try:
                sink.send(event)
                delivered += 1
            except httpx.HTTPStatusError as e:
                logger.warning(
                    f"Sink {sink.name} rejected {event.type.value} for {event.channel}: "
                    f"{e.response.status_code}"
                )
            except Exception as e:
                logger.exception(f"Sink {sink.name} failed to deliver {event.type.value} for {event.channel}: {e}")
        return delivered

    @classmethod
    def emit_all(cls, events: List[NotificationEvent]) -> None:
        for event in events:
            cls.emit(event)

    # Event builders

    @staticmethod
    def appointment_confirmed(appointment: Appointment) -> NotificationEvent:
        return NotificationEvent(
            type=NotificationType.APPOINTMENT_CONFIRMED,
            recipient_type=RecipientType.PATIENT,
            recipient_id=appointment.patient_id,
            payload=appointment_payload(appointment),
        )

    @staticmethod
    def appointment_cancelled(appointment: Appointment, cancelled_by: str) -> List[NotificationEvent]:
        payload = {**appointment_payload(appointment), "cancelledBy": cancelled_by}
        return [
            NotificationEvent(
                type=NotificationType.APPOINTMENT_CANCELLED,
                recipient_type=RecipientType.PATIENT,
                recipient_id=appointment.patient_id,
                payload=payload,
            ),
            NotificationEvent(
                type=NotificationType.APPOINTMENT_CANCELLED,
                recipient_type=RecipientType.DOCTOR,
                recipient_id=appointment.doctor_id,
                payload=payload,
            ),
        ]

    @staticmethod
    def appointment_rescheduled(
        appointment: Appointment, previous_date: date, previous_time: time
    ) -> List[NotificationEvent]:
        payload = {
            **appointment_payload(appointment),
            "previousDate": previous_date.isoformat(),
            "previousTime": format_time(previous_time),
        }
        return [
            NotificationEvent(
                type=NotificationType.APPOINTMENT_RESCHEDULED,
                recipient_type=RecipientType.PATIENT,
                recipient_id=appointment.patient_id,
                payload=payload,
            ),
            NotificationEvent(
                type=NotificationType.APPOINTMENT_RESCHEDULED,
                recipient_type=RecipientType.DOCTOR,
                recipient_id=appointment.doctor_id,
                payload=payload,
            ),
        ]

    @staticmethod
    def queue_called(appointment: Appointment) -> List[NotificationEvent]:
        """Tell the patient it is their turn and tell the doctor who is next."""
        payload = appointment_payload(appointment)
        return [
            NotificationEvent(
                type=NotificationType.QUEUE_CALLED,
                recipient_type=RecipientType.PATIENT,
                recipient_id=appointment.patient_id,
                payload={**payload, "message": "It's your turn! Please proceed to the doctor."},
            ),
            NotificationEvent(
                type=NotificationType.QUEUE_NEXT,
                recipient_type=RecipientType.DOCTOR,
                recipient_id=appointment.doctor_id,
                payload=payload,
            ),
        ]

    @staticmethod
    def appointment_started(appointment: Appointment) -> NotificationEvent:
        return NotificationEvent(
            type=NotificationType.APPOINTMENT_STARTED,
            recipient_type=RecipientType.PATIENT,
            recipient_id=appointment.patient_id,
            payload=appointment_payload(appointment),
        )

    @staticmethod
    def appointment_completed(appointment: Appointment) -> NotificationEvent:
        return NotificationEvent(
            type=NotificationType.APPOINTMENT_COMPLETED,
            recipient_type=RecipientType.PATIENT,
            recipient_id=appointment.patient_id,
            payload=appointment_payload(appointment),
        )

    @staticmethod
    def queue_reset(doctor_id: int, queue_date: date, appointments: List[Appointment]) -> List[NotificationEvent]:
        """One event for the doctor plus one per renumbered patient."""
        events = [
            NotificationEvent(
                type=NotificationType.QUEUE_RESET,
                recipient_type=RecipientType.DOCTOR,
                recipient_id=doctor_id,
                payload={"date": queue_date.isoformat(), "renumbered": len(appointments)},
            )
        ]
        for appointment in appointments:
            events.append(
                NotificationEvent(
                    type=NotificationType.QUEUE_RESET,
                    recipient_type=RecipientType.PATIENT,
                    recipient_id=appointment.patient_id,
                    payload=appointment_payload(appointment),
                )
            )
        return events
