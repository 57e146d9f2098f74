"""
Services package for scheduling business logic.

This package contains service classes that encapsulate the business logic
behind the slot, appointment and queue endpoints.
"""

from .notification_service import NotificationService
from .slot_rule_service import SlotRuleService
from .availability_service import AvailabilityService
from .appointment_service import AppointmentService
from .queue_service import QueueService

__all__ = [
    "NotificationService",
    "SlotRuleService",
    "AvailabilityService",
    "AppointmentService",
    "QueueService",
]
