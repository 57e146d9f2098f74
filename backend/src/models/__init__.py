# Package initialization
# Import all models to ensure relationships are properly established
from .doctor import Doctor
from .patient import Patient
from .slot_rule import SlotRule, DayOfWeek, ConsultationType
from .appointment import Appointment, AppointmentStatus

__all__ = [
    "Doctor",
    "Patient",
    "SlotRule",
    "DayOfWeek",
    "ConsultationType",
    "Appointment",
    "AppointmentStatus",
]
