"""Shared types for the queue sequencer."""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from models import Appointment


@dataclass
class QueueStats:
    total: int = 0
    waiting: int = 0
    in_progress: int = 0
    completed: int = 0


@dataclass
class QueueSnapshot:
    """A doctor's queue for one day plus counters for the dashboard."""
    doctor_id: int
    queue_date: date
    queue: List[Appointment] = field(default_factory=list)
    stats: QueueStats = field(default_factory=QueueStats)
    current: Optional[Appointment] = None


@dataclass
class QueueAdvance:
    """
    Result of calling the next patient.

    ``queue_empty`` is True when nobody is waiting; ``called`` is then None.
    ``already_in_progress`` is True when the returned appointment was being
    seen before the call and was left untouched.
    """
    called: Optional[Appointment]
    completed: Optional[Appointment] = None
    queue_empty: bool = False
    already_in_progress: bool = False


@dataclass
class QueuePosition:
    """Where a patient's appointment stands in today's queue."""
    appointment: Appointment
    patients_ahead: int
    estimated_wait_minutes: int
    current_queue_number: Optional[int] = None
