"""
Shared types for availability-related functionality.

This module contains the data classes produced by the session materializer
and consumed by the booking API, so both sides agree on one shape.
"""

from dataclasses import dataclass, field
from datetime import date, time
from typing import Dict, List

from utils.session_keys import SessionKey


@dataclass
class SessionSlot:
    """
    One dated session of a slot rule with its live capacity.

    Computed on demand, never stored.
    """
    slot_rule_id: int
    doctor_id: int
    session_date: date
    day_of_week: str
    start_time: time
    end_time: time
    consultation_type: str
    capacity: int
    booked_count: int

    @property
    def session_id(self) -> str:
        return SessionKey(self.slot_rule_id, self.session_date, self.start_time).encode()

    @property
    def available_spots(self) -> int:
        return max(0, self.capacity - self.booked_count)


@dataclass
class SessionAvailability:
    """Bookable sessions in a date window, flat and grouped by ISO date."""
    doctor_id: int
    start_date: date
    end_date: date
    sessions: List[SessionSlot] = field(default_factory=list)

    @property
    def by_date(self) -> Dict[str, List[SessionSlot]]:
        grouped: Dict[str, List[SessionSlot]] = {}
        for session in self.sessions:
            grouped.setdefault(session.session_date.isoformat(), []).append(session)
        return grouped
