"""
Shared type definitions for the MediConnect scheduling backend.

This module contains dataclasses and types that are used across multiple services.
"""

from shared_types.availability import SessionSlot, SessionAvailability
from shared_types.queue import QueueStats, QueueSnapshot, QueueAdvance, QueuePosition

__all__ = [
    "SessionSlot",
    "SessionAvailability",
    "QueueStats",
    "QueueSnapshot",
    "QueueAdvance",
    "QueuePosition",
]
