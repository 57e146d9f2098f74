"""
Utility modules for the scheduling backend.

This package contains shared utility functions and helpers used across
the application, including datetime utilities, session keys and database
query helpers.
"""

from utils.datetime_utils import dhaka_now, dhaka_today

__all__ = ['dhaka_now', 'dhaka_today']
