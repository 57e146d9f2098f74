"""
Session identifiers.

A session is one dated occurrence of a slot rule. Its id is the structured
key ``<rule_id>-<YYYYMMDD>-<HHMM>``, so it can be decoded back into its
parts without guessing where one number ends and the next begins.
"""

import re
from datetime import date, datetime, time
from typing import NamedTuple

from core.exceptions import ValidationError

_SESSION_KEY_PATTERN = re.compile(r"^(\d+)-(\d{8})-(\d{4})$")


class SessionKey(NamedTuple):
    """Decoded session id."""

    rule_id: int
    session_date: date
    start_time: time

    def encode(self) -> str:
        return f"{self.rule_id}-{self.session_date.strftime('%Y%m%d')}-{self.start_time.strftime('%H%M')}"

    @classmethod
    def parse(cls, value: str) -> "SessionKey":
        """
        Decode a session id.

        Raises:
            ValidationError: If the id is not a well-formed session key
        """
        match = _SESSION_KEY_PATTERN.match((value or "").strip())
        if not match:
            raise ValidationError(f"Invalid session id: {value!r}")

        rule_id, date_part, time_part = match.groups()
        try:
            session_date = datetime.strptime(date_part, "%Y%m%d").date()
            start_time = datetime.strptime(time_part, "%H%M").time()
        except ValueError as e:
            raise ValidationError(f"Invalid session id: {value!r}") from e

        return cls(int(rule_id), session_date, start_time)
