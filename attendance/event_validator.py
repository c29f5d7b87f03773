"""Validation and normalisation of engine input."""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Set

from attendance.errors import InvalidInput
from attendance.models import normalize_roll_no

logger = logging.getLogger(__name__)


class EventValidator:
    """Validates new events, rosters and student profiles."""

    MAX_NAME_LENGTH = 200

    DATE_FORMATS = [
        '%Y-%m-%d',      # ISO 8601
        '%d/%m/%Y',      # day first, as entered on the attendance sheets
        '%d-%m-%Y',
        '%B %d, %Y',     # Full month name
        '%b %d, %Y',     # Abbreviated month name
        '%Y/%m/%d',
    ]

    TIME_FORMATS = [
        '%H:%M',         # 24-hour format
        '%I:%M %p',      # 12-hour format with AM/PM
        '%I:%M%p',       # 12-hour format without space
        '%H:%M:%S',      # 24-hour with seconds
    ]

    def validate_event(self, name, hours, date, start_time) -> dict:
        """
        Validate and normalise the fields of a new event.

        Args:
            name: Event name
            hours: Duration in hours (number or numeric text)
            date: Event date in one of DATE_FORMATS
            start_time: Start time in one of TIME_FORMATS

        Returns:
            Dict with name, hours (Decimal), date (YYYY-MM-DD) and
            start_time (HH:MM)

        Raises:
            InvalidInput: If any field is missing or malformed
        """
        for field_name, value in (
            ('name', name), ('hours', hours),
            ('date', date), ('start_time', start_time)
        ):
            if value is None or (isinstance(value, str) and not value.strip()):
                raise InvalidInput(f"Missing required field: {field_name}")

        normalized_date = self._normalize(date, self.DATE_FORMATS, '%Y-%m-%d')
        if not normalized_date:
            raise InvalidInput(f"Invalid date format: {date}")

        normalized_time = self._normalize(start_time, self.TIME_FORMATS, '%H:%M')
        if not normalized_time:
            raise InvalidInput(f"Invalid start time format: {start_time}")

        name = str(name).strip()
        if len(name) > self.MAX_NAME_LENGTH:
            logger.warning(
                f"Event name truncated from {len(name)} to "
                f"{self.MAX_NAME_LENGTH} characters: '{name[:40]}...'"
            )

        return {
            'name': name[:self.MAX_NAME_LENGTH],
            'hours': self.parse_hours(hours),
            'date': normalized_date,
            'start_time': normalized_time
        }

    def parse_hours(self, hours) -> Decimal:
        """
        Parse a duration in hours.

        Raises:
            InvalidInput: If the value is not a finite non-negative number
        """
        if isinstance(hours, bool):
            raise InvalidInput(f"Invalid hours: {hours!r}")
        try:
            value = Decimal(str(hours).strip())
        except InvalidOperation:
            raise InvalidInput(f"Invalid hours: {hours!r}")
        if not value.is_finite() or value < 0:
            raise InvalidInput(f"Hours must be a non-negative number: {hours!r}")
        return value

    def validate_event_id(self, event_id) -> int:
        """Event IDs are plain integers; numeric strings are accepted."""
        if isinstance(event_id, bool):
            raise InvalidInput(f"Invalid event ID: {event_id!r}")
        try:
            return int(event_id)
        except (TypeError, ValueError):
            raise InvalidInput(f"Invalid event ID: {event_id!r}")

    def validate_roster(self, roster: Iterable[str]) -> Set[str]:
        """
        Normalise a roster to a set of upper-case roll numbers.

        Raises:
            InvalidInput: If the roster is not a collection of non-blank strings
        """
        if roster is None or isinstance(roster, (str, bytes, dict)):
            raise InvalidInput("Roster must be a collection of roll numbers")
        try:
            entries = list(roster)
        except TypeError:
            raise InvalidInput("Roster must be a collection of roll numbers")

        normalized = set()
        for roll_no in entries:
            if not isinstance(roll_no, str) or not roll_no.strip():
                raise InvalidInput(f"Invalid roll number in roster: {roll_no!r}")
            normalized.add(normalize_roll_no(roll_no))

        if len(normalized) != len(entries):
            logger.debug(
                f"Roster collapsed from {len(entries)} to {len(normalized)} "
                f"unique roll numbers"
            )
        return normalized

    def validate_student(self, profile: dict) -> dict:
        """
        Check the fields the engine relies on; everything else is opaque.

        Raises:
            InvalidInput: If roll_no or name is missing
        """
        if not isinstance(profile, dict):
            raise InvalidInput("Student profile must be an object")
        for field_name in ('roll_no', 'name'):
            value = profile.get(field_name)
            if not isinstance(value, str) or not value.strip():
                raise InvalidInput(f"Student missing required field: {field_name}")
        if 'events_participated' in profile:
            raise InvalidInput(
                "events_participated is maintained by attendance updates"
            )
        return dict(profile)

    def _normalize(self, value, formats, output_format):
        """Try each format in turn; None if nothing matches."""
        text = str(value).strip()
        for fmt in formats:
            try:
                return datetime.strptime(text, fmt).strftime(output_format)
            except ValueError:
                continue
        return None
