"""Errors raised by the attendance engine."""


class AttendanceError(Exception):
    """Base class for every error the engine surfaces to callers."""


class NotFound(AttendanceError):
    """Referenced event or student does not exist."""


class Contention(AttendanceError):
    """A conflicting update could not be resolved within the retry budget."""


class StorageUnavailable(AttendanceError):
    """The storage call failed; the whole operation may be retried."""


class InvalidInput(AttendanceError):
    """Malformed event, roster or student data."""


class VersionConflict(Exception):
    """An aggregate changed between read and conditional write."""
