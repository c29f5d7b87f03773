"""Event deletion with cleanup of student references."""
import logging

from attendance.errors import NotFound
from attendance.event_validator import EventValidator
from attendance.models import DeleteResult
from attendance.retry import retry_on_conflict

logger = logging.getLogger(__name__)


class CascadeDeleter:
    """
    Deletes an event and pulls its ID from every student.

    The event record is removed first, so an interruption before the student
    cleanup only leaves dangling references, which the aggregator ignores.
    Deleting the same event again finishes the cleanup.
    """

    def __init__(self, store, max_retries: int = 5):
        self.store = store
        self.max_retries = max_retries
        self.validator = EventValidator()

    def delete_event(self, event_id) -> DeleteResult:
        """
        Delete an event.

        Args:
            event_id: Event to delete

        Returns:
            DeleteResult; ``residual_only`` is set when the event record was
            already gone and only leftover student references were removed

        Raises:
            NotFound: If neither the event nor any reference to it exists
            Contention: If concurrent updates kept conflicting
            StorageUnavailable: If storage failed; the call is safe to repeat
        """
        event_id = self.validator.validate_event_id(event_id)

        removed = retry_on_conflict(
            lambda: self._remove_event(event_id),
            self.max_retries,
            f"delete_event({event_id})"
        )
        if removed is not None:
            logger.info(
                f"Removed event {event_id} ('{removed.name}') with "
                f"{len(removed.participants)} participants"
            )

        cleaned = retry_on_conflict(
            lambda: self._pull_from_students(event_id),
            self.max_retries,
            f"cleanup students for event {event_id}"
        )

        if removed is None:
            if not cleaned:
                raise NotFound(f"Event {event_id} not found")
            logger.warning(
                f"Event {event_id} was already deleted; removed residual "
                f"references from {cleaned} students"
            )
            return DeleteResult(
                event_id=event_id,
                students_updated=cleaned,
                residual_only=True
            )

        return DeleteResult(event_id=event_id, students_updated=cleaned)

    def _remove_event(self, event_id: int):
        aggregate = self.store.get_event_aggregate()
        removed = aggregate.remove_event(event_id)
        if removed is not None:
            self.store.save_event_aggregate(aggregate)
        return removed

    def _pull_from_students(self, event_id: int) -> int:
        students = self.store.get_student_aggregate()
        changed = students.pull_event(event_id)
        if changed:
            self.store.save_student_aggregate(students)
            logger.info(f"Removed event {event_id} from {len(changed)} students")
        return len(changed)
