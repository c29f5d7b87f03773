"""Keeps event rosters and student participation sets in step."""
import logging
from typing import Iterable, Set

from attendance.errors import NotFound, VersionConflict
from attendance.event_validator import EventValidator
from attendance.models import ReconcileResult
from attendance.retry import retry_on_conflict

logger = logging.getLogger(__name__)


class ParticipationReconciler:
    """
    Replaces an event's roster and mirrors it onto the student aggregate.

    The two aggregates are written separately. The event write happens
    first; the student side is then converged against whatever roster the
    event holds at that moment. Re-running after a partial failure therefore
    only applies the deltas still missing.
    """

    def __init__(self, store, max_retries: int = 5):
        self.store = store
        self.max_retries = max_retries
        self.validator = EventValidator()

    def set_attendance(self, event_id, new_roster: Iterable[str]) -> ReconcileResult:
        """
        Set the participants of an event.

        Args:
            event_id: Event to update
            new_roster: Full set of roll numbers who attended

        Returns:
            ReconcileResult with the updated event, the roll numbers added and
            removed on the event side, and roll numbers with no student record

        Raises:
            InvalidInput: If the event ID or roster is malformed
            NotFound: If the event does not exist
            Contention: If concurrent updates kept conflicting
            StorageUnavailable: If storage failed; the call is safe to repeat
        """
        event_id = self.validator.validate_event_id(event_id)
        roster = self.validator.validate_roster(new_roster)

        event, added, removed = retry_on_conflict(
            lambda: self._replace_roster(event_id, roster),
            self.max_retries,
            f"set_attendance({event_id})"
        )
        logger.info(
            f"Event {event_id} roster: {len(added)} added, {len(removed)} removed",
            extra={'event_id': event_id, 'roster_size': len(roster)}
        )

        unknown = self.converge_students(event_id)
        return ReconcileResult(
            event=event,
            added=added,
            removed=removed,
            unknown=unknown
        )

    def converge_students(self, event_id: int) -> Set[str]:
        """
        Make every student's participation set agree with the stored roster.

        Returns:
            Roll numbers on the roster that have no student record
        """
        return retry_on_conflict(
            lambda: self._apply_current_roster(event_id),
            self.max_retries,
            f"reconcile students for event {event_id}"
        )

    def _replace_roster(self, event_id: int, roster: Set[str]):
        aggregate = self.store.get_event_aggregate()
        event = aggregate.find_event(event_id)
        if event is None:
            raise NotFound(f"Event {event_id} not found")

        old_roster = set(event.participants)
        added = roster - old_roster
        removed = old_roster - roster
        if added or removed:
            event.participants = set(roster)
            self.store.save_event_aggregate(aggregate)
        return event, added, removed

    def _apply_current_roster(self, event_id: int) -> Set[str]:
        roster = self._stored_roster(event_id)

        students = self.store.get_student_aggregate()
        pulled = students.pull_event(event_id, keep=roster)
        pushed = students.add_event_to(event_id, roster)
        unknown = {r for r in roster if students.find_student(r) is None}

        if pulled or pushed:
            self.store.save_student_aggregate(students)
            logger.info(
                f"Event {event_id}: added to {len(pushed)} students, "
                f"removed from {len(pulled)} students"
            )
        if unknown:
            logger.info(
                f"Event {event_id}: {len(unknown)} roll numbers have no "
                f"student record yet"
            )

        # Another caller may have replaced the roster while we were writing.
        if self._stored_roster(event_id) != roster:
            raise VersionConflict(f"roster of event {event_id}")
        return unknown

    def _stored_roster(self, event_id: int) -> Set[str]:
        event = self.store.get_event_aggregate().find_event(event_id)
        if event is None:
            return set()
        return set(event.participants)
