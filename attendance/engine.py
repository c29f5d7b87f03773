"""Entry point the request layer calls into."""
import logging
from typing import List

from attendance.aggregator import AttendanceAggregator
from attendance.cascade import CascadeDeleter
from attendance.errors import InvalidInput, NotFound
from attendance.event_validator import EventValidator
from attendance.id_allocator import IdAllocator
from attendance.models import (
    AttendanceTotal,
    DeleteResult,
    EventRecord,
    ReconcileResult,
    StudentRecord,
    normalize_roll_no,
)
from attendance.reconciler import ParticipationReconciler
from attendance.retry import retry_on_conflict

logger = logging.getLogger(__name__)


class AttendanceEngine:
    """Facade over the allocator, reconciler, cascade deleter and aggregator."""

    def __init__(self, store, id_floor: int = IdAllocator.DEFAULT_FLOOR,
                 max_retries: int = 5):
        """
        Wire the engine components to one storage adapter.

        Args:
            store: Storage adapter (see storage.aggregate_store.AggregateStore)
            id_floor: First event ID handed out when no event exists
            max_retries: Attempts per conditional write before Contention
        """
        self.store = store
        self.max_retries = max_retries
        self.validator = EventValidator()
        self.allocator = IdAllocator(store, floor=id_floor, max_retries=max_retries)
        self.reconciler = ParticipationReconciler(store, max_retries=max_retries)
        self.deleter = CascadeDeleter(store, max_retries=max_retries)
        self.aggregator = AttendanceAggregator(store)

    def create_event(self, name, hours, date, start_time) -> EventRecord:
        fields = self.validator.validate_event(name, hours, date, start_time)
        return self.allocator.append_event(
            lambda event_id: EventRecord(event_id=event_id, **fields)
        )

    def allocate_next_id(self) -> int:
        return self.allocator.allocate_next_id()

    def set_attendance(self, event_id, roster) -> ReconcileResult:
        return self.reconciler.set_attendance(event_id, roster)

    def delete_event(self, event_id) -> DeleteResult:
        return self.deleter.delete_event(event_id)

    def compute_hours(self) -> List[AttendanceTotal]:
        return self.aggregator.compute_hours()

    def get_event(self, event_id) -> EventRecord:
        event_id = self.validator.validate_event_id(event_id)
        event = self.store.get_event_aggregate().find_event(event_id)
        if event is None:
            raise NotFound(f"Event {event_id} not found")
        return event

    def get_event_roster(self, event_id) -> List[str]:
        return sorted(self.get_event(event_id).participants)

    def list_events(self) -> List[EventRecord]:
        return self.store.get_event_aggregate().events

    def list_students(self) -> List[StudentRecord]:
        return self.store.get_student_aggregate().students

    def add_student(self, profile: dict) -> StudentRecord:
        """
        Add a student profile.

        Events that already list the roll number (attendance recorded before
        the profile existed) are linked to the new student.

        Raises:
            InvalidInput: If required fields are missing or the roll number
                is already taken
        """
        fields = self.validator.validate_student(profile)
        roll_no = fields.pop('roll_no')
        name = fields.pop('name')

        def attempt():
            students = self.store.get_student_aggregate()
            if students.find_student(roll_no) is not None:
                raise InvalidInput(f"Student {normalize_roll_no(roll_no)} already exists")
            student = StudentRecord(roll_no=roll_no, name=name, profile=fields)
            student.events_participated = {
                event.event_id
                for event in self.store.get_event_aggregate().events
                if student.roll_no in event.participants
            }
            students.students.append(student)
            self.store.save_student_aggregate(students)
            return student

        student = retry_on_conflict(attempt, self.max_retries, 'add_student')

        # A roster update that ran before the save saw no student to link.
        linked = {
            event.event_id
            for event in self.store.get_event_aggregate().events
            if student.roll_no in event.participants
        }
        for event_id in sorted(linked ^ student.events_participated):
            self.reconciler.converge_students(event_id)
        if linked != student.events_participated:
            student = self.store.get_student_aggregate().find_student(student.roll_no)

        logger.info(
            f"Added student {student.roll_no} linked to "
            f"{len(student.events_participated)} existing events"
        )
        return student
