"""Data models for the attendance aggregates."""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Set


def normalize_roll_no(roll_no: str) -> str:
    """Roll numbers are compared case-insensitively and stored upper-case."""
    return roll_no.strip().upper()


@dataclass
class EventRecord:
    """Single event inside the event aggregate."""
    event_id: int
    name: str
    hours: Decimal
    date: str
    start_time: str
    participants: Set[str] = field(default_factory=set)


@dataclass
class StudentRecord:
    """Single student inside the student aggregate."""
    roll_no: str
    name: str
    events_participated: Set[int] = field(default_factory=set)
    profile: Dict[str, object] = field(default_factory=dict)

    def __post_init__(self):
        self.roll_no = normalize_roll_no(self.roll_no)


@dataclass
class EventAggregate:
    """The shared document holding every event."""
    version: int = 0
    last_event_id: int = 0
    events: List[EventRecord] = field(default_factory=list)
    # Stored maps that could not be read; written back untouched
    unparsed: List[dict] = field(default_factory=list)

    def find_event(self, event_id: int) -> Optional[EventRecord]:
        for event in self.events:
            if event.event_id == event_id:
                return event
        return None

    def remove_event(self, event_id: int) -> Optional[EventRecord]:
        """Filter the event out of the aggregate, returning it if present."""
        event = self.find_event(event_id)
        if event is not None:
            self.events = [e for e in self.events if e.event_id != event_id]
        return event

    def highest_event_id(self) -> int:
        """Highest ID ever handed out, including IDs of deleted events."""
        existing = max((e.event_id for e in self.events), default=0)
        for raw in self.unparsed:
            try:
                existing = max(existing, int(raw['event_id']))
            except (KeyError, TypeError, ValueError):
                continue
        return max(self.last_event_id, existing)


@dataclass
class StudentAggregate:
    """The shared document holding every student."""
    version: int = 0
    students: List[StudentRecord] = field(default_factory=list)
    unparsed: List[dict] = field(default_factory=list)

    def find_student(self, roll_no: str) -> Optional[StudentRecord]:
        roll_no = normalize_roll_no(roll_no)
        for student in self.students:
            if student.roll_no == roll_no:
                return student
        return None

    def find_students(
        self, predicate: Callable[[StudentRecord], bool]
    ) -> List[StudentRecord]:
        return [s for s in self.students if predicate(s)]

    def students_referencing(self, event_id: int) -> List[StudentRecord]:
        return self.find_students(lambda s: event_id in s.events_participated)

    def add_event_to(self, event_id: int, roll_nos: Iterable[str]) -> Set[str]:
        """
        Set-union ``event_id`` into the participation set of each student.

        Args:
            event_id: Event to add
            roll_nos: Roll numbers of the students to update

        Returns:
            Roll numbers whose participation set actually changed
        """
        wanted = {normalize_roll_no(r) for r in roll_nos}
        changed = set()
        for student in self.find_students(lambda s: s.roll_no in wanted):
            if event_id not in student.events_participated:
                student.events_participated.add(event_id)
                changed.add(student.roll_no)
        return changed

    def pull_event(
        self, event_id: int, keep: Iterable[str] = ()
    ) -> Set[str]:
        """
        Set-difference ``event_id`` out of every student not listed in ``keep``.

        Returns:
            Roll numbers whose participation set actually changed
        """
        kept = {normalize_roll_no(r) for r in keep}
        changed = set()
        for student in self.students_referencing(event_id):
            if student.roll_no not in kept:
                student.events_participated.discard(event_id)
                changed.add(student.roll_no)
        return changed


@dataclass
class ReconcileResult:
    """Result of replacing an event's roster."""
    event: EventRecord
    added: Set[str]
    removed: Set[str]
    unknown: Set[str]


@dataclass
class DeleteResult:
    """Result of a cascade delete."""
    event_id: int
    students_updated: int
    residual_only: bool = False


@dataclass
class AttendanceTotal:
    """Accumulated hours for one student."""
    roll_no: str
    student_name: str
    total_hours: Decimal
