"""Event ID allocation without an atomic counter."""
import logging
from typing import Callable

from attendance.models import EventRecord
from attendance.retry import retry_on_conflict

logger = logging.getLogger(__name__)


class IdAllocator:
    """
    Hands out strictly increasing event IDs.

    The next ID is derived from the aggregate's high-water mark and committed
    with a write conditioned on the version that was read. Two creators that
    read the same mark cannot both commit; the loser re-reads and takes the
    following ID.
    """

    DEFAULT_FLOOR = 1000

    def __init__(self, store, floor: int = DEFAULT_FLOOR, max_retries: int = 5):
        self.store = store
        self.floor = floor
        self.max_retries = max_retries

    def allocate_next_id(self) -> int:
        """
        Reserve the next event ID without creating an event.

        Returns:
            The reserved ID

        Raises:
            Contention: If the retry budget ran out
        """
        def attempt():
            aggregate = self.store.get_event_aggregate()
            event_id = self._next_id(aggregate)
            aggregate.last_event_id = event_id
            self.store.save_event_aggregate(aggregate)
            return event_id

        event_id = retry_on_conflict(attempt, self.max_retries, 'allocate_next_id')
        logger.info(f"Reserved event ID {event_id}")
        return event_id

    def append_event(self, build: Callable[[int], EventRecord]) -> EventRecord:
        """
        Allocate an ID and append the event built for it in one write.

        Args:
            build: Called with the allocated ID, returns the EventRecord

        Returns:
            The appended EventRecord

        Raises:
            Contention: If the retry budget ran out
        """
        def attempt():
            aggregate = self.store.get_event_aggregate()
            event = build(self._next_id(aggregate))
            aggregate.events.append(event)
            aggregate.last_event_id = event.event_id
            self.store.save_event_aggregate(aggregate)
            return event

        event = retry_on_conflict(attempt, self.max_retries, 'create_event')
        logger.info(f"Created event {event.event_id} ('{event.name}')")
        return event

    def _next_id(self, aggregate) -> int:
        return max(self.floor, aggregate.highest_event_id() + 1)
