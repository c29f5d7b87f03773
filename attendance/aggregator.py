"""Attendance hours report."""
import logging
from decimal import Decimal
from typing import List

from attendance.models import AttendanceTotal

logger = logging.getLogger(__name__)


class AttendanceAggregator:
    """Sums event hours per student across the participation relationship."""

    def __init__(self, store):
        self.store = store

    def compute_hours(self) -> List[AttendanceTotal]:
        """
        Compute total attended hours for every student.

        References to events that no longer exist count as zero hours.

        Returns:
            One AttendanceTotal per student, in student aggregate order
        """
        hours_by_event = {
            event.event_id: event.hours
            for event in self.store.get_event_aggregate().events
        }
        students = self.store.get_student_aggregate().students

        totals = []
        dangling = 0
        for student in students:
            total = Decimal('0')
            for event_id in student.events_participated:
                hours = hours_by_event.get(event_id)
                if hours is None:
                    dangling += 1
                    continue
                total += hours
            totals.append(AttendanceTotal(
                roll_no=student.roll_no,
                student_name=student.name,
                total_hours=total
            ))

        if dangling:
            logger.info(f"Skipped {dangling} references to deleted events")
        logger.info(
            f"Computed hours for {len(totals)} students over "
            f"{len(hours_by_event)} events"
        )
        return totals
