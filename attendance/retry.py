"""Bounded optimistic retry for read-modify-conditional-write cycles."""
import logging
from typing import Callable, TypeVar

from attendance.errors import Contention, VersionConflict

logger = logging.getLogger(__name__)

T = TypeVar('T')


def retry_on_conflict(
    attempt: Callable[[], T],
    max_retries: int,
    operation: str
) -> T:
    """
    Run ``attempt`` until it completes without a VersionConflict.

    ``attempt`` must re-read whatever it writes, so every retry works on
    fresh state.

    Args:
        attempt: Callable performing one read-modify-write cycle
        max_retries: Maximum number of attempts
        operation: Name used in log and error messages

    Returns:
        Whatever ``attempt`` returns

    Raises:
        Contention: If every attempt hit a conflict
    """
    for attempt_no in range(max_retries):
        try:
            return attempt()
        except VersionConflict as e:
            logger.warning(
                f"{operation}: concurrent update on '{e}' "
                f"(attempt {attempt_no + 1}/{max_retries}), retrying"
            )

    logger.error(f"{operation}: gave up after {max_retries} conflicting attempts")
    raise Contention(f"{operation} did not settle after {max_retries} attempts")
