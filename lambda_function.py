"""AWS Lambda handler for the student attendance engine."""
import json
import logging
import os
import time
from decimal import Decimal
from typing import Dict, Any

from attendance.engine import AttendanceEngine
from attendance.errors import (
    Contention,
    InvalidInput,
    NotFound,
    StorageUnavailable,
)
from storage.aggregate_store import AggregateStore


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


# Status code per engine error kind; anything else is a 500
ERROR_STATUS = [
    (InvalidInput, 400),
    (NotFound, 404),
    (Contention, 409),
    (StorageUnavailable, 503),
]


def _json_default(value):
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, set):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _event_to_dict(event) -> Dict[str, Any]:
    return {
        'event_id': event.event_id,
        'event_name': event.name,
        'event_hours': event.hours,
        'event_date': event.date,
        'start_time': event.start_time,
        'participants': sorted(event.participants)
    }


def _student_to_dict(student) -> Dict[str, Any]:
    data = dict(student.profile)
    data.update({
        'roll_no': student.roll_no,
        'name': student.name,
        'events_participated': sorted(student.events_participated)
    })
    return data


def _create_event(engine, payload):
    event = engine.create_event(
        payload.get('event_name'),
        payload.get('event_hours'),
        payload.get('event_date'),
        payload.get('start_time')
    )
    return 201, {'message': 'Event created successfully', 'event_id': event.event_id}


def _set_attendance(engine, payload):
    if 'rollNumbers' not in payload:
        raise InvalidInput('rollNumbers is required')
    result = engine.set_attendance(payload.get('eventId'), payload['rollNumbers'])
    return 200, {
        'message': 'Attendance updated successfully',
        'updatedEvent': _event_to_dict(result.event),
        'added': sorted(result.added),
        'removed': sorted(result.removed),
        'unknown_roll_numbers': sorted(result.unknown)
    }


def _delete_event(engine, payload):
    result = engine.delete_event(payload.get('eventId'))
    return 200, {
        'message': 'Event deleted successfully',
        'students_updated': result.students_updated,
        'residual_only': result.residual_only
    }


def _attendance_report(engine, payload):
    return 200, {
        'report': [
            {
                'roll_no': total.roll_no,
                'student_name': total.student_name,
                'total_hours': total.total_hours
            }
            for total in engine.compute_hours()
        ]
    }


def _event_roster(engine, payload):
    return 200, {'attendance': engine.get_event_roster(payload.get('eventId'))}


def _get_event(engine, payload):
    return 200, _event_to_dict(engine.get_event(payload.get('eventId')))


def _add_student(engine, payload):
    student = engine.add_student(payload.get('student'))
    return 201, {
        'message': 'Student added successfully',
        'student': _student_to_dict(student)
    }


def _list_events(engine, payload):
    return 200, {'events': [_event_to_dict(e) for e in engine.list_events()]}


def _list_students(engine, payload):
    return 200, {'students': [_student_to_dict(s) for s in engine.list_students()]}


ACTIONS = {
    'create_event': _create_event,
    'set_attendance': _set_attendance,
    'delete_event': _delete_event,
    'attendance_report': _attendance_report,
    'event_roster': _event_roster,
    'get_event': _get_event,
    'add_student': _add_student,
    'list_events': _list_events,
    'list_students': _list_students,
}


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'body': json.dumps(body, default=_json_default)
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for the attendance engine.

    Args:
        event: Invocation payload with ``action`` and its arguments
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    # Read configuration from environment variables
    table_name = os.environ.get('TABLE_NAME', 'attendance-aggregates')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    id_floor = int(os.environ.get('EVENT_ID_FLOOR', '1000'))
    max_retries = int(os.environ.get('MAX_RETRIES', '5'))
    timeout_seconds = float(os.environ.get('STORAGE_TIMEOUT_SECONDS', '10'))

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    action = (event or {}).get('action')
    logger.info(
        f"Lambda execution started",
        extra={'table_name': table_name, 'action': action}
    )

    handler = ACTIONS.get(action)
    if handler is None:
        logger.warning(f"Unknown action: {action}")
        return _response(400, {
            'message': 'Unknown action',
            'error': f"Unsupported action: {action}",
            'error_type': 'InvalidInput',
            'duration_seconds': round(time.time() - start_time, 2)
        })

    try:
        store = AggregateStore(table_name=table_name, timeout=timeout_seconds)
        engine = AttendanceEngine(store, id_floor=id_floor, max_retries=max_retries)
        status_code, body = handler(engine, event)

        duration = time.time() - start_time
        logger.info(
            f"Lambda execution completed successfully",
            extra={'action': action, 'duration_seconds': round(duration, 2)}
        )
        return _response(status_code, body)

    except Exception as e:
        duration = time.time() - start_time
        status_code = next(
            (code for error_type, code in ERROR_STATUS if isinstance(e, error_type)),
            500
        )

        log = logger.warning if status_code < 500 else logger.error
        log(
            f"Action '{action}' failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=status_code >= 500
        )

        return _response(status_code, {
            'message': f"Action '{action}' failed",
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
