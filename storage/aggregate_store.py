"""DynamoDB storage for the event and student aggregates."""
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from attendance.errors import StorageUnavailable, VersionConflict
from attendance.models import (
    EventAggregate,
    EventRecord,
    StudentAggregate,
    StudentRecord,
)

logger = logging.getLogger(__name__)


class AggregateStore:
    """
    Reads and writes the two aggregate documents.

    Each aggregate is one DynamoDB item keyed by ``aggregate_id``. Saves are
    conditional on the version that was read, so a concurrent writer makes the
    save fail with VersionConflict instead of silently overwriting.

    Records that cannot be converted are kept on the aggregate as raw maps
    and written back unchanged, so a save never drops them.

    A DynamoDB item is limited to 400 KB. Once an aggregate outgrows that,
    every save of it fails with StorageUnavailable until records are
    removed or the storage layout changes.
    """

    EVENTS_KEY = 'events'
    STUDENTS_KEY = 'students'
    STUDENT_FIELDS = ('roll_no', 'name', 'events_participated')

    def __init__(self, table_name: str, timeout: Optional[float] = None):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table
            timeout: Connect/read timeout in seconds for every storage call
        """
        self.table_name = table_name
        config = None
        if timeout:
            config = Config(connect_timeout=timeout, read_timeout=timeout)
        self.dynamodb = boto3.resource('dynamodb', config=config)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized AggregateStore for table: {table_name}")

    def get_event_aggregate(self) -> EventAggregate:
        """
        Load the event aggregate, or an empty one if it was never saved.

        Returns:
            EventAggregate holding every readable event record
        """
        item = self._get_item(self.EVENTS_KEY)
        if item is None:
            return EventAggregate()

        events = []
        unparsed = []
        for raw in item.get('events', []):
            event = self._item_to_event(raw)
            if event:
                events.append(event)
            else:
                unparsed.append(raw)

        return EventAggregate(
            version=int(item.get('version', 0)),
            last_event_id=int(item.get('last_event_id', 0)),
            events=events,
            unparsed=unparsed
        )

    def save_event_aggregate(self, aggregate: EventAggregate) -> None:
        """
        Persist the event aggregate if nobody saved it since it was read.

        Raises:
            VersionConflict: If the stored version moved on
            StorageUnavailable: If DynamoDB could not be reached
        """
        item = {
            'aggregate_id': self.EVENTS_KEY,
            'version': aggregate.version + 1,
            'last_event_id': aggregate.highest_event_id(),
            'events': [self._event_to_item(e) for e in aggregate.events]
            + aggregate.unparsed
        }
        self._put_item(item, aggregate.version)
        aggregate.version += 1
        aggregate.last_event_id = item['last_event_id']

    def get_student_aggregate(self) -> StudentAggregate:
        """
        Load the student aggregate, or an empty one if it was never saved.

        Returns:
            StudentAggregate holding every readable student record
        """
        item = self._get_item(self.STUDENTS_KEY)
        if item is None:
            return StudentAggregate()

        students = []
        unparsed = []
        for raw in item.get('students', []):
            student = self._item_to_student(raw)
            if student:
                students.append(student)
            else:
                unparsed.append(raw)

        return StudentAggregate(
            version=int(item.get('version', 0)),
            students=students,
            unparsed=unparsed
        )

    def save_student_aggregate(self, aggregate: StudentAggregate) -> None:
        """
        Persist the student aggregate if nobody saved it since it was read.

        Raises:
            VersionConflict: If the stored version moved on
            StorageUnavailable: If DynamoDB could not be reached
        """
        item = {
            'aggregate_id': self.STUDENTS_KEY,
            'version': aggregate.version + 1,
            'students': [self._student_to_item(s) for s in aggregate.students]
            + aggregate.unparsed
        }
        self._put_item(item, aggregate.version)
        aggregate.version += 1

    def _get_item(self, aggregate_id: str) -> Optional[dict]:
        try:
            response = self.table.get_item(
                Key={'aggregate_id': aggregate_id},
                ConsistentRead=True
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error reading aggregate '{aggregate_id}': {e}")
            raise StorageUnavailable(
                f"Could not read aggregate '{aggregate_id}': {e}"
            ) from e
        return response.get('Item')

    def _put_item(self, item: dict, expected_version: int) -> None:
        """
        Conditionally write an aggregate item.

        Args:
            item: Full aggregate item to store
            expected_version: Version the caller read; 0 means never stored
        """
        if expected_version == 0:
            condition = {
                'ConditionExpression': 'attribute_not_exists(aggregate_id)'
            }
        else:
            condition = {
                'ConditionExpression': '#version = :expected',
                'ExpressionAttributeNames': {'#version': 'version'},
                'ExpressionAttributeValues': {':expected': expected_version}
            }

        try:
            self.table.put_item(Item=item, **condition)
        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                logger.debug(
                    f"Version conflict on '{item['aggregate_id']}' "
                    f"(expected version {expected_version})"
                )
                raise VersionConflict(item['aggregate_id']) from e
            logger.error(f"Error writing aggregate '{item['aggregate_id']}': {e}")
            raise StorageUnavailable(
                f"Could not write aggregate '{item['aggregate_id']}': {e}"
            ) from e
        except BotoCoreError as e:
            logger.error(f"Error writing aggregate '{item['aggregate_id']}': {e}")
            raise StorageUnavailable(
                f"Could not write aggregate '{item['aggregate_id']}': {e}"
            ) from e

    def _item_to_event(self, item: dict) -> Optional[EventRecord]:
        """
        Convert a stored event map to an EventRecord.

        Returns:
            EventRecord or None if the stored map is malformed
        """
        try:
            return EventRecord(
                event_id=int(item['event_id']),
                name=item['event_name'],
                hours=Decimal(str(item['event_hours'])),
                date=item['event_date'],
                start_time=item['start_time'],
                participants=set(item.get('participants', []))
            )
        except (KeyError, ValueError, InvalidOperation) as e:
            logger.warning(f"Failed to convert item to EventRecord: {e}")
            return None

    def _event_to_item(self, event: EventRecord) -> dict:
        # Hours stay textual in storage; sets become sorted lists because
        # DynamoDB sets cannot be empty.
        return {
            'event_id': event.event_id,
            'event_name': event.name,
            'event_hours': str(event.hours),
            'event_date': event.date,
            'start_time': event.start_time,
            'participants': sorted(event.participants)
        }

    def _item_to_student(self, item: dict) -> Optional[StudentRecord]:
        try:
            profile = {
                key: value for key, value in item.items()
                if key not in self.STUDENT_FIELDS
            }
            return StudentRecord(
                roll_no=item['roll_no'],
                name=item['name'],
                events_participated={
                    int(event_id) for event_id in item.get('events_participated', [])
                },
                profile=profile
            )
        except (KeyError, ValueError, AttributeError) as e:
            logger.warning(f"Failed to convert item to StudentRecord: {e}")
            return None

    def _student_to_item(self, student: StudentRecord) -> dict:
        item = {key: _to_dynamo(value) for key, value in student.profile.items()}
        item.update({
            'roll_no': student.roll_no,
            'name': student.name,
            'events_participated': sorted(student.events_participated)
        })
        return item


def _to_dynamo(value):
    """boto3 refuses floats; store them as Decimal."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo(v) for v in value]
    return value
