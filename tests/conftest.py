"""Shared fixtures for the attendance engine tests."""
import os
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws

from attendance.engine import AttendanceEngine
from storage.aggregate_store import AggregateStore

TABLE_NAME = 'test-attendance-aggregates'


@pytest.fixture
def aws_credentials():
    """Fake credentials so boto3 never talks to a real account."""
    env_vars = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': 'us-east-1'
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def dynamodb_table(aws_credentials):
    """Create a mock DynamoDB table for testing."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {'AttributeName': 'aggregate_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'aggregate_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield table


@pytest.fixture
def store(dynamodb_table):
    """AggregateStore bound to the mock table."""
    return AggregateStore(TABLE_NAME)


@pytest.fixture
def rival_store(dynamodb_table):
    """Second adapter on the same table, playing a concurrent caller."""
    return AggregateStore(TABLE_NAME)


@pytest.fixture
def engine(store):
    return AttendanceEngine(store)


@pytest.fixture
def add_students(engine):
    """Add minimal student profiles by roll number."""
    def _add(*roll_nos):
        return [
            engine.add_student({
                'roll_no': roll_no,
                'name': f'Student {roll_no}',
                'school': 'Engineering'
            })
            for roll_no in roll_nos
        ]
    return _add


def _check_consistency(store):
    """Both directions of the event/student relationship agree."""
    events = store.get_event_aggregate()
    students = store.get_student_aggregate()

    for event in events.events:
        for roll_no in event.participants:
            student = students.find_student(roll_no)
            if student is not None:
                assert event.event_id in student.events_participated, (
                    f"{roll_no} attended {event.event_id} but does not reference it"
                )

    for student in students.students:
        for event_id in student.events_participated:
            event = events.find_event(event_id)
            if event is not None:
                assert student.roll_no in event.participants, (
                    f"{student.roll_no} references {event_id} but is not on its roster"
                )


@pytest.fixture
def assert_consistent(store):
    """Call to check the relationship invariant against current storage."""
    return lambda: _check_consistency(store)
