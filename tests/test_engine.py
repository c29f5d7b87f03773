"""Tests for the AttendanceEngine facade."""
from decimal import Decimal
from unittest.mock import patch

import pytest

from attendance.engine import AttendanceEngine
from attendance.errors import InvalidInput, NotFound


def test_create_event(engine):
    """Test a created event is normalised and stored with an empty roster."""
    event = engine.create_event('NSS Camp', '4', '10/02/2024', '9:00 AM')

    assert event.event_id == 1000
    assert event.hours == Decimal('4')
    assert event.date == '2024-02-10'
    assert event.start_time == '09:00'
    assert event.participants == set()
    assert engine.get_event(1000) == event


def test_create_event_invalid_hours(engine):
    """Test negative hours are rejected and nothing is stored."""
    with pytest.raises(InvalidInput):
        engine.create_event('NSS Camp', '-2', '2024-02-10', '09:00')

    assert engine.list_events() == []


def test_get_event_not_found(engine):
    with pytest.raises(NotFound):
        engine.get_event(1000)
    with pytest.raises(NotFound):
        engine.get_event_roster(1000)


def test_get_event_accepts_numeric_string(engine):
    """Test IDs arriving as text from the request layer still resolve."""
    event_id = engine.create_event('Camp', '2', '2024-02-10', '09:00').event_id

    assert engine.get_event(str(event_id)).event_id == event_id


def test_event_roster_sorted(engine, add_students):
    add_students('21CS003', '21CS001')
    event_id = engine.create_event('Camp', '2', '2024-02-10', '09:00').event_id
    engine.set_attendance(event_id, ['21CS003', '21CS001'])

    assert engine.get_event_roster(event_id) == ['21CS001', '21CS003']


def test_add_student(engine):
    """Test a student is stored with an upper-case roll number and profile."""
    student = engine.add_student({
        'roll_no': '21cs001',
        'name': 'Asha',
        'school': 'Engineering',
        'branch': 'CSE'
    })

    assert student.roll_no == '21CS001'
    assert student.events_participated == set()
    assert student.profile == {'school': 'Engineering', 'branch': 'CSE'}
    assert [s.roll_no for s in engine.list_students()] == ['21CS001']


def test_add_student_duplicate_roll_no(engine, add_students):
    """Test roll numbers are unique regardless of case."""
    add_students('21CS001')

    with pytest.raises(InvalidInput, match='already exists'):
        engine.add_student({'roll_no': '21cs001', 'name': 'Someone Else'})

    assert len(engine.list_students()) == 1


def test_list_events(engine):
    engine.create_event('Camp A', '2', '2024-02-10', '09:00')
    engine.create_event('Camp B', '3', '2024-02-11', '09:00')

    assert [e.name for e in engine.list_events()] == ['Camp A', 'Camp B']


def test_add_student_links_roster_written_during_add(engine, store, rival_store,
                                                     assert_consistent):
    """Test a roster update racing the profile creation still links the student."""
    event_id = engine.create_event('Camp', '2', '2024-02-10', '09:00').event_id
    rival = AttendanceEngine(rival_store)
    real_get = store.get_event_aggregate
    raced = []

    def racing_get():
        aggregate = real_get()
        if not raced:
            # Attendance lands after the link read, before the student exists
            raced.append(True)
            rival.set_attendance(event_id, ['21CS099'])
        return aggregate

    with patch.object(store, 'get_event_aggregate', side_effect=racing_get):
        student = engine.add_student({'roll_no': '21cs099', 'name': 'Late Profile'})

    assert engine.get_event_roster(event_id) == ['21CS099']
    assert student.events_participated == {event_id}
    assert store.get_student_aggregate().find_student('21CS099').events_participated == {event_id}
    assert_consistent()


def test_add_student_drops_link_removed_during_add(engine, store, rival_store,
                                                   assert_consistent):
    """Test a roster that drops the roll number mid-add leaves no stale link."""
    event_id = engine.create_event('Camp', '2', '2024-02-10', '09:00').event_id
    engine.set_attendance(event_id, ['21CS099'])
    rival = AttendanceEngine(rival_store)
    real_get = store.get_event_aggregate
    raced = []

    def racing_get():
        aggregate = real_get()
        if not raced:
            raced.append(True)
            rival.set_attendance(event_id, [])
        return aggregate

    with patch.object(store, 'get_event_aggregate', side_effect=racing_get):
        student = engine.add_student({'roll_no': '21CS099', 'name': 'Late Profile'})

    assert engine.get_event_roster(event_id) == []
    assert student.events_participated == set()
    assert_consistent()
