"""Tests for event and recurrence models."""

from datetime import date, datetime, timedelta

import pytest
from pydantic import ValidationError
from sqlmodel import Session, select

from schedule_engine.errors import InvalidTimeRangeError
from schedule_engine.models import (
    EventRecord,
    EventType,
    EventUpdate,
    IntervalType,
    Participant,
    RecurrenceFrequency,
    RecurrenceRule,
    merge_changes,
    normalize_event,
    touches_times,
    validate_time_range,
)


class TestEventModel:
    """Tests for the Event model."""

    def test_duration(self, make_event):
        event = make_event(minutes=90)
        assert event.duration == timedelta(minutes=90)
        assert event.duration_minutes == 90

    def test_external_events_carry_the_sync_prefix(self, make_event):
        assert make_event(event_id="gcal-abc").is_external is True
        assert make_event(event_id="abc").is_external is False

    def test_has_participants(self, make_event):
        assert make_event().has_participants is False
        event = make_event(participants=[Participant(name="Ada")])
        assert event.has_participants is True

    def test_participant_gets_an_id(self):
        first = Participant(name="Ada")
        second = Participant(name="Ada")
        assert first.id and first.id != second.id


class TestNormalizeEvent:
    """Tests for save-time normalization."""

    def test_all_day_covers_whole_days(self, make_event):
        event = make_event(start=datetime(2024, 3, 4, 13, 20), is_all_day=True)
        normalized = normalize_event(event)

        assert normalized.start_time == datetime(2024, 3, 4, 0, 0)
        assert normalized.end_time == datetime(2024, 3, 4, 23, 59)
        assert normalized.is_multi_day is False

    def test_task_gets_fixed_duration(self, make_event):
        event = make_event(start=datetime(2024, 3, 4, 10, 0), minutes=180, type=EventType.TASK)
        normalized = normalize_event(event)

        assert normalized.end_time == datetime(2024, 3, 4, 10, 30)

    def test_multi_day_is_derived(self, make_event):
        event = make_event(start=datetime(2024, 3, 4, 22, 0), minutes=240)
        assert normalize_event(event).is_multi_day is True

    def test_multi_day_flag_from_input_is_not_trusted(self, make_event):
        event = make_event(is_multi_day=True)
        assert normalize_event(event).is_multi_day is False

    def test_original_is_untouched(self, make_event):
        event = make_event(type=EventType.TASK, minutes=120)
        normalize_event(event)
        assert event.duration_minutes == 120


class TestChanges:
    """Tests for partial changes."""

    def test_validate_time_range_rejects_empty_range(self):
        start = datetime(2024, 1, 1, 9, 0)
        with pytest.raises(InvalidTimeRangeError):
            validate_time_range(start, start)

    def test_validate_time_range_rejects_inverted_range(self):
        with pytest.raises(ValueError):
            validate_time_range(datetime(2024, 1, 1, 10, 0), datetime(2024, 1, 1, 9, 0))

    def test_touches_times(self):
        assert touches_times(EventUpdate(end_time=datetime(2024, 1, 1, 11, 0))) is True
        assert touches_times(EventUpdate(title="Renamed")) is False
        assert touches_times({"start_time": datetime(2024, 1, 1, 8, 0)}) is True

    def test_merge_changes_keeps_untouched_fields(self, make_event):
        event = make_event(location="Room 1")
        merged = merge_changes(event, EventUpdate(title="Renamed"))

        assert merged.title == "Renamed"
        assert merged.location == "Room 1"
        assert merged.start_time == event.start_time
        assert event.title == "Meeting"

    def test_merge_changes_can_clear_a_field(self, make_event):
        event = make_event(location="Room 1")
        merged = merge_changes(event, EventUpdate(location=None))
        assert merged.location is None


class TestRecurrenceRule:
    """Tests for recurrence rule validation."""

    def test_custom_requires_interval_type(self):
        with pytest.raises(ValidationError):
            RecurrenceRule(frequency=RecurrenceFrequency.CUSTOM, interval=3)

    def test_end_date_and_occurrences_are_exclusive(self):
        with pytest.raises(ValidationError):
            RecurrenceRule(
                frequency=RecurrenceFrequency.DAILY,
                end_date=date(2024, 2, 1),
                occurrences=5,
            )

    def test_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            RecurrenceRule(frequency=RecurrenceFrequency.DAILY, interval=0)

    def test_weekday_range(self):
        with pytest.raises(ValidationError):
            RecurrenceRule(frequency=RecurrenceFrequency.WEEKLY, week_days=[7])

    def test_last_day_of_month_is_accepted(self):
        rule = RecurrenceRule(frequency=RecurrenceFrequency.MONTHLY, month_day=-1)
        assert rule.month_day == -1

    def test_month_day_range(self):
        with pytest.raises(ValidationError):
            RecurrenceRule(frequency=RecurrenceFrequency.MONTHLY, month_day=32)

    def test_unit(self):
        assert RecurrenceRule(frequency=RecurrenceFrequency.WEEKLY).unit == IntervalType.WEEKS
        custom = RecurrenceRule(
            frequency=RecurrenceFrequency.CUSTOM, interval_type=IntervalType.DAYS, interval=3
        )
        assert custom.unit == IntervalType.DAYS

    def test_is_bounded(self):
        assert RecurrenceRule(frequency=RecurrenceFrequency.DAILY).is_bounded is False
        assert RecurrenceRule(frequency=RecurrenceFrequency.DAILY, occurrences=3).is_bounded is True

    def test_describe(self):
        assert RecurrenceRule(frequency=RecurrenceFrequency.DAILY).describe() == "This event repeats daily."
        rule = RecurrenceRule(frequency=RecurrenceFrequency.WEEKLY, interval=2)
        assert rule.describe() == "This event repeats every 2 weeks."

    def test_rule_is_frozen(self):
        rule = RecurrenceRule(frequency=RecurrenceFrequency.DAILY)
        with pytest.raises(ValidationError):
            rule.interval = 2


class TestEventRecord:
    """Tests for the persisted row type."""

    def test_nested_fields_are_stored_as_json(self, make_event, engine):
        event = make_event(
            event_id="rec-1",
            is_recurring=True,
            recurrence=RecurrenceRule(frequency=RecurrenceFrequency.WEEKLY, week_days=[1, 3]),
            participants=[Participant(name="Ada", email="ada@example.com")],
        )
        with Session(engine) as session:
            session.add(EventRecord.from_event(event))
            session.commit()

        with Session(engine) as session:
            record = session.exec(select(EventRecord).where(EventRecord.id == "rec-1")).one()
            loaded = record.to_event()

        assert loaded.recurrence.week_days == [1, 3]
        assert loaded.participants[0].email == "ada@example.com"
        assert loaded.start_time == event.start_time
        assert loaded.created_at is not None
