"""Tests for conflict detection and slot search."""

from datetime import date, datetime, timedelta

from schedule_engine.engine.conflicts import (
    ProposedEvent,
    calculate_overlap,
    check_drag_conflicts,
    check_resize_conflicts,
    detect_conflicts,
    find_next_available_slot,
    format_duration,
    format_time,
    get_conflicting_events,
    get_occupied_time_slots,
    has_conflict_at_time,
    ranges_overlap,
)

NINE = datetime(2024, 1, 1, 9, 0)


def proposal(start: datetime, minutes: int, **fields) -> ProposedEvent:
    return ProposedEvent(title="Proposed", start_time=start, end_time=start + timedelta(minutes=minutes), **fields)


class TestOverlap:
    def test_overlapping_ranges(self):
        assert ranges_overlap(NINE, NINE + timedelta(hours=1), NINE + timedelta(minutes=30), NINE + timedelta(hours=2))

    def test_touching_ranges_do_not_overlap(self):
        ten = NINE + timedelta(hours=1)
        assert ranges_overlap(NINE, ten, ten, ten + timedelta(hours=1)) is False

    def test_overlap_is_symmetric(self):
        a = (NINE, NINE + timedelta(minutes=45))
        b = (NINE + timedelta(minutes=30), NINE + timedelta(minutes=90))

        first = calculate_overlap(*a, *b)
        second = calculate_overlap(*b, *a)

        assert first == second
        assert first.duration_minutes == 15

    def test_no_overlap_returns_none(self):
        assert calculate_overlap(NINE, NINE + timedelta(minutes=30), NINE + timedelta(hours=1), NINE + timedelta(hours=2)) is None

    def test_contained_range(self):
        overlap = calculate_overlap(NINE, NINE + timedelta(hours=3), NINE + timedelta(hours=1), NINE + timedelta(hours=2))
        assert overlap.start == NINE + timedelta(hours=1)
        assert overlap.duration_minutes == 60


class TestFormatting:
    def test_format_duration(self):
        assert format_duration(1) == "1 minute"
        assert format_duration(30) == "30 minutes"
        assert format_duration(60) == "1 hour"
        assert format_duration(120) == "2 hours"
        assert format_duration(90) == "1h 30m"

    def test_format_time(self):
        assert format_time(datetime(2024, 1, 1, 9, 30)) == "9:30 AM"
        assert format_time(datetime(2024, 1, 1, 12, 0)) == "12:00 PM"
        assert format_time(datetime(2024, 1, 1, 0, 15)) == "12:15 AM"
        assert format_time(datetime(2024, 1, 1, 17, 5)) == "5:05 PM"


class TestDetectConflicts:
    """Tests for detect_conflicts."""

    def test_half_hour_overlap(self, make_event):
        """09:30-10:30 against 09:00-10:00 overlaps by 30 minutes."""
        existing = make_event(title="Standup")
        result = detect_conflicts(proposal(NINE + timedelta(minutes=30), 60), [existing])

        assert result.has_conflicts is True
        assert result.can_proceed is True
        assert len(result.conflicts) == 1

        conflict = result.conflicts[0]
        assert conflict.id == "conflict_evt-1"
        assert conflict.severity == "error"
        assert conflict.time_overlap.start == NINE + timedelta(minutes=30)
        assert conflict.time_overlap.end == NINE + timedelta(hours=1)
        assert conflict.time_overlap.duration_minutes == 30
        assert conflict.message == 'Overlaps with "Standup" by 30 minutes (9:30 AM - 10:00 AM)'

    def test_back_to_back_is_not_a_conflict(self, make_event):
        result = detect_conflicts(proposal(NINE + timedelta(hours=1), 30), [make_event()])
        assert result.has_conflicts is False
        assert result.conflicts == []
        assert result.can_proceed is True

    def test_event_never_conflicts_with_itself(self, make_event):
        existing = make_event()
        result = detect_conflicts(proposal(NINE + timedelta(minutes=15), 60, id="evt-1"), [existing])
        assert result.has_conflicts is False

    def test_one_conflict_per_overlapping_event(self, make_event):
        existing = [
            make_event("a", start=NINE),
            make_event("b", start=NINE + timedelta(minutes=30)),
            make_event("c", start=NINE + timedelta(hours=3)),
        ]
        result = detect_conflicts(proposal(NINE, 90), existing)
        assert [c.conflicting_event.id for c in result.conflicts] == ["a", "b"]

    def test_drag_and_resize_checks_exclude_the_dragged_event(self, make_event):
        dragged = make_event("a")
        other = make_event("b", start=NINE + timedelta(hours=1))
        existing = [dragged, other]

        moved = check_drag_conflicts(dragged, NINE + timedelta(minutes=30), NINE + timedelta(minutes=90), existing)
        assert [c.conflicting_event.id for c in moved.conflicts] == ["b"]

        resized = check_resize_conflicts(dragged, NINE, NINE + timedelta(minutes=45), existing)
        assert resized.has_conflicts is False


class TestConflictQueries:
    def test_get_conflicting_events_excludes_id(self, make_event):
        existing = [make_event("a"), make_event("b")]
        found = get_conflicting_events(NINE, NINE + timedelta(minutes=30), existing, exclude_id="a")
        assert [e.id for e in found] == ["b"]

    def test_has_conflict_at_time(self, make_event):
        existing = [make_event()]
        assert has_conflict_at_time(NINE + timedelta(minutes=59), NINE + timedelta(hours=2), existing)
        assert not has_conflict_at_time(NINE + timedelta(hours=1), NINE + timedelta(hours=2), existing)

    def test_occupied_slots_are_clamped_to_the_day(self, make_event):
        overnight = make_event("late", start=datetime(2023, 12, 31, 22, 0), minutes=4 * 60)
        slots = get_occupied_time_slots(date(2024, 1, 1), [overnight, make_event("morning")])

        assert [slot.event_id for slot in slots] == ["late", "morning"]
        assert slots[0].start == datetime(2024, 1, 1, 0, 0)
        assert slots[0].end == datetime(2024, 1, 1, 2, 0)


class TestFindNextAvailableSlot:
    """Tests for find_next_available_slot."""

    def test_free_start_is_returned_as_is(self):
        assert find_next_available_slot(NINE, 30, []) == NINE

    def test_skips_past_a_busy_hour(self, make_event):
        assert find_next_available_slot(NINE, 30, [make_event()]) == NINE + timedelta(hours=1)

    def test_jumps_to_start_of_working_day(self):
        early = datetime(2024, 1, 1, 6, 10)
        assert find_next_available_slot(early, 30, [], work_hours_start=8) == datetime(2024, 1, 1, 8, 0)

    def test_rolls_over_to_next_working_day(self):
        late = datetime(2024, 1, 1, 18, 30)
        assert find_next_available_slot(late, 30, [], work_hours_end=18) == datetime(2024, 1, 2, 8, 0)

    def test_none_when_horizon_is_booked(self, make_event):
        busy = make_event(start=datetime(2024, 1, 1, 8, 0), minutes=10 * 60)
        result = find_next_available_slot(datetime(2024, 1, 1, 8, 0), 30, [busy], max_search_hours=4)
        assert result is None
