"""Tests for recurrence arithmetic and schedule processing."""

from datetime import date

import pytest

from fleetdesk.scheduling.recurrence import (
    IntervalKind,
    RecurrenceStatus,
    RecurringSchedule,
    advance,
    catch_up,
    due_dates_between,
    is_reminder_due,
    iter_due_dates,
    next_due_date,
    upcoming,
)


class TestNextDueDate:
    """Test interval arithmetic."""

    @pytest.mark.parametrize(
        ("anchor", "kind", "expected"),
        [
            (date(2024, 1, 31), IntervalKind.MONTHLY, date(2024, 2, 29)),
            (date(2023, 1, 31), IntervalKind.MONTHLY, date(2023, 2, 28)),
            (date(2024, 3, 31), IntervalKind.MONTHLY, date(2024, 4, 30)),
            (date(2024, 11, 30), IntervalKind.QUARTERLY, date(2025, 2, 28)),
            (date(2024, 2, 29), IntervalKind.YEARLY, date(2025, 2, 28)),
            (date(2024, 12, 31), IntervalKind.DAILY, date(2025, 1, 1)),
            (date(2024, 1, 1), IntervalKind.WEEKLY, date(2024, 1, 8)),
        ],
    )
    def test_named_intervals(self, anchor: date, kind: IntervalKind, expected: date) -> None:
        """Month-based steps clamp to the last day of the month."""
        assert next_due_date(anchor, kind) == expected

    def test_accepts_string_kind(self) -> None:
        assert next_due_date(date(2024, 1, 1), "WEEKLY") == date(2024, 1, 8)

    def test_custom_days(self) -> None:
        assert next_due_date(date(2024, 1, 1), IntervalKind.CUSTOM, 10) == date(2024, 1, 11)

    def test_custom_days_override_kind(self) -> None:
        """A day count wins over the named interval."""
        assert next_due_date(date(2024, 1, 1), IntervalKind.MONTHLY, 14) == date(2024, 1, 15)

    @pytest.mark.parametrize("days", [None, 0, -3])
    def test_invalid_custom_interval(self, days: int | None) -> None:
        with pytest.raises(ValueError):
            next_due_date(date(2024, 1, 1), IntervalKind.CUSTOM, days)

    def test_unknown_kind(self) -> None:
        with pytest.raises(ValueError):
            next_due_date(date(2024, 1, 1), "FORTNIGHTLY")

    def test_iter_due_dates_chains_from_previous(self) -> None:
        """Clamped days carry forward."""
        dates = iter_due_dates(date(2024, 1, 31), IntervalKind.MONTHLY)
        assert [next(dates) for _ in range(3)] == [
            date(2024, 2, 29),
            date(2024, 3, 29),
            date(2024, 4, 29),
        ]


class TestRecurringSchedule:
    """Test schedule state."""

    def test_next_due_derived_from_anchor(self) -> None:
        schedule = RecurringSchedule(date(2024, 1, 31), IntervalKind.MONTHLY)
        assert schedule.next_due == date(2024, 2, 29)

    def test_custom_without_days_rejected(self) -> None:
        with pytest.raises(ValueError):
            RecurringSchedule(date(2024, 1, 1), IntervalKind.CUSTOM)

    def test_non_positive_limit_rejected(self) -> None:
        with pytest.raises(ValueError):
            RecurringSchedule(date(2024, 1, 1), IntervalKind.DAILY, total_occurrences_limit=0)

    def test_status(self) -> None:
        active = RecurringSchedule(date(2024, 1, 1), IntervalKind.DAILY)
        inactive = RecurringSchedule(date(2024, 1, 1), IntervalKind.DAILY, is_active=False)
        completed = RecurringSchedule(
            date(2024, 1, 1),
            IntervalKind.DAILY,
            occurrences_so_far=3,
            total_occurrences_limit=3,
        )
        assert active.status is RecurrenceStatus.ACTIVE
        assert inactive.status is RecurrenceStatus.INACTIVE
        assert completed.status is RecurrenceStatus.COMPLETED

    def test_is_due(self) -> None:
        schedule = RecurringSchedule(date(2024, 1, 1), IntervalKind.MONTHLY)
        assert schedule.is_due(date(2024, 1, 31)) is False
        assert schedule.is_due(date(2024, 2, 1)) is True


class TestAdvance:
    """Test processing one occurrence."""

    def test_processes_due_occurrence(self) -> None:
        """The anchor moves to the processed due date."""
        schedule = RecurringSchedule(date(2024, 1, 31), IntervalKind.MONTHLY)
        result = advance(schedule, date(2024, 2, 29))

        assert result.occurrence == date(2024, 2, 29)
        assert result.deactivated is False
        assert result.schedule.anchor_date == date(2024, 2, 29)
        assert result.schedule.occurrences_so_far == 1
        assert result.schedule.last_processed_date == date(2024, 2, 29)
        assert result.schedule.next_due == date(2024, 3, 29)

    def test_input_not_modified(self) -> None:
        schedule = RecurringSchedule(date(2024, 1, 1), IntervalKind.MONTHLY)
        advance(schedule, date(2024, 2, 1))
        assert schedule.anchor_date == date(2024, 1, 1)
        assert schedule.occurrences_so_far == 0

    def test_second_run_same_day_is_noop(self) -> None:
        """Re-running on the same day never emits a duplicate."""
        schedule = RecurringSchedule(date(2024, 1, 1), IntervalKind.MONTHLY)
        first = advance(schedule, date(2024, 2, 1))
        second = advance(first.schedule, date(2024, 2, 1))

        assert second.occurrence is None
        assert second.schedule == first.schedule

    def test_not_yet_due(self) -> None:
        schedule = RecurringSchedule(date(2024, 1, 1), IntervalKind.MONTHLY)
        result = advance(schedule, date(2024, 1, 31))
        assert result.occurrence is None
        assert result.schedule is schedule

    def test_last_occurrence_deactivates(self) -> None:
        """Reaching the limit completes the schedule."""
        schedule = RecurringSchedule(
            date(2024, 1, 1),
            IntervalKind.MONTHLY,
            occurrences_so_far=1,
            total_occurrences_limit=2,
        )
        result = advance(schedule, date(2024, 2, 1))

        assert result.occurrence == date(2024, 2, 1)
        assert result.deactivated is True
        assert result.schedule.is_active is False
        assert result.schedule.status is RecurrenceStatus.COMPLETED

    def test_limit_already_reached(self) -> None:
        schedule = RecurringSchedule(
            date(2024, 1, 1),
            IntervalKind.MONTHLY,
            occurrences_so_far=2,
            total_occurrences_limit=2,
        )
        result = advance(schedule, date(2024, 6, 1))
        assert result.occurrence is None
        assert result.deactivated is True

    def test_past_end_date_deactivates(self) -> None:
        """A next due date beyond the end date stops the schedule."""
        schedule = RecurringSchedule(
            date(2024, 1, 1), IntervalKind.MONTHLY, end_date=date(2024, 1, 15)
        )
        assert schedule.status is RecurrenceStatus.COMPLETED
        result = advance(schedule, date(2024, 2, 1))
        assert result.occurrence is None
        assert result.deactivated is True
        assert result.schedule.is_active is False
        assert result.schedule.status is RecurrenceStatus.COMPLETED

    def test_due_on_end_date_still_processed(self) -> None:
        schedule = RecurringSchedule(
            date(2024, 1, 1), IntervalKind.MONTHLY, end_date=date(2024, 2, 1)
        )
        assert schedule.status is RecurrenceStatus.ACTIVE
        assert advance(schedule, date(2024, 2, 1)).occurrence == date(2024, 2, 1)

    def test_inactive_untouched(self) -> None:
        schedule = RecurringSchedule(date(2024, 1, 1), IntervalKind.DAILY, is_active=False)
        result = advance(schedule, date(2024, 6, 1))
        assert result.occurrence is None
        assert result.deactivated is False


class TestCatchUpAndProjection:
    """Test multi-occurrence helpers."""

    def test_catch_up(self) -> None:
        schedule = RecurringSchedule(date(2024, 1, 1), IntervalKind.MONTHLY)
        updated, dates = catch_up(schedule, date(2024, 4, 15))
        assert dates == [date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1)]
        assert updated.occurrences_so_far == 3

    def test_catch_up_honours_limit(self) -> None:
        schedule = RecurringSchedule(
            date(2024, 1, 1), IntervalKind.MONTHLY, total_occurrences_limit=2
        )
        updated, dates = catch_up(schedule, date(2024, 12, 31))
        assert len(dates) == 2
        assert updated.is_active is False

    def test_due_dates_between(self) -> None:
        schedule = RecurringSchedule(date(2024, 1, 1), IntervalKind.WEEKLY)
        assert due_dates_between(schedule, date(2024, 1, 10), date(2024, 1, 31)) == [
            date(2024, 1, 15),
            date(2024, 1, 22),
            date(2024, 1, 29),
        ]

    def test_due_dates_between_counts_limit_from_anchor(self) -> None:
        """Occurrences before the window still use up the limit."""
        schedule = RecurringSchedule(
            date(2024, 1, 1), IntervalKind.WEEKLY, total_occurrences_limit=3
        )
        assert due_dates_between(schedule, date(2024, 1, 10), date(2024, 1, 31)) == [
            date(2024, 1, 15),
            date(2024, 1, 22),
        ]

    def test_due_dates_between_empty_range(self) -> None:
        schedule = RecurringSchedule(date(2024, 1, 1), IntervalKind.DAILY)
        assert due_dates_between(schedule, date(2024, 2, 1), date(2024, 1, 1)) == []


class TestRemindersAndUpcoming:
    """Test reminder windows and the upcoming list."""

    def test_reminder_window(self) -> None:
        """Reminder opens reminder_days_before the due date and closes on it."""
        schedule = RecurringSchedule(
            date(2024, 1, 1), IntervalKind.MONTHLY, reminder_days_before=3
        )
        assert is_reminder_due(schedule, date(2024, 1, 28)) is False
        assert is_reminder_due(schedule, date(2024, 1, 29)) is True
        assert is_reminder_due(schedule, date(2024, 1, 31)) is True
        assert is_reminder_due(schedule, date(2024, 2, 1)) is False

    def test_upcoming_sorted_and_filtered(self) -> None:
        today = date(2024, 1, 10)
        later = RecurringSchedule(date(2024, 1, 9), IntervalKind.WEEKLY)
        sooner = RecurringSchedule(date(2024, 1, 10), IntervalKind.DAILY)
        too_far = RecurringSchedule(date(2024, 1, 10), IntervalKind.MONTHLY)
        overdue = RecurringSchedule(date(2024, 1, 1), IntervalKind.DAILY)
        stopped = RecurringSchedule(date(2024, 1, 10), IntervalKind.DAILY, is_active=False)

        result = upcoming([later, too_far, overdue, stopped, sooner], today, days_ahead=7)
        assert result == [sooner, later]
