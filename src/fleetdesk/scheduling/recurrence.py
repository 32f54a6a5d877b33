"""Due-date computation for recurring items.

A recurring item (a recurring expense, a time-based maintenance schedule)
is anchored on a date. Its next due date is always derived from the anchor
and the interval, never stored separately, so it cannot drift out of sync:

    >>> next_due_date(date(2024, 1, 31), IntervalKind.MONTHLY)
    datetime.date(2024, 2, 29)

Month-based intervals clamp to the last valid day of the target month.
Processing an occurrence moves the anchor to the date just processed, so
``Jan 31 -> Feb 29 -> Mar 29``.

Lifecycle of a recurring item:

    ACTIVE --(due date reached, processed)--> ACTIVE, occurrences + 1
    ACTIVE --(limit reached or end date passed)--> COMPLETED
    ACTIVE --(deactivated by a user)--> INACTIVE

Both terminal states are left only through manual reactivation.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from enum import Enum
from uuid import uuid4

from dateutil.relativedelta import relativedelta


class IntervalKind(str, Enum):
    """Recurrence interval."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"
    CUSTOM = "CUSTOM"


class RecurrenceStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    INACTIVE = "INACTIVE"


_STEPS: dict[IntervalKind, relativedelta] = {
    IntervalKind.DAILY: relativedelta(days=1),
    IntervalKind.WEEKLY: relativedelta(weeks=1),
    IntervalKind.MONTHLY: relativedelta(months=1),
    IntervalKind.QUARTERLY: relativedelta(months=3),
    IntervalKind.YEARLY: relativedelta(years=1),
}


def next_due_date(
    anchor: date,
    kind: IntervalKind | str,
    custom_interval_days: int | None = None,
) -> date:
    """Return the first due date strictly after ``anchor``.

    ``custom_interval_days`` takes precedence over ``kind`` when given, and
    is required for ``IntervalKind.CUSTOM``.

    Raises:
        ValueError: unknown interval, or a custom interval below one day
    """
    kind = IntervalKind(kind)

    if custom_interval_days is not None or kind is IntervalKind.CUSTOM:
        if custom_interval_days is None or custom_interval_days < 1:
            raise ValueError(
                f"Custom interval must be at least 1 day, got {custom_interval_days}"
            )
        return anchor + timedelta(days=custom_interval_days)

    return anchor + _STEPS[kind]


def iter_due_dates(
    anchor: date,
    kind: IntervalKind | str,
    custom_interval_days: int | None = None,
) -> Iterator[date]:
    """Yield successive due dates, each computed from the previous one."""
    current = anchor
    while True:
        current = next_due_date(current, kind, custom_interval_days)
        yield current


@dataclass
class RecurringSchedule:
    """A recurring item's schedule state."""

    anchor_date: date
    interval_kind: IntervalKind
    custom_interval_days: int | None = None
    occurrences_so_far: int = 0
    total_occurrences_limit: int | None = None
    end_date: date | None = None
    is_active: bool = True
    last_processed_date: date | None = None
    reminder_days_before: int = 3
    id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self) -> None:
        self.interval_kind = IntervalKind(self.interval_kind)
        if self.total_occurrences_limit is not None and self.total_occurrences_limit < 1:
            raise ValueError("total_occurrences_limit must be at least 1")
        if self.occurrences_so_far < 0:
            raise ValueError("occurrences_so_far cannot be negative")
        if self.reminder_days_before < 0:
            raise ValueError("reminder_days_before cannot be negative")
        # Fail early on a bad custom interval
        next_due_date(self.anchor_date, self.interval_kind, self.custom_interval_days)

    @property
    def next_due(self) -> date:
        return next_due_date(self.anchor_date, self.interval_kind, self.custom_interval_days)

    @property
    def limit_reached(self) -> bool:
        return (
            self.total_occurrences_limit is not None
            and self.occurrences_so_far >= self.total_occurrences_limit
        )

    @property
    def past_end(self) -> bool:
        """True when the next due date falls after the end date."""
        return self.end_date is not None and self.next_due > self.end_date

    @property
    def status(self) -> RecurrenceStatus:
        if self.limit_reached or self.past_end:
            return RecurrenceStatus.COMPLETED
        if not self.is_active:
            return RecurrenceStatus.INACTIVE
        return RecurrenceStatus.ACTIVE

    def is_due(self, today: date) -> bool:
        return self.status is RecurrenceStatus.ACTIVE and self.next_due <= today


@dataclass
class AdvanceResult:
    """Outcome of one processing step."""

    schedule: RecurringSchedule
    occurrence: date | None = None
    deactivated: bool = False


def advance(schedule: RecurringSchedule, today: date) -> AdvanceResult:
    """Process at most one occurrence of ``schedule`` as of ``today``.

    Returns a new schedule; the input is not modified. Calling again with
    the returned schedule and the same ``today`` only emits another
    occurrence if a further due date has also passed, and is a no-op once
    the schedule has caught up.
    """
    if not schedule.is_active:
        return AdvanceResult(schedule)

    if schedule.limit_reached:
        return AdvanceResult(replace(schedule, is_active=False), deactivated=True)

    if schedule.past_end:
        return AdvanceResult(replace(schedule, is_active=False), deactivated=True)

    due = schedule.next_due
    if due > today:
        return AdvanceResult(schedule)

    occurrences = schedule.occurrences_so_far + 1
    exhausted = (
        schedule.total_occurrences_limit is not None
        and occurrences >= schedule.total_occurrences_limit
    )
    updated = replace(
        schedule,
        anchor_date=due,
        occurrences_so_far=occurrences,
        last_processed_date=today,
        is_active=not exhausted,
    )
    return AdvanceResult(updated, occurrence=due, deactivated=exhausted)


def catch_up(schedule: RecurringSchedule, today: date) -> tuple[RecurringSchedule, list[date]]:
    """Process every occurrence due up to ``today``."""
    occurrences: list[date] = []
    while True:
        result = advance(schedule, today)
        schedule = result.schedule
        if result.occurrence is None:
            return schedule, occurrences
        occurrences.append(result.occurrence)


def due_dates_between(schedule: RecurringSchedule, start: date, end: date) -> list[date]:
    """Project the due dates falling in ``[start, end]``.

    Honours the occurrence limit, the end date and the active flag.
    """
    if schedule.status is not RecurrenceStatus.ACTIVE or end < start:
        return []

    remaining = (
        None
        if schedule.total_occurrences_limit is None
        else schedule.total_occurrences_limit - schedule.occurrences_so_far
    )
    dates: list[date] = []
    for due in iter_due_dates(
        schedule.anchor_date, schedule.interval_kind, schedule.custom_interval_days
    ):
        if due > end or (schedule.end_date is not None and due > schedule.end_date):
            break
        if remaining is not None:
            if remaining <= 0:
                break
            remaining -= 1
        if due >= start:
            dates.append(due)
    return dates


def is_reminder_due(schedule: RecurringSchedule, today: date) -> bool:
    """True inside the reminder window before the next due date."""
    if schedule.status is not RecurrenceStatus.ACTIVE:
        return False
    due = schedule.next_due
    return due - timedelta(days=schedule.reminder_days_before) <= today < due


def upcoming(
    schedules: Iterable[RecurringSchedule],
    today: date,
    days_ahead: int = 7,
) -> list[RecurringSchedule]:
    """Active schedules due within ``days_ahead`` days, soonest first."""
    horizon = today + timedelta(days=days_ahead)
    return sorted(
        (
            s
            for s in schedules
            if s.status is RecurrenceStatus.ACTIVE and today <= s.next_due <= horizon
        ),
        key=lambda s: s.next_due,
    )
