"""Vehicle maintenance schedules.

A schedule is due by mileage, by time, or by whichever comes first. Time
based schedules share the recurrence arithmetic of recurring expenses.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from uuid import uuid4

from fleetdesk.scheduling.recurrence import IntervalKind, next_due_date


class ScheduleType(str, Enum):
    MILEAGE = "MILEAGE"
    TIME = "TIME"
    BOTH = "BOTH"


@dataclass
class MaintenanceSchedule:
    """Service schedule for one vehicle."""

    vehicle_id: str
    service_type: str
    schedule_type: ScheduleType
    mileage_interval: int | None = None
    time_interval: IntervalKind | None = None
    time_interval_days: int | None = None
    last_service_mileage: int = 0
    last_service_date: date | None = None
    next_service_mileage: int | None = None
    next_service_date: date | None = None
    reminder_days_before: int = 7
    reminder_mileage_before: int = 500
    is_active: bool = True
    id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self) -> None:
        self.schedule_type = ScheduleType(self.schedule_type)
        if self.time_interval is not None:
            self.time_interval = IntervalKind(self.time_interval)
        if self.mileage_interval is not None and self.mileage_interval < 0:
            raise ValueError("mileage_interval cannot be negative")

        if self.next_service_mileage is None and self.tracks_mileage and self.mileage_interval:
            self.next_service_mileage = self.last_service_mileage + self.mileage_interval
        if (
            self.next_service_date is None
            and self.tracks_time
            and self.last_service_date is not None
        ):
            self.next_service_date = self._next_date(self.last_service_date)

    @property
    def tracks_mileage(self) -> bool:
        return self.schedule_type in (ScheduleType.MILEAGE, ScheduleType.BOTH)

    @property
    def tracks_time(self) -> bool:
        return self.schedule_type in (ScheduleType.TIME, ScheduleType.BOTH)

    def _next_date(self, service_date: date) -> date:
        # Fixed day count wins over the named interval
        kind = self.time_interval or IntervalKind.MONTHLY
        return next_due_date(service_date, kind, self.time_interval_days)


@dataclass
class MaintenanceStatus:
    """Due state of a schedule at a given mileage and date."""

    schedule_id: str
    vehicle_id: str
    service_type: str
    due_by_mileage: bool = False
    due_by_time: bool = False
    reminder_reasons: list[str] = field(default_factory=list)
    remaining_km: int | None = None
    days_until: int | None = None

    @property
    def is_due(self) -> bool:
        return self.due_by_mileage or self.due_by_time

    @property
    def needs_reminder(self) -> bool:
        return bool(self.reminder_reasons)


def check_due(schedule: MaintenanceSchedule, current_mileage: int, today: date) -> MaintenanceStatus:
    """Evaluate ``schedule`` against the vehicle's odometer and ``today``."""
    status = MaintenanceStatus(
        schedule_id=schedule.id,
        vehicle_id=schedule.vehicle_id,
        service_type=schedule.service_type,
    )
    if not schedule.is_active:
        return status

    if schedule.tracks_mileage and schedule.next_service_mileage is not None:
        remaining = schedule.next_service_mileage - current_mileage
        status.remaining_km = remaining
        if remaining <= 0:
            status.due_by_mileage = True
        elif remaining <= schedule.reminder_mileage_before:
            status.reminder_reasons.append("mileage")

    if schedule.tracks_time and schedule.next_service_date is not None:
        days_until = (schedule.next_service_date - today).days
        status.days_until = days_until
        if days_until <= 0:
            status.due_by_time = True
        elif days_until <= schedule.reminder_days_before:
            status.reminder_reasons.append("time")

    return status


@dataclass
class MaintenanceReport:
    due_by_mileage: list[MaintenanceStatus] = field(default_factory=list)
    due_by_time: list[MaintenanceStatus] = field(default_factory=list)
    upcoming_reminders: list[MaintenanceStatus] = field(default_factory=list)


def check_all(
    schedules: Iterable[MaintenanceSchedule],
    mileages: Mapping[str, int],
    today: date,
) -> MaintenanceReport:
    """Sort active schedules into due and reminder buckets.

    ``mileages`` maps vehicle id to current odometer reading; schedules for
    vehicles missing from it are skipped.
    """
    report = MaintenanceReport()
    for schedule in schedules:
        if not schedule.is_active or schedule.vehicle_id not in mileages:
            continue
        status = check_due(schedule, mileages[schedule.vehicle_id], today)
        if status.due_by_mileage:
            report.due_by_mileage.append(status)
        if status.due_by_time:
            report.due_by_time.append(status)
        if status.needs_reminder and not status.is_due:
            report.upcoming_reminders.append(status)
    return report


def complete_service(
    schedule: MaintenanceSchedule,
    mileage: int,
    service_date: date,
) -> MaintenanceSchedule:
    """Record a completed service and roll the schedule forward."""
    next_mileage = (
        mileage + schedule.mileage_interval
        if schedule.tracks_mileage and schedule.mileage_interval
        else None
    )
    next_date = schedule._next_date(service_date) if schedule.tracks_time else None
    return replace(
        schedule,
        last_service_mileage=mileage,
        last_service_date=service_date,
        next_service_mileage=next_mileage,
        next_service_date=next_date,
    )
