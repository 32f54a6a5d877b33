"""Due-date scheduling for recurring expenses and vehicle maintenance."""

from fleetdesk.scheduling.maintenance import (
    MaintenanceReport,
    MaintenanceSchedule,
    MaintenanceStatus,
    ScheduleType,
    check_all,
    check_due,
    complete_service,
)
from fleetdesk.scheduling.processor import (
    Expense,
    InMemoryRecurringExpenseRepository,
    ProcessingDetail,
    ProcessingResult,
    RecurringExpense,
    RecurringExpenseProcessor,
    RecurringExpenseRepository,
)
from fleetdesk.scheduling.recurrence import (
    AdvanceResult,
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

__all__ = [
    # Recurrence
    "IntervalKind",
    "RecurrenceStatus",
    "RecurringSchedule",
    "AdvanceResult",
    "next_due_date",
    "iter_due_dates",
    "advance",
    "catch_up",
    "due_dates_between",
    "is_reminder_due",
    "upcoming",
    # Maintenance
    "ScheduleType",
    "MaintenanceSchedule",
    "MaintenanceStatus",
    "MaintenanceReport",
    "check_due",
    "check_all",
    "complete_service",
    # Processing
    "RecurringExpense",
    "Expense",
    "RecurringExpenseRepository",
    "InMemoryRecurringExpenseRepository",
    "RecurringExpenseProcessor",
    "ProcessingResult",
    "ProcessingDetail",
]
