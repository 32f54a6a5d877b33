"""Batch processing of due recurring expenses.

Meant to run from a scheduled job (cron hitting the process endpoint).
Each run creates at most one expense per recurring item; an item that fell
several periods behind catches up over successive runs. A failure on one
item is recorded and the batch carries on.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import uuid4

from fleetdesk.observability.metrics import get_metrics
from fleetdesk.scheduling.recurrence import RecurringSchedule, advance

if TYPE_CHECKING:
    from fleetdesk.cache.invalidation import CacheInvalidator

logger = logging.getLogger(__name__)


@dataclass
class RecurringExpense:
    """An expense that repeats on a schedule (rent, insurance, leases)."""

    description: str
    amount: Decimal
    category: str
    schedule: RecurringSchedule
    currency: str = "AED"
    branch_id: str | None = None
    id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self) -> None:
        self.amount = Decimal(self.amount)
        if self.amount < 0:
            raise ValueError("Amount cannot be negative")
        self.currency = self.currency.strip().upper()


@dataclass
class Expense:
    """A concrete expense created for one occurrence."""

    recurring_expense_id: str
    description: str
    amount: Decimal
    currency: str
    category: str
    date_incurred: date
    branch_id: str | None = None
    id: str = field(default_factory=lambda: uuid4().hex)


class RecurringExpenseRepository(ABC):
    """Storage for recurring expenses and the expenses they generate."""

    @abstractmethod
    async def list_due(self, today: date) -> list[RecurringExpense]:
        """Active items needing attention: due, exhausted or past their end."""
        pass

    @abstractmethod
    async def list_all(self) -> list[RecurringExpense]:
        pass

    @abstractmethod
    async def save(self, expense: RecurringExpense) -> None:
        pass

    @abstractmethod
    async def create_expense(self, recurring: RecurringExpense, due_date: date) -> Expense:
        pass


class InMemoryRecurringExpenseRepository(RecurringExpenseRepository):
    """Dict-backed repository for development and tests."""

    def __init__(self, items: list[RecurringExpense] | None = None) -> None:
        self._items: dict[str, RecurringExpense] = {item.id: item for item in items or []}
        self.expenses: list[Expense] = []
        self._lock = asyncio.Lock()

    async def list_due(self, today: date) -> list[RecurringExpense]:
        async with self._lock:
            return [item for item in self._items.values() if _needs_processing(item, today)]

    async def list_all(self) -> list[RecurringExpense]:
        async with self._lock:
            return list(self._items.values())

    async def get(self, expense_id: str) -> RecurringExpense | None:
        async with self._lock:
            return self._items.get(expense_id)

    async def save(self, expense: RecurringExpense) -> None:
        async with self._lock:
            self._items[expense.id] = expense

    async def create_expense(self, recurring: RecurringExpense, due_date: date) -> Expense:
        expense = Expense(
            recurring_expense_id=recurring.id,
            description=recurring.description,
            amount=recurring.amount,
            currency=recurring.currency,
            category=recurring.category,
            date_incurred=due_date,
            branch_id=recurring.branch_id,
        )
        async with self._lock:
            self.expenses.append(expense)
        return expense


def _needs_processing(item: RecurringExpense, today: date) -> bool:
    schedule = item.schedule
    if not schedule.is_active:
        return False
    if schedule.limit_reached or schedule.past_end:
        return True
    return schedule.next_due <= today


@dataclass
class ProcessingDetail:
    recurring_expense_id: str
    expense_id: str | None = None
    due_date: date | None = None
    error: str | None = None


@dataclass
class ProcessingResult:
    """Summary of one processing run."""

    processed: int = 0
    deactivated: int = 0
    errors: int = 0
    details: list[ProcessingDetail] = field(default_factory=list)
    run_date: date | None = None
    finished_at: datetime | None = None


class RecurringExpenseProcessor:
    """Creates expenses for every recurring item that has come due."""

    def __init__(
        self,
        repository: RecurringExpenseRepository,
        invalidator: CacheInvalidator | None = None,
    ) -> None:
        self.repository = repository
        self.invalidator = invalidator
        self.last_result: ProcessingResult | None = None
        self._lock = asyncio.Lock()

    async def process(self, today: date | None = None) -> ProcessingResult:
        """Process everything due as of ``today`` (default: current UTC date).

        Runs are serialized; a second caller waits for the first to finish
        and then sees nothing left to do for the same day.
        """
        async with self._lock:
            return await self._process(today or datetime.now(UTC).date())

    async def _process(self, today: date) -> ProcessingResult:
        metrics = get_metrics()
        result = ProcessingResult(run_date=today)
        saved = False

        for item in await self.repository.list_due(today):
            try:
                step = advance(item.schedule, today)
                if step.schedule == item.schedule:
                    continue

                # The advanced schedule is stored before the expense exists,
                # so a due date is never billed twice
                await self.repository.save(replace(item, schedule=step.schedule))
                saved = True

                if step.occurrence is not None:
                    try:
                        expense = await self.repository.create_expense(item, step.occurrence)
                    except Exception:
                        # Put the due date back for the next run
                        await self.repository.save(item)
                        raise
                    result.processed += 1
                    result.details.append(
                        ProcessingDetail(
                            recurring_expense_id=item.id,
                            expense_id=expense.id,
                            due_date=step.occurrence,
                        )
                    )
                    metrics.recurring_processed_total.labels(outcome="created").inc()

                if step.deactivated:
                    result.deactivated += 1
                    metrics.recurring_processed_total.labels(outcome="deactivated").inc()
                    logger.info(f"Recurring expense {item.id} deactivated")

            except Exception as e:
                logger.exception(f"Error processing recurring expense {item.id}")
                result.errors += 1
                result.details.append(ProcessingDetail(recurring_expense_id=item.id, error=str(e)))
                metrics.recurring_processed_total.labels(outcome="error").inc()

        # Status changes show up in cached listings too
        if saved and self.invalidator is not None:
            self.invalidator.invalidate_financial_cache()
            self.invalidator.invalidate_dashboard_cache()

        result.finished_at = datetime.now(UTC)
        self.last_result = result
        logger.info(
            f"Recurring expenses processed: {result.processed} created, "
            f"{result.deactivated} deactivated, {result.errors} errors"
        )
        return result
