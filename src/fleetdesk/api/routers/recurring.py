"""Recurring expense endpoints.

``POST /recurring-expenses/process`` is meant to be called by a cron job
with ``Authorization: Bearer <FLEETDESK_RECURRING_API_KEY>``; admins may
trigger it by hand.
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, model_validator

from fleetdesk.api.deps import (
    get_cache_aside,
    get_invalidator,
    get_recurring_processor,
    get_recurring_repository,
)
from fleetdesk.api.errors import BadRequestError
from fleetdesk.cache.invalidation import CacheInvalidator
from fleetdesk.cache.keys import CacheKeys
from fleetdesk.cache.query import CacheAside
from fleetdesk.scheduling.processor import (
    InMemoryRecurringExpenseRepository,
    RecurringExpense,
    RecurringExpenseProcessor,
)
from fleetdesk.scheduling.recurrence import (
    IntervalKind,
    RecurrenceStatus,
    RecurringSchedule,
    upcoming,
)
from fleetdesk.security.deps import require_permission, require_recurring_processor
from fleetdesk.security.rbac import Permission
from fleetdesk.security.tokens import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recurring-expenses", tags=["recurring expenses"])

UPCOMING_TTL = 300

FinancialReader = Annotated[User, Depends(require_permission(Permission.READ_FINANCIAL))]
Repository = Annotated[InMemoryRecurringExpenseRepository, Depends(get_recurring_repository)]


class RecurringExpenseCreate(BaseModel):
    description: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)
    category: str = Field(min_length=1)
    currency: str = Field(default="AED", min_length=3, max_length=3)
    interval: IntervalKind
    custom_interval_days: int | None = Field(default=None, ge=1)
    start_date: date
    end_date: date | None = None
    total_occurrences: int | None = Field(default=None, ge=1)
    reminder_days_before: int = Field(default=3, ge=0)
    branch_id: str | None = None

    @model_validator(mode="after")
    def _check_interval(self) -> "RecurringExpenseCreate":
        if self.interval is IntervalKind.CUSTOM and self.custom_interval_days is None:
            raise ValueError("custom_interval_days is required for CUSTOM intervals")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class RecurringExpenseOut(BaseModel):
    id: str
    description: str
    amount: Decimal
    currency: str
    category: str
    interval: IntervalKind
    custom_interval_days: int | None
    anchor_date: date
    next_due_date: date
    end_date: date | None
    occurrences_so_far: int
    total_occurrences: int | None
    last_processed_date: date | None
    status: RecurrenceStatus

    @classmethod
    def from_domain(cls, item: RecurringExpense) -> "RecurringExpenseOut":
        schedule = item.schedule
        return cls(
            id=item.id,
            description=item.description,
            amount=item.amount,
            currency=item.currency,
            category=item.category,
            interval=schedule.interval_kind,
            custom_interval_days=schedule.custom_interval_days,
            anchor_date=schedule.anchor_date,
            next_due_date=schedule.next_due,
            end_date=schedule.end_date,
            occurrences_so_far=schedule.occurrences_so_far,
            total_occurrences=schedule.total_occurrences_limit,
            last_processed_date=schedule.last_processed_date,
            status=schedule.status,
        )


class ProcessingDetailOut(BaseModel):
    recurring_expense_id: str
    expense_id: str | None = None
    due_date: date | None = None
    error: str | None = None


class ProcessResponse(BaseModel):
    success: bool
    processed: int
    deactivated: int
    errors: int
    details: list[ProcessingDetailOut]
    timestamp: datetime


class ProcessorStatus(BaseModel):
    message: str
    status: str
    last_run_at: datetime | None = None
    last_processed: int | None = None


@router.get("", response_model=list[RecurringExpenseOut])
async def list_recurring_expenses(user: FinancialReader, repository: Repository) -> list[RecurringExpenseOut]:
    items = await repository.list_all()
    return [RecurringExpenseOut.from_domain(item) for item in items]


@router.post("", response_model=RecurringExpenseOut, status_code=status.HTTP_201_CREATED)
async def create_recurring_expense(
    data: RecurringExpenseCreate,
    user: Annotated[User, Depends(require_permission(Permission.PROCESS_RECURRING))],
    repository: Repository,
    invalidator: Annotated[CacheInvalidator, Depends(get_invalidator)],
) -> RecurringExpenseOut:
    """Register a recurring expense.

    The start date is the anchor: the first occurrence falls one interval
    after it.
    """
    try:
        schedule = RecurringSchedule(
            anchor_date=data.start_date,
            interval_kind=data.interval,
            custom_interval_days=data.custom_interval_days,
            total_occurrences_limit=data.total_occurrences,
            end_date=data.end_date,
            reminder_days_before=data.reminder_days_before,
        )
    except ValueError as e:
        raise BadRequestError(str(e)) from e

    item = RecurringExpense(
        description=data.description,
        amount=data.amount,
        category=data.category,
        currency=data.currency,
        branch_id=data.branch_id,
        schedule=schedule,
    )
    await repository.save(item)
    invalidator.invalidate_financial_cache()
    return RecurringExpenseOut.from_domain(item)


@router.post("/process", response_model=ProcessResponse)
async def process_recurring_expenses(
    caller: Annotated[str, Depends(require_recurring_processor)],
    processor: Annotated[RecurringExpenseProcessor, Depends(get_recurring_processor)],
    today: date | None = Query(default=None, description="Processing date, defaults to today (UTC)"),
) -> ProcessResponse:
    """Create expenses for every recurring item that has come due."""
    logger.info(f"Recurring expense processing triggered by {caller}")
    result = await processor.process(today)
    return ProcessResponse(
        success=True,
        processed=result.processed,
        deactivated=result.deactivated,
        errors=result.errors,
        details=[
            ProcessingDetailOut(
                recurring_expense_id=d.recurring_expense_id,
                expense_id=d.expense_id,
                due_date=d.due_date,
                error=d.error,
            )
            for d in result.details
        ],
        timestamp=result.finished_at or datetime.now(UTC),
    )


@router.get("/process", response_model=ProcessorStatus)
async def processor_status(
    processor: Annotated[RecurringExpenseProcessor, Depends(get_recurring_processor)],
) -> ProcessorStatus:
    last = processor.last_result
    return ProcessorStatus(
        message="Recurring expense processor endpoint",
        status="active",
        last_run_at=last.finished_at if last else None,
        last_processed=last.processed if last else None,
    )


@router.get("/upcoming", response_model=list[RecurringExpenseOut])
async def upcoming_recurring_expenses(
    user: FinancialReader,
    repository: Repository,
    cache: Annotated[CacheAside, Depends(get_cache_aside)],
    days: int = Query(default=7, ge=0, le=365),
) -> list[RecurringExpenseOut]:
    """Active recurring expenses due within ``days`` days, soonest first."""
    today = datetime.now(UTC).date()

    async def load() -> list[RecurringExpenseOut]:
        by_schedule = {item.schedule.id: item for item in await repository.list_all()}
        due = upcoming((item.schedule for item in by_schedule.values()), today, days)
        return [RecurringExpenseOut.from_domain(by_schedule[s.id]) for s in due]

    return await cache.get_or_set(
        CacheKeys.recurring_upcoming(days, today),
        load,
        ttl=UPCOMING_TTL,
    )
