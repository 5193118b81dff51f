"""Charts and rankings for the analytics page."""
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Query

from app.api.deps import Criteria, Index, LateEntries, OptionalDateRange, Reference
from app.config import settings
from app.models.analytics import AggregationResult, BatchStrength, ClassStrength, DateRange, GroupCount, TopOffender
from app.services.aggregation import (
    SortDirection,
    SortField,
    aggregate,
    batch_strength,
    class_strength,
    count_by_day,
    count_by_department,
    count_by_gender,
    count_by_month,
    filter_records,
    top_n,
)

router = APIRouter()


def _today():
    return datetime.now(settings.tz).date()


@router.get("/departments", response_model=list[GroupCount])
async def department_counts(records: LateEntries, index: Index, criteria: Criteria):
    return count_by_department(filter_records(records, criteria, index), index)


@router.get("/genders", response_model=list[GroupCount])
async def gender_counts(records: LateEntries, index: Index, criteria: Criteria):
    return count_by_gender(filter_records(records, criteria, index), index)


@router.get("/day-wise", response_model=list[GroupCount])
async def day_wise(records: LateEntries, date_range: OptionalDateRange):
    """Late entries per day; every day of the range is present. Defaults to the last 30 days."""
    if date_range is None:
        today = _today()
        date_range = DateRange(from_date=today - timedelta(days=29), to_date=today)
    return count_by_day(records, date_range)


@router.get("/month-wise", response_model=list[GroupCount])
async def month_wise(records: LateEntries, date_range: OptionalDateRange):
    """Late entries per month; defaults to the last 12 months including the current one."""
    if date_range is None:
        today = _today()
        first = today.replace(day=1)
        for _ in range(11):
            first = (first - timedelta(days=1)).replace(day=1)
        date_range = DateRange(from_date=first, to_date=today)
    return count_by_month(records, date_range)


@router.get("/top-latecomers", response_model=list[TopOffender])
async def top_latecomers(
    records: LateEntries,
    index: Index,
    limit: Optional[int] = Query(None, ge=1, le=100),
):
    """Students with the most late arrivals, all time."""
    return top_n(records, limit or settings.top_latecomers_limit, index=index)


@router.get("/class-strength", response_model=list[ClassStrength])
async def get_class_strength(reference: Reference):
    return class_strength(reference.students, reference.classes, reference.departments)


@router.get("/batch-strength", response_model=list[BatchStrength])
async def get_batch_strength(reference: Reference):
    """Students per batch, with the classes that make it up."""
    return batch_strength(
        reference.students,
        reference.classes,
        reference.departments,
        settings.batch_labels,
        settings.department_batch_labels,
    )


@router.get("/overview", response_model=AggregationResult)
async def overview(
    records: LateEntries,
    index: Index,
    criteria: Criteria,
    sort: SortField = SortField.TIMESTAMP,
    direction: SortDirection = SortDirection.DESC,
):
    return aggregate(
        records,
        criteria,
        index,
        sort=sort,
        direction=direction,
        threshold=settings.late_warning_threshold,
        top=settings.top_latecomers_limit,
    )
