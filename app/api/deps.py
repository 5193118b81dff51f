"""Shared dependencies: data snapshots and filter query parameters."""
from datetime import date
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Query

from app.models.analytics import DateRange, FilterCriteria, LateEntry
from app.models.late_record import LateStatus
from app.services.aggregation import StudentIndex
from app.services.snapshot import ReferenceData, load_late_entries, load_reference_data


async def get_reference_data() -> ReferenceData:
    return await load_reference_data()


async def get_late_entries() -> list[LateEntry]:
    return await load_late_entries()


def parse_day(value: Optional[str], name: str) -> Optional[date]:
    if value is None or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name} date format (YYYY-MM-DD)")


def date_range_params(
    from_date: Optional[str] = Query(None, alias="from", description="First day, YYYY-MM-DD"),
    to_date: Optional[str] = Query(None, alias="to", description="Last day, YYYY-MM-DD (defaults to 'from')"),
) -> Optional[DateRange]:
    start = parse_day(from_date, "from")
    end = parse_day(to_date, "to")
    if start is None:
        if end is not None:
            raise HTTPException(status_code=400, detail="'to' requires 'from'")
        return None
    return DateRange(from_date=start, to_date=end)


def criteria_params(
    date_range: Annotated[Optional[DateRange], Depends(date_range_params)],
    department_id: Optional[str] = None,
    class_id: Optional[str] = None,
    mentor: Optional[str] = None,
    status: Optional[str] = Query(None, description="Informed, Not Informed or Letter Given"),
    gender: Optional[str] = Query(None, description="MALE or FEMALE"),
    q: Optional[str] = Query(None, description="Search by student name or register number"),
) -> FilterCriteria:
    if status and status.strip().lower() != "all" and status.strip() not in LateStatus._value2member_map_:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")
    if gender and gender.strip().upper() not in ("ALL", "MALE", "FEMALE"):
        raise HTTPException(status_code=400, detail=f"Unknown gender: {gender}")
    return FilterCriteria(
        date_range=date_range,
        department_id=department_id,
        class_id=class_id,
        mentor=mentor,
        status=status,
        gender=gender,
        search_text=q,
    )


# Type aliases for route injection
Reference = Annotated[ReferenceData, Depends(get_reference_data)]
LateEntries = Annotated[list[LateEntry], Depends(get_late_entries)]
Criteria = Annotated[FilterCriteria, Depends(criteria_params)]
OptionalDateRange = Annotated[Optional[DateRange], Depends(date_range_params)]


def build_index(reference: Reference) -> StudentIndex:
    return reference.index()


Index = Annotated[StudentIndex, Depends(build_index)]
