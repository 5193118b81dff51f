from datetime import datetime

from fastapi import APIRouter

from app.api.deps import Index, LateEntries, OptionalDateRange
from app.config import settings
from app.models.analytics import DateRange, LateSummary
from app.services.aggregation import summarize

router = APIRouter()


@router.get("/summary", response_model=LateSummary)
async def get_summary(records: LateEntries, index: Index, date_range: OptionalDateRange):
    """Stats cards for the dashboard. Defaults to today in school time."""
    if date_range is None:
        date_range = DateRange(from_date=datetime.now(settings.tz).date())
    return summarize(records, date_range, index)
