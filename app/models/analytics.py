"""Plain value types consumed and produced by the aggregation engine.

These are storage-agnostic snapshots: they can be validated from Beanie
documents (``from_attributes``), from dicts loaded out of a file, or built
directly in tests.
"""
import logging
from collections.abc import Mapping
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.late_record import LateStatus
from app.models.student import Gender

logger = logging.getLogger(__name__)

_ALL = "all"


def parse_timestamp(value) -> Optional[datetime]:
    """Best-effort conversion of a stored timestamp to a naive wall-clock datetime.

    Accepts datetimes, dates, ISO-8601 strings, epoch seconds/milliseconds and
    Firestore-style ``{"seconds": ..., "nanoseconds": ...}`` mappings. Returns
    None for anything it cannot read.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, datetime):
            ts = value
        elif isinstance(value, date):
            ts = datetime.combine(value, time.min)
        elif isinstance(value, (int, float)):
            seconds = value / 1000 if abs(value) > 1e11 else value
            ts = datetime.fromtimestamp(seconds, tz=timezone.utc)
        elif isinstance(value, str):
            if not value.strip():
                return None
            ts = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        elif isinstance(value, Mapping):
            seconds = value.get("seconds", value.get("_seconds"))
            nanos = value.get("nanoseconds", value.get("_nanoseconds")) or 0
            ts = datetime.fromtimestamp(seconds + nanos / 1e9, tz=timezone.utc)
        else:
            return None
    except (TypeError, ValueError, OverflowError, OSError):
        logger.debug("Ignoring unparseable timestamp %r", value)
        return None
    # Aware values keep their own wall-clock time.
    return ts.replace(tzinfo=None) if ts.tzinfo is not None else ts


def _coerce_gender(value):
    if isinstance(value, str):
        value = value.strip().upper()
        return value if value in Gender._value2member_map_ else None
    return value


class DepartmentInfo(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)
    id: str
    name: str


class ClassInfo(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)
    id: str
    department_id: str
    name: str


class StudentInfo(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)
    id: str
    name: str
    department_id: str
    class_id: str
    register_no: str = ""
    gender: Optional[Gender] = None
    parent_phone_number: Optional[str] = None
    mentor: Optional[str] = None

    @field_validator("gender", mode="before")
    @classmethod
    def _normalize_gender(cls, value):
        return _coerce_gender(value)


class LateEntry(BaseModel):
    """A late record as the engine sees it. Historical data may lack
    ``student_id``, ``gender`` or a readable ``timestamp``."""

    model_config = ConfigDict(frozen=True, from_attributes=True)
    id: str
    student_id: Optional[str] = None
    student_name: str = ""
    register_no: str = ""
    gender: Optional[Gender] = None
    department_name: str = ""
    class_name: str = ""
    date: str = ""
    time: str = ""
    timestamp: Optional[datetime] = None
    marked_by: str = ""
    status: Optional[LateStatus] = None

    @field_validator("gender", mode="before")
    @classmethod
    def _normalize_gender(cls, value):
        return _coerce_gender(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value):
        return parse_timestamp(value)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value):
        if isinstance(value, str) and value not in LateStatus._value2member_map_:
            return None
        return value

    @field_validator("register_no", "student_name", "department_name", "class_name", "marked_by", mode="before")
    @classmethod
    def _none_to_blank(cls, value):
        return "" if value is None else value


class DateRange(BaseModel):
    """Inclusive calendar-day range. A missing ``to_date`` means the single day ``from_date``."""

    model_config = ConfigDict(frozen=True)
    from_date: date
    to_date: Optional[date] = None

    @property
    def last_day(self) -> date:
        return self.to_date if self.to_date is not None else self.from_date

    @property
    def start(self) -> datetime:
        return datetime.combine(self.from_date, time.min)

    @property
    def end(self) -> datetime:
        return datetime.combine(self.last_day, time.max)

    @property
    def is_empty(self) -> bool:
        return self.from_date > self.last_day

    def contains(self, ts: Optional[datetime]) -> bool:
        if ts is None:
            return False
        return self.start <= ts <= self.end

    def days(self) -> list[date]:
        count = (self.last_day - self.from_date).days + 1
        return [self.from_date + timedelta(days=i) for i in range(max(count, 0))]

    def months(self) -> list[date]:
        months = []
        current = self.from_date.replace(day=1)
        last = self.last_day.replace(day=1)
        while current <= last:
            months.append(current)
            current = (current + timedelta(days=32)).replace(day=1)
        return months


class FilterCriteria(BaseModel):
    """Immutable filter selection. Every field is optional; None means no constraint."""

    model_config = ConfigDict(frozen=True)
    date_range: Optional[DateRange] = None
    department_id: Optional[str] = None
    class_id: Optional[str] = None
    mentor: Optional[str] = None
    status: Optional[LateStatus] = None
    gender: Optional[Gender] = None
    search_text: Optional[str] = None

    @field_validator("department_id", "class_id", "mentor", "status", "gender", "search_text", mode="before")
    @classmethod
    def _blank_is_unset(cls, value):
        if isinstance(value, str):
            value = value.strip()
            if not value or value.lower() == _ALL:
                return None
        return value

    @field_validator("gender", mode="before")
    @classmethod
    def _upper_gender(cls, value):
        return value.upper() if isinstance(value, str) else value

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in type(self).model_fields)


class GroupCount(BaseModel):
    model_config = ConfigDict(frozen=True)
    key: Union[str, date]
    label: str
    count: int


class TopOffender(BaseModel):
    rank: int
    student_id: Optional[str] = None
    student_name: str
    register_no: str = ""
    gender: Optional[Gender] = None
    department_name: str = ""
    class_name: str = ""
    mentor: Optional[str] = None
    count: int
    resolved: bool = False  # False when details come from the record itself


class RecordRow(BaseModel):
    serial: int
    record: LateEntry
    department_name: str
    class_name: str
    mentor: Optional[str] = None
    lifetime_count: int
    in_period_count: int
    warning: bool


class LateSummary(BaseModel):
    late_students: int = 0
    boys: int = 0
    girls: int = 0
    total_records: int = 0
    departments: list[GroupCount] = Field(default_factory=list)


class ClassStrength(BaseModel):
    department_name: str
    class_id: str
    class_name: str
    boys: int
    girls: int
    total: int


class BatchStrength(BaseModel):
    batch: str
    year: int
    department_id: Optional[str] = None  # set for departments with batches of their own
    classes: list[ClassStrength] = Field(default_factory=list)
    boys: int = 0
    girls: int = 0
    total: int = 0


class AggregationResult(BaseModel):
    rows: list[RecordRow] = Field(default_factory=list)
    summary: LateSummary = Field(default_factory=LateSummary)
    by_department: list[GroupCount] = Field(default_factory=list)
    by_gender: list[GroupCount] = Field(default_factory=list)
    by_day: list[GroupCount] = Field(default_factory=list)
    by_month: list[GroupCount] = Field(default_factory=list)
    top_offenders: list[TopOffender] = Field(default_factory=list)
