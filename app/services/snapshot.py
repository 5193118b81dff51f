"""Load Beanie documents into the engine's storage-agnostic value types."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from app.config import settings
from app.models.analytics import ClassInfo, DepartmentInfo, LateEntry, StudentInfo
from app.models.department import Department
from app.models.late_record import LateRecord
from app.models.school_class import SchoolClass
from app.models.student import Student
from app.services.aggregation import StudentIndex

logger = logging.getLogger(__name__)


@dataclass
class ReferenceData:
    departments: list[DepartmentInfo] = field(default_factory=list)
    classes: list[ClassInfo] = field(default_factory=list)
    students: list[StudentInfo] = field(default_factory=list)

    def index(self) -> StudentIndex:
        return StudentIndex(self.students, self.departments, self.classes)


def to_school_time(ts: Optional[datetime], tz: Optional[ZoneInfo] = None) -> Optional[datetime]:
    """Stored timestamps are UTC (naive when read back from MongoDB); the engine works in school wall-clock time."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(tz or settings.tz).replace(tzinfo=None)


def entry_from_document(record: LateRecord, tz: Optional[ZoneInfo] = None) -> LateEntry:
    data = record.model_dump()
    if isinstance(data.get("timestamp"), datetime):
        data["timestamp"] = to_school_time(data["timestamp"], tz)
    return LateEntry.model_validate(data)


async def load_reference_data() -> ReferenceData:
    departments = await Department.find_all().sort("name").to_list()
    classes = await SchoolClass.find_all().to_list()
    students = await Student.find_all().sort("name").to_list()
    return ReferenceData(
        departments=[DepartmentInfo.model_validate(d) for d in departments],
        classes=[ClassInfo.model_validate(c) for c in classes],
        students=[StudentInfo.model_validate(s) for s in students],
    )


async def load_late_entries() -> list[LateEntry]:
    """All late records, most recent first."""
    records = await LateRecord.find_all().sort("-timestamp").to_list()
    logger.debug("Loaded %d late records", len(records))
    return [entry_from_document(r) for r in records]
