"""Late arrival events. Immutable once inserted."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from beanie import Document, Indexed
from pydantic import BaseModel, ConfigDict, Field

from app.models.student import Gender


class LateStatus(str, Enum):
    INFORMED = "Informed"
    NOT_INFORMED = "Not Informed"
    LETTER_GIVEN = "Letter Given"


class LateRecord(Document):
    """One student marked late at one instant.

    Student, department and class *names* are copied at creation so that old
    records stay readable after a student is renamed or moved. ``date`` and
    ``time`` are display strings in school time; ``timestamp`` (UTC) is the
    value every date filter works on.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    student_id: Optional[str] = None  # absent on records created before it was tracked
    student_name: str
    register_no: str = ""
    gender: Optional[Gender] = None
    department_name: str
    class_name: str
    date: str
    time: str
    timestamp: Indexed(datetime) = Field(default_factory=lambda: datetime.now(timezone.utc))
    marked_by: str
    status: LateStatus = LateStatus.NOT_INFORMED

    class Settings:
        name = "late_records"


class LateRecordCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")
    student_id: str
    status: LateStatus = LateStatus.NOT_INFORMED
    marked_by: str = Field(min_length=1)
