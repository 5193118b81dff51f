"""Beanie document models and engine value types."""
from app.models.department import Department
from app.models.school_class import SchoolClass
from app.models.student import Student, Gender
from app.models.late_record import LateRecord, LateRecordCreate, LateStatus
from app.models.analytics import (
    AggregationResult,
    BatchStrength,
    ClassInfo,
    ClassStrength,
    DateRange,
    DepartmentInfo,
    FilterCriteria,
    GroupCount,
    LateEntry,
    LateSummary,
    RecordRow,
    StudentInfo,
    TopOffender,
)

__all__ = [
    "Department",
    "SchoolClass",
    "Student",
    "Gender",
    "LateRecord",
    "LateRecordCreate",
    "LateStatus",
    "AggregationResult",
    "BatchStrength",
    "ClassInfo",
    "ClassStrength",
    "DateRange",
    "DepartmentInfo",
    "FilterCriteria",
    "GroupCount",
    "LateEntry",
    "LateSummary",
    "RecordRow",
    "StudentInfo",
    "TopOffender",
]
