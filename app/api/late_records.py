"""Late records: filtered table, marking a student late, export."""
import logging
from typing import Literal

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse
from pymongo.errors import PyMongoError

from app.api.deps import Criteria, Index, LateEntries
from app.config import settings
from app.models.analytics import RecordRow
from app.models.department import Department
from app.models.late_record import LateRecord, LateRecordCreate
from app.models.school_class import SchoolClass
from app.models.student import Student
from app.services.aggregation import SortDirection, SortField, build_rows, lifetime_late_count
from app.services.export import CSV_MEDIA_TYPE, EXCEL_MEDIA_TYPE, rows_to_dataframe, to_csv, to_excel
from app.services.late_entry import build_late_record_fields, parent_notification_url
from app.services.snapshot import entry_from_document

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[RecordRow])
async def list_late_records(
    records: LateEntries,
    index: Index,
    criteria: Criteria,
    sort: SortField = SortField.TIMESTAMP,
    direction: SortDirection = SortDirection.DESC,
):
    """Records table: filtered rows with lifetime and in-period late counts."""
    return build_rows(
        records,
        criteria,
        index,
        sort=sort,
        direction=direction,
        threshold=settings.late_warning_threshold,
    )


@router.post("", status_code=201)
async def create_late_record(data: LateRecordCreate):
    """Mark a student late. Names are copied from the current reference data."""
    student = await Student.get(data.student_id)
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    school_class = await SchoolClass.get(student.class_id)
    department = await Department.get(student.department_id)
    if not school_class or not department:
        raise HTTPException(status_code=400, detail="Student's class or department no longer exists")

    try:
        fields = build_late_record_fields(student, department, school_class, data.marked_by, data.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    record = LateRecord(**fields)
    try:
        await record.insert()
    except PyMongoError as e:
        logger.error(f"Failed to save late record for student {student.id}: {e}")
        raise HTTPException(status_code=503, detail="Could not save the late record, please try again")

    logger.info("Marked %s (%s) late, status %s, by %s", student.name, student.id, record.status.value, record.marked_by)
    return {
        "record": entry_from_document(record),
        "notification_url": parent_notification_url(student, data.status, fields["date"]),
    }


@router.get("/export")
async def export_late_records(
    records: LateEntries,
    index: Index,
    criteria: Criteria,
    format: Literal["csv", "excel"] = Query("csv"),
):
    """Download the filtered records table."""
    rows = build_rows(records, criteria, index, threshold=settings.late_warning_threshold)
    if not rows:
        raise HTTPException(status_code=404, detail="No records found for the given criteria")

    df = rows_to_dataframe(rows)
    if format == "csv":
        return StreamingResponse(
            iter([to_csv(df)]),
            media_type=CSV_MEDIA_TYPE,
            headers={"Content-Disposition": "attachment; filename=late-records.csv"},
        )
    return StreamingResponse(
        to_excel(df),
        media_type=EXCEL_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=late-records.xlsx"},
    )


@router.get("/students/{student_id}/count")
async def student_late_count(student_id: str, records: LateEntries, index: Index):
    """All-time late count for a student, regardless of any date filter."""
    return {
        "student_id": student_id,
        "count": lifetime_late_count(records, student_id, index),
    }
