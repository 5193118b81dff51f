"""Building new late records and the parent notification link."""
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote
from zoneinfo import ZoneInfo

from app.config import settings
from app.models.late_record import LateStatus

DATE_FORMAT = "%d/%m/%Y"
TIME_FORMAT = "%I:%M:%S %p"


def build_late_record_fields(
    student,
    department,
    school_class,
    marked_by: str,
    status: LateStatus = LateStatus.NOT_INFORMED,
    now: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> dict:
    """Fields of a new LateRecord with student/department/class names copied in.

    ``now`` defaults to the current UTC instant; ``date``/``time`` are rendered
    in school time.
    """
    if school_class.id != student.class_id:
        raise ValueError(f"Student {student.id} is not in class {school_class.id}")
    if department.id != school_class.department_id:
        raise ValueError(f"Class {school_class.id} does not belong to department {department.id}")

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(tz or settings.tz)
    return {
        "student_id": student.id,
        "student_name": student.name,
        "register_no": student.register_no or "",
        "gender": student.gender,
        "department_name": department.name,
        "class_name": school_class.name,
        "date": local.strftime(DATE_FORMAT),
        "time": local.strftime(TIME_FORMAT),
        "timestamp": now.astimezone(timezone.utc),
        "marked_by": marked_by.strip(),
        "status": LateStatus(status),
    }


def parent_notification_url(student, status: LateStatus, day: str, school_name: Optional[str] = None) -> Optional[str]:
    """WhatsApp link for the parent when the late arrival was not informed, else None."""
    phone = "".join(ch for ch in (student.parent_phone_number or "") if ch.isdigit())
    if LateStatus(status) is not LateStatus.NOT_INFORMED or not phone:
        return None
    school = school_name if school_name is not None else settings.school_name
    register = f" ({student.register_no})" if student.register_no else ""
    message = (
        f"Dear Parent, your ward {student.name}{register} has been marked late "
        f"to college today, {day}. Thank you, {school}."
    )
    return f"https://wa.me/{phone}?text={quote(message)}"
