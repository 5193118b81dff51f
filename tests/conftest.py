from datetime import datetime

import pytest

from app.models.analytics import ClassInfo, DepartmentInfo, LateEntry, StudentInfo
from app.services.aggregation import StudentIndex
from app.services.snapshot import ReferenceData


def make_entry(
    record_id,
    student_name,
    timestamp,
    student_id=None,
    department_name="CSE",
    class_name="II-A",
    gender=None,
    register_no="",
    status="Not Informed",
    marked_by="Admin Staff",
):
    return LateEntry(
        id=record_id,
        student_id=student_id,
        student_name=student_name,
        register_no=register_no,
        gender=gender,
        department_name=department_name,
        class_name=class_name,
        date="",
        time="",
        timestamp=timestamp,
        marked_by=marked_by,
        status=status,
    )


@pytest.fixture
def departments():
    return [
        DepartmentInfo(id="cse", name="CSE"),
        DepartmentInfo(id="ece", name="ECE"),
        DepartmentInfo(id="mech", name="MECH"),
    ]


@pytest.fixture
def classes():
    return [
        ClassInfo(id="cse-2a", department_id="cse", name="II-A"),
        ClassInfo(id="cse-3a", department_id="cse", name="III-A"),
        ClassInfo(id="ece-2", department_id="ece", name="II"),
        ClassInfo(id="mech-2", department_id="mech", name="II"),
    ]


@pytest.fixture
def students():
    return [
        StudentInfo(
            id="s1", name="Asha Rao", department_id="cse", class_id="cse-2a",
            register_no="REG001", gender="FEMALE", parent_phone_number="+91 98765 43210",
            mentor="Dr. Kumar",
        ),
        StudentInfo(
            id="s2", name="Amit Shah", department_id="ece", class_id="ece-2",
            register_no="REG002", gender="MALE", mentor="Dr. Priya",
        ),
        StudentInfo(
            id="s3", name="Zara Khan", department_id="mech", class_id="mech-2",
            register_no="REG003", gender="FEMALE",
        ),
        StudentInfo(
            id="s4", name="Vihaan Kumar", department_id="cse", class_id="cse-3a",
            register_no="REG004", gender="MALE", mentor="Dr. Kumar",
        ),
    ]


@pytest.fixture
def reference(departments, classes, students):
    return ReferenceData(departments=departments, classes=classes, students=students)


@pytest.fixture
def index(students, departments, classes):
    return StudentIndex(students, departments, classes)


@pytest.fixture
def records():
    """Mixed March 2025 data, newest first as loaded from storage."""
    return [
        make_entry("r8", "Zara Khan", datetime(2025, 3, 11, 9, 5), student_id="s3",
                   department_name="MECH", class_name="II", gender="FEMALE", register_no="REG003"),
        make_entry("r7", "Asha Rao", datetime(2025, 3, 10, 23, 59, 59), student_id="s1",
                   gender="FEMALE", register_no="REG001"),
        make_entry("r6", "Amit Shah", datetime(2025, 3, 10, 9, 15), student_id="s2",
                   department_name="ECE", class_name="II", gender="MALE", register_no="REG002",
                   status="Informed"),
        make_entry("r5", "Asha Rao", datetime(2025, 3, 10, 0, 0), student_id="s1",
                   gender="FEMALE", register_no="REG001"),
        make_entry("r4", "asha rao", datetime(2025, 3, 9, 23, 59, 59), student_id="ghost",
                   gender="FEMALE", register_no="REG001"),
        make_entry("r3", "Asha Rao", datetime(2025, 3, 5, 8, 50), gender="FEMALE"),
        make_entry("r2", "Vihaan Kumar", datetime(2025, 3, 3, 9, 0), student_id="s4",
                   class_name="III-A", gender="MALE", register_no="REG004", status="Letter Given"),
        make_entry("r1", "Old Student", "not a timestamp", department_name="ECE", class_name="II"),
    ]


@pytest.fixture
def entry():
    return make_entry
