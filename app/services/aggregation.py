"""Late record aggregation engine.

Every view of the late tracker (records table, stats cards, charts, top
latecomers, exports) is a slice of what these functions compute. They are
pure: inputs are snapshots of records and reference data, outputs are plain
value objects, and nothing here performs I/O or keeps state between calls.

A record is attributed to a student by id first and, when the id is missing or
no longer exists, by a case-insensitive match on the student name. Records
created before ``student_id`` was stored depend on that fallback.
"""
import logging
import re
from collections import Counter
from datetime import date
from enum import Enum
from typing import Callable, Hashable, Iterable, Mapping, Optional, Sequence

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
from app.models.student import Gender

logger = logging.getLogger(__name__)

LATE_WARNING_THRESHOLD = 3
TOP_N_DEFAULT = 10


class SortField(str, Enum):
    TIMESTAMP = "timestamp"
    STUDENT_NAME = "student_name"
    REGISTER_NO = "register_no"
    DEPARTMENT = "department"
    CLASS_NAME = "class_name"
    STATUS = "status"
    MARKED_BY = "marked_by"
    GENDER = "gender"
    MENTOR = "mentor"
    LIFETIME_COUNT = "lifetime_count"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


def _norm(text: Optional[str]) -> str:
    return " ".join(text.split()).casefold() if text else ""


def raw_key(record: LateEntry) -> str:
    """Student key of a record without consulting reference data."""
    return record.student_id or _norm(record.student_name)


class StudentIndex:
    """Reference data lookups shared by every engine operation."""

    def __init__(
        self,
        students: Iterable[StudentInfo] = (),
        departments: Iterable[DepartmentInfo] = (),
        classes: Iterable[ClassInfo] = (),
    ):
        self.students: dict[str, StudentInfo] = {}
        self._by_name: dict[str, StudentInfo] = {}
        for student in students:
            self.students[student.id] = student
            self._by_name.setdefault(_norm(student.name), student)
        self.departments: dict[str, DepartmentInfo] = {d.id: d for d in departments}
        self.classes: dict[str, ClassInfo] = {c.id: c for c in classes}

    def resolve(self, record: LateEntry) -> Optional[StudentInfo]:
        if record.student_id:
            student = self.students.get(record.student_id)
            if student is not None:
                return student
        return self._by_name.get(_norm(record.student_name))

    def key(self, record: LateEntry) -> str:
        student = self.resolve(record)
        return student.id if student is not None else raw_key(record)

    def normalize_key(self, student_key: str) -> str:
        """Map a student id or name to the key ``key()`` produces for that student."""
        if student_key in self.students:
            return student_key
        student = self._by_name.get(_norm(student_key))
        return student.id if student is not None else student_key

    def department_name(self, record: LateEntry) -> str:
        student = self.resolve(record)
        if student is not None and student.department_id in self.departments:
            return self.departments[student.department_id].name
        return record.department_name

    def class_name(self, record: LateEntry) -> str:
        student = self.resolve(record)
        if student is not None and student.class_id in self.classes:
            return self.classes[student.class_id].name
        return record.class_name

    def mentor(self, record: LateEntry) -> Optional[str]:
        student = self.resolve(record)
        return student.mentor if student is not None else None

    def gender(self, record: LateEntry) -> Optional[Gender]:
        student = self.resolve(record)
        if student is not None and student.gender is not None:
            return student.gender
        return record.gender

    def register_no(self, record: LateEntry) -> str:
        if record.register_no:
            return record.register_no
        student = self.resolve(record)
        return student.register_no if student is not None else ""


def _in_department(record: LateEntry, department_id: str, index: StudentIndex) -> bool:
    student = index.resolve(record)
    if student is not None:
        return student.department_id == department_id
    department = index.departments.get(department_id)
    return department is not None and _norm(record.department_name) == _norm(department.name)


def _in_class(record: LateEntry, class_id: str, index: StudentIndex) -> bool:
    student = index.resolve(record)
    if student is not None:
        return student.class_id == class_id
    school_class = index.classes.get(class_id)
    if school_class is None or _norm(record.class_name) != _norm(school_class.name):
        return False
    # Class names repeat across departments ("II" in ECE and EEE).
    department = index.departments.get(school_class.department_id)
    return department is None or _norm(record.department_name) == _norm(department.name)


def matches(record: LateEntry, criteria: FilterCriteria, index: StudentIndex) -> bool:
    if criteria.date_range is not None and not criteria.date_range.contains(record.timestamp):
        return False
    if criteria.status is not None and record.status != criteria.status:
        return False
    if criteria.gender is not None and index.gender(record) != criteria.gender:
        return False
    if criteria.department_id is not None and not _in_department(record, criteria.department_id, index):
        return False
    if criteria.class_id is not None and not _in_class(record, criteria.class_id, index):
        return False
    if criteria.mentor is not None and index.mentor(record) != criteria.mentor:
        return False
    if criteria.search_text is not None:
        needle = criteria.search_text.casefold()
        if needle not in record.student_name.casefold() and needle not in index.register_no(record).casefold():
            return False
    return True


def filter_records(
    records: Iterable[LateEntry],
    criteria: Optional[FilterCriteria] = None,
    index: Optional[StudentIndex] = None,
) -> list[LateEntry]:
    """Records satisfying every set criterion, in input order."""
    records = list(records)
    if criteria is None or criteria.is_empty():
        return records
    if criteria.date_range is not None and criteria.date_range.is_empty:
        return []
    index = index or StudentIndex()
    return [r for r in records if matches(r, criteria, index)]


def lifetime_counts(records: Iterable[LateEntry], index: Optional[StudentIndex] = None) -> dict[str, int]:
    """All-time number of records per student key. Ignores timestamps entirely."""
    key_fn = index.key if index is not None else raw_key
    return dict(Counter(key_fn(r) for r in records))


def lifetime_late_count(
    records: Iterable[LateEntry],
    student_key: str,
    index: Optional[StudentIndex] = None,
) -> int:
    """How many times a student (by id, or by name as a fallback) was ever late."""
    if not student_key:
        return 0
    counts = lifetime_counts(records, index)
    key = index.normalize_key(student_key) if index is not None else student_key
    if key in counts:
        return counts[key]
    return counts.get(_norm(student_key), 0)


def running_counts_in_period(
    records: Iterable[LateEntry],
    date_range: Optional[DateRange],
    index: Optional[StudentIndex] = None,
) -> dict[str, int]:
    """Record id -> N where the record is the student's Nth late arrival in the window.

    Records are numbered in ascending timestamp order; ties keep input order.
    Without a range every timestamped record is in the window.
    """
    key_fn = index.key if index is not None else raw_key
    in_window = [
        r for r in records
        if r.timestamp is not None and (date_range is None or date_range.contains(r.timestamp))
    ]
    in_window.sort(key=lambda r: r.timestamp)
    seen: Counter = Counter()
    running = {}
    for record in in_window:
        key = key_fn(record)
        seen[key] += 1
        running[record.id] = seen[key]
    return running


def period_counts(
    records: Iterable[LateEntry],
    date_range: Optional[DateRange],
    index: Optional[StudentIndex] = None,
) -> dict[str, int]:
    """Student key -> number of records inside the window."""
    key_fn = index.key if index is not None else raw_key
    return dict(Counter(
        key_fn(r) for r in records
        if r.timestamp is not None and (date_range is None or date_range.contains(r.timestamp))
    ))


def exceeds_late_threshold(count: int, threshold: int = LATE_WARNING_THRESHOLD) -> bool:
    return count > threshold


def _sort_value(record: LateEntry, field: SortField, index: StudentIndex, lifetime: dict[str, int]):
    if field is SortField.TIMESTAMP:
        return record.timestamp
    if field is SortField.LIFETIME_COUNT:
        return lifetime.get(index.key(record), 0)
    if field is SortField.DEPARTMENT:
        value = index.department_name(record)
    elif field is SortField.CLASS_NAME:
        value = index.class_name(record)
    elif field is SortField.MENTOR:
        value = index.mentor(record)
    elif field is SortField.GENDER:
        gender = index.gender(record)
        value = gender.value if gender is not None else None
    elif field is SortField.STATUS:
        value = record.status.value if record.status is not None else None
    elif field is SortField.REGISTER_NO:
        value = index.register_no(record)
    else:
        value = getattr(record, field.value)
    return _norm(value) or None


def sort_records(
    records: Iterable[LateEntry],
    key: SortField = SortField.TIMESTAMP,
    direction: SortDirection = SortDirection.DESC,
    index: Optional[StudentIndex] = None,
    lifetime: Optional[dict[str, int]] = None,
) -> list[LateEntry]:
    """Stable sort by a record field or a derived one (mentor, lifetime count...).

    Derived values are computed up front. ``lifetime`` should hold counts over
    the full record set; when omitted they are counted from ``records``.
    Records with no value for the key always go last.
    """
    field = SortField(key)
    descending = SortDirection(direction) is SortDirection.DESC
    records = list(records)
    index = index or StudentIndex()
    if field is SortField.LIFETIME_COUNT and lifetime is None:
        lifetime = lifetime_counts(records, index)

    present, missing = [], []
    for record in records:
        value = _sort_value(record, field, index, lifetime or {})
        if value is None:
            missing.append(record)
        else:
            present.append((value, record))
    # sorted() stays stable with reverse=True.
    present.sort(key=lambda pair: pair[0], reverse=descending)
    return [record for _, record in present] + missing


def _natural(key):
    return key.casefold() if isinstance(key, str) else key


def group_count(
    records: Iterable[LateEntry],
    key_fn: Callable[[LateEntry], Optional[Hashable]],
    keys: Optional[Sequence[Hashable]] = None,
    label_fn: Callable[[Hashable], str] = str,
) -> list[GroupCount]:
    """Count records per bucket.

    With ``keys`` the result is a dense series in the order of ``keys``: every
    key appears (zero when empty) and records outside it are ignored. Otherwise
    buckets are ordered by count descending, then by key (keys of different
    types are kept apart by type name). Records whose key is None are skipped.
    """
    if keys is not None:
        counts = dict.fromkeys(keys, 0)
        for record in records:
            key = key_fn(record)
            if key in counts:
                counts[key] += 1
        items = list(counts.items())
    else:
        counter: Counter = Counter()
        for record in records:
            key = key_fn(record)
            if key is not None:
                counter[key] += 1
        items = sorted(counter.items(), key=lambda item: (-item[1], type(item[0]).__name__, _natural(item[0])))
    return [GroupCount(key=key, label=label_fn(key), count=count) for key, count in items]


def count_by_department(records: Iterable[LateEntry], index: Optional[StudentIndex] = None) -> list[GroupCount]:
    index = index or StudentIndex()
    return group_count(records, index.department_name)


def count_by_gender(records: Iterable[LateEntry], index: Optional[StudentIndex] = None) -> list[GroupCount]:
    index = index or StudentIndex()

    def gender_of(record):
        gender = index.gender(record)
        return gender.value if gender is not None else None

    return group_count(records, gender_of)


def count_by_day(records: Iterable[LateEntry], date_range: DateRange) -> list[GroupCount]:
    """Dense, chronological per-day series over the whole range."""
    in_range = [r for r in records if date_range.contains(r.timestamp)]
    return group_count(
        in_range,
        lambda r: r.timestamp.date(),
        keys=date_range.days(),
        label_fn=lambda d: d.strftime("%b %d"),
    )


def count_by_month(records: Iterable[LateEntry], date_range: DateRange) -> list[GroupCount]:
    """Dense, chronological per-month series; months are keyed by their first day."""
    in_range = [r for r in records if date_range.contains(r.timestamp)]
    return group_count(
        in_range,
        lambda r: date(r.timestamp.year, r.timestamp.month, 1),
        keys=date_range.months(),
        label_fn=lambda d: d.strftime("%b %Y"),
    )


def top_n(
    records: Iterable[LateEntry],
    n: int = TOP_N_DEFAULT,
    group_by_student: bool = True,
    index: Optional[StudentIndex] = None,
) -> list[TopOffender]:
    """Students ranked by lifetime count, ties by name.

    With ``group_by_student=False`` records are grouped by their raw
    ``student_id``/``student_name`` and reference data is not consulted.
    """
    if n <= 0:
        return []
    index = index or StudentIndex()
    key_fn = index.key if group_by_student else raw_key

    counts: Counter = Counter()
    sample: dict[str, LateEntry] = {}
    for record in records:
        key = key_fn(record)
        counts[key] += 1
        sample.setdefault(key, record)

    offenders = []
    for key, count in counts.items():
        record = sample[key]
        student = index.resolve(record) if group_by_student else None
        if student is not None:
            offenders.append(TopOffender(
                rank=0,
                student_id=student.id,
                student_name=student.name,
                register_no=student.register_no or record.register_no,
                gender=student.gender or record.gender,
                department_name=index.department_name(record),
                class_name=index.class_name(record),
                mentor=student.mentor,
                count=count,
                resolved=True,
            ))
        else:
            offenders.append(TopOffender(
                rank=0,
                student_id=record.student_id,
                student_name=record.student_name,
                register_no=record.register_no,
                gender=record.gender,
                department_name=record.department_name,
                class_name=record.class_name,
                count=count,
            ))

    offenders.sort(key=lambda o: (-o.count, _norm(o.student_name)))
    top = offenders[:n]
    for rank, offender in enumerate(top, start=1):
        offender.rank = rank
    return top


def summarize(
    records: Iterable[LateEntry],
    date_range: Optional[DateRange] = None,
    index: Optional[StudentIndex] = None,
) -> LateSummary:
    """Stats cards: distinct late students (and their genders), total records, departments."""
    index = index or StudentIndex()
    records = list(records)
    if date_range is not None:
        records = [r for r in records if date_range.contains(r.timestamp)]
    if not records:
        return LateSummary()

    distinct: dict[str, LateEntry] = {}
    for record in records:
        distinct.setdefault(index.key(record), record)
    genders = Counter(index.gender(r) for r in distinct.values())
    return LateSummary(
        late_students=len(distinct),
        boys=genders[Gender.MALE],
        girls=genders[Gender.FEMALE],
        total_records=len(records),
        departments=count_by_department(records, index),
    )


def build_rows(
    records: Iterable[LateEntry],
    criteria: Optional[FilterCriteria] = None,
    index: Optional[StudentIndex] = None,
    sort: SortField = SortField.TIMESTAMP,
    direction: SortDirection = SortDirection.DESC,
    threshold: int = LATE_WARNING_THRESHOLD,
) -> list[RecordRow]:
    """Records-table rows: filtered, sorted, with lifetime and in-period counts side by side."""
    index = index or StudentIndex()
    records = list(records)
    lifetime = lifetime_counts(records, index)
    date_range = criteria.date_range if criteria is not None else None
    running = running_counts_in_period(records, date_range, index)

    filtered = filter_records(records, criteria, index)
    ordered = sort_records(filtered, sort, direction, index=index, lifetime=lifetime)
    rows = []
    for serial, record in enumerate(ordered, start=1):
        in_period = running.get(record.id, 0)
        rows.append(RecordRow(
            serial=serial,
            record=record,
            department_name=index.department_name(record),
            class_name=index.class_name(record),
            mentor=index.mentor(record),
            lifetime_count=lifetime.get(index.key(record), 0),
            in_period_count=in_period,
            warning=exceeds_late_threshold(in_period, threshold),
        ))
    return rows


def _strength_of(school_class: ClassInfo, department_name: str, students: list[StudentInfo]) -> ClassStrength:
    members = [s for s in students if s.class_id == school_class.id]
    return ClassStrength(
        department_name=department_name,
        class_id=school_class.id,
        class_name=school_class.name,
        boys=sum(1 for s in members if s.gender is Gender.MALE),
        girls=sum(1 for s in members if s.gender is Gender.FEMALE),
        total=len(members),
    )


def class_strength(
    students: Iterable[StudentInfo],
    classes: Iterable[ClassInfo],
    departments: Iterable[DepartmentInfo],
) -> list[ClassStrength]:
    """Boys/girls/total per class, departments and classes ordered by name."""
    students = list(students)
    classes = list(classes)
    strengths = []
    for department in sorted(departments, key=lambda d: _norm(d.name)):
        department_classes = [c for c in classes if c.department_id == department.id]
        for school_class in sorted(department_classes, key=lambda c: _norm(c.name)):
            strengths.append(_strength_of(school_class, department.name, students))
    return strengths


_YEAR_PREFIX = re.compile(r"^(IV|III|II|I)(?:$|[-\s(])")
_ROMAN_YEARS = {"I": 1, "II": 2, "III": 3, "IV": 4}


def year_from_class_name(name: str) -> Optional[int]:
    """Year of study from a class name such as ``II-A``, ``III`` or ``I (MBA)``."""
    match = _YEAR_PREFIX.match((name or "").strip())
    return _ROMAN_YEARS[match.group(1)] if match else None


def batch_strength(
    students: Iterable[StudentInfo],
    classes: Iterable[ClassInfo],
    departments: Iterable[DepartmentInfo],
    batch_labels: Mapping[int, str],
    department_batch_labels: Optional[Mapping[str, Mapping[int, str]]] = None,
) -> list[BatchStrength]:
    """Boys/girls/total per batch.

    A class belongs to the batch its year of study maps to in ``batch_labels``.
    Departments listed in ``department_batch_labels`` (programmes with a
    different length) get batches of their own. Every configured batch is
    returned, empty ones included, ordered by year; classes whose name carries
    no year or whose year has no label are left out.
    """
    department_batch_labels = department_batch_labels or {}
    students = list(students)
    names = {d.id: d.name for d in departments}

    batches: dict[tuple[Optional[str], int], BatchStrength] = {}
    for year, label in sorted(batch_labels.items()):
        batches[(None, year)] = BatchStrength(batch=label, year=year)
    for department_id, labels in department_batch_labels.items():
        for year, label in sorted(labels.items()):
            batches[(department_id, year)] = BatchStrength(batch=label, year=year, department_id=department_id)

    for school_class in classes:
        programme = school_class.department_id if school_class.department_id in department_batch_labels else None
        batch = batches.get((programme, year_from_class_name(school_class.name)))
        if batch is None:
            continue
        strength = _strength_of(school_class, names.get(school_class.department_id, ""), students)
        batch.classes.append(strength)
        batch.boys += strength.boys
        batch.girls += strength.girls
        batch.total += strength.total

    for batch in batches.values():
        batch.classes.sort(key=lambda s: (_norm(s.department_name), _norm(s.class_name)))
    return list(batches.values())


def _span(records: Iterable[LateEntry]) -> Optional[DateRange]:
    stamps = [r.timestamp for r in records if r.timestamp is not None]
    if not stamps:
        return None
    return DateRange(from_date=min(stamps).date(), to_date=max(stamps).date())


def aggregate(
    records: Iterable[LateEntry],
    criteria: Optional[FilterCriteria] = None,
    index: Optional[StudentIndex] = None,
    sort: SortField = SortField.TIMESTAMP,
    direction: SortDirection = SortDirection.DESC,
    threshold: int = LATE_WARNING_THRESHOLD,
    top: int = TOP_N_DEFAULT,
) -> AggregationResult:
    """Everything the dashboard shows for one filter selection.

    Day/month series cover the requested date range, or the span of the
    filtered records when no range is set. Top offenders are all-time.
    """
    index = index or StudentIndex()
    records = list(records)
    rows = build_rows(records, criteria, index, sort=sort, direction=direction, threshold=threshold)
    filtered = [row.record for row in rows]
    span = criteria.date_range if criteria is not None and criteria.date_range is not None else _span(filtered)
    logger.debug("Aggregated %d of %d records", len(filtered), len(records))
    return AggregationResult(
        rows=rows,
        summary=summarize(filtered, index=index),
        by_department=count_by_department(filtered, index),
        by_gender=count_by_gender(filtered, index),
        by_day=count_by_day(filtered, span) if span is not None else [],
        by_month=count_by_month(filtered, span) if span is not None else [],
        top_offenders=top_n(records, top, index=index),
    )
