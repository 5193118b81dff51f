from datetime import date, datetime

from app.models.analytics import ClassInfo, DateRange, FilterCriteria, LateSummary
from app.services.aggregation import (
    SortDirection,
    SortField,
    aggregate,
    batch_strength,
    build_rows,
    class_strength,
    count_by_day,
    count_by_department,
    count_by_month,
    exceeds_late_threshold,
    filter_records,
    group_count,
    lifetime_counts,
    lifetime_late_count,
    period_counts,
    running_counts_in_period,
    sort_records,
    summarize,
    top_n,
    year_from_class_name,
)

MARCH = DateRange(from_date=date(2025, 3, 1), to_date=date(2025, 3, 31))


def ids(records):
    return [r.id for r in records]


def test_empty_criteria_returns_records_unchanged(records, index):
    assert filter_records(records, FilterCriteria(), index) == records
    assert filter_records(records, None) == records
    assert filter_records(records, FilterCriteria(department_id="all", search_text=" ", status="")) == records


def test_adding_a_constraint_only_narrows_the_result(records, index):
    broad = filter_records(records, FilterCriteria(date_range=MARCH), index)
    narrow = filter_records(records, FilterCriteria(date_range=MARCH, department_id="cse"), index)
    narrower = filter_records(
        records, FilterCriteria(date_range=MARCH, department_id="cse", mentor="Dr. Kumar", gender="FEMALE"), index
    )

    assert len(broad) == 7
    assert ids(narrow) == ["r7", "r5", "r4", "r3", "r2"]
    assert ids(narrower) == ["r7", "r5", "r4", "r3"]
    assert set(ids(narrower)) <= set(ids(narrow)) <= set(ids(broad))


def test_department_counts_cover_every_dated_record(records):
    dated = filter_records(records, FilterCriteria(date_range=MARCH))
    groups = count_by_department(dated)

    assert sum(g.count for g in groups) == len(dated)
    assert [(g.key, g.count) for g in groups] == [("CSE", 5), ("ECE", 1), ("MECH", 1)]


def test_single_day_range_covers_the_whole_day_only(records):
    one_day = FilterCriteria(date_range=DateRange(from_date=date(2025, 3, 10)))
    assert ids(filter_records(records, one_day)) == ["r7", "r6", "r5"]


def test_inverted_range_matches_nothing(records):
    inverted = FilterCriteria(date_range=DateRange(from_date=date(2025, 3, 11), to_date=date(2025, 3, 1)))
    assert filter_records(records, inverted) == []
    assert count_by_day(records, inverted.date_range) == []


def test_unparseable_timestamp_is_outside_every_range_but_still_counted(records, index):
    assert records[-1].timestamp is None
    assert "r1" not in ids(filter_records(records, FilterCriteria(date_range=MARCH)))
    assert lifetime_counts(records, index)["old student"] == 1


def test_filters_on_resolved_student(records, index):
    assert ids(filter_records(records, FilterCriteria(gender="male"), index)) == ["r6", "r2"]
    assert ids(filter_records(records, FilterCriteria(status="Informed"), index)) == ["r6"]
    assert ids(filter_records(records, FilterCriteria(class_id="cse-2a"), index)) == ["r7", "r5", "r4", "r3"]
    assert ids(filter_records(records, FilterCriteria(department_id="unknown"), index)) == []


def test_unresolved_record_falls_back_to_stored_names(records, index):
    # r1 belongs to a student that no longer exists; it was filed under ECE / II.
    assert ids(filter_records(records, FilterCriteria(department_id="ece"), index)) == ["r6", "r1"]
    assert ids(filter_records(records, FilterCriteria(class_id="ece-2"), index)) == ["r6", "r1"]
    assert ids(filter_records(records, FilterCriteria(class_id="mech-2"), index)) == ["r8"]


def test_search_matches_name_or_register_number(records, index):
    assert ids(filter_records(records, FilterCriteria(search_text="reg002"), index)) == ["r6"]
    assert ids(filter_records(records, FilterCriteria(search_text="ASHA"), index)) == ["r7", "r5", "r4", "r3"]


def test_lifetime_count_ignores_the_date_filter(records, index):
    assert lifetime_late_count(records, "s1", index) == 4
    assert lifetime_late_count(records, "Asha Rao", index) == 4
    # Without reference data only exact ids line up.
    assert lifetime_late_count(records, "s1") == 2

    march = {row.record.id: row for row in build_rows(records, FilterCriteria(date_range=MARCH), index)}
    tenth = {
        row.record.id: row
        for row in build_rows(records, FilterCriteria(date_range=DateRange(from_date=date(2025, 3, 10))), index)
    }
    assert march["r7"].lifetime_count == tenth["r7"].lifetime_count == 4
    assert march["r7"].in_period_count == 4
    assert tenth["r7"].in_period_count == 2


def test_running_count_numbers_records_in_time_order(records, index):
    running = running_counts_in_period(records, MARCH, index)

    assert [running[i] for i in ("r3", "r4", "r5", "r7")] == [1, 2, 3, 4]
    assert running["r6"] == 1
    assert "r1" not in running
    assert period_counts(records, MARCH, index)["s1"] == 4


def test_warning_only_above_threshold(records, index):
    rows = {row.record.id: row for row in build_rows(records, FilterCriteria(date_range=MARCH), index)}

    assert rows["r7"].warning is True
    assert rows["r5"].warning is False
    assert exceeds_late_threshold(3) is False
    assert exceeds_late_threshold(4) is True
    assert exceeds_late_threshold(2, threshold=1) is True

    strict = build_rows(records, FilterCriteria(date_range=MARCH), index, threshold=10)
    assert not any(row.warning for row in strict)


def test_rows_are_numbered_newest_first(records, index):
    rows = build_rows(records, FilterCriteria(date_range=MARCH), index)

    assert [row.serial for row in rows] == list(range(1, 8))
    assert ids(row.record for row in rows) == ["r8", "r7", "r6", "r5", "r4", "r3", "r2"]
    assert rows[1].mentor == "Dr. Kumar"


def test_sort_is_stable_for_equal_timestamps(entry):
    same = datetime(2025, 3, 10, 9, 0)
    first = entry("x1", "Asha Rao", same)
    second = entry("x2", "Amit Shah", same)
    later = entry("x3", "Zara Khan", datetime(2025, 3, 10, 10, 0))

    assert ids(sort_records([first, second, later])) == ["x3", "x1", "x2"]
    assert ids(sort_records([first, second, later], SortField.TIMESTAMP, SortDirection.ASC)) == ["x1", "x2", "x3"]


def test_sort_puts_missing_values_last(records, index):
    assert ids(sort_records(records))[-1] == "r1"
    by_mentor = sort_records(records, SortField.MENTOR, SortDirection.ASC, index=index)
    assert ids(by_mentor) == ["r7", "r5", "r4", "r3", "r2", "r6", "r8", "r1"]


def test_sort_by_lifetime_count(records, index):
    ordered = sort_records(records, SortField.LIFETIME_COUNT, SortDirection.DESC, index=index)
    assert ids(ordered) == ["r7", "r5", "r4", "r3", "r8", "r6", "r2", "r1"]


def test_group_count_orders_by_count_then_key(entry):
    recs = [
        entry("a", "A", None, department_name="MECH"),
        entry("b", "B", None, department_name="ECE"),
        entry("c", "C", None, department_name="CSE"),
        entry("d", "D", None, department_name="MECH"),
    ]
    groups = group_count(recs, lambda r: r.department_name)
    assert [(g.key, g.count) for g in groups] == [("MECH", 2), ("CSE", 1), ("ECE", 1)]


def test_group_count_keeps_mixed_key_types_apart(entry):
    recs = [entry("a", "A", datetime(2025, 3, 10, 9, 0)), entry("b", "B", None)]
    groups = group_count(recs, lambda r: r.timestamp.date() if r.timestamp else "undated")
    assert [g.key for g in groups] == [date(2025, 3, 10), "undated"]


def test_day_series_is_dense(entry):
    recs = [entry("d1", "Asha Rao", datetime(2025, 1, 2, 10, 0))]
    span = DateRange(from_date=date(2025, 1, 1), to_date=date(2025, 1, 3))

    series = count_by_day(recs, span)
    assert [(g.key, g.count) for g in series] == [
        (date(2025, 1, 1), 0),
        (date(2025, 1, 2), 1),
        (date(2025, 1, 3), 0),
    ]
    assert [g.label for g in series] == ["Jan 01", "Jan 02", "Jan 03"]


def test_month_series_spans_year_end(entry):
    recs = [
        entry("m1", "Asha Rao", datetime(2024, 11, 10, 9, 0)),
        entry("m2", "Asha Rao", datetime(2024, 12, 31, 23, 0)),
        entry("m3", "Amit Shah", datetime(2025, 1, 1, 8, 0)),
        entry("m4", "Zara Khan", datetime(2025, 1, 20, 9, 30)),
    ]
    span = DateRange(from_date=date(2024, 11, 15), to_date=date(2025, 2, 3))

    series = count_by_month(recs, span)
    assert [(g.label, g.count) for g in series] == [
        ("Nov 2024", 0),
        ("Dec 2024", 1),
        ("Jan 2025", 2),
        ("Feb 2025", 0),
    ]


def test_top_n_breaks_ties_by_name(records, index):
    top = top_n(records, 10, index=index)

    assert [(o.student_name, o.count) for o in top] == [
        ("Asha Rao", 4),
        ("Amit Shah", 1),
        ("Old Student", 1),
        ("Vihaan Kumar", 1),
        ("Zara Khan", 1),
    ]
    assert [o.rank for o in top] == [1, 2, 3, 4, 5]
    assert [o.student_name for o in top_n(records, 2, index=index)] == ["Asha Rao", "Amit Shah"]


def test_top_n_resolves_stale_student_id(entry, index):
    stale = entry("g1", "Asha Rao", datetime(2025, 3, 10, 9, 0), student_id="ghost",
                  department_name="OLD", class_name="OLD")

    (offender,) = top_n([stale], 10, index=index)
    assert offender.student_id == "s1"
    assert offender.department_name == "CSE"
    assert offender.class_name == "II-A"
    assert offender.mentor == "Dr. Kumar"
    assert offender.resolved is True


def test_top_n_uses_stored_names_for_deleted_students(records, index):
    old = next(o for o in top_n(records, 10, index=index) if o.student_name == "Old Student")
    assert old.resolved is False
    assert (old.department_name, old.class_name) == ("ECE", "II")


def test_top_n_without_student_grouping(records, index):
    top = top_n(records, 10, group_by_student=False, index=index)
    assert (top[0].student_id, top[0].count) == ("s1", 2)
    assert sum(o.count for o in top) == len(records)


def test_empty_input_never_raises():
    criteria = FilterCriteria(date_range=MARCH, department_id="cse", search_text="x")

    assert filter_records([], criteria) == []
    assert group_count([], lambda r: r.department_name) == []
    assert top_n([], 10) == []
    assert sort_records([]) == []
    assert build_rows([], criteria) == []
    assert lifetime_late_count([], "s1") == 0
    assert summarize([], MARCH) == LateSummary()
    empty = aggregate([], criteria)
    assert empty.rows == [] and empty.top_offenders == []
    assert empty.summary == LateSummary()


def test_empty_input_still_gets_a_dense_series():
    span = DateRange(from_date=date(2025, 1, 1), to_date=date(2025, 1, 3))
    result = aggregate([], FilterCriteria(date_range=span))

    assert [(g.key, g.count) for g in result.by_day] == [
        (date(2025, 1, 1), 0),
        (date(2025, 1, 2), 0),
        (date(2025, 1, 3), 0),
    ]
    assert [(g.label, g.count) for g in result.by_month] == [("Jan 2025", 0)]
    assert aggregate([], None).by_day == []


def test_summary_counts_distinct_students(records, index):
    summary = summarize(records, DateRange(from_date=date(2025, 3, 10)), index)

    assert summary.late_students == 2
    assert (summary.boys, summary.girls) == (1, 1)
    assert summary.total_records == 3
    assert [(g.key, g.count) for g in summary.departments] == [("CSE", 2), ("ECE", 1)]


def test_class_strength(students, classes, departments):
    strengths = class_strength(students, classes, departments)

    assert [(s.department_name, s.class_name, s.boys, s.girls, s.total) for s in strengths] == [
        ("CSE", "II-A", 0, 1, 1),
        ("CSE", "III-A", 1, 0, 1),
        ("ECE", "II", 1, 0, 1),
        ("MECH", "II", 0, 1, 1),
    ]


def test_aggregate_over_requested_range(records, index):
    criteria = FilterCriteria(date_range=DateRange(from_date=date(2025, 3, 10), to_date=date(2025, 3, 11)))
    result = aggregate(records, criteria, index)

    assert ids(row.record for row in result.rows) == ["r8", "r7", "r6", "r5"]
    assert [(g.key, g.count) for g in result.by_day] == [(date(2025, 3, 10), 3), (date(2025, 3, 11), 1)]
    assert [g.count for g in result.by_month] == [4]
    assert [(g.key, g.count) for g in result.by_gender] == [("FEMALE", 3), ("MALE", 1)]
    assert result.top_offenders[0].count == 4


def test_aggregate_without_range_uses_data_span(records, index):
    result = aggregate(records, None, index)

    assert len(result.rows) == len(records)
    assert result.by_day[0].key == date(2025, 3, 3)
    assert result.by_day[-1].key == date(2025, 3, 11)
    assert len(result.by_day) == 9
    assert sum(g.count for g in result.by_day) == 7


def test_year_from_class_name():
    assert [year_from_class_name(n) for n in ("I-A", "I (MBA)", "II", "II-B", "III-A", "IV", "IV-C")] == [
        1, 1, 2, 2, 3, 4, 4,
    ]
    assert year_from_class_name("Alumni") is None
    assert year_from_class_name("") is None


def test_batch_strength(students, classes, departments):
    extra = ClassInfo(id="cse-x", department_id="cse", name="Alumni")
    batches = batch_strength(
        students,
        classes + [extra],
        departments,
        {1: "2025-29", 2: "2024-28", 3: "2023-27", 4: "2022-26"},
        {"mech": {1: "2026-27", 2: "2025-26"}},
    )

    assert [(b.batch, b.department_id, b.boys, b.girls, b.total) for b in batches] == [
        ("2025-29", None, 0, 0, 0),
        ("2024-28", None, 1, 1, 2),
        ("2023-27", None, 1, 0, 1),
        ("2022-26", None, 0, 0, 0),
        ("2026-27", "mech", 0, 0, 0),
        ("2025-26", "mech", 0, 1, 1),
    ]
    assert [(c.department_name, c.class_name) for c in batches[1].classes] == [("CSE", "II-A"), ("ECE", "II")]
    assert all(c.class_id != "cse-x" for b in batches for c in b.classes)
