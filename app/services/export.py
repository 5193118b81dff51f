"""Tabular export of record rows (CSV / Excel) via pandas."""
import io
from typing import Iterable

import pandas as pd

from app.models.analytics import RecordRow

COLUMNS = [
    "S.No.",
    "Student Name",
    "Register No",
    "Department",
    "Class",
    "Date",
    "Time",
    "Status",
    "Marked By",
    "Times Late",
]

CSV_MEDIA_TYPE = "text/csv"
EXCEL_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def rows_to_dataframe(rows: Iterable[RecordRow]) -> pd.DataFrame:
    data = [
        {
            "S.No.": row.serial,
            "Student Name": row.record.student_name,
            "Register No": row.record.register_no,
            "Department": row.department_name,
            "Class": row.class_name,
            "Date": row.record.date,
            "Time": row.record.time,
            "Status": row.record.status.value if row.record.status else "",
            "Marked By": row.record.marked_by,
            "Times Late": row.lifetime_count,
        }
        for row in rows
    ]
    return pd.DataFrame(data, columns=COLUMNS)


def to_csv(df: pd.DataFrame) -> str:
    stream = io.StringIO()
    df.to_csv(stream, index=False)
    return stream.getvalue()


def to_excel(df: pd.DataFrame, sheet_name: str = "Late Records") -> io.BytesIO:
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=sheet_name)
    output.seek(0)
    return output
