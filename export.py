"""
Spreadsheet export of a filtered submission view.
"""

import io
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

import config
from schemas import SubmissionRecord

SHEET_TITLE = "Student Records"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# The raw id is never exported
STUDENT_COLUMNS = (
    "event_name",
    "event_type",
    "organizer",
    "hosting_institution",
    "level",
    "event_date",
    "semester",
    "batch",
    "department",
    "certificate_link",
    "status",
    "last_modified",
    "owner_id",
    "display_name",
    "email",
)
# Staff exports also drop the internal owner identifier
STAFF_COLUMNS = tuple(c for c in STUDENT_COLUMNS if c != "owner_id")


def columns_for(role: str) -> Sequence[str]:
    return STAFF_COLUMNS if role == "staff" else STUDENT_COLUMNS


def project_rows(records: Iterable[SubmissionRecord], columns: Sequence[str]) -> List[Dict[str, Any]]:
    """One flat row per record, same order as given, only the listed columns."""
    rows = []
    for record in records:
        data = record.model_dump()
        rows.append({column: data.get(column) for column in columns})
    return rows


def export_filename(label: str, app_name: Optional[str] = None) -> str:
    safe = re.sub(r'[\\/:*?"<>|]+', "-", label.strip())
    return f"{app_name or config.APP_NAME}_{safe}_Records.xlsx"


def _cell(value: Any) -> Any:
    # Excel has no timezone support
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    # Control characters cannot be stored in a worksheet
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


def write_workbook(rows: Iterable[Dict[str, Any]], columns: Sequence[str]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.append(list(columns))
    for row in rows:
        ws.append([_cell(row.get(column)) for column in columns])
        # Submitted text is data, never a formula
        for cell in ws[ws.max_row]:
            if cell.data_type == "f":
                cell.data_type = "s"

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
