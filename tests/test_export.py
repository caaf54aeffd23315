import io
from datetime import datetime, timezone

from openpyxl import load_workbook

from export import (
    SHEET_TITLE,
    STAFF_COLUMNS,
    STUDENT_COLUMNS,
    columns_for,
    export_filename,
    project_rows,
    write_workbook,
)


def test_column_sets():
    assert "id" not in STUDENT_COLUMNS
    assert "owner_id" in STUDENT_COLUMNS
    assert "id" not in STAFF_COLUMNS
    assert "owner_id" not in STAFF_COLUMNS
    assert {"display_name", "email"} <= set(STAFF_COLUMNS)
    assert columns_for("staff") == STAFF_COLUMNS
    assert columns_for("student") == STUDENT_COLUMNS


def test_rows_keep_order_and_names(make_record):
    records = [make_record(id="b", event_name="Second"), make_record(id="a", event_name="First")]
    rows = project_rows(records, STAFF_COLUMNS)

    assert [row["event_name"] for row in rows] == ["Second", "First"]
    assert list(rows[0]) == list(STAFF_COLUMNS)
    assert project_rows(records, STAFF_COLUMNS) == rows


def test_export_filename():
    assert export_filename("CSE", app_name="Trackademic") == "Trackademic_CSE_Records.xlsx"
    assert export_filename("AI/ML", app_name="Trackademic") == "Trackademic_AI-ML_Records.xlsx"


def test_workbook_round_trip(make_record):
    stamp = datetime(2024, 3, 16, 9, 30, tzinfo=timezone.utc)
    records = [make_record(last_modified=stamp), make_record(event_name="Hackathon", last_modified=stamp)]
    content = write_workbook(project_rows(records, STAFF_COLUMNS), STAFF_COLUMNS)

    sheet = load_workbook(io.BytesIO(content))[SHEET_TITLE]
    rows = list(sheet.iter_rows(values_only=True))

    assert rows[0] == STAFF_COLUMNS
    assert len(rows) == 3
    assert rows[2][STAFF_COLUMNS.index("event_name")] == "Hackathon"
    assert rows[1][STAFF_COLUMNS.index("last_modified")] == datetime(2024, 3, 16, 9, 30)


def test_empty_view_still_has_header():
    content = write_workbook([], STUDENT_COLUMNS)
    rows = list(load_workbook(io.BytesIO(content)).active.iter_rows(values_only=True))
    assert rows == [STUDENT_COLUMNS]


def test_control_characters_are_dropped(make_record):
    content = write_workbook(project_rows([make_record(organizer="CSE\x0bDept\x00")], STAFF_COLUMNS), STAFF_COLUMNS)
    sheet = load_workbook(io.BytesIO(content))[SHEET_TITLE]
    assert sheet.cell(row=2, column=STAFF_COLUMNS.index("organizer") + 1).value == "CSEDept"


def test_leading_equals_is_written_as_text(make_record):
    payload = '=HYPERLINK("http://evil.example","x")'
    content = write_workbook(project_rows([make_record(organizer=payload)], STAFF_COLUMNS), STAFF_COLUMNS)

    cell = load_workbook(io.BytesIO(content))[SHEET_TITLE].cell(row=2, column=STAFF_COLUMNS.index("organizer") + 1)
    assert cell.data_type == "s"
    assert cell.value == payload
