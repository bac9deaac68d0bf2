import datetime

import pandas as pd
import pytest
from stairval.notepad import create_notepad

from rxbook.errors import ImportParseFailed
from rxbook.eye import EyeMeasurement
from rxbook.spreadsheet import (
    EXPORT_COLUMNS,
    SHEET_NAME,
    decode_frame,
    decode_workbook,
    export_filename,
    parse_row,
    record_to_row,
    workbook_bytes,
    write_workbook,
)


def test_export_filename():
    assert export_filename(today=datetime.date(2024, 3, 15)) == "Patient_Records_2024-03-15.xlsx"
    assert export_filename("Clinic", datetime.date(2025, 1, 2)) == "Clinic_2025-01-02.xlsx"


def test_record_to_row_marks_image_presence(draft_factory):
    with_image = draft_factory(prescription_image="data:image/png;base64,AAAA").with_id("a")
    row = record_to_row(with_image)
    assert list(row) == EXPORT_COLUMNS
    assert row["Has Prescription Image"] == "Yes"
    assert row["Right Eye Sphere"] == "-2.50"
    assert row["Left Eye Cylinder"] == ""
    assert "data:image" not in "".join(row.values())

    assert record_to_row(draft_factory().with_id("b"))["Has Prescription Image"] == "No"


def test_write_workbook_layout(tmp_path, draft_factory):
    records = [
        draft_factory().with_id("a"),
        draft_factory(patient_name="Jane Doe", mobile_number="8888888888").with_id("b"),
    ]
    path = write_workbook(records, tmp_path / "out", today=datetime.date(2024, 3, 15))

    assert path.name == "Patient_Records_2024-03-15.xlsx"
    df = pd.read_excel(path, sheet_name=SHEET_NAME, dtype=str, keep_default_na=False)
    assert list(df.columns) == EXPORT_COLUMNS
    assert list(df["Patient Name"]) == ["John Smith", "Jane Doe"]
    assert list(df["Mobile Number"]) == ["9999999999", "8888888888"]


def test_export_of_empty_store_has_headers_only(tmp_path):
    path = write_workbook([], tmp_path, today=datetime.date(2024, 3, 15))
    df = pd.read_excel(path)
    assert list(df.columns) == EXPORT_COLUMNS
    assert df.empty


def test_exported_workbook_decodes_back(draft_factory):
    records = [
        draft_factory().with_id("a"),
        draft_factory(patient_name="Jane Doe", mobile_number="0888888888",
                      prescription_image="data:image/png;base64,AAAA").with_id("b"),
    ]
    decoded = decode_workbook(workbook_bytes(records))

    assert decoded.sheet_name == SHEET_NAME
    assert not decoded.notepad.has_errors(include_subsections=True)
    assert list(decoded.notepad.warnings()) == []
    assert len(decoded.candidates) == 2
    first, second = decoded.candidates
    assert first.id not in {"a", "b"}
    assert first.to_draft() == records[0].to_draft()
    # leading zero survives as text; the image itself is not exported
    assert second.mobile_number == "0888888888"
    assert second.prescription_image is None


def test_numeric_and_date_cells_become_text(workbook_from_rows):
    path = workbook_from_rows([
        {
            "Date": datetime.datetime(2024, 3, 15),
            "Patient Name": "  John Smith ",
            "Mobile Number": 9999999999,
            "Right Eye Axis": 90,
            "Frame Price": 1500.0,
            "Glass Price": 2200.5,
            "Remarks": "ok",
        }
    ])
    (candidate,) = decode_workbook(path).candidates

    assert candidate.date == "2024-03-15"
    assert candidate.patient_name == "John Smith"
    assert candidate.mobile_number == "9999999999"
    assert candidate.right_eye.axis == "90"
    assert candidate.frame_price == "1500"
    assert candidate.glass_price == "2200.5"


def test_missing_columns_default_to_empty_with_warning(workbook_from_rows):
    path = workbook_from_rows([{"Patient Name": "Only Name", "Mobile Number": "123"}])
    decoded = decode_workbook(path)

    (candidate,) = decoded.candidates
    assert candidate.patient_name == "Only Name"
    assert candidate.date == ""
    assert candidate.right_eye == EyeMeasurement()
    warnings = [w.message for w in decoded.notepad.warnings()]
    assert any("missing columns default to empty" in w for w in warnings)


def test_unknown_columns_are_ignored_with_warning(workbook_from_rows):
    path = workbook_from_rows([{"Patient Name": "A", "Mobile Number": "1", "Email": "a@b.c"}])
    decoded = decode_workbook(path)
    warnings = [w.message for w in decoded.notepad.warnings()]
    assert any("ignoring unknown columns: ['Email']" in w for w in warnings)


def test_prescription_image_column_is_carried(workbook_from_rows):
    path = workbook_from_rows([
        {"Patient Name": "A", "Mobile Number": "1", "Prescription Image": "data:image/png;base64,AAAA"},
        {"Patient Name": "B", "Mobile Number": "2", "Prescription Image": ""},
    ])
    first, second = decode_workbook(path).candidates
    assert first.prescription_image == "data:image/png;base64,AAAA"
    assert second.prescription_image is None


def test_blank_rows_are_skipped(workbook_from_rows):
    path = workbook_from_rows(
        [
            {"Patient Name": "A", "Mobile Number": "1"},
            {"Patient Name": "", "Mobile Number": ""},
            {"Patient Name": "B", "Mobile Number": "2"},
        ],
        columns=["Patient Name", "Mobile Number"],
    )
    decoded = decode_workbook(path)
    assert [c.patient_name for c in decoded.candidates] == ["A", "B"]


def test_decode_frame_reports_blank_row_position():
    df = pd.DataFrame(
        [["A", "1"], ["", ""], ["B", "2"]],
        columns=["Patient Name", "Mobile Number"],
    )
    notepad = create_notepad("Visits")

    candidates = decode_frame(df, "Visits", notepad)

    assert [c.mobile_number for c in candidates] == ["1", "2"]
    warnings = [w.message for w in notepad.warnings()]
    assert "Sheet 'Visits', row 3: blank row skipped" in warnings


def test_only_first_sheet_is_read(tmp_path):
    path = tmp_path / "two_sheets.xlsx"
    with pd.ExcelWriter(path, engine="openpyxl") as w:
        pd.DataFrame([{"Patient Name": "First", "Mobile Number": "1"}]).to_excel(w, sheet_name="Visits", index=False)
        pd.DataFrame([{"Patient Name": "Second", "Mobile Number": "2"}]).to_excel(w, sheet_name="Other", index=False)

    decoded = decode_workbook(path)
    assert decoded.sheet_name == "Visits"
    assert [c.patient_name for c in decoded.candidates] == ["First"]


def test_candidates_get_distinct_ids(workbook_from_rows):
    path = workbook_from_rows([{"Mobile Number": "1"}, {"Mobile Number": "1"}])
    first, second = decode_workbook(path).candidates
    assert first.id != second.id


def test_parse_row_of_blank_cells_is_none():
    assert parse_row({"Patient Name": "", "Mobile Number": None}) is None


@pytest.mark.parametrize("payload", [b"", b"this is not a workbook", b"PK\x03\x04broken"])
def test_unreadable_bytes_raise_parse_failed(payload):
    with pytest.raises(ImportParseFailed):
        decode_workbook(payload)


def test_missing_file_raises_parse_failed(tmp_path):
    with pytest.raises(ImportParseFailed):
        decode_workbook(tmp_path / "nope.xlsx")


def test_formula_like_text_survives_export(draft_factory):
    record = draft_factory(
        patient_name="=Smith",
        remarks="=progressive, review in 6 months",
    ).with_id("a")

    (candidate,) = decode_workbook(workbook_bytes([record])).candidates

    assert candidate.patient_name == "=Smith"
    assert candidate.remarks == "=progressive, review in 6 months"


def test_control_characters_are_dropped_on_export(tmp_path, draft_factory):
    # records saved before validation existed may still carry them
    record = draft_factory(remarks="line one\x0bline two").with_id("a")
    assert record_to_row(record)["Remarks"] == "line oneline two"

    path = write_workbook([record], tmp_path, today=datetime.date(2024, 3, 15))
    (candidate,) = decode_workbook(path).candidates
    assert candidate.remarks == "line oneline two"


def test_prescription_image_text_is_kept_literally(workbook_from_rows):
    payload = "  data:image/png;base64,AAAA \n"
    path = workbook_from_rows([{"Patient Name": "A", "Mobile Number": "1", "Prescription Image": payload}])
    (candidate,) = decode_workbook(path).candidates
    assert candidate.prescription_image == payload
