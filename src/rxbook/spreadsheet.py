"""
Spreadsheet codec: patient records ⇄ Excel workbooks.

Export writes one row per record, in store order, to a 'Patient Records'
sheet. The prescription image itself is never written; a derived
'Has Prescription Image' column (Yes/No) records only its presence.

Import reads the first sheet and turns each row into a candidate
PatientRecord with a freshly minted id. Declared cell policy:
  - a missing column or blank cell becomes ""
  - integral numbers become integer text (9999999999.0 → "9999999999")
  - date cells become ISO dates
  - anything else is str(value).strip()
  - the Prescription Image cell is kept as written (no trimming)
Formats (dates, prices) are not validated here.
"""

from __future__ import annotations

import datetime
import io
import logging
import pathlib
import typing
import zipfile
from collections import namedtuple

import pandas as pd
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.utils.exceptions import InvalidFileException
from stairval.notepad import Notepad, create_notepad

from .config import DEFAULT_EXPORT_PREFIX
from .errors import ImportParseFailed
from .eye import EyeMeasurement
from .record import PatientRecord, new_record_id

logger = logging.getLogger(__name__)

SHEET_NAME = "Patient Records"

# Exact header strings, in export order
EXPORT_COLUMNS = [
    "Date",
    "Patient Name",
    "Mobile Number",
    "Right Eye Sphere",
    "Right Eye Cylinder",
    "Right Eye Axis",
    "Right Eye Add",
    "Left Eye Sphere",
    "Left Eye Cylinder",
    "Left Eye Axis",
    "Left Eye Add",
    "Frame Price",
    "Glass Price",
    "Remarks",
    "Has Prescription Image",
]

# Optional import-only column carrying the raw image payload text
IMAGE_COLUMN = "Prescription Image"
HAS_IMAGE_COLUMN = "Has Prescription Image"

# Columns that feed record fields on import (the derived Yes/No column does not)
IMPORT_COLUMNS = [c for c in EXPORT_COLUMNS if c != HAS_IMAGE_COLUMN]

# Flat record attribute → column header
TEXT_COLUMN_MAP = {
    "date": "Date",
    "patient_name": "Patient Name",
    "mobile_number": "Mobile Number",
    "frame_price": "Frame Price",
    "glass_price": "Glass Price",
    "remarks": "Remarks",
}

# Eye attribute → column header suffix
EYE_COLUMN_SUFFIXES = {
    "sphere": "Sphere",
    "cylinder": "Cylinder",
    "axis": "Axis",
    "add": "Add",
}

DecodedSheet = namedtuple("DecodedSheet", ["sheet_name", "candidates", "notepad"])


# --------------------------------------------------------------------------
# Export
# --------------------------------------------------------------------------


def record_to_row(record: PatientRecord) -> dict[str, str]:
    """
    One export row, keyed in EXPORT_COLUMNS order. Control characters that
    a worksheet cannot hold are dropped from the text.
    """
    row = {header: getattr(record, attr) for attr, header in TEXT_COLUMN_MAP.items()}
    for side, eye in (("Right", record.right_eye), ("Left", record.left_eye)):
        for attr, suffix in EYE_COLUMN_SUFFIXES.items():
            row[f"{side} Eye {suffix}"] = getattr(eye, attr)
    row[HAS_IMAGE_COLUMN] = "Yes" if record.has_image else "No"
    return {column: ILLEGAL_CHARACTERS_RE.sub("", row[column]) for column in EXPORT_COLUMNS}


def records_to_frame(records: typing.Sequence[PatientRecord]) -> pd.DataFrame:
    """One row per record in the given order, columns exactly EXPORT_COLUMNS."""
    return pd.DataFrame([record_to_row(r) for r in records], columns=EXPORT_COLUMNS)


def export_filename(prefix: str = DEFAULT_EXPORT_PREFIX, today: typing.Optional[datetime.date] = None) -> str:
    today = today or datetime.date.today()
    return f"{prefix}_{today.isoformat()}.xlsx"


def _write_frame(df: pd.DataFrame, target) -> None:
    with pd.ExcelWriter(target, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=SHEET_NAME, index=False)
        # openpyxl stores any string starting with "=" as a formula; keep it as text
        for row in writer.sheets[SHEET_NAME].iter_rows():
            for cell in row:
                if isinstance(cell.value, str) and cell.value.startswith("="):
                    cell.data_type = "s"


def write_workbook(
    records: typing.Sequence[PatientRecord],
    directory: typing.Union[str, pathlib.Path],
    prefix: str = DEFAULT_EXPORT_PREFIX,
    today: typing.Optional[datetime.date] = None,
) -> pathlib.Path:
    """Write the export workbook into `directory` and return its path."""
    out_dir = pathlib.Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / export_filename(prefix, today)
    _write_frame(records_to_frame(records), path)
    logger.info(f"Exported {len(records)} records to {path}")
    return path


def workbook_bytes(records: typing.Sequence[PatientRecord]) -> bytes:
    """The export workbook as an in-memory .xlsx document."""
    buffer = io.BytesIO()
    _write_frame(records_to_frame(records), buffer)
    return buffer.getvalue()


# --------------------------------------------------------------------------
# Import
# --------------------------------------------------------------------------


def _cell_text(value: typing.Any) -> str:
    """
    Normalize one cell to text:
    - None, NaN, NaT and blank strings → ""
    - datetimes/dates → 'YYYY-MM-DD'
    - integral floats → integer text, other numbers → str()
    - strings are trimmed
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (datetime.datetime, datetime.date, pd.Timestamp)):
        if pd.isna(value):
            return ""
        if isinstance(value, datetime.datetime):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, int):
        return str(value)
    return str(value).strip()


def _open_workbook(source) -> pd.ExcelFile:
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    try:
        excel = pd.ExcelFile(source, engine="openpyxl")
    except FileNotFoundError as e:
        raise ImportParseFailed(f"File not found: {e.filename}") from e
    except (zipfile.BadZipFile, InvalidFileException, KeyError, ValueError, OSError) as e:
        raise ImportParseFailed(f"Not a readable Excel workbook: {e}") from e
    if not excel.sheet_names:
        raise ImportParseFailed("The workbook contains no sheets")
    return excel


def read_first_sheet(source) -> tuple[str, pd.DataFrame]:
    """
    Read the first worksheet with every cell kept as its raw Python value.
    `dtype=object` disables numeric inference, so text like '-2.50' or a
    leading-zero mobile number survives unchanged.
    """
    excel = _open_workbook(source)
    sheet_name = excel.sheet_names[0]
    try:
        df = pd.read_excel(excel, sheet_name=sheet_name, header=0, dtype=object, na_filter=False)
    except (KeyError, ValueError, TypeError, IndexError) as e:
        raise ImportParseFailed(f"Sheet {sheet_name!r} could not be read: {e}") from e

    # CLEAN headers: strip surrounding whitespace only, names are matched exactly
    df.columns = [str(c).strip() for c in df.columns]
    return sheet_name, df


def _image_text(value: typing.Any) -> str:
    """The image payload is kept literally; only an all-blank cell counts as absent."""
    if isinstance(value, str):
        return value if value.strip() else ""
    return _cell_text(value)


def parse_row(
    row: typing.Mapping[str, typing.Any],
    id_factory: typing.Callable[[], str] = new_record_id,
) -> typing.Optional[PatientRecord]:
    """
    Map a single sheet row to a candidate record.
    Returns None when every schema cell in the row is blank.
    """
    cells = {column: _cell_text(row.get(column)) for column in IMPORT_COLUMNS}
    image = _image_text(row.get(IMAGE_COLUMN))
    if not any(cells.values()) and not image:
        return None

    def eye(side: str) -> EyeMeasurement:
        return EyeMeasurement(**{
            attr: cells[f"{side} Eye {suffix}"]
            for attr, suffix in EYE_COLUMN_SUFFIXES.items()
        })

    return PatientRecord(
        id=id_factory(),
        right_eye=eye("Right"),
        left_eye=eye("Left"),
        prescription_image=image or None,
        **{attr: cells[header] for attr, header in TEXT_COLUMN_MAP.items()},
    )


def decode_frame(
    df: pd.DataFrame,
    sheet_name: str,
    notepad: Notepad,
    id_factory: typing.Callable[[], str] = new_record_id,
) -> list[PatientRecord]:
    """
    Map each row to a candidate record, in sheet order.
    Schema deviations (missing or unknown columns, blank rows) are warnings;
    missing columns default to "".
    """
    have = set(df.columns)
    missing = [c for c in IMPORT_COLUMNS if c not in have]
    if missing:
        notepad.add_warning(f"Sheet {sheet_name!r}: missing columns default to empty: {missing}")
    known = set(EXPORT_COLUMNS) | {IMAGE_COLUMN}
    unknown = sorted(c for c in have if c not in known)
    if unknown:
        notepad.add_warning(f"Sheet {sheet_name!r}: ignoring unknown columns: {unknown}")

    candidates: list[PatientRecord] = []
    for index, row in enumerate(df.to_dict(orient="records")):
        # +2: one for the header row, one for 1-based sheet rows
        sheet_row = index + 2
        try:
            candidate = parse_row(row, id_factory)
        except (ValueError, TypeError) as e:
            notepad.add_error(f"Sheet {sheet_name!r}, row {sheet_row}: {e}")
            continue
        if candidate is None:
            notepad.add_warning(f"Sheet {sheet_name!r}, row {sheet_row}: blank row skipped")
            continue
        candidates.append(candidate)
    return candidates


def decode_workbook(
    source,
    id_factory: typing.Callable[[], str] = new_record_id,
) -> DecodedSheet:
    """
    Parse the first sheet of a workbook (path, file-like object or bytes)
    into candidate records. Raises ImportParseFailed if the document
    cannot be read at all.
    """
    sheet_name, df = read_first_sheet(source)
    notepad = create_notepad(sheet_name)
    candidates = decode_frame(df, sheet_name, notepad, id_factory)
    logger.debug(f"Decoded {len(candidates)} candidate rows from sheet {sheet_name!r}")
    return DecodedSheet(sheet_name, candidates, notepad)
