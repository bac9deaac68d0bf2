import pandas as pd
import pytest

from rxbook.eye import EyeMeasurement
from rxbook.record import RecordDraft
from rxbook.storage import SlotStorage
from rxbook.store import RecordStore


def make_draft(**overrides) -> RecordDraft:
    """A complete, valid draft; override any field by keyword."""
    values = dict(
        date="2024-03-15",
        patient_name="John Smith",
        mobile_number="9999999999",
        right_eye=EyeMeasurement(sphere="-2.50", cylinder="-0.50", axis="90", add="+1.00"),
        left_eye=EyeMeasurement(sphere="-2.25", cylinder="", axis="", add="+1.00"),
        frame_price="1500",
        glass_price="2200.50",
        remarks="Progressive lenses",
    )
    values.update(overrides)
    return RecordDraft(**values)


@pytest.fixture
def draft_factory():
    return make_draft


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def storage(data_dir) -> SlotStorage:
    return SlotStorage(data_dir)


@pytest.fixture
def store(storage) -> RecordStore:
    return RecordStore(storage)


@pytest.fixture
def workbook_from_rows(tmp_path):
    """
    Build an .xlsx from a list of row dicts (keys are header strings) and
    return its path. Every cell is written as text unless given as a number.
    """
    counter = {"n": 0}

    def build(rows, columns=None, sheet_name="Patient Records"):
        counter["n"] += 1
        path = tmp_path / f"upload_{counter['n']}.xlsx"
        df = pd.DataFrame(rows, columns=columns)
        with pd.ExcelWriter(path, engine="openpyxl") as w:
            df.to_excel(w, sheet_name=sheet_name, index=False)
        return path

    return build
