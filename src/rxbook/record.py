"""
Patient record domain model.

Defines RecordDraft (a record before the store assigns it an id) and
PatientRecord (a stored record), plus the interchange (de)serialization
used for the persisted collection.

Interchange field names are camelCase and fixed:
    id, date, patientName, mobileNumber, rightEye{sphere,cylinder,axis,add},
    leftEye{sphere,cylinder,axis,add}, framePrice, glassPrice, remarks,
    prescriptionImage (omitted when absent)
"""

from __future__ import annotations

import dataclasses
import typing
import uuid
from dataclasses import dataclass, field
from datetime import date as _date

from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from .eye import EyeMeasurement, as_text

# Python attribute → interchange key, for the flat text fields
_TEXT_FIELD_KEYS = {
    "date": "date",
    "patient_name": "patientName",
    "mobile_number": "mobileNumber",
    "frame_price": "framePrice",
    "glass_price": "glassPrice",
    "remarks": "remarks",
}

# Fields the entry form marks as required, with their display labels
REQUIRED_FIELDS = {
    "date": "Date",
    "patient_name": "Patient Name",
    "mobile_number": "Mobile Number",
    "remarks": "Remarks",
}

_PRICE_FIELDS = {
    "frame_price": "Frame Price",
    "glass_price": "Glass Price",
}


def new_record_id() -> str:
    return uuid.uuid4().hex


def _check_text_fields(obj) -> None:
    for attr in _TEXT_FIELD_KEYS:
        val = getattr(obj, attr)
        if not isinstance(val, str):
            raise ValueError(f"{attr} must be a string, got {type(val).__name__}")
    for attr in ("right_eye", "left_eye"):
        if not isinstance(getattr(obj, attr), EyeMeasurement):
            raise ValueError(f"{attr} must be an EyeMeasurement")
    image = obj.prescription_image
    if image is not None and not isinstance(image, str):
        raise ValueError(
            f"prescription_image must be a string or None, got {type(image).__name__}"
        )


@dataclass(frozen=True)
class RecordDraft:
    """
    A patient record without an identifier, as produced by the entry form
    or by a spreadsheet row.

    Attributes:
        date: Examination date, ISO-8601 'YYYY-MM-DD'.
        patient_name: Patient's name.
        mobile_number: Mobile number; the natural unique key of a record.
        right_eye: Right eye refraction.
        left_eye: Left eye refraction.
        frame_price: Frame price as text (empty when not set).
        glass_price: Glass price as text (empty when not set).
        remarks: Free-text remarks.
        prescription_image: Opaque encoded image payload (e.g. a base64 data URL), or None.
    """

    date: str = ""
    patient_name: str = ""
    mobile_number: str = ""
    right_eye: EyeMeasurement = field(default_factory=EyeMeasurement)
    left_eye: EyeMeasurement = field(default_factory=EyeMeasurement)
    frame_price: str = ""
    glass_price: str = ""
    remarks: str = ""
    prescription_image: typing.Optional[str] = None

    def __post_init__(self):
        _check_text_fields(self)

    def problems(self) -> list[str]:
        """
        Form-level checks applied to single-record add/update:
          - Date, Patient Name, Mobile Number and Remarks must be non-empty
          - Date must be an ISO calendar date
          - prices must be empty or a non-negative number
          - no field may hold control characters a workbook cannot store
        """
        found: list[str] = []
        missing = [
            label for attr, label in REQUIRED_FIELDS.items()
            if not getattr(self, attr).strip()
        ]
        if missing:
            found.append(f"Missing required fields: {', '.join(missing)}")

        if self.date.strip():
            try:
                _date.fromisoformat(self.date.strip())
            except ValueError:
                found.append(f"Date {self.date!r} is not a YYYY-MM-DD date")

        for attr, label in _PRICE_FIELDS.items():
            raw = getattr(self, attr).strip()
            if not raw:
                continue
            try:
                value = float(raw)
            except ValueError:
                found.append(f"{label} {raw!r} is not a number")
                continue
            if value < 0:
                found.append(f"{label} must not be negative, got {raw!r}")

        for label, value in _labelled_values(self):
            if ILLEGAL_CHARACTERS_RE.search(value):
                found.append(f"{label} contains control characters")
        return found

    def with_id(self, record_id: str) -> "PatientRecord":
        return PatientRecord(id=record_id, **_field_values(self))


@dataclass(frozen=True)
class PatientRecord:
    """
    A stored patient record. `id` is assigned by the store and never changes.
    Other attributes are as in RecordDraft.
    """

    id: str
    date: str = ""
    patient_name: str = ""
    mobile_number: str = ""
    right_eye: EyeMeasurement = field(default_factory=EyeMeasurement)
    left_eye: EyeMeasurement = field(default_factory=EyeMeasurement)
    frame_price: str = ""
    glass_price: str = ""
    remarks: str = ""
    prescription_image: typing.Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError(f"Invalid record id: {self.id!r}")
        _check_text_fields(self)

    @property
    def has_image(self) -> bool:
        return bool(self.prescription_image)

    def to_draft(self) -> RecordDraft:
        values = _field_values(self)
        values.pop("id")
        return RecordDraft(**values)

    def to_dict(self) -> dict[str, typing.Any]:
        """Serialize to the interchange shape (camelCase keys)."""
        data: dict[str, typing.Any] = {"id": self.id}
        for attr, key in _TEXT_FIELD_KEYS.items():
            data[key] = getattr(self, attr)
        data["rightEye"] = self.right_eye.to_dict()
        data["leftEye"] = self.left_eye.to_dict()
        if self.prescription_image is not None:
            data["prescriptionImage"] = self.prescription_image
        # keep the documented key order
        ordered = ("id", "date", "patientName", "mobileNumber", "rightEye", "leftEye",
                   "framePrice", "glassPrice", "remarks", "prescriptionImage")
        return {key: data[key] for key in ordered if key in data}

    @classmethod
    def from_dict(cls, data: typing.Mapping[str, typing.Any]) -> "PatientRecord":
        """
        Decode one interchange object. `id` is required; missing text fields
        default to empty strings. Raises ValueError on anything undecodable.
        """
        if not isinstance(data, typing.Mapping):
            raise ValueError(f"Record must be a mapping, got {type(data).__name__}")
        if "id" not in data:
            raise ValueError("Record is missing its 'id'")
        values = {attr: as_text(data.get(key)) for attr, key in _TEXT_FIELD_KEYS.items()}
        return cls(
            id=data["id"],
            right_eye=EyeMeasurement.from_dict(data.get("rightEye") or {}),
            left_eye=EyeMeasurement.from_dict(data.get("leftEye") or {}),
            prescription_image=as_text(data.get("prescriptionImage")) or None,
            **values,
        )


def _field_values(obj) -> dict[str, typing.Any]:
    # shallow copy: eye measurements are frozen and can be shared
    return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}


def _labelled_values(draft: RecordDraft) -> typing.Iterator[tuple[str, str]]:
    labels = {**REQUIRED_FIELDS, **_PRICE_FIELDS}
    for attr in _TEXT_FIELD_KEYS:
        yield labels[attr], getattr(draft, attr)
    for side, eye in (("Right", draft.right_eye), ("Left", draft.left_eye)):
        for attr, value in eye.to_dict().items():
            yield f"{side} Eye {attr.capitalize()}", value
