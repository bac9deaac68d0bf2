"""
Error types raised by the record store, its storage and the import path.
"""


class RecordError(RuntimeError):
    """Base class for every rxbook failure reported to the user."""


class DuplicateMobile(RecordError):
    """Another record already uses this mobile number."""

    def __init__(self, mobile_number: str, existing_id: str):
        self.mobile_number = mobile_number
        self.existing_id = existing_id
        super().__init__(
            f"Mobile number {mobile_number!r} is already used by record {existing_id!r}"
        )


class NotFound(RecordError):
    """No record has this id."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"No record with id {record_id!r}")


class InvalidRecord(RecordError):
    """A draft failed the form-level checks (required fields, date, prices)."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class LoadFailed(RecordError):
    """Persisted state exists but cannot be decoded."""

    def __init__(self, slot: str, reason: str):
        self.slot = slot
        self.reason = reason
        super().__init__(f"Could not load slot {slot!r}: {reason}")


class PersistenceError(RecordError):
    """Writing a durable slot failed; the in-memory change was not applied."""

    def __init__(self, slot: str, reason: str):
        self.slot = slot
        self.reason = reason
        super().__init__(f"Could not save slot {slot!r}: {reason}")


class ImportParseFailed(RecordError):
    """The uploaded workbook could not be read; nothing was imported."""


class ImportInProgress(RecordError):
    """Another import is still running."""
