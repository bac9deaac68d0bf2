"""
Notification dispatch: turns store and import outcomes into user-facing
(title, description, severity) messages and hands them to a sink.

The core modules never import this one; the front end calls these builders
with the values and exceptions the core produced.
"""

from __future__ import annotations

import logging
import typing
from collections import namedtuple

from .errors import (
    DuplicateMobile,
    ImportInProgress,
    InvalidRecord,
    LoadFailed,
    NotFound,
    PersistenceError,
    RecordError,
)
from .record import PatientRecord, RecordDraft

logger = logging.getLogger(__name__)

INFO = "info"
WARNING = "warning"
ERROR = "error"

Notification = namedtuple("Notification", ["title", "description", "severity"])

Sink = typing.Callable[[Notification], None]


class Notifier:
    """Fire-and-forget dispatch of notifications to a sink (e.g. a console printer)."""

    def __init__(self, sink: Sink):
        self._sink = sink

    def __call__(self, notification: Notification) -> Notification:
        log = logger.warning if notification.severity == ERROR else logger.debug
        log(f"{notification.title}: {notification.description}")
        self._sink(notification)
        return notification


# ---- record operations -------------------------------------------------------


def record_added(draft: typing.Union[RecordDraft, PatientRecord]) -> Notification:
    return Notification(
        "Record added",
        f"Patient record for {draft.patient_name} has been added",
        INFO,
    )


def record_updated(draft: typing.Union[RecordDraft, PatientRecord]) -> Notification:
    return Notification(
        "Record updated",
        f"Patient record for {draft.patient_name} has been updated",
        INFO,
    )


def record_deleted(record: PatientRecord) -> Notification:
    return Notification(
        "Record deleted",
        f"Patient record for {record.patient_name} has been deleted",
        INFO,
    )


def record_failed(error: RecordError, updating: bool = False) -> Notification:
    """Map a failed add/update/delete to its message."""
    if isinstance(error, DuplicateMobile):
        description = (
            "Another record with this mobile number already exists"
            if updating
            else "A record with this mobile number already exists"
        )
        return Notification("Duplicate mobile number", description, ERROR)
    if isinstance(error, NotFound):
        return Notification("Record not found", str(error), ERROR)
    if isinstance(error, InvalidRecord):
        return Notification("Missing required fields", "; ".join(error.problems), ERROR)
    if isinstance(error, PersistenceError):
        return Notification("Save failed", "There was an error saving your data", ERROR)
    return Notification("Operation failed", str(error), ERROR)


def load_failed(error: LoadFailed) -> Notification:
    return Notification(
        "Error loading records",
        "There was an issue loading your data; starting with an empty record list",
        WARNING,
    )


# ---- import / export ----------------------------------------------------------


def import_succeeded(summary) -> Notification:
    return Notification(
        "Import successful",
        f"{summary.accepted_count} records imported. {summary.rejected_count} skipped "
        f"due to missing or duplicate mobile numbers.",
        INFO,
    )


def import_failed(error: Exception) -> Notification:
    if isinstance(error, ImportInProgress):
        return Notification("Import failed", "Another import is still running", ERROR)
    return Notification("Import failed", "Error parsing the Excel file", ERROR)


def export_succeeded(path) -> Notification:
    return Notification(
        "Export successful",
        f"Patient records exported to {path}. Prescription images are indicated "
        f"but not included due to size limitations.",
        INFO,
    )


def export_failed(error: Exception) -> Notification:
    return Notification("Export failed", "There was an error exporting the data", ERROR)


# ---- auth gate ---------------------------------------------------------------


def login_result(success: bool) -> Notification:
    if success:
        return Notification("Login successful", "Welcome back!", INFO)
    return Notification("Login failed", "Invalid email or password", ERROR)


def logged_out() -> Notification:
    return Notification("Logged out", "You have been logged out successfully", INFO)


def login_required() -> Notification:
    return Notification("Login required", "Run 'rxbook login' first", ERROR)
