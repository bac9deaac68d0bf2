"""
Bulk import/export between a RecordStore and Excel workbooks.

Import process:
1) decode the first sheet into candidate records (all-or-nothing on a broken file)
2) reconcile candidates against the records already in the store
3) append the accepted records in one batch, persisted once
"""

from __future__ import annotations

import datetime
import logging
import pathlib
import threading
import typing
from dataclasses import dataclass, field

from .errors import ImportInProgress
from .reconcile import RejectedRow, reconcile
from .spreadsheet import DEFAULT_EXPORT_PREFIX, decode_workbook, write_workbook
from .store import RecordStore

logger = logging.getLogger(__name__)

# at most one import in flight per process
_import_lock = threading.Lock()


@dataclass
class ImportSummary:
    """
    Result of one import.

    Attributes:
        sheet_name: Name of the sheet that was read.
        accepted_count: Records added to the store.
        rejected_count: Rows dropped for empty or duplicate mobile numbers.
        rejections: Details for each dropped row.
        warnings: Schema warnings from decoding (missing/unknown columns, blank rows).
    """

    sheet_name: str
    accepted_count: int
    rejected_count: int
    rejections: list[RejectedRow] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _issue_messages(issues) -> list[str]:
    return [getattr(issue, "message", str(issue)) for issue in issues]


def import_workbook(store: RecordStore, source) -> ImportSummary:
    """
    Import a workbook (path, file-like object or bytes) into `store`.
    Raises ImportParseFailed (store untouched), ImportInProgress or PersistenceError.
    """
    if not _import_lock.acquire(blocking=False):
        raise ImportInProgress("Another import is still running")
    try:
        decoded = decode_workbook(source)
        result = reconcile(decoded.candidates, store.records)
        store.add_batch(result.accepted)
    finally:
        _import_lock.release()

    notepad = decoded.notepad
    warnings = _issue_messages(notepad.warnings()) + _issue_messages(notepad.errors())
    logger.info(
        f"Imported sheet {decoded.sheet_name!r}: {result.accepted_count} accepted, "
        f"{result.rejected_count} rejected"
    )
    return ImportSummary(
        sheet_name=decoded.sheet_name,
        accepted_count=result.accepted_count,
        rejected_count=result.rejected_count,
        rejections=result.rejections,
        warnings=warnings,
    )


def export_workbook(
    store: RecordStore,
    directory: typing.Union[str, pathlib.Path],
    prefix: str = DEFAULT_EXPORT_PREFIX,
    today: typing.Optional[datetime.date] = None,
) -> pathlib.Path:
    """Write every record, in store order, to a dated workbook in `directory`."""
    return write_workbook(store.records, directory, prefix, today)
