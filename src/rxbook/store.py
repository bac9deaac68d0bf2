"""
The record store: the single owner of the in-memory patient collection.

Invariant: no two records share the same non-empty mobile number.

Every successful add/update/delete writes the whole collection through to
storage before returning. A mutation is applied in three steps: build the
new collection, persist it, then swap it in, so a failed write leaves the
store exactly as it was.
"""

from __future__ import annotations

import logging
import threading
import typing

from .errors import DuplicateMobile, InvalidRecord, LoadFailed, NotFound
from .record import PatientRecord, RecordDraft, new_record_id
from .storage import SlotStorage

logger = logging.getLogger(__name__)

Listener = typing.Callable[[typing.Tuple[PatientRecord, ...]], None]


class RecordStore:
    def __init__(
        self,
        storage: SlotStorage,
        id_factory: typing.Optional[typing.Callable[[], str]] = None,
    ):
        """
        Load the persisted collection once. Unreadable state is moved aside,
        the store starts empty and the failure is kept in `load_error`.
        """
        self._storage = storage
        self._new_id = id_factory or new_record_id
        self._lock = threading.RLock()
        self._listeners: list[Listener] = []
        self.load_error: typing.Optional[LoadFailed] = None

        try:
            records = storage.load()
        except LoadFailed as e:
            logger.warning(f"{e}; starting with an empty collection")
            storage.quarantine()
            self.load_error = e
            records = []
        self._records: list[PatientRecord] = list(records)

    # ---- reads ---------------------------------------------------------------

    @property
    def records(self) -> typing.Tuple[PatientRecord, ...]:
        """Snapshot of the collection in store order."""
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def get_by_id(self, record_id: str) -> typing.Optional[PatientRecord]:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def search(self, query: str) -> list[PatientRecord]:
        """
        Empty/whitespace query → every record.
        Otherwise records whose name contains the query (case-insensitive)
        or whose mobile number contains it, in store order.
        """
        if not query or not query.strip():
            return list(self._records)
        needle = query.strip().lower()
        return [
            record for record in self._records
            if needle in record.patient_name.lower() or needle in record.mobile_number
        ]

    # ---- mutations -----------------------------------------------------------

    def add(self, draft: RecordDraft) -> str:
        """
        Insert a new record and return its id.
        Raises InvalidRecord, DuplicateMobile or PersistenceError.
        """
        with self._lock:
            self._validate(draft)
            self._check_unique(draft.mobile_number, exclude_id=None)

            record = draft.with_id(self._mint_id())
            self._commit(self._records + [record])
            logger.info(f"Added record {record.id} for {record.patient_name!r}")
            return record.id

    def update(self, record_id: str, draft: RecordDraft) -> None:
        """
        Replace the record with this id in place, keeping its id and position.
        Raises NotFound, InvalidRecord, DuplicateMobile or PersistenceError.
        """
        with self._lock:
            position = self._position(record_id)
            self._validate(draft)
            self._check_unique(draft.mobile_number, exclude_id=record_id)

            updated = list(self._records)
            updated[position] = draft.with_id(record_id)
            self._commit(updated)
            logger.info(f"Updated record {record_id} for {draft.patient_name!r}")

    def delete(self, record_id: str) -> None:
        """Remove the record with this id. Raises NotFound or PersistenceError."""
        with self._lock:
            position = self._position(record_id)
            removed = self._records[position]
            self._commit(self._records[:position] + self._records[position + 1:])
            logger.info(f"Deleted record {record_id} for {removed.patient_name!r}")

    def add_batch(self, records: typing.Sequence[PatientRecord]) -> int:
        """
        Append records that were already reconciled against this store and
        persist once. Uniqueness is not re-checked here.
        """
        if not records:
            return 0
        with self._lock:
            self._commit(self._records + list(records))
            logger.info(f"Appended {len(records)} imported records")
            return len(records)

    # ---- subscriptions -------------------------------------------------------

    def subscribe(self, listener: Listener) -> typing.Callable[[], None]:
        """
        Call `listener(snapshot)` after every successful mutation.
        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---- internals -----------------------------------------------------------

    def _mint_id(self) -> str:
        existing = {r.id for r in self._records}
        record_id = self._new_id()
        while record_id in existing:
            record_id = self._new_id()
        return record_id

    def _position(self, record_id: str) -> int:
        for index, record in enumerate(self._records):
            if record.id == record_id:
                return index
        raise NotFound(record_id)

    @staticmethod
    def _validate(draft: RecordDraft) -> None:
        problems = draft.problems()
        if problems:
            raise InvalidRecord(problems)

    def _check_unique(self, mobile_number: str, exclude_id: typing.Optional[str]) -> None:
        if not mobile_number:
            return
        for record in self._records:
            if record.id != exclude_id and record.mobile_number == mobile_number:
                raise DuplicateMobile(mobile_number, record.id)

    def _commit(self, new_records: list[PatientRecord]) -> None:
        # persist first; on PersistenceError self._records is untouched
        self._storage.save(new_records)
        self._records = new_records
        snapshot = tuple(new_records)
        for listener in list(self._listeners):
            listener(snapshot)
