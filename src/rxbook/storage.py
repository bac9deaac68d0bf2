"""
Durable key-value slots backed by JSON files.

Each slot is one file, <root>/<key>.json, always rewritten whole:
- RECORDS_SLOT holds the full patient record collection
- AUTH_SLOT holds the boolean login flag used by the auth gate

Writes go to a temporary file in the same directory and are moved into
place with os.replace, so a crash never leaves a half-written slot.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import typing
from datetime import datetime
from pathlib import Path

from .errors import LoadFailed, PersistenceError
from .record import PatientRecord

logger = logging.getLogger(__name__)

RECORDS_SLOT = "patientRecords"
AUTH_SLOT = "isAuthenticated"


class SlotStorage:
    """
    The Persistence Adapter: whole-collection load/save plus small flag slots.
    Exclusively owns the files under `root`.
    """

    def __init__(self, root: typing.Union[str, Path]):
        self.root = Path(root).expanduser()
        # serialized text of the last successful write, per slot
        self._last_written: dict[str, str] = {}

    def slot_path(self, key: str) -> Path:
        return self.root / f"{key}.json"

    # ---- record collection ---------------------------------------------------

    def load(self) -> list[PatientRecord]:
        """
        Return the persisted collection, or [] when nothing was saved yet.
        Raises LoadFailed when the slot exists but is malformed.
        """
        raw = self._read_text(RECORDS_SLOT)
        if raw is None:
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise LoadFailed(RECORDS_SLOT, f"invalid JSON ({e})") from e
        if not isinstance(payload, list):
            raise LoadFailed(RECORDS_SLOT, f"expected a list, found {type(payload).__name__}")

        records: list[PatientRecord] = []
        for index, item in enumerate(payload):
            try:
                records.append(PatientRecord.from_dict(item))
            except (ValueError, TypeError) as e:
                raise LoadFailed(RECORDS_SLOT, f"record {index}: {e}") from e

        self._last_written[RECORDS_SLOT] = raw
        logger.debug(f"Loaded {len(records)} records from {self.slot_path(RECORDS_SLOT)}")
        return records

    def save(self, records: typing.Sequence[PatientRecord]) -> None:
        """Persist the entire collection. Raises PersistenceError on I/O failure."""
        text = json.dumps([r.to_dict() for r in records], ensure_ascii=False, indent=2)
        self._write_text(RECORDS_SLOT, text)

    def quarantine(self, key: str = RECORDS_SLOT) -> typing.Optional[Path]:
        """
        Move an unreadable slot file aside as <key>.corrupt-<timestamp>.json so
        the next write cannot overwrite it. Returns the new path, if any.
        """
        path = self.slot_path(key)
        if not path.exists():
            return None
        stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        target = path.with_name(f"{key}.corrupt-{stamp}.json")
        try:
            os.replace(path, target)
        except OSError as e:
            logger.error(f"Could not move corrupt slot {path} aside: {e}")
            return None
        self._last_written.pop(key, None)
        logger.warning(f"Moved unreadable slot {path} to {target}")
        return target

    # ---- boolean flags -------------------------------------------------------

    def load_flag(self, key: str) -> bool:
        raw = self._read_text(key)
        if raw is None:
            return False
        try:
            return json.loads(raw) is True
        except json.JSONDecodeError:
            logger.warning(f"Ignoring malformed flag slot {key!r}")
            return False

    def save_flag(self, key: str, value: bool) -> None:
        self._write_text(key, json.dumps(bool(value)))

    def clear(self, key: str) -> None:
        path = self.slot_path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceError(key, str(e)) from e
        self._last_written.pop(key, None)

    # ---- file helpers --------------------------------------------------------

    def _read_text(self, key: str) -> typing.Optional[str]:
        path = self.slot_path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise LoadFailed(key, str(e)) from e

    def _write_text(self, key: str, text: str) -> None:
        if self._last_written.get(key) == text and self.slot_path(key).exists():
            logger.debug(f"Slot {key!r} unchanged; skipping write")
            return

        path = self.slot_path(key)
        tmp_name = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.root)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(key, str(e)) from e

        self._last_written[key] = text
        logger.debug(f"Wrote slot {key!r} to {path}")
