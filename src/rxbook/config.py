"""
Runtime settings, read from the environment.

Environment flags
----------------------------------------
RXBOOK_DATA_DIR        : Directory holding the JSON slots (default ~/.rxbook).
RXBOOK_EXPORT_PREFIX   : Export file name prefix (default "Patient_Records").
RXBOOK_LOGIN_EMAIL     : Clinician login email; with the password, enables the auth gate.
RXBOOK_LOGIN_PASSWORD  : Clinician login password.
"""

from __future__ import annotations

import os
import pathlib
import typing
from dataclasses import dataclass

DEFAULT_DATA_DIR = "~/.rxbook"
DEFAULT_EXPORT_PREFIX = "Patient_Records"


@dataclass
class Settings:
    data_dir: pathlib.Path
    export_prefix: str = DEFAULT_EXPORT_PREFIX
    login_email: typing.Optional[str] = None
    login_password: typing.Optional[str] = None

    @classmethod
    def from_env(cls, environ: typing.Optional[typing.Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        data_dir = env.get("RXBOOK_DATA_DIR", "").strip() or DEFAULT_DATA_DIR
        return cls(
            data_dir=pathlib.Path(data_dir).expanduser(),
            export_prefix=env.get("RXBOOK_EXPORT_PREFIX", "").strip() or DEFAULT_EXPORT_PREFIX,
            login_email=env.get("RXBOOK_LOGIN_EMAIL", "").strip() or None,
            login_password=env.get("RXBOOK_LOGIN_PASSWORD") or None,
        )
