"""
Binary auth gate over the persisted login flag.

The gate is only enabled when a credential is configured; otherwise every
caller is treated as authenticated.
"""

from __future__ import annotations

import hmac
import logging
import typing

from .storage import AUTH_SLOT, SlotStorage

logger = logging.getLogger(__name__)


class AuthGate:
    def __init__(
        self,
        storage: SlotStorage,
        email: typing.Optional[str] = None,
        password: typing.Optional[str] = None,
    ):
        self._storage = storage
        self._email = email or ""
        self._password = password or ""

    @property
    def enabled(self) -> bool:
        return bool(self._email and self._password)

    def is_authenticated(self) -> bool:
        if not self.enabled:
            return True
        return self._storage.load_flag(AUTH_SLOT)

    def login(self, email: str, password: str) -> bool:
        """Set the login flag when the credential matches; return whether it did."""
        if not self.enabled:
            return True
        ok = hmac.compare_digest(email.strip().lower(), self._email.strip().lower()) and \
            hmac.compare_digest(password, self._password)
        if ok:
            self._storage.save_flag(AUTH_SLOT, True)
            logger.info("Login accepted")
        else:
            logger.warning(f"Login rejected for {email!r}")
        return ok

    def logout(self) -> None:
        self._storage.clear(AUTH_SLOT)
        logger.info("Logged out")
