"""
credential_store.py — The device's unlock PIN and biometric preference.

Two independent keys:
  settings.pin_key         bcrypt hash of the 6-digit PIN
  settings.biometric_key   "true" / "false"

The very first authenticate() call, before any PIN exists, stores the given
PIN and succeeds; the insert is conditional on the key being absent, so of
two concurrent first unlocks only one sets the PIN. Afterwards authenticate()
only compares; a wrong PIN is a False return, never an exception.

PIN reads are strict: if the store cannot
be read, authenticate() raises StorageUnavailable rather than mistaking the
outage for "no PIN yet" and overwriting the real one.
"""

import logging
import re
from typing import Optional

from verisight.core.config import settings
from verisight.core.security import hash_pin, verify_pin
from verisight.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

PIN_LENGTH = 6
_PIN_RE = re.compile(rf"^\d{{{PIN_LENGTH}}}$")


def is_valid_pin(pin: str) -> bool:
    return bool(_PIN_RE.match(pin or ""))


class CredentialStore:
    def __init__(
        self,
        kv: KeyValueStore,
        pin_key: Optional[str] = None,
        biometric_key: Optional[str] = None,
    ):
        self._kv = kv
        self.pin_key = pin_key or settings.pin_key
        self.biometric_key = biometric_key or settings.biometric_key

    # ── PIN ───────────────────────────────────────────────────────────────────

    async def has_pin(self) -> bool:
        return await self._kv.get(self.pin_key, strict=True) is not None

    async def setup_pin(self, pin: str) -> None:
        """Store a new PIN. Raises ValueError if it is not six digits."""
        if not is_valid_pin(pin):
            raise ValueError(f"PIN must be exactly {PIN_LENGTH} digits")
        await self._kv.set(self.pin_key, hash_pin(pin))
        logger.info("Unlock PIN configured")

    async def authenticate(self, pin: str) -> bool:
        if not is_valid_pin(pin):
            return False

        stored = await self._kv.get(self.pin_key, strict=True)
        if stored is None:
            if await self._kv.set_if_absent(self.pin_key, hash_pin(pin)):
                logger.info("Unlock PIN configured on first unlock")
                return True
            # Another first unlock got there first; check against its PIN.
            stored = await self._kv.get(self.pin_key, strict=True)
            if stored is None:
                return False

        ok = verify_pin(pin, stored)
        if not ok:
            logger.info("Unlock attempt with wrong PIN")
        return ok

    # ── Biometric preference ──────────────────────────────────────────────────

    async def biometric_enabled(self) -> bool:
        return await self._kv.get(self.biometric_key) == "true"

    async def set_biometric(self, enabled: bool) -> None:
        await self._kv.set(self.biometric_key, "true" if enabled else "false")
