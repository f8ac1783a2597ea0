"""
Crucible Secrets - Encryption password store.

Looks up the state-encryption password of an app in the system keyring
(macOS Keychain, Windows Credential Manager, Linux Secret Service) with an
in-memory fallback when no working backend is available.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import keyring
from keyring.errors import KeyringError, PasswordDeleteError
from loguru import logger

# Keyring service holding every app password
SERVICE_NAME = "crucible"


def password_key(app_name: str) -> str:
    """Keyring entry name holding the password of ``app_name``."""
    return f"password:{app_name}"


@dataclass
class PasswordStore:
    """
    Password storage for state encryption.

    Backed by the system keyring when a working backend exists, by a
    process-local dict otherwise.
    """

    _keyring_available: bool = field(default=False, init=False)
    _memory_store: dict[str, str] = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        """Probe the keyring once; later calls never fall back mid-run."""
        self._keyring_available = self._check_keyring()
        if not self._keyring_available:
            logger.debug("⚠️ Keyring unavailable - passwords kept in memory only")

    def _check_keyring(self) -> bool:
        """Round-trip a throwaway entry through the keyring backend."""
        test_key = "__crucible_test__"
        test_value = "test_value"
        try:
            keyring.set_password(SERVICE_NAME, test_key, test_value)
            result = keyring.get_password(SERVICE_NAME, test_key)
            keyring.delete_password(SERVICE_NAME, test_key)
        except (KeyringError, RuntimeError) as e:
            logger.debug(f"Keyring test failed: {e}")
            return False
        return result == test_value

    @property
    def is_secure(self) -> bool:
        """True when passwords survive the process (system keyring)."""
        return self._keyring_available

    def set(self, app_name: str, password: str) -> None:
        """Store the password of an app."""
        name = password_key(app_name)
        if self._keyring_available:
            keyring.set_password(SERVICE_NAME, name, password)
        else:
            self._memory_store[name] = password
        logger.debug(f"🔒 Password for '{app_name}' stored")

    def get(self, app_name: str) -> str | None:
        """Retrieve the password of an app, or None."""
        name = password_key(app_name)
        if self._keyring_available:
            return keyring.get_password(SERVICE_NAME, name)
        return self._memory_store.get(name)

    def remove(self, app_name: str) -> bool:
        """Remove the password of an app. Returns False if it was not stored."""
        name = password_key(app_name)
        if not self._keyring_available:
            return self._memory_store.pop(name, None) is not None
        try:
            keyring.delete_password(SERVICE_NAME, name)
        except PasswordDeleteError:
            return False
        logger.debug(f"🔒 Password for '{app_name}' removed")
        return True


_instance: PasswordStore | None = None


def get_password_store() -> PasswordStore:
    """Get password store singleton."""
    global _instance
    if _instance is None:
        _instance = PasswordStore()
    return _instance


def reset_password_store() -> None:
    """Reset singleton (for tests)."""
    global _instance
    _instance = None
