"""Credential store backed by the host keyring.

Cached secrets live under service "<prefix>-<profile>" with the secret name as
the account. The concrete backend (macOS Keychain, Secret Service, Windows
Credential Locker) is whatever `keyring` selects for the host.
"""
import logging
from typing import Optional, Protocol

import keyring
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from .errors import CacheMissError, StoreWriteError

logger = logging.getLogger(__name__)


def service_name(profile: str, prefix: str) -> str:
    """Credential store namespace for a profile."""
    return f"{prefix}-{profile}"


class CredentialStore(Protocol):
    def write(self, service: str, account: str, value: str) -> None: ...

    def read(self, service: str, account: str) -> str: ...

    def delete(self, service: str, account: str) -> None: ...

    def exists(self, service: str, account: str) -> bool: ...


def _check_args(operation: str, **kwargs) -> None:
    missing = [k for k, v in kwargs.items() if not v]
    if missing:
        raise ValueError(f"keychain {operation}: missing required arguments: {', '.join(missing)}")


class KeyringStore:
    """CredentialStore implementation using the `keyring` package."""

    def __init__(self, backend: Optional[KeyringBackend] = None):
        self._backend = backend

    @property
    def backend(self) -> KeyringBackend:
        """Lazy-resolve the keyring backend."""
        if self._backend is None:
            self._backend = keyring.get_keyring()
        return self._backend

    def write(self, service: str, account: str, value: str) -> None:
        """
        Create or update an entry.

        Raises:
            StoreWriteError: If the backend rejects the write
        """
        _check_args("write", service=service, account=account, value=value)
        try:
            self.backend.set_password(service, account, value)
        except KeyringError as e:
            raise StoreWriteError(f"Failed to write '{account}' to keychain service '{service}': {e}")
        logger.debug(f"Cached '{account}' in keychain service '{service}'")

    def read(self, service: str, account: str) -> str:
        """
        Read an entry.

        Raises:
            CacheMissError: If the entry doesn't exist or the backend cannot be read
        """
        _check_args("read", service=service, account=account)
        try:
            value = self.backend.get_password(service, account)
        except KeyringError as e:
            logger.debug(f"Keychain read failed for '{account}' in '{service}': {e}")
            value = None
        if value is None:
            raise CacheMissError(service, account)
        return value

    def delete(self, service: str, account: str) -> None:
        """Delete an entry. Deleting a missing entry is not an error."""
        _check_args("delete", service=service, account=account)
        try:
            self.backend.delete_password(service, account)
        except PasswordDeleteError:
            logger.debug(f"'{account}' not present in keychain service '{service}', nothing to delete")
            return
        logger.debug(f"Deleted '{account}' from keychain service '{service}'")

    def exists(self, service: str, account: str) -> bool:
        if not service or not account:
            return False
        try:
            return self.backend.get_password(service, account) is not None
        except KeyringError:
            return False
