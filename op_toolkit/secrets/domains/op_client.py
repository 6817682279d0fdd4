"""1Password CLI (`op`) client."""
import logging
import subprocess
from typing import List, Optional

from .errors import (
    EmptyResultError,
    SecretNotFoundError,
    TransientError,
    UnauthenticatedError,
    UndecodableValueError,
)

logger = logging.getLogger(__name__)

OP_BINARY = "op"

_UNAUTHENTICATED_MARKERS = (
    "not currently signed in",
    "not signed in",
    "authorization prompt dismissed",
    "session expired",
    "no accounts configured",
)
_NOT_FOUND_MARKERS = (
    "isn't an item",
    "isn't a vault",
    "isn't a field",
    "could not find",
    "not found",
    "no item found",
)


def _remediation(account: str) -> str:
    return f"Run: op signin --account {account}"


class OnePasswordClient:
    """Resolves op:// references through an already signed-in `op` CLI."""

    def __init__(self, binary: str = OP_BINARY):
        self.binary = binary

    def _run(self, args: List[str], path: Optional[str] = None) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                [self.binary] + args,
                capture_output=True, text=True, check=False
            )
        except FileNotFoundError:
            raise TransientError(
                f"1Password CLI '{self.binary}' not found. Install it from https://developer.1password.com/docs/cli/"
            )
        except OSError as e:
            raise TransientError(f"Failed to run 1Password CLI: {e}")
        except UnicodeDecodeError:
            raise UndecodableValueError(f"1Password CLI output for {path or args[0]} is not UTF-8 text", path=path)

    def check_session(self, account: str) -> None:
        """
        Verify the account has an active `op` session.

        Raises:
            UnauthenticatedError: If `op account get` fails for the account
        """
        result = self._run(["account", "get", "--account", account])
        if result.returncode != 0:
            logger.debug(f"op account get failed for {account}: {result.stderr.strip()}")
            raise UnauthenticatedError(account, _remediation(account))

    def resolve(self, account: str, path: str) -> str:
        """
        Read a secret reference with `op read`.

        Args:
            account: 1Password account (sign-in address or ID)
            path: Secret reference, op://vault/item/field

        Returns:
            Secret value without the trailing newline `op` prints
        """
        self.check_session(account)

        result = self._run(["read", path, "--account", account], path=path)
        if result.returncode != 0:
            stderr = result.stderr.strip()
            lowered = stderr.lower()
            if any(marker in lowered for marker in _UNAUTHENTICATED_MARKERS):
                raise UnauthenticatedError(account, _remediation(account), detail=stderr)
            if any(marker in lowered for marker in _NOT_FOUND_MARKERS):
                raise SecretNotFoundError(f"Secret not found at {path}: {stderr}", path=path)
            raise TransientError(
                f"op read failed for {path} (exit {result.returncode}): {stderr or 'no output'}",
                path=path,
            )

        value = result.stdout
        if value.endswith("\n"):
            value = value[:-1]
            if value.endswith("\r"):
                value = value[:-1]
        if not value:
            raise EmptyResultError(f"Secret at {path} is empty", path=path)
        return value
