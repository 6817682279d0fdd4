"""Secret provider interface and registry."""
from typing import Callable, Dict, Optional, Protocol


class SecretProvider(Protocol):
    """Fetches secret values from an authenticated remote service."""

    def check_session(self, account: str) -> None:
        """Raise UnauthenticatedError unless a session for `account` is active."""
        ...

    def resolve(self, account: str, path: str) -> str:
        """
        Resolve a provider locator to its value.

        Raises:
            UnauthenticatedError, SecretNotFoundError, EmptyResultError, TransientError
        """
        ...


def _onepassword() -> SecretProvider:
    from .op_client import OnePasswordClient
    return OnePasswordClient()


def _gcp() -> SecretProvider:
    from .gcp_client import GCPSecretClient
    return GCPSecretClient()


# Imported lazily so a 1Password-only setup never initializes the GCP SDK
PROVIDER_FACTORIES: Dict[str, Callable[[], SecretProvider]] = {
    "1password": _onepassword,
    "gcp": _gcp,
}


class ProviderRegistry:
    """Creates provider clients on first use, one per provider name."""

    def __init__(self, factories: Optional[Dict[str, Callable[[], SecretProvider]]] = None):
        self._factories = dict(factories or PROVIDER_FACTORIES)
        self._instances: Dict[str, SecretProvider] = {}

    def get(self, provider: str) -> SecretProvider:
        if provider not in self._instances:
            try:
                factory = self._factories[provider]
            except KeyError:
                raise ValueError(f"Unsupported provider: {provider}")
            self._instances[provider] = factory()
        return self._instances[provider]
