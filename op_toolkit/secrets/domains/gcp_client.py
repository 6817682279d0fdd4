"""GCP Secret Manager client wrapper.

Profiles with `provider: gcp` use the GCP project ID as their account and
gcp://<secret>[/<version>] paths.
"""
import logging
from typing import Optional, Tuple

from google.api_core import exceptions as gcp_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import secretmanager

from .errors import (
    EmptyResultError,
    SecretNotFoundError,
    TransientError,
    UnauthenticatedError,
    UndecodableValueError,
)

logger = logging.getLogger(__name__)

GCP_PREFIX = "gcp://"
_REMEDIATION = "Run: gcloud auth application-default login"


def parse_gcp_path(path: str) -> Tuple[str, str]:
    """
    Split gcp://<secret>[/<version>] into (secret, version).

    Raises:
        SecretNotFoundError: If the path has no secret name
    """
    if not path.startswith(GCP_PREFIX):
        raise SecretNotFoundError(f"Not a GCP secret path: {path}", path=path)
    parts = [p for p in path[len(GCP_PREFIX):].split("/") if p]
    if not parts:
        raise SecretNotFoundError(f"GCP secret path has no secret name: {path}", path=path)
    secret = parts[0]
    version = parts[1] if len(parts) > 1 else "latest"
    return secret, version


class GCPSecretClient:
    """Wrapper around GCP Secret Manager client."""

    def __init__(self, client: Optional[secretmanager.SecretManagerServiceClient] = None):
        self._client = client

    @property
    def client(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            try:
                self._client = secretmanager.SecretManagerServiceClient()
            except auth_exceptions.DefaultCredentialsError as e:
                raise UnauthenticatedError("gcp", _REMEDIATION, detail=str(e))
        return self._client

    def check_session(self, account: str) -> None:
        try:
            _ = self.client
        except UnauthenticatedError as e:
            raise UnauthenticatedError(account, e.remediation, detail=e.detail)

    def resolve(self, account: str, path: str) -> str:
        """
        Fetch secret from GCP Secret Manager.

        Args:
            account: GCP project ID
            path: gcp://<secret>[/<version>]

        Returns:
            Secret payload decoded as UTF-8
        """
        secret_name, version = parse_gcp_path(path)
        name = f"projects/{account}/secrets/{secret_name}/versions/{version}"

        try:
            response = self.client.access_secret_version(request={"name": name})
        except UnauthenticatedError as e:
            raise UnauthenticatedError(account, e.remediation, detail=e.detail)
        except gcp_exceptions.NotFound as e:
            raise SecretNotFoundError(f"Secret not found at {path}: {e.message}", path=path)
        except (gcp_exceptions.PermissionDenied, gcp_exceptions.Unauthenticated) as e:
            raise UnauthenticatedError(account, _REMEDIATION, detail=e.message)
        except auth_exceptions.TransportError as e:
            raise TransientError(f"GCP fetch failed for {path}: {e}", path=path)
        except auth_exceptions.GoogleAuthError as e:
            raise UnauthenticatedError(account, _REMEDIATION, detail=str(e))
        except gcp_exceptions.GoogleAPIError as e:
            raise TransientError(f"GCP fetch failed for {path}: {e}", path=path)

        try:
            value = response.payload.data.decode("UTF-8")
        except UnicodeDecodeError:
            raise UndecodableValueError(f"Secret at {path} is not UTF-8 text", path=path)
        if not value:
            raise EmptyResultError(f"Secret at {path} is empty", path=path)
        return value
