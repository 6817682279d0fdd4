"""Exception hierarchy for op-toolkit."""
from typing import Optional


class OpToolkitError(Exception):
    """Base class for all op-toolkit errors."""
    pass


class ConfigError(OpToolkitError):
    """Configuration error exception.

    ``field`` names the offending location (e.g. ``accounts[0].secrets[2].path``)
    when the error comes from validation.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConfigParseError(ConfigError):
    """The config document could not be parsed as YAML."""
    pass


class ConfigNotFoundError(ConfigError):
    """No config file exists at the resolved location."""
    pass


class ProfileNotFoundError(OpToolkitError):
    def __init__(self, profile: str):
        super().__init__(f"Profile '{profile}' not found in config")
        self.profile = profile


class NotDeclaredError(OpToolkitError):
    def __init__(self, profile: str, name: str):
        super().__init__(f"Secret '{name}' not found in profile '{profile}'")
        self.profile = profile
        self.name = name


class WrongKindError(OpToolkitError):
    def __init__(self, profile: str, name: str, expected: str, actual: str):
        super().__init__(
            f"Secret '{name}' in profile '{profile}' is not an {expected} secret (kind: {actual})"
        )
        self.profile = profile
        self.name = name
        self.expected = expected
        self.actual = actual


class ProviderError(OpToolkitError):
    """A secret provider could not return a usable value."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class UnauthenticatedError(ProviderError):
    """No authenticated provider session for the account."""

    def __init__(self, account: str, remediation: str, detail: str = ""):
        message = f"Not signed in to provider account: {account}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.account = account
        self.remediation = remediation
        self.detail = detail


class SecretNotFoundError(ProviderError):
    pass


class EmptyResultError(ProviderError):
    pass


class TransientError(ProviderError):
    pass


class UndecodableValueError(ProviderError):
    """The provider returned a value that is not UTF-8 text."""
    pass


class AgentError(OpToolkitError):
    pass


class AgentUnavailableError(AgentError):
    def __init__(self, message: str = "SSH agent is not running"):
        super().__init__(message)
        self.remediation = 'Start with: eval "$(ssh-agent)"'


class AgentAddFailedError(AgentError):
    def __init__(self, key_name: str, output: str = ""):
        super().__init__(f"Failed to add SSH key '{key_name}' to agent")
        self.key_name = key_name
        self.output = output


class StoreWriteError(OpToolkitError):
    """Writing to the credential store failed. Callers treat this as a warning."""
    pass


class CacheMissError(OpToolkitError):
    """No cached value for (service, account)."""

    def __init__(self, service: str, account: str):
        super().__init__(f"No cached value for '{account}' in '{service}'")
        self.service = service
        self.account = account
