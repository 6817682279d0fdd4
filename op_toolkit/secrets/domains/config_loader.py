"""Configuration loader for op-toolkit.

Config file format (version 1):

    version: 1
    accounts:
      - name: work
        account: my-team.1password.com
        secrets:
          - kind: env
            name: GITHUB_TOKEN
            path: op://Work/GitHub/token
          - kind: ssh
            name: github-work
            path: op://Work/GitHub SSH/private key
"""
import os
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigError, ConfigNotFoundError, ConfigParseError
from .models import Config, Profile, SecretDeclaration, SecretKind
from .settings import load_settings

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = (1,)

# provider name -> required locator prefix
PROVIDER_PREFIXES = {
    "1password": "op://",
    "gcp": "gcp://",
}
DEFAULT_PROVIDER = "1password"


def get_config_path() -> Path:
    """
    Get config file path.

    Priority order:
    1. OP_TOOLKIT_CONFIG environment variable
    2. User preference (stored in ~/.config/op-toolkit/preferences.json)
    3. Default location: ~/.config/op-toolkit/config.yml
    """
    return load_settings().config_path


def _not_found_message(config_path: Path) -> str:
    return (
        f"Configuration file not found: {config_path}\n\n"
        "Please set up your config file using one of these methods:\n\n"
        "1. Use the default location:\n"
        f"   mkdir -p {config_path.parent}\n"
        f"   cp /path/to/your/config.yml {config_path}\n\n"
        "2. Point to an existing config file:\n"
        "   optk config set-path /path/to/your/config.yml\n\n"
        "3. Set OP_TOOLKIT_CONFIG=/path/to/your/config.yml\n"
    )


def _require_str(value: Any, field: str, message: str) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigError(message, field=field)
    if not isinstance(value, (str, int)):
        raise ConfigError(f"{message} (expected a string, got {type(value).__name__})", field=field)
    return str(value)


def _parse_secret(raw: Any, profile: str, provider: str, index: int, account_index: int) -> SecretDeclaration:
    field = f"accounts[{account_index}].secrets[{index}]"
    if not isinstance(raw, dict):
        raise ConfigError(f"Secret at account '{profile}' index {index} must be a mapping", field=field)

    kind = _require_str(
        raw.get("kind"), f"{field}.kind",
        f"Secret at account '{profile}' index {index} missing 'kind' field",
    )
    name = _require_str(
        raw.get("name"), f"{field}.name",
        f"Secret at account '{profile}' index {index} missing 'name' field",
    )
    if kind not in (k.value for k in SecretKind):
        raise ConfigError(
            f"Secret '{name}' has invalid kind: {kind}\nValid kinds: env, ssh",
            field=f"{field}.kind",
        )

    path = _require_str(
        raw.get("path"), f"{field}.path",
        f"Secret '{name}' in account '{profile}' missing 'path' field",
    )
    prefix = PROVIDER_PREFIXES[provider]
    if not path.startswith(prefix):
        raise ConfigError(
            f"Secret '{name}' has invalid path: {path}\nPath must start with '{prefix}'",
            field=f"{field}.path",
        )

    return SecretDeclaration(profile=profile, kind=SecretKind(kind), name=name, path=path)


def _parse_account(raw: Any, index: int) -> Profile:
    field = f"accounts[{index}]"
    if not isinstance(raw, dict):
        raise ConfigError(f"Account at index {index} must be a mapping", field=field)

    name = _require_str(raw.get("name"), f"{field}.name", f"Account at index {index} missing 'name' field")
    account = _require_str(raw.get("account"), f"{field}.account", f"Account '{name}' missing 'account' field")

    provider = raw.get("provider") or DEFAULT_PROVIDER
    if provider not in PROVIDER_PREFIXES:
        raise ConfigError(
            f"Account '{name}' has unsupported provider: {provider}\n"
            f"Supported providers: {', '.join(PROVIDER_PREFIXES)}",
            field=f"{field}.provider",
        )

    raw_secrets = raw.get("secrets") or []
    if not isinstance(raw_secrets, list):
        raise ConfigError(f"Account '{name}' field 'secrets' must be a list", field=f"{field}.secrets")

    declarations: List[SecretDeclaration] = []
    seen = set()
    for j, raw_secret in enumerate(raw_secrets):
        declaration = _parse_secret(raw_secret, name, provider, j, index)
        if declaration.name in seen:
            raise ConfigError(
                f"Duplicate secret name '{declaration.name}' in account '{name}'",
                field=f"{field}.secrets[{j}].name",
            )
        seen.add(declaration.name)
        declarations.append(declaration)

    return Profile(name=name, account=account, secrets=tuple(declarations), provider=provider)


def parse_config(document: Any, source: Optional[str] = None) -> Config:
    """
    Validate a parsed config document and build the Config model.

    Args:
        document: Result of yaml.safe_load (or an equivalent mapping)
        source: Where the document was read from, for messages

    Returns:
        Immutable Config

    Raises:
        ConfigError: On the first validation failure; nothing is returned partially
    """
    where = f" at {source}" if source else ""

    if not document:
        raise ConfigError(f"Config file{where} is empty")
    if not isinstance(document, dict):
        raise ConfigError(f"Config file{where} must contain a mapping at the top level")

    version = document.get("version")
    if version is None or version == "":
        raise ConfigError("Config missing 'version' field", field="version")
    try:
        version = int(version)
    except (TypeError, ValueError):
        raise ConfigError(f"Unsupported config version: {version}", field="version")
    if version not in SUPPORTED_VERSIONS:
        raise ConfigError(
            f"Unsupported config version: {version}\n"
            f"Supported versions: {', '.join(str(v) for v in SUPPORTED_VERSIONS)}",
            field="version",
        )

    raw_accounts = document.get("accounts")
    if not raw_accounts:
        raise ConfigError("Config has no accounts defined", field="accounts")
    if not isinstance(raw_accounts, list):
        raise ConfigError("Config field 'accounts' must be a list", field="accounts")

    profiles: List[Profile] = []
    names = set()
    for i, raw_account in enumerate(raw_accounts):
        profile = _parse_account(raw_account, i)
        if profile.name in names:
            raise ConfigError(f"Duplicate account name '{profile.name}'", field=f"accounts[{i}].name")
        names.add(profile.name)
        profiles.append(profile)

    return Config(version=version, profiles=tuple(profiles), source=source)


def load_config(config_path: Optional[Union[str, Path]] = None) -> Config:
    """
    Load and validate configuration from YAML file.

    Args:
        config_path: Explicit path; resolved via get_config_path() when omitted

    Returns:
        Immutable Config

    Raises:
        ConfigNotFoundError: If the config file doesn't exist
        ConfigParseError: If the file is not valid YAML
        ConfigError: If the document fails validation
    """
    # Resolved dynamically on every call, not cached at module level
    path = Path(config_path) if config_path else get_config_path()

    if not os.path.isfile(path):
        raise ConfigNotFoundError(_not_found_message(path))

    try:
        with open(path, 'r') as f:
            document: Dict[str, Any] = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Failed to parse YAML config at {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {path}: {e}")

    config = parse_config(document, source=str(path))

    logger.info(f"Configuration loaded successfully from {path}")
    logger.debug(f"Profiles: {', '.join(config.profile_names())}")
    return config
