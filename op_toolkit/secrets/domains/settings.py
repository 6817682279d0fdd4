"""Runtime settings for op-toolkit.

Each setting is resolved in priority order:
1. OP_TOOLKIT_* environment variable
2. User preference (~/.config/op-toolkit/preferences.json)
3. Built-in default
"""
import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import preferences

logger = logging.getLogger(__name__)

ENV_PREFIX = "OP_TOOLKIT_"

# Settings whose env var is not ENV_PREFIX + KEY
_ENV_NAMES = {
    "config_path": "OP_TOOLKIT_CONFIG",
}

DEFAULT_STORE_PREFIX = "op-secrets"
DEFAULT_PROFILE = "personal"
DEFAULT_SSH_EXPIRATION = "1h"

_TRUE_VALUES = ("1", "true", "yes", "on")


def default_config_path() -> Path:
    return Path.home() / ".config" / "op-toolkit" / "config.yml"


def default_cache_dir() -> Path:
    return Path.home() / ".cache" / "op-toolkit"


@dataclass(frozen=True)
class Settings:
    config_path: Path
    cache_dir: Path
    default_profile: str = DEFAULT_PROFILE
    auto_export: bool = True
    store_prefix: str = DEFAULT_STORE_PREFIX
    ssh_expiration: str = DEFAULT_SSH_EXPIRATION


def env_name(key: str) -> str:
    return _ENV_NAMES.get(key, f"{ENV_PREFIX}{key.upper()}")


def _lookup(key: str) -> Optional[str]:
    env_var = env_name(key)
    env_value = os.getenv(env_var)
    if env_value:
        logger.debug(f"Using {env_var} from environment")
        return env_value

    pref_value = preferences.get_preference(key)
    if pref_value not in (None, ""):
        logger.debug(f"Using '{key}' from preferences")
        return str(pref_value)

    return None


def _as_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def load_settings() -> Settings:
    """
    Resolve settings from environment, preferences and defaults.

    Not cached: changing a preference or env var takes effect on the next call.
    """
    config_path = _lookup("config_path")
    cache_dir = _lookup("cache_dir")
    auto_export = _lookup("auto_export")

    return Settings(
        config_path=Path(config_path).expanduser() if config_path else default_config_path(),
        cache_dir=Path(cache_dir).expanduser() if cache_dir else default_cache_dir(),
        default_profile=_lookup("default_profile") or DEFAULT_PROFILE,
        auto_export=_as_bool(auto_export) if auto_export is not None else True,
        store_prefix=_lookup("store_prefix") or DEFAULT_STORE_PREFIX,
        ssh_expiration=_lookup("ssh_expiration") or DEFAULT_SSH_EXPIRATION,
    )
