"""CLI entrypoint for op-toolkit."""
import os
import sys
import shlex
import argparse
import logging
from pathlib import Path
from typing import Dict

from op_toolkit import __version__
from op_toolkit.secrets.domains.errors import (
    ConfigError,
    ConfigNotFoundError,
    NotDeclaredError,
    OpToolkitError,
    ProfileNotFoundError,
    WrongKindError,
)
from op_toolkit.secrets.domains.models import Config, SecretKind
from op_toolkit.secrets.domains.settings import Settings, default_config_path, env_name, load_settings

from .validators import is_valid_env_name, validate_expiration, validate_secret_name

USAGE_ERRORS = (NotDeclaredError, WrongKindError, ProfileNotFoundError)

# Configure logging to stderr; stdout is reserved for values and export lines
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _configure_logging(verbosity: int) -> None:
    level_name = os.getenv("OP_TOOLKIT_LOG_LEVEL")
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    elif level_name:
        level = getattr(logging, level_name.upper(), logging.WARNING)
    else:
        level = logging.WARNING
    logging.getLogger().setLevel(level)


def _load_config(settings: Settings) -> Config:
    from op_toolkit.secrets.domains.config_loader import load_config

    return load_config(settings.config_path)


def _build_resolver(settings: Settings, config: Config):
    from op_toolkit.secrets.domains.keychain import KeyringStore
    from op_toolkit.secrets.domains.ledger import MetadataLedger
    from op_toolkit.secrets.workflows.secret_operations import SecretResolver

    return SecretResolver(
        config,
        KeyringStore(),
        ledger=MetadataLedger(settings.cache_dir),
        store_prefix=settings.store_prefix,
    )


def _profile_arg(args, settings: Settings) -> str:
    return getattr(args, "profile", None) or settings.default_profile


def _print_exports(values: Dict[str, str]) -> None:
    for name, value in values.items():
        if not is_valid_env_name(name):
            logger.warning(f"Skipping '{name}': not a valid environment variable name")
            continue
        print(f"export {name}={shlex.quote(value)}")


def cmd_version(args):
    """Show version information."""
    print(f"op-toolkit {__version__}")


def cmd_config_set_path(args):
    """Set config file path preference."""
    from op_toolkit.secrets.domains.preferences import set_preference

    config_path = Path(args.path).expanduser().resolve()

    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(1)

    # Store absolute path in preferences
    set_preference("config_path", str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_show(args):
    """Show current config file path and settings."""
    from op_toolkit.secrets.domains.preferences import get_preference

    settings = load_settings()
    config_path = settings.config_path

    if os.getenv(env_name("config_path")):
        source = f"environment ({env_name('config_path')})"
    elif get_preference("config_path"):
        source = "preference"
    else:
        source = "default"
    if not config_path.exists():
        source = f"{source} (file not found)"

    print(f"Config path: {config_path}")
    print(f"Source: {source}")
    print(f"Cache dir: {settings.cache_dir}")
    print(f"Default profile: {settings.default_profile}")
    print(f"Auto export: {'true' if settings.auto_export else 'false'}")
    print(f"SSH expiration: {settings.ssh_expiration}")


def cmd_config_clear(args):
    """Clear config path preference."""
    from op_toolkit.secrets.domains.preferences import clear_preference

    clear_preference("config_path")
    print(f"Config path preference cleared. Will use default: {default_config_path()}")


def cmd_list(args):
    """List profiles and their declared secrets with cache status."""
    settings = load_settings()
    config = _load_config(settings)
    resolver = _build_resolver(settings, config)

    profiles = [args.profile] if args.profile else config.profile_names()
    for profile_name in profiles:
        profile = config.get_profile(profile_name)
        print(f"{profile.name} ({profile.provider}: {profile.account})")
        if not profile.secrets:
            print("  (no secrets)")
        for declaration in profile.secrets:
            cached = "cached" if resolver.is_cached(profile.name, declaration.name) else "-"
            print(f"  {declaration.kind.value:<4} {declaration.name:<32} {cached}")


def cmd_auth(args):
    """Check provider session for a profile."""
    settings = load_settings()
    config = _load_config(settings)
    resolver = _build_resolver(settings, config)

    profile = _profile_arg(args, settings)
    resolver.check_session(profile)
    print(f"Success: signed in to {config.get_profile(profile).account} (profile: {profile})")


def cmd_load(args):
    """Load secrets for a profile; print export lines for env secrets."""
    settings = load_settings()
    config = _load_config(settings)
    resolver = _build_resolver(settings, config)

    profile = _profile_arg(args, settings)
    config.get_profile(profile)

    ttl = args.expiration or settings.ssh_expiration
    validate_expiration(ttl)

    values: Dict[str, str] = {}

    if args.secrets:
        for name in args.secrets:
            validate_secret_name(name)
        # Single-secret requests stop at the first error
        for name in args.secrets:
            declaration = config.declaration_for(profile, name)
            if declaration is None:
                raise NotDeclaredError(profile, name)
            if declaration.kind is SecretKind.ENV:
                values[name] = resolver.load_env_secret(profile, name, refresh=args.refresh)
            else:
                resolver.load_ssh_key(profile, name, ttl=ttl, refresh=args.refresh)
        _print_exports(values)
        return

    if args.env_only:
        kinds = (SecretKind.ENV,)
    elif args.ssh_only:
        kinds = (SecretKind.SSH,)
    else:
        kinds = (SecretKind.ENV, SecretKind.SSH)

    summaries = resolver.load_profile(profile, kinds, refresh=args.refresh, ttl=ttl, values=values)
    _print_exports(values)

    parts = []
    for kind, summary in summaries.items():
        label = "SSH key(s)" if kind is SecretKind.SSH else "environment secret(s)"
        parts.append(f"{summary.loaded} {label}")
    failed = sum(s.failed for s in summaries.values())
    message = f"Loaded {', '.join(parts)} for profile '{profile}'"
    if failed:
        message += f"; {failed} failed"
    print(message, file=sys.stderr)


def cmd_get(args):
    """Print a single env secret value."""
    validate_secret_name(args.secret_name)

    settings = load_settings()
    config = _load_config(settings)
    resolver = _build_resolver(settings, config)

    print(resolver.load_env_secret(args.profile, args.secret_name, refresh=args.refresh))


def cmd_export(args):
    """Print export lines for cached env secrets (shell start-up; never contacts a provider)."""
    from op_toolkit.secrets.domains.keychain import KeyringStore
    from op_toolkit.secrets.domains.ledger import MetadataLedger
    from op_toolkit.secrets.workflows.secret_operations import export_cached_secrets

    settings = load_settings()
    if not settings.auto_export and not args.force:
        logger.debug("Auto export disabled")
        return

    try:
        config = _load_config(settings)
    except ConfigNotFoundError:
        logger.debug(f"No config at {settings.config_path}, nothing to export")
        return
    except ConfigError as e:
        # Shell start-up must stay quiet
        logger.debug(f"Skipping export: {e}")
        return

    values = export_cached_secrets(
        config,
        KeyringStore(),
        MetadataLedger(settings.cache_dir),
        profiles=args.profiles or None,
        store_prefix=settings.store_prefix,
    )
    _print_exports(values)


def cmd_clear(args):
    """Remove cached secrets and ledger for a profile."""
    settings = load_settings()
    config = _load_config(settings)
    resolver = _build_resolver(settings, config)

    count = resolver.clear_profile(args.profile)
    print(f"Cleared {count} cached secret(s) for profile: {args.profile}")


def _build_parser():
    parser = argparse.ArgumentParser(
        prog="optk",
        description="op-toolkit CLI - load secrets from 1Password (or GCP Secret Manager) "
                    "with keychain caching and ssh-agent integration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (authentication, network, secret not found, agent, etc.)
  2 - Usage error (unknown profile or secret, wrong kind, invalid arguments)

Environment variables:
  OP_TOOLKIT_CONFIG          - config file path (overrides preference)
  OP_TOOLKIT_CACHE_DIR       - metadata directory (default ~/.cache/op-toolkit)
  OP_TOOLKIT_DEFAULT_PROFILE - profile used when none is given (default: personal)
  OP_TOOLKIT_AUTO_EXPORT     - 'false' disables 'optk export'
  OP_TOOLKIT_SSH_EXPIRATION  - default ssh-agent key lifetime (default: 1h)
  OP_TOOLKIT_LOG_LEVEL       - DEBUG, INFO, WARNING (default), ERROR

Shell setup:
  eval "$(optk export)"      # in ~/.zshrc: re-export cached env secrets
  eval "$(optk load work)"   # load a profile into the current shell
        """
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log output (-v info, -vv debug)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of op-toolkit"
    )

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage op-toolkit configuration"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")

    config_set_path_parser = config_subparsers.add_parser(
        "set-path",
        help="Set config file path",
        description="""
Set the configuration file path preference.

This stores the absolute path to your config file in:
~/.config/op-toolkit/preferences.json
        """
    )
    config_set_path_parser.add_argument("path", help="Path to config file")

    config_subparsers.add_parser(
        "show",
        help="Show current config path and settings",
    )
    config_subparsers.add_parser(
        "clear",
        help="Clear config path preference",
    )

    # list command
    list_parser = subparsers.add_parser(
        "list",
        help="List profiles and secrets",
        description="Show declared secrets per profile and whether each is cached in the keychain"
    )
    list_parser.add_argument("profile", nargs="?", help="Only show this profile")

    # auth command
    auth_parser = subparsers.add_parser(
        "auth",
        help="Check provider sign-in for a profile",
    )
    auth_parser.add_argument("profile", nargs="?", help="Profile name (default: OP_TOOLKIT_DEFAULT_PROFILE)")

    # load command
    load_parser = subparsers.add_parser(
        "load",
        help="Load secrets for a profile",
        description="""
Load secrets for a profile.

Behavior:
  1. Reads each secret from the keychain cache
  2. On a miss (or with --refresh) fetches it from the provider and caches it
  3. Env secrets are printed as 'export NAME=value' lines for eval
  4. SSH keys are added to ssh-agent with the given expiration

Without secret names, all secrets of the profile are loaded and failures
are reported without stopping the batch.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    load_parser.add_argument("profile", nargs="?", help="Profile name (default: OP_TOOLKIT_DEFAULT_PROFILE)")
    load_parser.add_argument("secrets", nargs="*", help="Only load these secrets")
    kind_group = load_parser.add_mutually_exclusive_group()
    kind_group.add_argument("--env-only", action="store_true", help="Only load env secrets")
    kind_group.add_argument("--ssh-only", action="store_true", help="Only load SSH keys")
    load_parser.add_argument(
        "-r", "--refresh",
        action="store_true",
        help="Bypass the cache and re-fetch; re-adds SSH keys to reset their expiration"
    )
    load_parser.add_argument(
        "-e", "--expiration",
        help="SSH key lifetime in ssh-add format (default: 1h or OP_TOOLKIT_SSH_EXPIRATION)"
    )

    # get command
    get_parser = subparsers.add_parser(
        "get",
        help="Print one env secret value",
    )
    get_parser.add_argument("profile", help="Profile name")
    get_parser.add_argument("secret_name", help="Secret name")
    get_parser.add_argument("-r", "--refresh", action="store_true", help="Bypass the cache")

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Print export lines for cached env secrets",
        description="Cache-only export for shell start-up. Never contacts the provider."
    )
    export_parser.add_argument("profiles", nargs="*", help="Only export these profiles")
    export_parser.add_argument(
        "--force",
        action="store_true",
        help="Export even when OP_TOOLKIT_AUTO_EXPORT is false"
    )

    # clear command
    clear_parser = subparsers.add_parser(
        "clear",
        help="Remove cached secrets for a profile",
    )
    clear_parser.add_argument("profile", help="Profile name")

    return parser, config_parser


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (authentication, network, secret not found, agent, etc.)
        2 - Usage errors (invalid arguments, unknown profile or secret, wrong kind)
    """
    parser, config_parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    # If no command provided, show help and exit with usage error code
    if not args.command:
        parser.print_help()
        sys.exit(2)

    handlers = {
        "version": cmd_version,
        "list": cmd_list,
        "auth": cmd_auth,
        "load": cmd_load,
        "get": cmd_get,
        "export": cmd_export,
        "clear": cmd_clear,
    }
    config_handlers = {
        "set-path": cmd_config_set_path,
        "show": cmd_config_show,
        "clear": cmd_config_clear,
    }

    try:
        if args.command == "config":
            handler = config_handlers.get(args.config_command)
            if handler is None:
                config_parser.print_help()
                sys.exit(2)
            handler(args)
        else:
            handlers[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except USAGE_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except OpToolkitError as e:
        print(f"Error: {e}", file=sys.stderr)
        remediation = getattr(e, "remediation", None)
        if remediation:
            print(remediation, file=sys.stderr)
        output = getattr(e, "output", None)
        if output:
            print(output, file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
