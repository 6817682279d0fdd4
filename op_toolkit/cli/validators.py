"""Input validation for CLI arguments."""
import re
import sys

SECRET_NAME_PATTERN = re.compile(r'^[A-Za-z0-9_.:@-]+$')
ENV_NAME_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
# sshd time format: 90, 30m, 1h30m, 2d ...
EXPIRATION_PATTERN = re.compile(r'^(\d+[smhdwSMHDW]?)+$')


def validate_secret_name(name: str) -> None:
    """
    Validate a secret name given on the command line.

    Args:
        name: Secret name to validate

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not name:
        print("Error: Secret name cannot be empty", file=sys.stderr)
        sys.exit(2)

    if not SECRET_NAME_PATTERN.match(name):
        print(f"Error: Invalid secret name '{name}'", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, and _ . : @ -", file=sys.stderr)
        print("\nExamples of valid names:", file=sys.stderr)
        print("  ✓ GITHUB_TOKEN", file=sys.stderr)
        print("  ✓ github-work", file=sys.stderr)
        print("\nExamples of invalid names:", file=sys.stderr)
        print("  ✗ MY SECRET (contains space)", file=sys.stderr)
        print("  ✗ key$prod (contains $)", file=sys.stderr)
        sys.exit(2)


def validate_expiration(expiration: str) -> None:
    """
    Validate an ssh-agent key lifetime.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not expiration or not EXPIRATION_PATTERN.match(expiration):
        print(f"Error: Invalid expiration '{expiration}'", file=sys.stderr)
        print("\nUse ssh-add time format: seconds (3600) or units s, m, h, d, w (30m, 1h, 1h30m, 2d)",
              file=sys.stderr)
        sys.exit(2)


def is_valid_env_name(name: str) -> bool:
    """True if `name` can be exported as a shell environment variable."""
    return bool(ENV_NAME_PATTERN.match(name))
