"""op-toolkit: 1Password-backed secrets with keychain caching and ssh-agent loading."""

__version__ = "0.1.0"
