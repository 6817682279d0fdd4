"""SSH agent integration.

Keys are handed to the agent through a short-lived file that only exists for
the duration of one `SSHKeyManager.ensure_loaded` call. The agent itself owns
expiration (`ssh-add -t`); nothing about loaded keys is persisted here.
"""
import os
import re
import logging
import subprocess
import tempfile
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Protocol, Set

from .errors import AgentAddFailedError, AgentError, AgentUnavailableError

logger = logging.getLogger(__name__)

SSH_ADD = "ssh-add"
SSH_KEYGEN = "ssh-keygen"

_SAFE_NAME = re.compile(r"[^A-Za-z0-9_.-]")


class AgentStatus(Enum):
    # `ssh-add -l` exit codes
    HAS_KEYS = 0
    NO_KEYS = 1
    NOT_RUNNING = 2


class SSHAgent(Protocol):
    def status(self) -> AgentStatus: ...

    def list_fingerprints(self) -> Set[str]: ...

    def fingerprint(self, key_path: Path) -> Optional[str]: ...

    def add(self, key_path: Path, ttl: str) -> None: ...

    def remove(self, key_path: Path) -> None: ...


@contextmanager
def transient_key_file(name: str, key_material: str) -> Iterator[Path]:
    """
    Write key material to a private file and remove it on exit.

    The file lives in a fresh 0700 directory and is created with mode 0600.
    Removal happens on every exit path, including KeyboardInterrupt.
    """
    with tempfile.TemporaryDirectory(prefix="optk-ssh-") as tmpdir:
        key_path = Path(tmpdir) / f"ssh-{_SAFE_NAME.sub('_', name)}"
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(key_material)
            # ssh-add rejects private keys without a trailing newline
            if not key_material.endswith("\n"):
                f.write("\n")
        yield key_path


class OpenSSHAgent:
    """SSHAgent backed by the OpenSSH `ssh-add` and `ssh-keygen` tools."""

    def __init__(self, ssh_add: str = SSH_ADD, ssh_keygen: str = SSH_KEYGEN):
        self.ssh_add = ssh_add
        self.ssh_keygen = ssh_keygen

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(args, capture_output=True, text=True, check=False)
        except FileNotFoundError:
            raise AgentUnavailableError(f"'{args[0]}' not found. Is OpenSSH installed?")

    def status(self) -> AgentStatus:
        result = self._run([self.ssh_add, "-l"])
        try:
            return AgentStatus(result.returncode)
        except ValueError:
            logger.debug(f"Unexpected ssh-add -l exit code {result.returncode}: {result.stderr.strip()}")
            return AgentStatus.NOT_RUNNING

    def list_fingerprints(self) -> Set[str]:
        """Fingerprints of keys currently held by the agent."""
        result = self._run([self.ssh_add, "-l"])
        if result.returncode != 0:
            return set()
        fingerprints = set()
        for line in result.stdout.splitlines():
            # "<bits> <fingerprint> <comment> (<type>)"
            fields = line.split()
            if len(fields) >= 2:
                fingerprints.add(fields[1])
        return fingerprints

    def fingerprint(self, key_path: Path) -> Optional[str]:
        result = self._run([self.ssh_keygen, "-lf", str(key_path)])
        if result.returncode != 0:
            logger.debug(f"ssh-keygen could not fingerprint key: {result.stderr.strip()}")
            return None
        fields = result.stdout.split()
        return fields[1] if len(fields) >= 2 else None

    def add(self, key_path: Path, ttl: str) -> None:
        result = self._run([self.ssh_add, "-t", ttl, str(key_path)])
        if result.returncode != 0:
            output = (result.stdout + result.stderr).strip()
            raise AgentError(output or f"ssh-add exited with status {result.returncode}")

    def remove(self, key_path: Path) -> None:
        result = self._run([self.ssh_add, "-d", str(key_path)])
        if result.returncode != 0:
            logger.debug(f"ssh-add -d failed: {(result.stdout + result.stderr).strip()}")


class SSHKeyManager:
    """Loads private keys into an SSH agent, deduplicating by fingerprint."""

    def __init__(self, agent: Optional[SSHAgent] = None):
        self.agent = agent or OpenSSHAgent()

    def check_agent(self) -> AgentStatus:
        """
        Probe the agent.

        Raises:
            AgentUnavailableError: If no agent is reachable
        """
        status = self.agent.status()
        if status is AgentStatus.NOT_RUNNING:
            raise AgentUnavailableError()
        return status

    def ensure_loaded(self, name: str, key_material: str, ttl: str, refresh: bool = False) -> bool:
        """
        Make sure the key is held by the agent.

        Args:
            name: Key name, used for messages and the transient file name
            key_material: Private key (OpenSSH or PEM text)
            ttl: Lifetime passed to `ssh-add -t` (e.g. "1h", "30m")
            refresh: Remove and re-add an already loaded key to restart its lifetime

        Returns:
            True if the key was added, False if it was already loaded

        Raises:
            AgentUnavailableError: No agent running
            AgentAddFailedError: The agent refused the key
        """
        with transient_key_file(name, key_material) as key_path:
            status = self.check_agent()

            key_fingerprint = self.agent.fingerprint(key_path)
            logger.debug(f"Key fingerprint for '{name}': {key_fingerprint}")

            loaded = (
                key_fingerprint is not None
                and status is AgentStatus.HAS_KEYS
                and key_fingerprint in self.agent.list_fingerprints()
            )
            if loaded:
                if not refresh:
                    # Existing expiration is left as is
                    logger.debug(f"SSH key '{name}' already in agent (use --refresh to reset expiration)")
                    return False
                logger.debug(f"Removing existing key '{name}' from agent (refresh requested)")
                self.agent.remove(key_path)
            else:
                logger.debug(f"Key '{name}' not found in agent, adding...")

            try:
                self.agent.add(key_path, ttl)
            except AgentUnavailableError:
                raise
            except AgentError as e:
                logger.debug(f"ssh-add output: {e}")
                raise AgentAddFailedError(name, output=str(e))

        logger.info(f"Added '{name}' to ssh-agent with {ttl} expiration")
        return True
