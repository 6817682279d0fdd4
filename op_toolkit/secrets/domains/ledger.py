"""Per-profile metadata ledger.

Records which secrets were loaded for a profile so a later shell can
re-export cached env secrets without contacting the provider. The ledger only
holds names; values stay in the credential store.

File: <cache_dir>/<profile>.metadata

    # op-toolkit metadata for profile: work
    # Format: kind:name
    # Generated: 2024-01-01T12:00:00

    env:GITHUB_TOKEN
    ssh:github-work
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Union

from .models import LedgerEntry

logger = logging.getLogger(__name__)

LEDGER_SUFFIX = ".metadata"


class MetadataLedger:
    def __init__(self, cache_dir: Union[str, Path]):
        self.cache_dir = Path(cache_dir)

    def path_for(self, profile: str) -> Path:
        return self.cache_dir / f"{profile}{LEDGER_SUFFIX}"

    def exists(self, profile: str) -> bool:
        return self.path_for(profile).is_file()

    def record(self, profile: str, entries: Iterable[LedgerEntry]) -> None:
        """
        Replace the profile's ledger with `entries`.

        Duplicate entries are written once, keeping the first occurrence.
        """
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(profile)

        unique: List[LedgerEntry] = []
        for entry in entries:
            if entry not in unique:
                unique.append(entry)

        lines = [
            f"# op-toolkit metadata for profile: {profile}",
            "# Format: kind:name",
            f"# Generated: {datetime.now().isoformat(timespec='seconds')}",
            "",
        ]
        lines.extend(entry.to_line() for entry in unique)

        with open(path, 'w') as f:
            f.write("\n".join(lines) + "\n")
        logger.debug(f"Wrote {len(unique)} ledger entr{'y' if len(unique) == 1 else 'ies'} to {path}")

    def read_all(self, profile: str) -> List[LedgerEntry]:
        """
        Parse the profile's ledger.

        Blank lines and comments are ignored; malformed lines are skipped.
        Returns an empty list if the profile was never loaded.
        """
        path = self.path_for(profile)
        if not path.is_file():
            return []

        entries: List[LedgerEntry] = []
        with open(path, 'r') as f:
            for lineno, raw in enumerate(f, start=1):
                line = raw.strip()
                if not line or line.startswith("#"):
                    continue
                entry = LedgerEntry.from_line(line)
                if entry is None:
                    logger.debug(f"Skipping malformed ledger line {lineno} in {path}: {line!r}")
                    continue
                entries.append(entry)
        return entries

    def clear(self, profile: str) -> None:
        """Remove the profile's ledger. Missing ledgers are not an error."""
        path = self.path_for(profile)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        logger.debug(f"Removed ledger {path}")
