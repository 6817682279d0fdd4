"""Domain models for secret management."""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .errors import OpToolkitError, ProfileNotFoundError


class SecretKind(str, Enum):
    ENV = "env"
    SSH = "ssh"


@dataclass(frozen=True)
class SecretKey:
    """Identifies one declared secret: (profile, name)."""
    profile: str
    name: str

    def __str__(self) -> str:
        return f"{self.profile}/{self.name}"


@dataclass(frozen=True)
class SecretDeclaration:
    """One secret entry of a profile in the config file."""
    profile: str
    kind: SecretKind
    name: str
    path: str  # provider locator, e.g. op://vault/item/field

    @property
    def key(self) -> SecretKey:
        return SecretKey(self.profile, self.name)


@dataclass(frozen=True)
class Profile:
    """A named group of secrets bound to one provider account session."""
    name: str
    account: str
    secrets: Tuple[SecretDeclaration, ...] = ()
    provider: str = "1password"


@dataclass(frozen=True)
class Config:
    """Loaded configuration. Built once per process and never mutated."""
    version: int
    profiles: Tuple[Profile, ...]
    source: Optional[str] = None

    def profile_names(self) -> List[str]:
        return [p.name for p in self.profiles]

    def exists(self, profile: str) -> bool:
        return any(p.name == profile for p in self.profiles)

    def get_profile(self, profile: str) -> Profile:
        for p in self.profiles:
            if p.name == profile:
                return p
        raise ProfileNotFoundError(profile)

    def secrets_for(self, profile: str, kind: Optional[SecretKind] = None) -> List[SecretDeclaration]:
        """Declarations of a profile in declared order, optionally filtered by kind."""
        declarations = self.get_profile(profile).secrets
        if kind is None:
            return list(declarations)
        kind = SecretKind(kind)
        return [d for d in declarations if d.kind == kind]

    def declaration_for(self, profile: str, name: str) -> Optional[SecretDeclaration]:
        if not self.exists(profile):
            return None
        for declaration in self.get_profile(profile).secrets:
            if declaration.name == name:
                return declaration
        return None


@dataclass(frozen=True)
class LedgerEntry:
    """One ``kind:name`` line of a profile's metadata ledger."""
    kind: str
    name: str

    def to_line(self) -> str:
        return f"{self.kind}:{self.name}"

    @classmethod
    def from_line(cls, line: str) -> Optional["LedgerEntry"]:
        """Parse a ledger line. Returns None for lines without a separator."""
        if ":" not in line:
            return None
        # Split on the first colon only; names may contain ':'
        kind, name = line.split(":", 1)
        kind, name = kind.strip(), name.strip()
        if not kind or not name:
            return None
        return cls(kind=kind, name=name)

    @classmethod
    def for_declaration(cls, declaration: SecretDeclaration) -> "LedgerEntry":
        return cls(kind=declaration.kind.value, name=declaration.name)


@dataclass
class LoadSummary:
    """Aggregate result of a batch load."""
    kind: SecretKind
    loaded: int = 0
    failed: int = 0
    loaded_keys: List[SecretKey] = field(default_factory=list)
    errors: List[Tuple[SecretKey, OpToolkitError]] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.loaded + self.failed
