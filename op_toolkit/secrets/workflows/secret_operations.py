"""Workflow for secret operations with keychain caching and provider fallback.

Resolution order for a single secret:
    1. Keychain cache (skipped when refresh is requested)
    2. Secret provider (1Password / GCP), written back to the keychain

Batch loads isolate failures per secret and report aggregate counts.
"""
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from ..domains.errors import (
    CacheMissError,
    NotDeclaredError,
    OpToolkitError,
    StoreWriteError,
    WrongKindError,
)
from ..domains.keychain import CredentialStore, service_name
from ..domains.ledger import MetadataLedger
from ..domains.models import (
    Config,
    LedgerEntry,
    LoadSummary,
    Profile,
    SecretDeclaration,
    SecretKind,
)
from ..domains.provider import ProviderRegistry, SecretProvider
from ..domains.settings import DEFAULT_SSH_EXPIRATION, DEFAULT_STORE_PREFIX
from ..domains.ssh_agent import SSHKeyManager

logger = logging.getLogger(__name__)

Providers = Union[ProviderRegistry, Mapping[str, SecretProvider]]


class SecretResolver:
    """Resolves declared secrets for the profiles of one loaded Config."""

    def __init__(
        self,
        config: Config,
        store: CredentialStore,
        providers: Optional[Providers] = None,
        ledger: Optional[MetadataLedger] = None,
        key_manager: Optional[SSHKeyManager] = None,
        store_prefix: str = DEFAULT_STORE_PREFIX,
    ):
        self.config = config
        self.store = store
        self.providers = providers if providers is not None else ProviderRegistry()
        self.ledger = ledger
        self._key_manager = key_manager
        self.store_prefix = store_prefix

    @property
    def key_manager(self) -> SSHKeyManager:
        """Lazy-initialize the SSH key manager."""
        if self._key_manager is None:
            self._key_manager = SSHKeyManager()
        return self._key_manager

    def service_for(self, profile: str) -> str:
        return service_name(profile, self.store_prefix)

    def provider_for(self, profile: Profile) -> SecretProvider:
        provider = self.providers.get(profile.provider)
        if provider is None:
            raise ValueError(f"No client configured for provider '{profile.provider}'")
        return provider

    def _declaration(self, profile: str, name: str) -> SecretDeclaration:
        declaration = self.config.declaration_for(profile, name)
        if declaration is None:
            raise NotDeclaredError(profile, name)
        return declaration

    def is_cached(self, profile: str, name: str) -> bool:
        return self.store.exists(self.service_for(profile), name)

    def check_session(self, profile: str) -> None:
        """
        Verify the provider session for a profile's account.

        Raises:
            ProfileNotFoundError: Unknown profile
            UnauthenticatedError: No active session (carries remediation)
        """
        profile_obj = self.config.get_profile(profile)
        self.provider_for(profile_obj).check_session(profile_obj.account)

    def resolve_secret(self, profile: str, name: str, refresh: bool = False) -> str:
        """
        Resolve one secret, cache first.

        Args:
            profile: Profile name
            name: Secret name within the profile
            refresh: Skip the cache and fetch from the provider

        Returns:
            Secret value

        Raises:
            NotDeclaredError: No such secret in the profile
            ProviderError: The provider failed; nothing is cached
        """
        declaration = self._declaration(profile, name)
        service = self.service_for(profile)

        if not refresh:
            try:
                value = self.store.read(service, name)
            except CacheMissError:
                logger.debug(f"'{name}' not cached for profile '{profile}'")
            else:
                logger.debug(f"Loaded '{name}' from cache")
                return value

        profile_obj = self.config.get_profile(profile)
        logger.info(f"Retrieving '{name}' for profile '{profile}' from {profile_obj.provider}...")
        value = self.provider_for(profile_obj).resolve(profile_obj.account, declaration.path)

        try:
            self.store.write(service, name, value)
        except StoreWriteError as e:
            # The fetched value is still usable
            logger.warning(f"Failed to cache '{name}' in keychain: {e}")

        return value

    def _require_kind(self, profile: str, name: str, kind: SecretKind) -> SecretDeclaration:
        declaration = self._declaration(profile, name)
        if declaration.kind != kind:
            raise WrongKindError(profile, name, expected=kind.value, actual=declaration.kind.value)
        return declaration

    def load_env_secret(self, profile: str, name: str, refresh: bool = False) -> str:
        """
        Resolve an env secret and note it in the profile ledger.

        Raises:
            WrongKindError: The secret is declared as an SSH key
        """
        declaration = self._require_kind(profile, name, SecretKind.ENV)
        value = self.resolve_secret(profile, name, refresh=refresh)
        self._record(profile, attempted_kinds=(), loaded=[declaration])
        return value

    def load_ssh_key(
        self, profile: str, name: str, ttl: str = DEFAULT_SSH_EXPIRATION, refresh: bool = False
    ) -> bool:
        """
        Resolve an SSH key and make sure the agent holds it.

        Returns:
            True if the key was added to the agent, False if it was already there

        Raises:
            WrongKindError: The secret is declared as an env secret
            AgentUnavailableError, AgentAddFailedError: Agent problems
        """
        declaration = self._require_kind(profile, name, SecretKind.SSH)
        key_material = self.resolve_secret(profile, name, refresh=refresh)
        added = self.key_manager.ensure_loaded(name, key_material, ttl, refresh=refresh)
        self._record(profile, attempted_kinds=(), loaded=[declaration])
        return added

    def resolve_all_for_profile(
        self,
        profile: str,
        kind: Union[SecretKind, str],
        refresh: bool = False,
        ttl: str = DEFAULT_SSH_EXPIRATION,
        values: Optional[Dict[str, str]] = None,
    ) -> LoadSummary:
        """
        Load every secret of one kind in a profile.

        Each secret is resolved independently; a failure is counted and logged
        and the batch continues. SSH keys are handed to the agent.

        Args:
            profile: Profile name
            kind: "env" or "ssh"
            refresh: Bypass the cache for every secret
            ttl: SSH key lifetime
            values: If given, resolved env values are stored here by name

        Raises:
            ProfileNotFoundError: Unknown profile (before anything is resolved)
        """
        kind = SecretKind(kind)
        declarations = self.config.secrets_for(profile, kind)
        summary = LoadSummary(kind=kind)
        loaded: List[SecretDeclaration] = []

        for declaration in declarations:
            try:
                value = self.resolve_secret(profile, declaration.name, refresh=refresh)
                if kind is SecretKind.SSH:
                    self.key_manager.ensure_loaded(declaration.name, value, ttl, refresh=refresh)
                elif values is not None:
                    values[declaration.name] = value
            except OpToolkitError as e:
                summary.failed += 1
                summary.errors.append((declaration.key, e))
                logger.warning(f"Failed to load {kind.value} secret '{declaration.name}' from profile '{profile}': {e}")
                remediation = remediation_for(e)
                if remediation:
                    logger.info(remediation)
                continue

            summary.loaded += 1
            summary.loaded_keys.append(declaration.key)
            loaded.append(declaration)

        self._record(profile, attempted_kinds=(kind,), loaded=loaded)

        label = "SSH key(s)" if kind is SecretKind.SSH else "environment secret(s)"
        if summary.failed:
            logger.warning(f"Failed to load {summary.failed} {label}")
        if summary.loaded:
            suffix = f" with {ttl} expiration" if kind is SecretKind.SSH else ""
            logger.info(f"Loaded {summary.loaded} {label}{suffix}")

        return summary

    def load_profile(
        self,
        profile: str,
        kinds: Sequence[Union[SecretKind, str]] = (SecretKind.ENV, SecretKind.SSH),
        refresh: bool = False,
        ttl: str = DEFAULT_SSH_EXPIRATION,
        values: Optional[Dict[str, str]] = None,
    ) -> Dict[SecretKind, LoadSummary]:
        """Run resolve_all_for_profile for each requested kind."""
        self.config.get_profile(profile)
        return {
            SecretKind(kind): self.resolve_all_for_profile(profile, kind, refresh=refresh, ttl=ttl, values=values)
            for kind in kinds
        }

    def _record(
        self,
        profile: str,
        attempted_kinds: Iterable[SecretKind],
        loaded: Iterable[SecretDeclaration],
    ) -> None:
        """
        Update the profile ledger after a load.

        Entries of the attempted kinds are replaced by what loaded this time;
        other entries are kept while they are still declared. Output follows
        declaration order.
        """
        if self.ledger is None:
            return

        attempted = {SecretKind(k).value for k in attempted_kinds}
        declarations = self.config.secrets_for(profile)
        declared = {LedgerEntry.for_declaration(d) for d in declarations}

        wanted = {
            entry for entry in self.ledger.read_all(profile)
            if entry.kind not in attempted and entry in declared
        }
        wanted.update(LedgerEntry.for_declaration(d) for d in loaded)

        entries = [LedgerEntry.for_declaration(d) for d in declarations]
        try:
            self.ledger.record(profile, [e for e in entries if e in wanted])
        except OSError as e:
            # Loaded values are still returned; only shell-start export misses them
            logger.warning(f"Failed to update ledger for profile '{profile}': {e}")

    def clear_profile(self, profile: str) -> int:
        """
        Remove a profile's cached secrets and its ledger.

        Only secrets named in the ledger are deleted from the keychain.

        Returns:
            Number of keychain entries deleted
        """
        if self.ledger is None or not self.ledger.exists(profile):
            logger.warning(f"No cached secrets found for profile: {profile}")
            return 0

        service = self.service_for(profile)
        count = 0
        for entry in self.ledger.read_all(profile):
            self.store.delete(service, entry.name)
            count += 1

        self.ledger.clear(profile)
        logger.info(f"Cleared {count} cached secret(s) for profile: {profile}")
        return count


def export_cached_secrets(
    config: Config,
    store: CredentialStore,
    ledger: MetadataLedger,
    profiles: Optional[Iterable[str]] = None,
    store_prefix: str = DEFAULT_STORE_PREFIX,
) -> Dict[str, str]:
    """
    Collect cached env secrets for shell start-up.

    Reads only the ledger and the keychain; never contacts a provider. Profiles
    that were never loaded and entries missing from the keychain are skipped.

    Args:
        config: Loaded config (selects which profiles exist)
        store: Credential store
        ledger: Metadata ledger
        profiles: Restrict to these profiles (default: all, in config order)
        store_prefix: Keychain service prefix

    Returns:
        {env var name: value}; later profiles win on name clashes
    """
    selected = list(profiles) if profiles is not None else config.profile_names()
    exported: Dict[str, str] = {}

    for profile in selected:
        if not config.exists(profile):
            logger.debug(f"Skipping unknown profile '{profile}'")
            continue

        service = service_name(profile, store_prefix)
        count = 0
        for entry in ledger.read_all(profile):
            if entry.kind != SecretKind.ENV.value:
                continue
            try:
                exported[entry.name] = store.read(service, entry.name)
            except CacheMissError:
                logger.debug(f"'{entry.name}' listed in ledger but not cached for profile '{profile}'")
                continue
            count += 1
            logger.debug(f"Exported '{entry.name}' from cache")

        logger.debug(f"Exported {count} cached secret(s) for profile: {profile}")

    return exported


def remediation_for(error: Exception) -> Optional[str]:
    """Remediation hint for errors that carry one (unauthenticated, agent down)."""
    return getattr(error, "remediation", None)
