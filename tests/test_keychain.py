"""Tests for the keyring-backed credential store."""
import pytest
from keyring.errors import KeyringError

from op_toolkit.secrets.domains.errors import CacheMissError, StoreWriteError
from op_toolkit.secrets.domains.keychain import KeyringStore, service_name


def test_service_name():
    assert service_name("work", "op-secrets") == "op-secrets-work"


def test_write_read(store):
    store.write("op-secrets-work", "API_KEY", "value")

    assert store.read("op-secrets-work", "API_KEY") == "value"
    assert store.exists("op-secrets-work", "API_KEY")


def test_write_overwrites(store):
    store.write("op-secrets-work", "API_KEY", "old")
    store.write("op-secrets-work", "API_KEY", "new")

    assert store.read("op-secrets-work", "API_KEY") == "new"


def test_read_missing(store):
    with pytest.raises(CacheMissError):
        store.read("op-secrets-work", "API_KEY")
    assert not store.exists("op-secrets-work", "API_KEY")


def test_namespaces_are_separate(store):
    store.write("op-secrets-work", "TOKEN", "work")
    store.write("op-secrets-personal", "TOKEN", "personal")

    assert store.read("op-secrets-work", "TOKEN") == "work"
    assert store.read("op-secrets-personal", "TOKEN") == "personal"


def test_delete_is_idempotent(store):
    store.write("op-secrets-work", "API_KEY", "value")

    store.delete("op-secrets-work", "API_KEY")
    store.delete("op-secrets-work", "API_KEY")

    assert not store.exists("op-secrets-work", "API_KEY")


def test_write_failure(store, memory_keyring):
    memory_keyring.fail_writes = True

    with pytest.raises(StoreWriteError) as exc_info:
        store.write("op-secrets-work", "API_KEY", "s3cret-value")

    assert "API_KEY" in str(exc_info.value)
    assert "s3cret-value" not in str(exc_info.value)


def test_read_backend_error_is_a_miss(store, memory_keyring, monkeypatch):
    def broken(service, username):
        raise KeyringError("backend unavailable")

    monkeypatch.setattr(memory_keyring, "get_password", broken)

    with pytest.raises(CacheMissError):
        store.read("op-secrets-work", "API_KEY")
    assert not store.exists("op-secrets-work", "API_KEY")


@pytest.mark.parametrize("service,account,value", [
    ("", "API_KEY", "v"),
    ("op-secrets-work", "", "v"),
    ("op-secrets-work", "API_KEY", ""),
])
def test_write_requires_arguments(store, service, account, value):
    with pytest.raises(ValueError):
        store.write(service, account, value)


def test_default_backend_is_lazy(memory_keyring):
    store = KeyringStore()

    store.write("op-secrets-work", "API_KEY", "value")

    assert memory_keyring.entries[("op-secrets-work", "API_KEY")] == "value"
