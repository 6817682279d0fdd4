"""Tests for the 1Password and GCP provider clients."""
import subprocess
from unittest import mock

import pytest
from google.api_core import exceptions as gcp_exceptions
from google.auth import exceptions as auth_exceptions

from op_toolkit.secrets.domains import gcp_client, op_client
from op_toolkit.secrets.domains.errors import (
    EmptyResultError,
    SecretNotFoundError,
    TransientError,
    UnauthenticatedError,
    UndecodableValueError,
)
from op_toolkit.secrets.domains.gcp_client import GCPSecretClient, parse_gcp_path
from op_toolkit.secrets.domains.op_client import OnePasswordClient
from op_toolkit.secrets.domains.provider import ProviderRegistry

ACCOUNT = "acme.1password.com"
PATH = "op://Work/API/credential"


def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def _op_run(account_get, read):
    def fake_run(args, **kwargs):
        if args[1:3] == ["account", "get"]:
            return account_get
        if args[1] == "read":
            return read
        raise AssertionError(f"unexpected op call: {args}")
    return fake_run


class TestOnePasswordClient:

    def test_resolve_strips_trailing_newline(self):
        fake_run = _op_run(_completed(0), _completed(0, "s3cret\n"))
        with mock.patch.object(op_client.subprocess, "run", side_effect=fake_run) as run:
            assert OnePasswordClient().resolve(ACCOUNT, PATH) == "s3cret"

        read_call = run.call_args_list[-1]
        assert read_call.args[0] == ["op", "read", PATH, "--account", ACCOUNT]

    def test_resolve_keeps_inner_newlines(self):
        key = "-----BEGIN KEY-----\nabc\n-----END KEY-----"
        fake_run = _op_run(_completed(0), _completed(0, key + "\n"))
        with mock.patch.object(op_client.subprocess, "run", side_effect=fake_run):
            assert OnePasswordClient().resolve(ACCOUNT, PATH) == key

    def test_not_signed_in(self):
        fake_run = _op_run(_completed(1, stderr="[ERROR] account is not signed in"), _completed(0, "x"))
        with mock.patch.object(op_client.subprocess, "run", side_effect=fake_run):
            with pytest.raises(UnauthenticatedError) as exc_info:
                OnePasswordClient().resolve(ACCOUNT, PATH)

        assert exc_info.value.account == ACCOUNT
        assert exc_info.value.remediation == f"Run: op signin --account {ACCOUNT}"

    def test_session_expired_during_read(self):
        fake_run = _op_run(_completed(0), _completed(1, stderr="[ERROR] You are not currently signed in."))
        with mock.patch.object(op_client.subprocess, "run", side_effect=fake_run):
            with pytest.raises(UnauthenticatedError):
                OnePasswordClient().resolve(ACCOUNT, PATH)

    def test_item_not_found(self):
        stderr = '[ERROR] could not read secret: "API" isn\'t an item in the "Work" vault'
        fake_run = _op_run(_completed(0), _completed(1, stderr=stderr))
        with mock.patch.object(op_client.subprocess, "run", side_effect=fake_run):
            with pytest.raises(SecretNotFoundError) as exc_info:
                OnePasswordClient().resolve(ACCOUNT, PATH)

        assert exc_info.value.path == PATH

    def test_other_failure_is_transient(self):
        fake_run = _op_run(_completed(0), _completed(1, stderr="[ERROR] connection reset by peer"))
        with mock.patch.object(op_client.subprocess, "run", side_effect=fake_run):
            with pytest.raises(TransientError):
                OnePasswordClient().resolve(ACCOUNT, PATH)

    def test_empty_value(self):
        fake_run = _op_run(_completed(0), _completed(0, "\n"))
        with mock.patch.object(op_client.subprocess, "run", side_effect=fake_run):
            with pytest.raises(EmptyResultError):
                OnePasswordClient().resolve(ACCOUNT, PATH)

    def test_op_not_installed(self):
        with mock.patch.object(op_client.subprocess, "run", side_effect=FileNotFoundError):
            with pytest.raises(TransientError) as exc_info:
                OnePasswordClient().resolve(ACCOUNT, PATH)

        assert "not found" in str(exc_info.value)

    def test_non_utf8_output(self):
        def fake_run(args, **kwargs):
            if args[1] == "read":
                raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
            return _completed(0)

        with mock.patch.object(op_client.subprocess, "run", side_effect=fake_run):
            with pytest.raises(UndecodableValueError) as exc_info:
                OnePasswordClient().resolve(ACCOUNT, PATH)

        assert exc_info.value.path == PATH

    def test_check_session(self):
        with mock.patch.object(op_client.subprocess, "run", return_value=_completed(0)) as run:
            OnePasswordClient().check_session(ACCOUNT)
        assert run.call_args.args[0] == ["op", "account", "get", "--account", ACCOUNT]


class TestGCPSecretClient:

    def _client(self, **kwargs):
        sdk = mock.Mock()
        for key, value in kwargs.items():
            setattr(sdk.access_secret_version, key, value)
        return GCPSecretClient(client=sdk), sdk

    def test_parse_path(self):
        assert parse_gcp_path("gcp://DB_PASS") == ("DB_PASS", "latest")
        assert parse_gcp_path("gcp://DB_PASS/3") == ("DB_PASS", "3")

    def test_parse_path_without_name(self):
        with pytest.raises(SecretNotFoundError):
            parse_gcp_path("gcp://")

    def test_resolve(self):
        response = mock.Mock()
        response.payload.data = b"db-password"
        client, sdk = self._client(return_value=response)

        assert client.resolve("my-project", "gcp://DB_PASS") == "db-password"
        sdk.access_secret_version.assert_called_once_with(
            request={"name": "projects/my-project/secrets/DB_PASS/versions/latest"}
        )

    def test_not_found(self):
        client, _ = self._client(side_effect=gcp_exceptions.NotFound("Secret [DB_PASS] not found"))
        with pytest.raises(SecretNotFoundError):
            client.resolve("my-project", "gcp://DB_PASS")

    def test_permission_denied_is_unauthenticated(self):
        client, _ = self._client(side_effect=gcp_exceptions.PermissionDenied("denied"))
        with pytest.raises(UnauthenticatedError) as exc_info:
            client.resolve("my-project", "gcp://DB_PASS")
        assert exc_info.value.account == "my-project"
        assert "gcloud auth" in exc_info.value.remediation

    def test_refresh_error_is_unauthenticated(self):
        client, _ = self._client(side_effect=auth_exceptions.RefreshError("token expired"))
        with pytest.raises(UnauthenticatedError):
            client.resolve("my-project", "gcp://DB_PASS")

    def test_transport_error_is_transient(self):
        client, _ = self._client(side_effect=auth_exceptions.TransportError("connection reset"))
        with pytest.raises(TransientError):
            client.resolve("my-project", "gcp://DB_PASS")

    def test_service_unavailable_is_transient(self):
        client, _ = self._client(side_effect=gcp_exceptions.ServiceUnavailable("try again"))
        with pytest.raises(TransientError):
            client.resolve("my-project", "gcp://DB_PASS")

    def test_empty_payload(self):
        response = mock.Mock()
        response.payload.data = b""
        client, _ = self._client(return_value=response)
        with pytest.raises(EmptyResultError):
            client.resolve("my-project", "gcp://DB_PASS")

    def test_binary_payload(self):
        response = mock.Mock()
        response.payload.data = b"\xff\xfe"
        client, _ = self._client(return_value=response)
        with pytest.raises(UndecodableValueError) as exc_info:
            client.resolve("my-project", "gcp://DB_PASS")
        assert exc_info.value.path == "gcp://DB_PASS"

    def test_missing_default_credentials(self):
        with mock.patch.object(gcp_client.secretmanager, "SecretManagerServiceClient",
                               side_effect=auth_exceptions.DefaultCredentialsError("no creds")):
            with pytest.raises(UnauthenticatedError) as exc_info:
                GCPSecretClient().check_session("my-project")
        assert exc_info.value.account == "my-project"
        assert "no creds" in exc_info.value.detail
        assert "no creds" in str(exc_info.value)


class TestProviderRegistry:

    def test_creates_each_provider_once(self):
        factory = mock.Mock(return_value=object())
        registry = ProviderRegistry({"1password": factory})

        assert registry.get("1password") is registry.get("1password")
        factory.assert_called_once_with()

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            ProviderRegistry({}).get("vault")

    def test_default_factories(self):
        assert isinstance(ProviderRegistry().get("1password"), OnePasswordClient)
