"""Tests for RpcClient — the public programmatic API surface.
Mocks at the channel/reflection boundary. Asserts on returned dicts, not stdout.
"""

import contextlib
from unittest.mock import MagicMock

import pytest
from google.protobuf.message_factory import GetMessageClass

from rpcctl_cli import config
from rpcctl_cli.client import RpcClient
from rpcctl_cli.exceptions import (
    AuthenticationError,
    CliError,
    InvocationError,
    NotFoundError,
)
from rpcctl_cli.models import EnvironmentConfig, FetchOptions, ServiceEndpoint

SERVICES = [
    "grpc.reflection.v1alpha.ServerReflection",
    "spaceone.api.identity.v1.User",
    "spaceone.api.identity.v1.Role",
    "spaceone.api.inventory.v1.Server",
]

SETTINGS = {"short_names": {"identity": {"ls": "list User"}}}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeReflection:
    """Stands in for ReflectionClient; every resource exposes the demo methods."""

    def __init__(self, methods, services=SERVICES, missing=()):
        self.methods = methods
        self.services = services
        self.missing = set(missing)
        self.closed = False
        self.kwargs = None

    def __call__(self, channel, **kwargs):
        self.channel = channel
        self.kwargs = kwargs
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True

    def list_services(self):
        return list(self.services)

    def resolve_service(self, name):
        if name in self.missing:
            raise NotFoundError(f"[ERROR] {name} gone")
        return dict(self.methods)

    def find_method(self, name, verb):
        return self.methods[verb]


class FakeChannels:
    def __init__(self, channel):
        self.channel = channel
        self.opened = []
        self.closed = 0

    @contextlib.contextmanager
    def __call__(self, endpoint, token=""):
        self.opened.append((endpoint, token))
        try:
            yield self.channel
        finally:
            self.closed += 1


def _users_response(method, *users):
    response = GetMessageClass(method.output_type)(total_count=len(users))
    for user in users:
        response.results.add(**user)
    return response


def _client(env, reflection, channel=None, monkeypatch=None):
    monkeypatch.setattr("rpcctl_cli.client.ReflectionClient", reflection)
    channels = FakeChannels(channel or MagicMock())
    return RpcClient(env, settings=SETTINGS, channel_factory=channels), channels


USERS = (
    {"user_id": "u2", "name": "bob", "state": "ENABLED", "email": "b@x", "created_at": "2"},
    {"user_id": "u1", "name": "alice", "state": "DISABLED", "email": "a@x", "created_at": "1"},
)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_settings_not_loaded_when_environment_given(self, local_env):
        client = RpcClient(local_env)
        assert client.environment is local_env
        assert client.settings == {}

    def test_environment_from_settings(self):
        settings = {
            "environment": "local",
            "environments": {"local": {"endpoint": "grpc://localhost:50051"}},
        }
        client = RpcClient(settings=settings)
        assert client.environment == EnvironmentConfig("local", "grpc://localhost:50051")


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


class TestFetch:
    def test_list_flow(self, local_env, demo_methods, monkeypatch):
        channel = MagicMock()
        channel.unary_unary.return_value.return_value = _users_response(
            demo_methods["list"], *USERS
        )
        reflection = FakeReflection(demo_methods)
        client, channels = _client(local_env, reflection, channel, monkeypatch)

        result = client.fetch("identity", "list", "User", FetchOptions(parameters=("name=a",)))

        assert result["total_count"] == 2
        assert [r["user_id"] for r in result["results"]] == ["u2", "u1"]
        assert channels.opened == [(ServiceEndpoint("grpc", "localhost", 50051), "")]
        assert channels.closed == 1
        assert reflection.closed is True
        assert reflection.kwargs["metadata"] == ()
        request = channel.unary_unary.return_value.call_args.args[0]
        assert request.name == "a"

    def test_token_sent_as_metadata(self, tls_env, demo_methods, monkeypatch):
        channel = MagicMock()
        channel.unary_unary.return_value.return_value = GetMessageClass(
            demo_methods["get"].output_type
        )(name="srv")
        reflection = FakeReflection(demo_methods)
        client, channels = _client(tls_env, reflection, channel, monkeypatch)
        client.fetch("inventory", "get", "Server", FetchOptions())
        endpoint, token = channels.opened[0]
        assert endpoint.address == "inventory.api.dev.example.dev:443"
        assert token == "tok-123456789"
        assert reflection.kwargs["metadata"] == (("token", "tok-123456789"),)
        call_kwargs = channel.unary_unary.return_value.call_args.kwargs
        assert call_kwargs["metadata"] == (("token", "tok-123456789"),)

    def test_unary_call_has_deadline(self, local_env, demo_methods, monkeypatch):
        channel = MagicMock()
        channel.unary_unary.return_value.return_value = _users_response(demo_methods["list"])
        reflection = FakeReflection(demo_methods)
        client, _channels = _client(local_env, reflection, channel, monkeypatch)
        client.fetch("identity", "list", "User", FetchOptions())
        assert channel.unary_unary.return_value.call_args.kwargs["timeout"] == 30.0
        assert reflection.kwargs["timeout"] == 30.0

    def test_stream_has_no_deadline(self, local_env, demo_methods, monkeypatch):
        info_cls = GetMessageClass(demo_methods["watch"].output_type)
        channel = MagicMock()
        channel.unary_stream.return_value.return_value = iter(
            [info_cls(name="a"), info_cls(name="b")]
        )
        client, _channels = _client(local_env, FakeReflection(demo_methods), channel, monkeypatch)
        result = client.fetch("identity", "watch", "User", FetchOptions())
        assert [r["name"] for r in result["results"]] == ["a", "b"]
        assert channel.unary_stream.return_value.call_args.kwargs["timeout"] is None

    @pytest.mark.parametrize("knob", [0, -1])
    def test_non_positive_timeout_disables_deadline(
        self, knob, local_env, demo_methods, monkeypatch
    ):
        monkeypatch.setattr(config, "RPC_TIMEOUT_SECONDS", knob)
        channel = MagicMock()
        channel.unary_unary.return_value.return_value = _users_response(demo_methods["list"])
        reflection = FakeReflection(demo_methods)
        client, _channels = _client(local_env, reflection, channel, monkeypatch)
        client.fetch("identity", "list", "User", FetchOptions())
        assert channel.unary_unary.return_value.call_args.kwargs["timeout"] is None
        assert reflection.kwargs["timeout"] is None

    def test_sort_rows_columns(self, local_env, demo_methods, monkeypatch):
        channel = MagicMock()
        channel.unary_unary.return_value.return_value = _users_response(
            demo_methods["list"], *USERS
        )
        client, _channels = _client(local_env, FakeReflection(demo_methods), channel, monkeypatch)
        options = FetchOptions(sort_by="name", rows=1, columns=("name", "user_id"))
        result = client.fetch("identity", "list", "User", options)
        assert result["results"] == [{"name": "alice", "user_id": "u1"}]

    def test_minimal_columns(self, local_env, demo_methods, monkeypatch):
        channel = MagicMock()
        channel.unary_unary.return_value.return_value = _users_response(
            demo_methods["list"], *USERS
        )
        client, _channels = _client(local_env, FakeReflection(demo_methods), channel, monkeypatch)
        result = client.fetch("identity", "list", "User", FetchOptions(minimal_columns=True))
        assert set(result["results"][0]) == {"user_id", "name", "state", "created_at"}

    def test_minimal_ignored_with_explicit_columns(self, local_env, demo_methods, monkeypatch):
        channel = MagicMock()
        channel.unary_unary.return_value.return_value = _users_response(
            demo_methods["list"], *USERS
        )
        client, _channels = _client(local_env, FakeReflection(demo_methods), channel, monkeypatch)
        options = FetchOptions(minimal_columns=True, columns=("email",))
        result = client.fetch("identity", "list", "User", options)
        assert result["results"] == [{"email": "b@x"}, {"email": "a@x"}]

    def test_resources_released_on_error(self, local_env, demo_methods, monkeypatch):
        channel = MagicMock()
        channel.unary_unary.return_value.side_effect = InvocationError("[ERROR] boom")
        reflection = FakeReflection(demo_methods)
        client, channels = _client(local_env, reflection, channel, monkeypatch)
        with pytest.raises(InvocationError):
            client.fetch("identity", "get", "User", FetchOptions())
        assert channels.closed == 1
        assert reflection.closed is True

    def test_unknown_resource(self, local_env, demo_methods, monkeypatch):
        reflection = FakeReflection(demo_methods)
        client, channels = _client(local_env, reflection, monkeypatch=monkeypatch)
        with pytest.raises(NotFoundError, match="billing"):
            client.fetch("billing", "list", "Invoice", FetchOptions())
        assert channels.closed == 1

    def test_resource_required(self, local_env, demo_methods, monkeypatch):
        client, channels = _client(local_env, FakeReflection(demo_methods), monkeypatch=monkeypatch)
        with pytest.raises(CliError, match="A resource is required"):
            client.fetch("identity", "list", None, FetchOptions())
        assert channels.opened == []

    def test_missing_token(self, demo_methods, monkeypatch):
        env = EnvironmentConfig("dev", "grpc+ssl://identity.api.dev.example.dev:443")
        client, channels = _client(env, FakeReflection(demo_methods), monkeypatch=monkeypatch)
        with pytest.raises(AuthenticationError, match=r"\[TOKEN_EXPIRED\]"):
            client.fetch("identity", "list", "User", FetchOptions())
        assert channels.opened == []


# ---------------------------------------------------------------------------
# api_resources / list_service_names
# ---------------------------------------------------------------------------


class TestApiResources:
    def test_rows(self, local_env, demo_methods, monkeypatch):
        reflection = FakeReflection(demo_methods)
        client, _channels = _client(local_env, reflection, monkeypatch=monkeypatch)
        rows = client.api_resources("identity")
        assert rows == [
            {
                "service": "identity",
                "verb": "get, list, watch, upload",
                "resource": "Role",
                "short_names": "",
            },
            {
                "service": "identity",
                "verb": "get, watch, upload",
                "resource": "User",
                "short_names": "",
            },
            {"service": "identity", "verb": "list", "resource": "User", "short_names": "ls"},
        ]

    def test_unresolvable_resource_skipped(self, local_env, demo_methods, monkeypatch, capsys):
        reflection = FakeReflection(demo_methods, missing={"spaceone.api.identity.v1.Role"})
        client, _channels = _client(local_env, reflection, monkeypatch=monkeypatch)
        rows = client.api_resources("identity")
        assert {r["resource"] for r in rows} == {"User"}
        assert "[WARN] Skipping spaceone.api.identity.v1.Role" in capsys.readouterr().err

    def test_other_service_resources(self, local_env, demo_methods, monkeypatch):
        reflection = FakeReflection(demo_methods)
        client, _channels = _client(local_env, reflection, monkeypatch=monkeypatch)
        rows = client.api_resources("inventory")
        assert [r["resource"] for r in rows] == ["Server"]
        assert rows[0]["short_names"] == ""


class TestListServiceNames:
    def test_short_names(self, local_env, demo_methods, monkeypatch):
        client, channels = _client(local_env, FakeReflection(demo_methods), monkeypatch=monkeypatch)
        assert client.list_service_names() == ["identity", "inventory"]
        assert channels.closed == 1

    def test_uses_current_service_endpoint(self, demo_methods, monkeypatch):
        env = EnvironmentConfig("dev", "grpc+ssl://inventory.api.dev.example.dev:443", "t")
        client, channels = _client(env, FakeReflection(demo_methods), monkeypatch=monkeypatch)
        client.list_service_names()
        assert channels.opened[0][0].host == "inventory.api.dev.example.dev"
