"""
Shared test fixtures for rpcctl tests.
Patches the config module so tests never read the real .env, settings or cache.
"""

import os
import sys

import pytest
from google.protobuf import descriptor_pb2, descriptor_pool

# Add project root to path so imports work
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rpcctl_cli.models import EnvironmentConfig, MethodDescriptor  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch, tmp_path):
    """Ensure every test starts with a clean config state."""
    from rpcctl_cli import config

    home = tmp_path / "rpcctl-home"
    monkeypatch.setattr(config, "env", {})
    monkeypatch.setattr(config, "RPCCTL_HOME", str(home))
    monkeypatch.setattr(config, "SETTINGS_PATH", str(home / "setting.yaml"))
    monkeypatch.setattr(config, "CACHE_DIR", str(home / "cache"))
    monkeypatch.setattr(config, "API_NAMESPACE", "spaceone.api")
    monkeypatch.setattr(config, "PLUGIN_MARKER", ".plugin.")
    monkeypatch.setattr(config, "RPC_TIMEOUT_SECONDS", 30.0)
    monkeypatch.setattr(config, "MAX_MESSAGE_BYTES", 10 * 1024 * 1024)
    monkeypatch.setattr(config, "CACHE_TTL_SECONDS", 24 * 60 * 60)
    monkeypatch.setattr(config, "CACHE_WARMUP_SECONDS", 0.05)
    monkeypatch.setattr(config, "RPC_LOG_ENABLED", False)
    monkeypatch.setattr(config, "HTTP_LOG_ENABLED", False)
    monkeypatch.setattr(config, "HTTP_MAX_RETRIES", 0)
    monkeypatch.setattr(config, "HTTP_RETRY_BASE_SECONDS", 0.0)
    monkeypatch.setattr(config, "RUNTIME_QUIET", False)
    monkeypatch.setattr(config, "RUNTIME_VERBOSE", False)


# ---------------------------------------------------------------------------
# In-memory schema: package demo.v1, service UserService
# ---------------------------------------------------------------------------

_FD = descriptor_pb2.FieldDescriptorProto


def _field(msg, name, number, ftype, label=_FD.LABEL_OPTIONAL, type_name=None):
    f = msg.field.add()
    f.name = name
    f.number = number
    f.type = ftype
    f.label = label
    if type_name:
        f.type_name = type_name


def build_demo_file():
    """FileDescriptorProto for a small user service used across the tests."""
    fd = descriptor_pb2.FileDescriptorProto()
    fd.name = "demo/v1/user.proto"
    fd.package = "demo.v1"
    fd.syntax = "proto3"

    req = fd.message_type.add()
    req.name = "UserRequest"
    _field(req, "name", 1, _FD.TYPE_STRING)
    _field(req, "count", 2, _FD.TYPE_INT32)
    _field(req, "enabled", 3, _FD.TYPE_BOOL)
    _field(req, "page", 4, _FD.TYPE_INT32)
    _field(req, "page_size", 5, _FD.TYPE_INT32)

    info = fd.message_type.add()
    info.name = "UserInfo"
    _field(info, "user_id", 1, _FD.TYPE_STRING)
    _field(info, "name", 2, _FD.TYPE_STRING)
    _field(info, "state", 3, _FD.TYPE_STRING)
    _field(info, "email", 4, _FD.TYPE_STRING)
    _field(info, "created_at", 5, _FD.TYPE_STRING)

    users = fd.message_type.add()
    users.name = "UsersInfo"
    _field(users, "results", 1, _FD.TYPE_MESSAGE, _FD.LABEL_REPEATED, ".demo.v1.UserInfo")
    _field(users, "total_count", 2, _FD.TYPE_INT32)

    svc = fd.service.add()
    svc.name = "UserService"
    for name, output, streaming in (
        ("get", ".demo.v1.UserInfo", False),
        ("list", ".demo.v1.UsersInfo", False),
        ("watch", ".demo.v1.UserInfo", True),
    ):
        m = svc.method.add()
        m.name = name
        m.input_type = ".demo.v1.UserRequest"
        m.output_type = output
        m.server_streaming = streaming
    upload = svc.method.add()
    upload.name = "upload"
    upload.input_type = ".demo.v1.UserRequest"
    upload.output_type = ".demo.v1.UserInfo"
    upload.client_streaming = True
    return fd


@pytest.fixture
def demo_pool():
    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(build_demo_file().SerializeToString())
    return pool


@pytest.fixture
def demo_methods(demo_pool):
    service = demo_pool.FindServiceByName("demo.v1.UserService")
    return {m.name: MethodDescriptor.from_descriptor(service.full_name, m) for m in service.methods}


@pytest.fixture
def local_env():
    return EnvironmentConfig(name="local", endpoint="grpc://localhost:50051")


@pytest.fixture
def tls_env():
    return EnvironmentConfig(
        name="dev", endpoint="grpc+ssl://identity.api.dev.example.dev:443", token="tok-123456789"
    )
