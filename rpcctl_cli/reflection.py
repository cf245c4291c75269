"""
Server reflection: list services, resolve method schemas, pick the service
that serves a (service short name, resource) pair.
"""

import time

import grpc

# The *_pb2 imports register the well-known type files in the default
# pool, used when a server does not serve them itself.
from google.protobuf import (  # noqa: F401
    any_pb2,
    descriptor_pb2,
    descriptor_pool,
    duration_pb2,
    empty_pb2,
    field_mask_pb2,
    struct_pb2,
    timestamp_pb2,
    wrappers_pb2,
)
from grpc_reflection.v1alpha import reflection_pb2, reflection_pb2_grpc

from rpcctl_cli import config
from rpcctl_cli.exceptions import ConnectivityError, NotFoundError
from rpcctl_cli.models import MethodDescriptor
from rpcctl_cli.transport import _log_rpc_event, classify_rpc_error

REFLECTION_SERVICE_PREFIX = "grpc.reflection."


class ReflectionClient:
    """Reflection session bound to one channel.

    Every request carries *metadata* (the auth token). Use as a context
    manager so the descriptor pool is reset on every exit path.
    """

    def __init__(self, channel, metadata=(), timeout=None, target=""):
        self._stub = reflection_pb2_grpc.ServerReflectionStub(channel)
        self._metadata = tuple(metadata)
        self._timeout = timeout
        self._target = target
        self._pool = descriptor_pool.DescriptorPool()
        self._loaded = set()
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self._pool = descriptor_pool.DescriptorPool()
        self._loaded = set()
        self.closed = True

    def _request(self, **fields):
        request = reflection_pb2.ServerReflectionRequest(**fields)
        start = time.perf_counter()
        try:
            responses = self._stub.ServerReflectionInfo(
                iter([request]), metadata=self._metadata, timeout=self._timeout
            )
            response = next(iter(responses), None)
        except grpc.RpcError as e:
            raise classify_rpc_error(e, self._target, during="reflection") from e
        _log_rpc_event(
            phase="reflection",
            target=self._target,
            request=sorted(fields),
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        if response is None:
            raise ConnectivityError(
                f"[ERROR] Reflection service at {self._target} closed the stream without a reply."
            )
        if response.HasField("error_response"):
            err = response.error_response
            subject = next(iter(fields.values()))
            raise NotFoundError(
                f"[ERROR] Reflection lookup for '{subject}' failed: "
                f"{err.error_message or 'not found'} (code={err.error_code})"
            )
        return response

    def list_services(self):
        """Return every fully-qualified service name the server exposes."""
        response = self._request(list_services="*")
        return [s.name for s in response.list_services_response.service]

    def resolve_service(self, service_name):
        """Return {method name: MethodDescriptor} for one service."""
        response = self._request(file_containing_symbol=service_name)
        self._load_files(_parse_files(response))
        try:
            service = self._pool.FindServiceByName(service_name)
        except KeyError as e:
            raise NotFoundError(
                f"[ERROR] Service '{service_name}' is not described by its reflection files."
            ) from e
        return {
            method.name: MethodDescriptor.from_descriptor(service.full_name, method)
            for method in service.methods
        }

    def find_method(self, service_name, verb):
        """Resolve *verb* to a method of *service_name*."""
        methods = self.resolve_service(service_name)
        if verb in methods:
            return methods[verb]
        for name, method in methods.items():
            if name.lower() == verb.lower():
                return method
        available = ", ".join(sorted(methods)) or "none"
        raise NotFoundError(
            f"[ERROR] Method '{verb}' not found in service {service_name}.\n"
            f"  Available methods: {available}"
        )

    # -- descriptor loading -------------------------------------------------

    def _load_files(self, protos):
        pending = {proto.name: proto for proto in protos}
        for proto in protos:
            self._add_file(proto.name, pending, frozenset())

    def _add_file(self, name, pending, visiting):
        if name in self._loaded or name in visiting:
            return
        proto = pending.get(name)
        if proto is None:
            for fetched in self._fetch_file(name):
                pending.setdefault(fetched.name, fetched)
            proto = pending.get(name)
            if proto is None:
                raise NotFoundError(f"[ERROR] Reflection did not return descriptor file {name}.")
        for dependency in proto.dependency:
            self._add_file(dependency, pending, visiting | {name})
        self._pool.AddSerializedFile(proto.SerializeToString())
        self._loaded.add(name)

    def _fetch_file(self, filename):
        try:
            return _parse_files(self._request(file_by_filename=filename))
        except NotFoundError:
            proto = _well_known_file(filename)
            if proto is None:
                raise
            return [proto]


def _parse_files(response):
    protos = []
    for raw in response.file_descriptor_response.file_descriptor_proto:
        proto = descriptor_pb2.FileDescriptorProto()
        proto.ParseFromString(raw)
        protos.append(proto)
    return protos


def _well_known_file(filename):
    try:
        file_desc = descriptor_pool.Default().FindFileByName(filename)
    except KeyError:
        return None
    proto = descriptor_pb2.FileDescriptorProto()
    file_desc.CopyToProto(proto)
    return proto


# ---------------------------------------------------------------------------
# Service discovery over a reflected service list
# ---------------------------------------------------------------------------


def discover_service(service, resource, services, api_namespace=None, plugin_marker=None):
    """Return the fully-qualified service serving *resource* for *service*.

    Plugin services are matched first, then ``<api_namespace>.<service>``
    services; the first match in list order wins.
    """
    api_namespace = api_namespace or config.API_NAMESPACE
    plugin_marker = plugin_marker or config.PLUGIN_MARKER

    for name in services:
        if plugin_marker in name and name.endswith(resource):
            return name

    prefix = f"{api_namespace}.{service}"
    for name in services:
        if prefix in name and name.endswith(resource):
            return name

    raise NotFoundError(
        f"[ERROR] No service found for service '{service}' and resource '{resource}'."
    )


def short_service_names(services, api_namespace=None):
    """Short service names (``identity``, ``inventory``...) found in *services*."""
    api_namespace = api_namespace or config.API_NAMESPACE
    prefix = f"{api_namespace}."
    names = set()
    for name in services:
        if name.startswith(prefix):
            short = name[len(prefix) :].split(".", 1)[0]
            if short:
                names.add(short)
    return sorted(names)


def service_resources(service, services):
    """Reflected services that belong to *service*, excluding reflection itself."""
    marker = f".{service}."
    return [
        name
        for name in services
        if not name.startswith(REFLECTION_SERVICE_PREFIX) and marker in name
    ]
