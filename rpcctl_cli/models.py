"""
Typed models for endpoints, reflected methods and fetch options.
"""

from dataclasses import dataclass, field

from rpcctl_cli.exceptions import CliError

SCHEME_INSECURE = "grpc"
SCHEME_TLS = "grpc+ssl"


@dataclass(frozen=True)
class EnvironmentConfig:
    """The active environment as supplied by the settings document."""

    name: str
    endpoint: str
    token: str = ""

    @property
    def is_local(self) -> bool:
        return self.endpoint.startswith(f"{SCHEME_INSECURE}://")


@dataclass(frozen=True)
class ServiceEndpoint:
    """Concrete address to dial; *scheme* alone decides the channel credentials."""

    scheme: str
    host: str
    port: int | None = None

    @property
    def secure(self) -> bool:
        return self.scheme == SCHEME_TLS

    @property
    def address(self) -> str:
        if self.port is None:
            return self.host
        return f"{self.host}:{self.port}"

    def __str__(self) -> str:
        return f"{self.scheme}://{self.address}"


@dataclass(frozen=True)
class MethodDescriptor:
    """One reflected RPC method with its request/response schemas."""

    service: str
    name: str
    input_type: object
    output_type: object
    server_streaming: bool = False
    client_streaming: bool = False

    @property
    def path(self) -> str:
        return f"/{self.service}/{self.name}"

    @property
    def streaming_shape(self) -> str:
        if self.client_streaming:
            return "client-streaming"
        return "server-streaming" if self.server_streaming else "unary"

    @classmethod
    def from_descriptor(cls, service_name, method_desc):
        return cls(
            service=service_name,
            name=method_desc.name,
            input_type=method_desc.input_type,
            output_type=method_desc.output_type,
            server_streaming=bool(getattr(method_desc, "server_streaming", False)),
            client_streaming=bool(getattr(method_desc, "client_streaming", False)),
        )


@dataclass(frozen=True)
class FetchOptions:
    """Read-only input to one invocation.

    Alias expansion builds a new value with ``dataclasses.replace`` and
    never mutates the caller's instance.
    """

    parameters: tuple[str, ...] = ()
    json_parameter: str | None = None
    file_parameter: str | None = None
    output_format: str = "yaml"
    output_format_explicit: bool = False
    sort_by: str | None = None
    columns: tuple[str, ...] = ()
    rows: int = 0
    page: int = 0
    page_size: int = 0
    minimal_columns: bool = False
    watch: bool = False

    @classmethod
    def from_namespace(cls, ns):
        fmt = getattr(ns, "output", None)
        rows = getattr(ns, "rows", None) or 0
        page = getattr(ns, "page", None) or 0
        page_size = getattr(ns, "page_size", None) or 0
        if rows < 0 or page < 0 or page_size < 0:
            raise CliError("[ERROR] --rows, --page and --page-size must not be negative.")
        if page and not page_size:
            raise CliError("[ERROR] --page requires --page-size.")
        return cls(
            parameters=tuple(getattr(ns, "parameter", None) or ()),
            json_parameter=getattr(ns, "json_parameter", None),
            file_parameter=getattr(ns, "file_parameter", None),
            output_format=fmt or "yaml",
            output_format_explicit=fmt is not None,
            sort_by=getattr(ns, "sort_by", None),
            columns=_split_columns(getattr(ns, "columns", None)),
            rows=rows,
            page=page,
            page_size=page_size,
            minimal_columns=bool(getattr(ns, "minimal", False)),
            watch=bool(getattr(ns, "watch", False)),
        )


@dataclass(frozen=True)
class ApiResource:
    """One row of the api_resources listing."""

    service: str
    verb: str
    resource: str
    short_names: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self):
        return {
            "service": self.service,
            "verb": self.verb,
            "resource": self.resource,
            "short_names": ", ".join(self.short_names),
        }


def _split_columns(raw):
    if not raw:
        return ()
    return tuple(c.strip() for c in raw.split(",") if c.strip())
