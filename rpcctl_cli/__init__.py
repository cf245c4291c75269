"""rpcctl — call gRPC services discovered through server reflection."""

from rpcctl_cli.client import RpcClient
from rpcctl_cli.config import VERSION
from rpcctl_cli.exceptions import (
    AuthenticationError,
    CliError,
    ConfigurationError,
    ConnectivityError,
    InvocationError,
    MissingParameterError,
    NotFoundError,
    ParameterFormatError,
    SetupError,
)
from rpcctl_cli.models import FetchOptions
from rpcctl_cli.types import ApiResourceRow, ListResult, ServiceRow

__all__ = [
    "VERSION",
    "RpcClient",
    "FetchOptions",
    "CliError",
    "SetupError",
    "AuthenticationError",
    "ConfigurationError",
    "ConnectivityError",
    "InvocationError",
    "MissingParameterError",
    "NotFoundError",
    "ParameterFormatError",
    "ApiResourceRow",
    "ListResult",
    "ServiceRow",
]
