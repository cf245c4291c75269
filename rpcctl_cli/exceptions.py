"""
rpcctl exception hierarchy.

All custom exceptions live here to avoid circular imports.
"""


class CliError(Exception):
    """Exit code 1 — validation, not-found, network, remote call errors."""

    exit_code = 1


class SetupError(CliError):
    """Exit code 2 — bad configuration, missing or expired token."""

    exit_code = 2


class ConfigurationError(SetupError):
    """Malformed endpoint or settings; *field* names the offending key."""

    def __init__(self, message, field=None):
        super().__init__(message)
        self.field = field


class AuthenticationError(SetupError):
    """The remote side rejected the token as invalid or expired."""


class ConnectivityError(CliError):
    """Discovery gateway, reflection service or target cannot be reached."""


class NotFoundError(CliError):
    """No reflected service or method matches the requested names."""


class ParameterFormatError(CliError):
    """Malformed key=value token, inline JSON or parameter file."""


class MissingParameterError(CliError):
    """The remote call rejected the request for a missing required field."""

    def __init__(self, field):
        super().__init__(
            f"[ERROR] Missing required parameter: {field}\n  Pass it with: -p {field}=<value>"
        )
        self.field = field


class InvocationError(CliError):
    """Any other failure of a remote call; *status* is the gRPC status name."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class HTTPError(Exception):
    """Raised by _http_request for HTTP errors that callers want to handle."""

    def __init__(self, code, reason, body, headers=None):
        self.code = code
        self.reason = reason
        self.body = body
        self.headers = headers or {}
