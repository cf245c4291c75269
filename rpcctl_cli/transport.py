"""
gRPC channel lifecycle, call metadata, RPC logging and status classification.
"""

import contextlib
import json
import re
import sys

import grpc

from rpcctl_cli import config
from rpcctl_cli.api import _mask_token
from rpcctl_cli.exceptions import (
    AuthenticationError,
    ConnectivityError,
    InvocationError,
    MissingParameterError,
)

AUTH_FAILURE_MARKERS = ("ERROR_AUTHENTICATE_FAILURE", "Token is invalid or expired")
REQUIRED_PARAMETER_MARKER = "ERROR_REQUIRED_PARAMETER"

_REQUIRED_PARAMETER_RE = re.compile(r"Required parameter\. \(key = ([^)]+)\)")
_UNREACHABLE_CODES = frozenset({grpc.StatusCode.UNAVAILABLE, grpc.StatusCode.DEADLINE_EXCEEDED})


def _log_rpc_event(**fields):
    """Emit structured RPC logs to stderr when enabled."""
    if not config.RPC_LOG_ENABLED:
        return
    print("[RPC] " + json.dumps(fields, ensure_ascii=False, sort_keys=True), file=sys.stderr)


def call_metadata(token):
    """Metadata attached to every call on a channel (the bearer token)."""
    return (("token", token),) if token else ()


def _channel_options():
    return [
        ("grpc.max_send_message_length", config.MAX_MESSAGE_BYTES),
        ("grpc.max_receive_message_length", config.MAX_MESSAGE_BYTES),
    ]


@contextlib.contextmanager
def open_channel(endpoint, token=""):
    """Open a channel to *endpoint* and close it on every exit path."""
    if endpoint.secure:
        channel = grpc.secure_channel(
            endpoint.address, grpc.ssl_channel_credentials(), options=_channel_options()
        )
    else:
        channel = grpc.insecure_channel(endpoint.address, options=_channel_options())
    _log_rpc_event(
        phase="channel_open",
        target=str(endpoint),
        token=_mask_token(token) if token else None,
    )
    try:
        yield channel
    finally:
        channel.close()
        _log_rpc_event(phase="channel_close", target=str(endpoint))


# ---------------------------------------------------------------------------
# Status classification
# ---------------------------------------------------------------------------


def rpc_status(err):
    """Return (StatusCode or None, details text) for a grpc.RpcError."""
    code_fn = getattr(err, "code", None)
    details_fn = getattr(err, "details", None)
    code = code_fn() if callable(code_fn) else None
    details = details_fn() if callable(details_fn) else None
    return code, details or str(err)


def extract_parameter_name(text):
    """Pull the field name out of 'Required parameter. (key = <field>)'."""
    if REQUIRED_PARAMETER_MARKER not in text:
        return None
    match = _REQUIRED_PARAMETER_RE.search(text)
    if not match:
        return None
    return match.group(1).strip() or None


def classify_rpc_error(err, target, during="invoke"):
    """Map a grpc.RpcError onto the CLI error taxonomy.

    *during* is ``"reflection"`` or ``"invoke"``; an unreachable peer is a
    ConnectivityError only while reflecting, before any method was called.
    """
    code, details = rpc_status(err)
    status = code.name if code is not None else None
    if code == grpc.StatusCode.UNAUTHENTICATED or any(m in details for m in AUTH_FAILURE_MARKERS):
        return AuthenticationError(
            "[TOKEN_EXPIRED] Authentication failed: the token is invalid or expired.\n"
            f"  {details}"
        )
    field = extract_parameter_name(details)
    if field:
        return MissingParameterError(field)
    if during == "reflection" and code in _UNREACHABLE_CODES:
        return ConnectivityError(f"[ERROR] Cannot reach {target}: {details} (status={status})")
    if during == "reflection":
        return InvocationError(
            f"[ERROR] Reflection request to {target} failed: {details} (status={status})",
            status=status,
        )
    return InvocationError(
        f"[ERROR] Failed to invoke method {target}: {details} (status={status})",
        status=status,
    )
