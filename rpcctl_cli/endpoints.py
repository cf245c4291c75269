"""
Endpoint resolution: which host:port to dial for a service.

Three deployment shapes are supported by the environment's endpoint:

    grpc://host:port             local, insecure, single service
    grpc+ssl://identity.a.b.c:443   direct TLS; first host label is the service
    http(s)://gateway.a.b        gateway that publishes the gRPC endpoints
"""

import re

from rpcctl_cli import api, config
from rpcctl_cli.exceptions import ConfigurationError
from rpcctl_cli.models import SCHEME_INSECURE, SCHEME_TLS, ServiceEndpoint

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_HTTP_SCHEMES = ("http", "https")


def canonical_service_name(service):
    """Host label used for *service* in DNS-based endpoint names."""
    key = service.strip()
    mapped = config.SERVICE_HOST_LABELS.get(key.lower())
    if mapped:
        return mapped
    return _CAMEL_BOUNDARY_RE.sub("-", key).replace("_", "-").lower()


def parse_endpoint(endpoint, field="endpoint"):
    """Split ``scheme://host[:port][/path]`` into (scheme, host, port)."""
    if "://" not in endpoint:
        raise ConfigurationError(
            f"[ERROR] Invalid endpoint '{endpoint}' in {field}: expected scheme://host[:port].",
            field=field,
        )
    scheme, rest = endpoint.split("://", 1)
    hostport = rest.split("/", 1)[0]
    host, sep, port_text = hostport.rpartition(":")
    if not sep:
        host, port = hostport, None
    elif port_text.isdigit():
        port = int(port_text)
    else:
        raise ConfigurationError(
            f"[ERROR] Invalid port '{port_text}' in {field}: {endpoint}", field=field
        )
    if not host:
        raise ConfigurationError(f"[ERROR] Missing host in {field}: {endpoint}", field=field)
    return scheme.lower(), host, port


def _substitute_first_label(host, service, min_labels, field):
    labels = host.split(".")
    if len(labels) < min_labels or not all(labels):
        raise ConfigurationError(
            f"[ERROR] Invalid host '{host}' in {field}: "
            f"expected at least {min_labels} DNS labels.",
            field=field,
        )
    labels[0] = canonical_service_name(service)
    return ".".join(labels)


def _resolve_direct(service, address, field):
    scheme, host, port = parse_endpoint(address, field)
    if scheme != SCHEME_TLS:
        raise ConfigurationError(
            f"[ERROR] Expected a {SCHEME_TLS}:// address in {field}, got '{address}'.",
            field=field,
        )
    return ServiceEndpoint(
        SCHEME_TLS,
        _substitute_first_label(host, service, config.MIN_HOST_LABELS, field),
        port if port is not None else config.DEFAULT_TLS_PORT,
    )


def resolve_endpoint(service, environment, discover=None):
    """Return the ServiceEndpoint to dial for *service* in *environment*.

    *discover* is the gateway collaborator, ``gateway_url -> (address, found)``;
    it defaults to the HTTP discovery in api.py and is only called for
    HTTP(S) gateway endpoints.
    """
    field = f"environments.{environment.name}.endpoint"
    scheme, host, port = parse_endpoint(environment.endpoint, field)

    if scheme == SCHEME_INSECURE:
        return ServiceEndpoint(SCHEME_INSECURE, host, port)

    if scheme == SCHEME_TLS:
        return _resolve_direct(service, environment.endpoint, field)

    if scheme in _HTTP_SCHEMES:
        discover = discover or api.discover_bootstrap_endpoint
        address, found = discover(environment.endpoint)
        if found:
            return _resolve_direct(service, address, "bootstrap endpoint")
        return ServiceEndpoint(
            SCHEME_TLS,
            _substitute_first_label(host, service, 2, field),
            port if port is not None else config.DEFAULT_TLS_PORT,
        )

    raise ConfigurationError(
        f"[ERROR] Unsupported endpoint scheme '{scheme}' in {field}. "
        f"Use {SCHEME_INSECURE}://, {SCHEME_TLS}://, http:// or https://.",
        field=field,
    )


def current_service(environment):
    """Service named by a direct TLS endpoint's first label, else None."""
    try:
        scheme, host, _port = parse_endpoint(environment.endpoint)
    except ConfigurationError:
        return None
    if scheme != SCHEME_TLS:
        return None
    return host.split(".", 1)[0] or None
