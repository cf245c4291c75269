"""
RpcClient: public Python API for calling reflected services.

One instance is bound to one environment. Every call opens its own
channel and reflection session and releases both before returning.
"""

from __future__ import annotations

import contextlib
import sys
from typing import Any

from rpcctl_cli import config
from rpcctl_cli.endpoints import current_service, resolve_endpoint
from rpcctl_cli.exceptions import AuthenticationError, CliError, NotFoundError
from rpcctl_cli.invoker import invoke
from rpcctl_cli.models import ApiResource, EnvironmentConfig, FetchOptions
from rpcctl_cli.params import LIST_VERB, build_parameters
from rpcctl_cli.postprocess import minimal_fields, post_process, project_minimal
from rpcctl_cli.reflection import (
    ReflectionClient,
    discover_service,
    service_resources,
    short_service_names,
)
from rpcctl_cli.transport import call_metadata, open_channel
from rpcctl_cli.types import ApiResourceRow


def _rpc_timeout():
    """Per-call deadline in seconds, or None when the knob is 0 or less."""
    if config.RPC_TIMEOUT_SECONDS <= 0:
        return None
    return config.RPC_TIMEOUT_SECONDS


class RpcClient:
    """Resolve, reflect and invoke methods in one environment."""

    def __init__(
        self,
        environment: EnvironmentConfig | None = None,
        settings: dict | None = None,
        discover=None,
        channel_factory=None,
    ):
        if settings is None and environment is None:
            settings = config.load_settings()
        self.settings = settings or {}
        self.environment = environment or config.active_environment(self.settings)
        self._discover = discover
        self._open_channel = channel_factory or open_channel

    def _check_token(self):
        if self.environment.token or self.environment.is_local:
            return
        name = self.environment.name
        raise AuthenticationError(
            f"[TOKEN_EXPIRED] No token configured for environment '{name}'.\n"
            f"  Set environments.{name}.token in {config.SETTINGS_PATH}."
        )

    @contextlib.contextmanager
    def session(self, service: str):
        """Yield (channel, reflection client, call metadata) for *service*."""
        self._check_token()
        endpoint = resolve_endpoint(service, self.environment, self._discover)
        metadata = call_metadata(self.environment.token)
        with self._open_channel(endpoint, self.environment.token) as channel:
            with ReflectionClient(
                channel,
                metadata=metadata,
                timeout=_rpc_timeout(),
                target=str(endpoint),
            ) as reflection:
                yield channel, reflection, metadata

    # -- operations ---------------------------------------------------------

    def fetch(
        self, service: str, verb: str, resource: str | None, options: FetchOptions
    ) -> dict[str, Any]:
        """Invoke ``<verb>`` on the resource of *service* and post-process the result."""
        if not resource:
            raise CliError(
                f"[ERROR] A resource is required: rpcctl {service} {verb} <resource>"
            )
        fields = None
        with self.session(service) as (channel, reflection, metadata):
            full_name = discover_service(service, resource, reflection.list_services())
            method = reflection.find_method(full_name, verb)
            params = build_parameters(options, verb)
            # Streams run until the server ends them.
            timeout = None if method.server_streaming else _rpc_timeout()
            result = invoke(method, params, channel, metadata=metadata, timeout=timeout)
            if options.minimal_columns and verb == LIST_VERB and not options.columns:
                fields = minimal_fields(method.output_type)
        result = post_process(result, options)
        if fields:
            result = project_minimal(result, fields)
        return result

    def api_resources(self, service: str) -> list[ApiResourceRow]:
        """List the resources of *service* with their verbs and alias short names."""
        aliases = config.service_aliases(service, self.settings)
        rows: list[tuple[str, list[ApiResource]]] = []
        with self.session(service) as (_channel, reflection, _metadata):
            for full_name in service_resources(service, reflection.list_services()):
                try:
                    verbs = list(reflection.resolve_service(full_name))
                except NotFoundError as e:
                    if not config.RUNTIME_QUIET:
                        print(f"[WARN] Skipping {full_name}: {e}", file=sys.stderr)
                    continue
                resource = full_name.rsplit(".", 1)[-1]
                rows.append((resource, _resource_rows(service, resource, verbs, aliases)))
        rows.sort(key=lambda entry: entry[0])
        return [row.to_dict() for _resource, group in rows for row in group]

    def list_service_names(self) -> list[str]:
        """Short service names exposed by the environment's reflection service."""
        service = current_service(self.environment) or config.BOOTSTRAP_SERVICE
        with self.session(service) as (_channel, reflection, _metadata):
            return short_service_names(reflection.list_services())


def _resource_rows(service, resource, verbs, aliases):
    aliased = []
    used = set()
    for short_name, command in sorted(aliases.items()):
        parts = command.split()
        if len(parts) == 2 and parts[1] == resource:
            used.add(parts[0])
            aliased.append(ApiResource(service, parts[0], resource, (short_name,)))
    remaining = [v for v in verbs if v not in used]
    if remaining:
        return [ApiResource(service, ", ".join(remaining), resource)] + aliased
    return aliased
