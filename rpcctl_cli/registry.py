"""
Service registry: which service subcommands exist in the active environment.

Built once per process from the endpoint cache, the gateway's endpoint
list, or a reflection listing, and handed to the argument parser.
"""

import concurrent.futures
import os
import sys
import time
from dataclasses import dataclass, field

import yaml

from rpcctl_cli import api, config
from rpcctl_cli.client import RpcClient
from rpcctl_cli.endpoints import current_service, parse_endpoint

ENDPOINTS_CACHE_FILE = "endpoints.yaml"


@dataclass(frozen=True)
class ServiceRegistry:
    """Known service short names and, when published, their endpoints."""

    services: tuple = ()
    endpoints: dict = field(default_factory=dict)

    def __contains__(self, name):
        return name in self.services

    def __iter__(self):
        return iter(self.services)


def _cache_path(env_name):
    return os.path.join(config.CACHE_DIR, env_name, ENDPOINTS_CACHE_FILE)


def load_cached_endpoints(env_name):
    """Return the cached {service: endpoint} map, or None if absent or expired.

    An unreadable or malformed cache file counts as absent.
    """
    path = _cache_path(env_name)
    try:
        age = time.time() - os.path.getmtime(path)
    except OSError:
        return None
    if age > config.CACHE_TTL_SECONDS:
        return None
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError):
        return None
    if not isinstance(data, dict) or not data:
        return None
    return {str(k): str(v) for k, v in data.items()}


def save_endpoints_cache(env_name, endpoints):
    config.write_text_atomic(
        _cache_path(env_name), yaml.safe_dump(dict(endpoints), sort_keys=True)
    )


def warm_endpoint_cache(env_name, timeout=None):
    """Load the endpoint cache on a worker thread, waiting at most *timeout*.

    Returns the complete mapping or None; never a partial value.
    """
    timeout = config.CACHE_WARMUP_SECONDS if timeout is None else timeout
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    future = executor.submit(load_cached_endpoints, env_name)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError:
        if not config.RUNTIME_QUIET:
            print("[WARN] Endpoint cache loading timed out.", file=sys.stderr)
        return None
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def build_registry(environment, cached=None, client=None, fetch_map=None):
    """Build the ServiceRegistry for *environment*.

    A direct TLS endpoint for a service other than the bootstrap service
    registers that service only.
    """
    current = current_service(environment)
    if current and current != config.BOOTSTRAP_SERVICE:
        return ServiceRegistry((current,), dict(cached or {}))

    if cached:
        return ServiceRegistry(tuple(sorted(cached)), dict(cached))

    scheme = parse_endpoint(environment.endpoint, f"environments.{environment.name}.endpoint")[0]
    if scheme in ("http", "https"):
        fetch_map = fetch_map or api.fetch_endpoints_map
        endpoints = fetch_map(environment.endpoint)
        try:
            save_endpoints_cache(environment.name, endpoints)
        except OSError as e:
            if not config.RUNTIME_QUIET:
                print(f"[WARN] Failed to cache endpoints: {e}", file=sys.stderr)
        return ServiceRegistry(tuple(sorted(endpoints)), dict(endpoints))

    if client is None:
        client = RpcClient(environment)
    return ServiceRegistry(tuple(client.list_service_names()), {})
