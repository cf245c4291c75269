"""
Command implementations for rpcctl.
Each cmd_*() function receives an argparse.Namespace and handles one CLI command.

Business logic lives in client.py (RpcClient). These thin wrappers
handle argparse -> FetchOptions, alias expansion, and output formatting.
"""

import functools
import sys
import time
from datetime import datetime

from rpcctl_cli import config
from rpcctl_cli._utils import item_identifier, list_results
from rpcctl_cli.client import RpcClient
from rpcctl_cli.exceptions import CliError
from rpcctl_cli.formatters import format_yaml, output
from rpcctl_cli.models import FetchOptions
from rpcctl_cli.params import expand_alias

API_RESOURCES_VERB = "api_resources"
API_RESOURCE_COLUMNS = ("service", "verb", "resource", "short_names")


def _get_client(ns):
    client = getattr(ns, "client", None)
    return client if client is not None else RpcClient()


# ---------------------------------------------------------------------------
# Service commands
# ---------------------------------------------------------------------------


def cmd_service(ns):
    service = ns.command
    client = _get_client(ns)
    options = FetchOptions.from_namespace(ns)

    if ns.verb == API_RESOURCES_VERB:
        rows = client.api_resources(service)
        fmt = options.output_format if options.output_format_explicit else "table"
        output({"results": rows}, fmt, columns=API_RESOURCE_COLUMNS)
        return

    lookup = functools.partial(config.lookup_alias, settings=client.settings)
    verb, resource, options = expand_alias(service, ns.verb, ns.resource, options, lookup)

    if options.watch:
        watch_resource(lambda: client.fetch(service, verb, resource, options))
        return

    result = client.fetch(service, verb, resource, options)
    output(result, options.output_format, columns=options.columns or None)


def _print_items(items):
    print(format_yaml({"results": items}).rstrip("\n"))


def watch_resource(fetch, interval=None, recent=None, sleep=time.sleep):
    """Poll *fetch* every *interval* seconds and print items not seen before.

    The first poll prints the most recent items. Failed polls are reported
    and skipped; Ctrl+C ends the loop.
    """
    interval = config.WATCH_INTERVAL_SECONDS if interval is None else interval
    recent = config.WATCH_RECENT_ITEMS if recent is None else recent
    seen = set()
    try:
        items = list_results(fetch()) or []
        for item in items:
            seen.add(item_identifier(item))
        if items:
            print("Recent items:")
            _print_items(items[-recent:])
        print("\nWatching for changes... (Ctrl+C to quit)\n")

        while True:
            sleep(interval)
            try:
                result = fetch()
            except CliError as e:
                print(f"[WARN] Poll failed: {e}", file=sys.stderr)
                continue
            new_items = []
            for item in list_results(result) or []:
                identifier = item_identifier(item)
                if identifier not in seen:
                    seen.add(identifier)
                    new_items.append(item)
            if new_items:
                stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
                print(f"Found {len(new_items)} new items at {stamp}:")
                _print_items(new_items)
                print()
    except KeyboardInterrupt:
        print("\nStopping watch...")


# ---------------------------------------------------------------------------
# Static commands
# ---------------------------------------------------------------------------


def cmd_services(ns):
    registry = ns.registry
    rows = [
        {"service": name, "endpoint": registry.endpoints.get(name, "")}
        for name in registry.services
    ]
    fmt = ns.output or "table"
    output({"results": rows}, fmt, columns=("service", "endpoint"))


def cmd_version(ns):
    print(f"rpcctl {config.VERSION}")
