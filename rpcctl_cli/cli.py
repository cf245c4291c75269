"""
rpcctl — call gRPC services discovered through server reflection
"""

import argparse
import json
import sys

from rpcctl_cli import config
from rpcctl_cli.client import RpcClient
from rpcctl_cli.commands import cmd_service, cmd_services, cmd_version
from rpcctl_cli.exceptions import CliError
from rpcctl_cli.registry import ServiceRegistry, build_registry, warm_endpoint_cache

STATIC_COMMANDS = ("services", "version")

HELP_TEXT = """\
Usage: rpcctl [global flags] <service> <verb> [resource] [options]

Global flags:
  --quiet, -q             Suppress warnings
  --verbose, -v           Log gRPC and HTTP requests to stderr
  --version               Show version number

Service options:
  -p, --parameter k=v     Request field (repeatable; values are typed: 3, true, [1,2], {{"a":1}})
  -j, --json-parameter    Request fields as a JSON object
  -f, --file-parameter    Request fields from a YAML/JSON file
  -o, --output FORMAT     yaml (default), json, table, csv
  --sort-by FIELD         Sort list results by FIELD
  --columns a,b           Keep only these fields of list results
  --rows N                Keep the first N list results
  --page N --page-size M  Request one page of a list
  --minimal               Summary columns only (list verbs)
  --watch                 Poll every 2s and print new items

Verbs are the methods of the resource, e.g. list, get, create.
'<service> api_resources' shows the resources, verbs and short names of a service.

Commands:
  services                - Services available in the current environment
  version                 - Show version
{services}"""


def _help_text(registry):
    names = list(registry.services)
    if not names:
        listing = "  (no services discovered; check the settings and connectivity)\n"
    else:
        listing = "".join(f"  {name}\n" for name in names)
    return HELP_TEXT.format(services="\nServices:\n" + listing)


def _extract_global_flags(argv):
    """Extract global flags from argv regardless of position.

    Returns (show_version, quiet, verbose, remaining_argv).
    """
    show_version = False
    quiet = False
    verbose = False
    remaining = []
    for arg in argv:
        if arg == "--version":
            show_version = True
        elif arg in ("--quiet", "-q"):
            quiet = True
        elif arg in ("--verbose", "-v"):
            verbose = True
        else:
            remaining.append(arg)
    if quiet and verbose:
        raise CliError("[ERROR] --quiet and --verbose are mutually exclusive.")
    return show_version, quiet, verbose, remaining


def _requested_format(argv):
    """Output format named on the command line, used to shape error output."""
    for i, arg in enumerate(argv):
        if arg in ("-o", "--output") and i + 1 < len(argv):
            return argv[i + 1]
        if arg.startswith("--output="):
            return arg.split("=", 1)[1]
    return None


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


class _SubcommandParser(argparse.ArgumentParser):
    """Subparser that raises CliError instead of printing full help text."""

    def error(self, message):
        raise CliError(f"[ERROR] {message}")


def _non_negative_int(value):
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be a non-negative integer") from exc
    if parsed < 0:
        raise argparse.ArgumentTypeError("must be a non-negative integer")
    return parsed


def _add_service_parser(sub, name):
    p = sub.add_parser(name, help=f"Interact with the {name} service")
    p.add_argument("verb")
    p.add_argument("resource", nargs="?")
    p.add_argument("-p", "--parameter", action="append", default=[])
    p.add_argument("-j", "--json-parameter", dest="json_parameter")
    p.add_argument("-f", "--file-parameter", dest="file_parameter")
    p.add_argument("-o", "--output", choices=config.VALID_FORMATS)
    p.add_argument("--sort-by", dest="sort_by")
    p.add_argument("--columns")
    p.add_argument("--rows", type=_non_negative_int, default=0)
    p.add_argument("--page", type=_non_negative_int, default=0)
    p.add_argument("--page-size", dest="page_size", type=_non_negative_int, default=0)
    p.add_argument("--minimal", action="store_true")
    p.add_argument("--watch", action="store_true")
    p.set_defaults(func=cmd_service)


def build_parser(registry):
    """Parser with one subcommand per service in *registry* plus the static commands."""
    parser = _SubcommandParser(
        prog="rpcctl",
        description="Call gRPC services discovered through server reflection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    parser.add_argument("--help", "-h", action="store_true", dest="show_help")
    sub = parser.add_subparsers(dest="command", parser_class=_SubcommandParser)

    p = sub.add_parser("services")
    p.add_argument("-o", "--output", choices=config.VALID_FORMATS)
    p.set_defaults(func=cmd_services)

    sub.add_parser("version").set_defaults(func=cmd_version)

    for name in registry.services:
        if name not in STATIC_COMMANDS:
            _add_service_parser(sub, name)
    return parser


# ---------------------------------------------------------------------------
# Command dispatch
# ---------------------------------------------------------------------------


def _error_type_from_message(message):
    if message.startswith("[TOKEN_EXPIRED]"):
        return "token_expired"
    if message.startswith("[SETUP_NEEDED]"):
        return "setup_needed"
    if message.startswith("[ERROR]"):
        return "error"
    return "cli_error"


def _emit_cli_error(err, fmt):
    msg = str(err)
    if fmt == "json":
        payload = {
            "ok": False,
            "error": {
                "type": _error_type_from_message(msg),
                "kind": type(err).__name__,
                "message": msg,
                "exit_code": getattr(err, "exit_code", 1),
            },
        }
        field = getattr(err, "field", None)
        if field:
            payload["error"]["field"] = field
        print(json.dumps(payload, ensure_ascii=False), file=sys.stderr)
        return
    print(msg, file=sys.stderr)


def load_registry(client):
    """Registry for the client's environment, using the warmed endpoint cache."""
    cached = warm_endpoint_cache(client.environment.name)
    return build_registry(client.environment, cached=cached, client=client)


def main():
    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")

    argv = sys.argv[1:]
    fmt = _requested_format(argv)

    try:
        show_version, quiet, verbose, remaining_argv = _extract_global_flags(argv)
        config.RUNTIME_QUIET = quiet
        config.RUNTIME_VERBOSE = verbose
        if verbose:
            config.HTTP_LOG_ENABLED = True
            config.RPC_LOG_ENABLED = True

        if show_version or remaining_argv[:1] == ["version"]:
            cmd_version(None)
            sys.exit(0)

        if not remaining_argv or remaining_argv[0] in ("-h", "--help"):
            try:
                registry = load_registry(RpcClient())
            except CliError as e:
                if not config.RUNTIME_QUIET:
                    print(f"[WARN] {e}", file=sys.stderr)
                registry = ServiceRegistry()
            print(_help_text(registry))
            sys.exit(0)

        client = RpcClient()
        registry = load_registry(client)
        parser = build_parser(registry)
        ns = parser.parse_args(remaining_argv)

        if ns.show_help or not ns.command:
            print(_help_text(registry))
            sys.exit(0)

        ns.client = client
        ns.registry = registry
        handler = getattr(ns, "func", None)
        if handler:
            handler(ns)
        else:
            raise CliError(f"[ERROR] Unknown command: {ns.command}")

    except CliError as e:
        _emit_cli_error(e, fmt)
        sys.exit(e.exit_code)


if __name__ == "__main__":
    main()
