"""Core output dispatcher."""

import json

import yaml

from rpcctl_cli._utils import list_results
from rpcctl_cli.exceptions import CliError
from rpcctl_cli.formatters._results import format_result_csv, format_result_table


def yaml_doc(data):
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)


def format_yaml(result):
    """YAML; list results become one document per item separated by ``---``."""
    items = list_results(result)
    if items:
        return "---\n".join(yaml_doc(item) for item in items)
    return yaml_doc(result)


def render(result, fmt="yaml", columns=None):
    """Return *result* rendered in *fmt* (yaml, json, table or csv)."""
    if fmt == "json":
        return json.dumps(result, indent=2, ensure_ascii=False)
    if fmt == "yaml":
        return format_yaml(result).rstrip("\n")
    if fmt == "table":
        return format_result_table(result, columns)
    if fmt == "csv":
        return format_result_csv(result)
    raise CliError(f"[ERROR] Invalid output format '{fmt}'. Use: yaml, json, table, csv")


def output(result, fmt="yaml", columns=None):
    """Print *result* in the requested format."""
    text = render(result, fmt, columns)
    if text:
        print(text)
