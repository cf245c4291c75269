"""Output formatting package for rpcctl.

Re-exports all public names so consumers can do:
    from rpcctl_cli.formatters import output
"""

from rpcctl_cli.formatters._core import (
    format_yaml,
    output,
    render,
    yaml_doc,
)
from rpcctl_cli.formatters._results import (
    format_result_csv,
    format_result_table,
    result_headers,
)
from rpcctl_cli.formatters._table import (
    _CONTROL_RE,
    _sanitize_str,
    _table,
    _trunc,
)

__all__ = [
    "_CONTROL_RE",
    "_sanitize_str",
    "_table",
    "_trunc",
    "format_result_csv",
    "format_result_table",
    "format_yaml",
    "output",
    "render",
    "result_headers",
    "yaml_doc",
]
