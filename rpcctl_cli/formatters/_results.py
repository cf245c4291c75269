"""Table and CSV views of invocation results."""

import csv
import io

from rpcctl_cli import config
from rpcctl_cli._utils import format_cell, list_results
from rpcctl_cli.formatters._table import _column_widths, _table


def result_headers(items, columns=None):
    """Columns for a list of rows.

    Explicit *columns* keep their order; otherwise the sorted union of the
    keys of the first rows is used.
    """
    if columns:
        return list(columns)
    keys = set()
    for item in items[: config.TABLE_HEADER_SAMPLE]:
        if isinstance(item, dict):
            keys.update(item)
    return sorted(keys)


def _field_value_rows(result):
    if not isinstance(result, dict):
        return [("value", format_cell(result))]
    return [(key, format_cell(result[key])) for key in sorted(result)]


def format_result_table(result, columns=None):
    """Render a result as a table; non-list results as Field/Value pairs."""
    items = list_results(result)
    if items is None:
        rows = _field_value_rows(result)
        widths = _column_widths(("Field", "Value"), rows)
        return _table([("Field", widths[0]), ("Value", 0)], rows)
    if not items:
        return "No results found."
    headers = result_headers(items, columns)
    if not headers:
        return "No results found."
    rows = [
        tuple(format_cell(item.get(h)) for h in headers)
        for item in items
        if isinstance(item, dict)
    ]
    widths = _column_widths(headers, rows)
    cols = [(name, widths[i]) for i, name in enumerate(headers)]
    return _table(cols, rows, f"Total: {len(rows)} items")


def format_result_csv(result):
    """Render a result as CSV.

    List results use the first row's sorted keys as header; other results
    are written as Field/Value pairs.
    """
    buf = io.StringIO()
    writer = csv.writer(buf)
    items = list_results(result)
    if items is None:
        writer.writerow(["Field", "Value"])
        for row in _field_value_rows(result):
            writer.writerow(row)
        return buf.getvalue().rstrip()
    if not items:
        return ""
    first = items[0] if isinstance(items[0], dict) else {}
    headers = sorted(first)
    writer.writerow(headers)
    for item in items:
        if isinstance(item, dict):
            writer.writerow([format_cell(item.get(h)) for h in headers])
    return buf.getvalue().rstrip()
