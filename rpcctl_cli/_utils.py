"""
Shared pure-utility functions for rpcctl.

These helpers have no business logic and no side effects.
They are used across params.py, formatters/, and commands.py.
"""

import hashlib
import json


def _reject_constant(name):
    raise ValueError(f"not a JSON literal: {name}")


def infer_value(raw):
    """Type a raw CLI string: JSON literal (number, bool, null, list, object) or plain str.

    NaN and Infinity are not JSON, so they stay strings.
    """
    try:
        return json.loads(raw, parse_constant=_reject_constant)
    except (ValueError, TypeError):
        return raw


def format_cell(value):
    """Render one value for a table or CSV cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def item_identifier(item):
    """Stable identity of a result item for the watch loop."""
    if isinstance(item, dict):
        # Items usually carry shared parent ids too (domain_id, ...), so use all of them.
        ids = [
            f"{key}={item[key]}"
            for key in sorted(item)
            if (key == "id" or key.endswith("_id")) and item[key] not in (None, "")
        ]
        if ids:
            return ";".join(ids)
    raw = json.dumps(item, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def list_results(result):
    """Return the results list of a list-shaped result, else None."""
    if isinstance(result, dict) and isinstance(result.get("results"), list):
        return result["results"]
    return None
