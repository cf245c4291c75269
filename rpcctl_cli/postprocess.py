"""
Post-processing of list-shaped results: sort, row limit, column projection.
"""

import functools

from rpcctl_cli._utils import list_results

MINIMAL_FIELD_NAMES = ("status", "state", "created_at", "finished_at", "name")
DEFAULT_MINIMAL_FIELDS = ("name", "created_at")


def _type_rank(value):
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return 1
    if isinstance(value, str):
        return 2
    return 3


def _compare_values(a, b):
    rank_a, rank_b = _type_rank(a), _type_rank(b)
    if rank_a != rank_b:
        # Mixed types group by kind: booleans, numbers, strings, then the rest.
        return rank_a - rank_b
    if rank_a == 0:
        # True sorts first.
        return (b is True) - (a is True)
    if rank_a in (1, 2):
        return (a > b) - (a < b)
    return 0


def _item_comparator(field):
    def compare(left, right):
        has_left = isinstance(left, dict) and field in left
        has_right = isinstance(right, dict) and field in right
        if not has_left and not has_right:
            return 0
        if not has_left:
            return 1
        if not has_right:
            return -1
        return _compare_values(left[field], right[field])

    return compare


def sort_results(items, field):
    """Stable sort by *field*; items without it go last."""
    return sorted(items, key=functools.cmp_to_key(_item_comparator(field)))


def project_columns(items, columns):
    """Keep only the named fields each item actually has."""
    projected = []
    for item in items:
        if isinstance(item, dict):
            projected.append({c: item[c] for c in columns if c in item})
        else:
            projected.append(item)
    return projected


def post_process(result, options):
    """Apply sort, then row limit, then projection to a list-shaped result.

    Returns a new value; anything that is not list-shaped is returned
    unchanged.
    """
    items = list_results(result)
    if items is None:
        return result
    if options.sort_by:
        items = sort_results(items, options.sort_by)
    if options.rows > 0:
        items = items[: options.rows]
    if options.columns:
        items = project_columns(items, options.columns)
    processed = dict(result)
    processed["results"] = list(items)
    return processed


def minimal_fields(output_type):
    """Summary columns for a list response descriptor.

    Uses the fields of the ``results`` item message: ids, status/state,
    created/finished timestamps and name.
    """
    results_field = output_type.fields_by_name.get("results") if output_type else None
    item_type = results_field.message_type if results_field is not None else None
    if item_type is None:
        return list(DEFAULT_MINIMAL_FIELDS)
    fields = [
        f.name
        for f in item_type.fields
        if f.name.endswith("_id") or f.name in MINIMAL_FIELD_NAMES
    ]
    return fields or list(DEFAULT_MINIMAL_FIELDS)


def project_minimal(result, fields):
    """Project a list result to *fields*, keeping only those present in some row."""
    items = list_results(result)
    if not items:
        return result
    present = [f for f in fields if any(isinstance(i, dict) and f in i for i in items)]
    if not present:
        return result
    processed = dict(result)
    processed["results"] = project_columns(items, present)
    return processed
