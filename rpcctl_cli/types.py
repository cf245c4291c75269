"""Typed response definitions for RpcClient methods.

These TypedDicts document the shape of dicts returned by public API methods.
They are optional — runtime behavior is unchanged (plain dicts).
"""

from __future__ import annotations

from typing import Any, TypedDict


class ListResult(TypedDict):
    """List-shaped invocation result; also the wrapper for multi-message streams."""

    results: list[Any]


class ApiResourceRow(TypedDict):
    """One row of RpcClient.api_resources()."""

    service: str
    verb: str
    resource: str
    short_names: str


class ServiceRow(TypedDict):
    """One row of the ``services`` command."""

    service: str
    endpoint: str
