"""
Parameter building: merge file, inline JSON and key=value sources into one
request mapping, and expand service-scoped aliases.
"""

import dataclasses
import json

import yaml

from rpcctl_cli import config
from rpcctl_cli._utils import infer_value
from rpcctl_cli.exceptions import ParameterFormatError

LIST_VERB = "list"


def _load_file_parameters(path):
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ParameterFormatError(f"[ERROR] Cannot read parameter file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ParameterFormatError(f"[ERROR] Invalid YAML in parameter file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ParameterFormatError(
            f"[ERROR] Parameter file {path} must contain a mapping, got {type(data).__name__}."
        )
    return data


def _load_json_parameters(text):
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParameterFormatError(f"[ERROR] Invalid JSON parameter: {e}") from e
    if not isinstance(data, dict):
        raise ParameterFormatError(
            f"[ERROR] JSON parameter must be an object, got {type(data).__name__}."
        )
    return data


def parse_key_value(token):
    """Split ``key=value`` on the first ``=`` and type the value."""
    key, sep, raw = token.partition("=")
    key = key.strip()
    if not sep or not key:
        raise ParameterFormatError(
            f"[ERROR] Invalid parameter '{token}': expected key=value."
        )
    return key, infer_value(raw)


def build_parameters(options, verb=None):
    """Merge the parameter sources of *options* into one mapping.

    Precedence, lowest first: parameter file, inline JSON, key=value tokens.
    Sources replace whole top-level keys. ``page``/``page_size`` are added
    last for ``list`` calls with an explicit page.
    """
    params = {}
    if options.file_parameter:
        params.update(_load_file_parameters(options.file_parameter))
    if options.json_parameter:
        params.update(_load_json_parameters(options.json_parameter))
    for token in options.parameters:
        key, value = parse_key_value(token)
        params[key] = value
    if verb == LIST_VERB and options.page > 0:
        params["page"] = options.page
        params["page_size"] = options.page_size
    return params


def expand_alias(service, verb, resource, options, lookup=None):
    """Resolve *verb* through the alias table.

    Returns (verb, resource, options). When an alias resolves to ``list``
    the returned options favour a full-column table view; *options*
    itself is never modified.
    """
    lookup = lookup or config.lookup_alias
    resolved = lookup(service, verb)
    if resolved is None:
        return verb, resource, options
    alias_verb, alias_resource = resolved
    if alias_verb == LIST_VERB:
        options = dataclasses.replace(
            options,
            output_format=options.output_format if options.output_format_explicit else "table",
            columns=(),
            minimal_columns=False,
            page_size=options.page_size or config.ALIAS_LIST_PAGE_SIZE,
        )
    return alias_verb, alias_resource, options
