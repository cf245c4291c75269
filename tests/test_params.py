"""Tests for params.py — parameter merging and alias expansion."""

import functools

import pytest

from rpcctl_cli import config
from rpcctl_cli.exceptions import ParameterFormatError
from rpcctl_cli.invoker import build_request
from rpcctl_cli.models import FetchOptions
from rpcctl_cli.params import build_parameters, expand_alias, parse_key_value

SETTINGS = {
    "short_names": {
        "identity": {"ls": "list User", "who": "get User", "broken": "list"},
    }
}

lookup = functools.partial(config.lookup_alias, settings=SETTINGS)


class TestParseKeyValue:
    def test_string(self):
        assert parse_key_value("name=test") == ("name", "test")

    def test_number(self):
        assert parse_key_value("count=3") == ("count", 3)

    def test_json_literals(self):
        assert parse_key_value("enabled=true") == ("enabled", True)
        assert parse_key_value("tags=[1,2]") == ("tags", [1, 2])
        assert parse_key_value('query={"a":1}') == ("query", {"a": 1})

    @pytest.mark.parametrize("raw", ["NaN", "Infinity", "-Infinity"])
    def test_non_json_constants_stay_strings(self, raw):
        assert parse_key_value(f"name={raw}") == ("name", raw)
        params = build_parameters(FetchOptions(parameters=(f"name={raw}",)))
        assert params == {"name": raw}

    def test_non_json_constant_inside_list_stays_string(self):
        assert parse_key_value("tags=[NaN]") == ("tags", "[NaN]")

    def test_non_json_constant_builds_string_field(self, demo_methods):
        params = build_parameters(FetchOptions(parameters=("name=NaN",)))
        request = build_request(demo_methods["get"], params)
        assert request.name == "NaN"

    def test_splits_on_first_equals(self):
        assert parse_key_value("filter=a=b") == ("filter", "a=b")

    def test_empty_value(self):
        assert parse_key_value("name=") == ("name", "")

    @pytest.mark.parametrize("token", ["name", "=value", " =x"])
    def test_malformed(self, token):
        with pytest.raises(ParameterFormatError, match="expected key=value"):
            parse_key_value(token)


class TestBuildParameters:
    def test_key_values(self):
        options = FetchOptions(parameters=("name=test", "count=3"))
        assert build_parameters(options) == {"name": "test", "count": 3}

    def test_empty(self):
        assert build_parameters(FetchOptions()) == {}

    def test_precedence_file_json_key_value(self, tmp_path):
        path = tmp_path / "params.yaml"
        path.write_text("name: from-file\nstate: ENABLED\ncount: 1\n")
        options = FetchOptions(
            file_parameter=str(path),
            json_parameter='{"name": "from-json", "count": 2}',
            parameters=("count=3",),
        )
        assert build_parameters(options) == {"name": "from-json", "state": "ENABLED", "count": 3}

    def test_nested_values_replaced_whole(self, tmp_path):
        path = tmp_path / "params.yaml"
        path.write_text("query:\n  filter: [a]\n  page: 1\n")
        options = FetchOptions(file_parameter=str(path), json_parameter='{"query": {"only": 1}}')
        assert build_parameters(options) == {"query": {"only": 1}}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert build_parameters(FetchOptions(file_parameter=str(path))) == {}

    def test_missing_file(self, tmp_path):
        options = FetchOptions(file_parameter=str(tmp_path / "nope.yaml"))
        with pytest.raises(ParameterFormatError, match="Cannot read parameter file"):
            build_parameters(options)

    def test_file_not_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ParameterFormatError, match="must contain a mapping"):
            build_parameters(FetchOptions(file_parameter=str(path)))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("a: [unclosed\n")
        with pytest.raises(ParameterFormatError, match="Invalid YAML"):
            build_parameters(FetchOptions(file_parameter=str(path)))

    def test_invalid_json(self):
        with pytest.raises(ParameterFormatError, match="Invalid JSON"):
            build_parameters(FetchOptions(json_parameter="{nope"))

    def test_json_not_object(self):
        with pytest.raises(ParameterFormatError, match="must be an object"):
            build_parameters(FetchOptions(json_parameter="[1, 2]"))

    def test_paging_for_list(self):
        options = FetchOptions(page=2, page_size=10)
        assert build_parameters(options, verb="list") == {"page": 2, "page_size": 10}

    def test_paging_overrides_explicit_values(self):
        options = FetchOptions(parameters=("page=9",), page=2, page_size=10)
        assert build_parameters(options, verb="list")["page"] == 2

    def test_no_paging_for_other_verbs(self):
        options = FetchOptions(page=2, page_size=10)
        assert build_parameters(options, verb="get") == {}

    def test_no_paging_without_page(self):
        options = FetchOptions(page_size=10)
        assert build_parameters(options, verb="list") == {}


class TestExpandAlias:
    def test_list_alias(self):
        options = FetchOptions(minimal_columns=True)
        verb, resource, expanded = expand_alias("identity", "ls", None, options, lookup)
        assert (verb, resource) == ("list", "User")
        assert expanded.output_format == "table"
        assert expanded.minimal_columns is False
        assert expanded.page_size == 15

    def test_list_alias_shows_all_columns(self):
        options = FetchOptions(columns=("name",))
        _verb, _resource, expanded = expand_alias("identity", "ls", None, options, lookup)
        assert expanded.columns == ()

    def test_original_options_unchanged(self):
        options = FetchOptions(minimal_columns=True, columns=("name",))
        expand_alias("identity", "ls", None, options, lookup)
        assert options.output_format == "yaml"
        assert options.minimal_columns is True
        assert options.page_size == 0
        assert options.columns == ("name",)

    def test_explicit_format_kept(self):
        options = FetchOptions(output_format="json", output_format_explicit=True, page_size=50)
        _verb, _resource, expanded = expand_alias("identity", "ls", None, options, lookup)
        assert expanded.output_format == "json"
        assert expanded.page_size == 50

    def test_non_list_alias(self):
        options = FetchOptions()
        verb, resource, expanded = expand_alias("identity", "who", None, options, lookup)
        assert (verb, resource) == ("get", "User")
        assert expanded is options

    def test_alias_replaces_given_resource(self):
        verb, resource, _options = expand_alias("identity", "ls", "Role", FetchOptions(), lookup)
        assert (verb, resource) == ("list", "User")

    def test_unknown_verb_passes_through(self):
        options = FetchOptions()
        assert expand_alias("identity", "list", "User", options, lookup) == (
            "list",
            "User",
            options,
        )

    def test_alias_scoped_to_service(self):
        options = FetchOptions()
        assert expand_alias("inventory", "ls", "Server", options, lookup) == (
            "ls",
            "Server",
            options,
        )

    def test_incomplete_alias_ignored(self):
        options = FetchOptions()
        assert expand_alias("identity", "broken", "User", options, lookup)[0] == "broken"
