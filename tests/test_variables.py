"""Tests for placeholder resolution and scoped variable storage."""

from __future__ import annotations

import pytest

from apitester.variables import UNRESOLVED_MARKER, VariableStore, as_text, extract_path, is_missing, resolve


class TestResolve:

    def test_template_without_placeholders_is_unchanged(self):
        template = {"url": "/users", "headers": {"Accept": "application/json"}, "json": [1, "two", None]}
        r = resolve(template, {"unused": 1})
        assert r.value == template
        assert r.ok

    def test_resolving_twice_equals_resolving_once(self):
        template = {"url": "/users/{{id}}?q={{ q }}", "json": {"ids": ["{{id}}", "{{missing}}"]}}
        scope = {"id": 7, "q": "abc"}
        once = resolve(template, scope).value
        twice = resolve(once, scope).value
        assert once == twice
        assert once["url"] == "/users/7?q=abc"

    def test_whole_string_placeholder_keeps_type(self):
        scope = {"count": 3, "payload": {"a": [1, 2]}}
        assert resolve("{{count}}", scope).value == 3
        assert resolve({"body": "{{payload}}"}, scope).value == {"body": {"a": [1, 2]}}

    def test_embedded_structured_value_renders_as_json(self):
        r = resolve("data={{payload}}", {"payload": {"b": 1, "a": True}})
        assert r.value == 'data={"a":true,"b":1}'

    def test_unresolved_placeholder_becomes_marker(self):
        r = resolve({"h": "Bearer {{token}}", "x": "{{token}}"}, {})
        assert r.value == {
            "h": "Bearer " + UNRESOLVED_MARKER.format("token"),
            "x": UNRESOLVED_MARKER.format("token"),
        }
        assert r.unresolved == ["token"]
        assert "{{token}}" not in str(r.value)

    def test_dotted_lookup_into_structured_value(self):
        scope = {"login": {"token": "abc", "roles": ["admin", "dev"]}}
        assert resolve("{{login.token}}", scope).value == "abc"
        assert resolve("{{login.roles.1}}", scope).value == "dev"
        assert resolve("{{login.nope}}", scope).unresolved == ["login.nope"]


class TestVariableStore:

    def test_more_specific_scope_wins(self):
        store = VariableStore(suite_variables={"host": "suite", "v": "suite"}, config={"host": "config", "c": 1})
        store.bind("v", "step-output")
        assert store.get("v") == "step-output"
        assert store.get("host") == "suite"
        assert store.get("c") == 1

    def test_last_writer_wins_within_test(self):
        store = VariableStore()
        store.bind("sig", "first")
        store.bind("sig", "second")
        assert store.get("sig") == "second"

    def test_stores_do_not_leak_between_tests(self):
        defaults = {"base": "x"}
        a = VariableStore(suite_variables=defaults)
        b = VariableStore(suite_variables=defaults)
        a.bind("token", "secret")
        assert "token" in a
        assert "token" not in b
        assert defaults == {"base": "x"}

    def test_promoted_binding_visible_to_later_tests(self):
        promoted = {}
        first = VariableStore(promoted=promoted)
        first.bind("session", "s-1", scope="suite")
        later = VariableStore(promoted=promoted)
        assert later.get("session") == "s-1"

    def test_suite_binding_replaces_earlier_test_binding(self):
        store = VariableStore(promoted={})
        store.bind("session", "local")
        store.bind("session", "shared", scope="suite")
        assert store.get("session") == "shared"
        store.bind("session", "local-again")
        assert store.get("session") == "local-again"

    def test_view_is_read_only(self):
        store = VariableStore(suite_variables={"a": 1})
        view = store.view()
        with pytest.raises(TypeError):
            view["a"] = 2  # type: ignore[index]


def test_extract_path_distinguishes_null_from_missing():
    data = {"a": {"b": None}, "items": [{"id": 1}]}
    assert extract_path(data, "a.b") is None
    assert is_missing(extract_path(data, "a.c"))
    assert extract_path(data, "items.0.id") == 1
    assert is_missing(extract_path(data, "items.5.id"))
    assert is_missing(extract_path(data, "items.x"))


@pytest.mark.parametrize("value, text", [
    ("s", "s"),
    (200, "200"),
    (True, "true"),
    (None, "null"),
    ({"b": 1, "a": 2}, '{"a":2,"b":1}'),
])
def test_as_text(value, text):
    assert as_text(value) == text
