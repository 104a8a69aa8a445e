"""Tests for dot-path resolution and typed coercion."""
import pytest

from qa_core.exceptions import TypeCoercionError
from qa_core.paths import ABSENT, freeze, resolve_path, split_path, thaw, to_bool, to_int, to_list, to_map, to_string


TREE = {
    "a": {"b": {"c": 1}},
    "items": [{"name": "x"}],
    "empty": "",
    "nothing": None,
}


def test_resolve_nested_path():
    assert resolve_path(TREE, "a.b.c") == 1
    assert resolve_path(TREE, "a.b") == {"c": 1}


def test_missing_segment_is_absent():
    assert resolve_path(TREE, "a.x.c") is ABSENT
    assert resolve_path(TREE, "missing") is ABSENT


def test_non_mapping_intermediate_is_absent():
    assert resolve_path(TREE, "a.b.c.d") is ABSENT
    assert resolve_path(TREE, "items.0.name") is ABSENT


def test_empty_and_null_values_are_not_absent():
    assert resolve_path(TREE, "empty") == ""
    assert resolve_path(TREE, "nothing") is None


def test_absent_is_falsy_singleton():
    assert not ABSENT
    assert ABSENT is type(ABSENT)()
    assert repr(ABSENT) == "ABSENT"


@pytest.mark.parametrize("path", ["", "a..b", ".a", "a."])
def test_invalid_paths_rejected(path):
    with pytest.raises(ValueError):
        split_path(path)


@pytest.mark.parametrize("value, expected", [(7, 7), ("42", 42), (" 8 ", 8), (3.0, 3)])
def test_to_int_accepts_numbers(value, expected):
    assert to_int(value) == expected


@pytest.mark.parametrize("value", ["ten", True, 2.5, [1], {"a": 1}])
def test_to_int_rejects_non_numbers(value):
    with pytest.raises(TypeCoercionError):
        to_int(value, "timeouts.implicit")


@pytest.mark.parametrize("value, expected", [(True, True), ("yes", True), ("FALSE", False), (0, False), ("on", True)])
def test_to_bool(value, expected):
    assert to_bool(value) is expected


def test_to_bool_rejects_unknown_strings():
    with pytest.raises(TypeCoercionError):
        to_bool("maybe")


def test_to_string_renders_scalars():
    assert to_string(True) == "true"
    assert to_string(10) == "10"
    with pytest.raises(TypeCoercionError):
        to_string({"a": 1})


def test_list_and_map_return_mutable_copies():
    frozen = freeze({"flags": ["--a", "--b"], "prefs": {"x": [1]}})

    flags = to_list(frozen["flags"])
    flags.append("--c")
    prefs = to_map(frozen["prefs"])
    prefs["x"].append(2)

    assert frozen["flags"] == ("--a", "--b")
    assert frozen["prefs"]["x"] == (1,)
    with pytest.raises(TypeCoercionError):
        to_list("--a")


def test_freeze_is_read_only_and_thaw_round_trips():
    frozen = freeze({"a": {"b": [1, 2]}})
    with pytest.raises(TypeError):
        frozen["a"]["c"] = 3
    assert thaw(frozen) == {"a": {"b": [1, 2]}}
