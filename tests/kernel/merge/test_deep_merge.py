import copy

import pytest

from dhcore.kernel.merge import merge


def test_scalars_overlay_wins_and_unrelated_fields_survive():
    base = {"name": "a", "status": {"state": "CREATED", "note": "keep"}}
    result = merge(base, {"status": {"state": "UPLOADING"}})

    assert result == {"name": "a", "status": {"state": "UPLOADING", "note": "keep"}}


def test_inputs_are_not_mutated():
    base = {"status": {"files": [{"name": "a", "size": 1}]}}
    overlay = {"status": {"files": [{"name": "a", "size": 2}]}}
    base_copy, overlay_copy = copy.deepcopy(base), copy.deepcopy(overlay)

    merge(base, overlay, {"files": "name"})

    assert base == base_copy
    assert overlay == overlay_copy


def test_keyed_arrays_align_on_key():
    result = merge(
        {"files": [{"name": "a", "v": 1}]},
        {"files": [{"name": "a", "v": 2}, {"name": "b"}]},
        {"files": "name"},
    )
    assert result == {"files": [{"name": "a", "v": 2}, {"name": "b"}]}


def test_keyed_arrays_keep_base_order_then_overlay_only_elements():
    result = merge(
        {"files": [{"name": "b", "v": 1}, {"name": "a", "v": 1}]},
        {"files": [{"name": "c"}, {"name": "a", "v": 2}]},
        {"files": "name"},
    )
    assert [f["name"] for f in result["files"]] == ["b", "a", "c"]
    assert result["files"][1]["v"] == 2


def test_arrays_without_rule_are_replaced():
    result = merge({"labels": ["x", "y"]}, {"labels": ["z"]})
    assert result == {"labels": ["z"]}


def test_type_mismatch_is_replaced():
    assert merge({"spec": {"a": 1}}, {"spec": "plain"}) == {"spec": "plain"}
    assert merge({"spec": "plain"}, {"spec": {"a": 1}}) == {"spec": {"a": 1}}


@pytest.mark.parametrize(
    "document, rules",
    [
        ({"a": 1, "b": {"c": [1, 2]}}, None),
        ({"files": [{"name": "a"}, {"other": 1}], "x": {"y": None}}, {"files": "name"}),
        ({}, None),
    ]
)
def test_merge_with_itself_is_identity(document, rules):
    assert merge(document, document, rules) == document


def test_merge_with_empty_overlay_is_identity():
    document = {"a": 1, "b": {"c": [1, 2]}, "files": [{"name": "x"}]}
    assert merge(document, {}) == document
    assert merge(document, {}, {"files": "name"}) == document


def test_keyed_merge_updates_adds_and_keeps():
    result = merge(
        {"files": [{"name": "a", "v": 1}, {"name": "b", "v": 2}]},
        {"files": [{"name": "b", "v": 3}, {"name": "c", "v": 4}]},
        {"files": "name"},
    )
    by_name = {f["name"]: f["v"] for f in result["files"]}
    assert by_name == {"a": 1, "b": 3, "c": 4}
    assert len(result["files"]) == 3
