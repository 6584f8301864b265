import pytest

from dlms_toolkit.core.errors import ValidationError
from dlms_toolkit.core.patch import count_nodes
from dlms_toolkit.core.reconstruction import (
    CLEANUP_ORDER,
    reconstruct_tree_from_flat_list,
    validate_flat_list,
)
from dlms_toolkit.core.tree import DocumentTree


def _load(roots):
    tree = DocumentTree()
    tree.load_snapshot(roots)
    return tree


def test_gap_in_sibling_ids_is_closed(assert_contiguous):
    roots = reconstruct_tree_from_flat_list([
        {"id": "1", "name": "Root", "order": 1},
        {"id": "1-1", "name": "First", "order": 1},
        {"id": "1-3", "name": "Third", "order": 2},
    ])
    tree = _load(roots)
    children = tree.children(tree.find_by_id("1"))
    assert [c.id for c in children] == ["1-1", "1-2"]
    assert [c.name for c in children] == ["First", "Third"]
    assert_contiguous(tree)


def test_missing_intermediate_levels_go_to_cleanup_group():
    roots = reconstruct_tree_from_flat_list([
        {"id": "3", "name": "Root", "order": 1},
        {"id": "3-1-1-1", "name": "Deep", "order": 1},
    ])
    assert len(roots) == 1
    box = roots[0]["children"][0]
    assert box["id"] == "3-99999"
    assert box["name"] == "3 - AUTO"
    assert box["order"] == CLEANUP_ORDER
    group = box["children"][0]
    assert (group["id"], group["name"]) == ("3-1", "Group 1")
    assert group["children"][0]["id"] == "3-1-1-1"
    assert count_nodes(roots) == 4


def test_cleanup_group_survives_loading(assert_contiguous):
    tree = _load(reconstruct_tree_from_flat_list([
        {"id": "3", "name": "Root", "order": 1},
        {"id": "3-1-1-1", "name": "Deep", "order": 1},
    ]))
    assert [n.name for n in tree.iter_nodes()] == ["Root", "3 - AUTO", "Group 1", "Deep"]
    assert_contiguous(tree)


def test_second_segment_above_threshold_is_quarantined():
    flat = [
        {"id": "1", "name": "Root", "order": 1},
        {"id": "1-11", "name": "Odd", "order": 11},
    ]
    roots = reconstruct_tree_from_flat_list(flat)
    assert roots[0]["children"][0]["id"] == "1-99999"

    relaxed = reconstruct_tree_from_flat_list(flat, non_standard_threshold=20)
    assert [c["id"] for c in relaxed[0]["children"]] == ["1-11"]


def test_groups_are_shared_per_second_segment():
    roots = reconstruct_tree_from_flat_list([
        {"id": "2", "name": "Root", "order": 1},
        {"id": "2-5-1-1", "name": "A", "order": 1},
        {"id": "2-5-2-1", "name": "B", "order": 2},
        {"id": "2-6-1-1", "name": "C", "order": 3},
    ])
    box = roots[0]["children"][0]
    assert [g["name"] for g in box["children"]] == ["Group 5", "Group 6"]
    assert [e["name"] for e in box["children"][0]["children"]] == ["A", "B"]


def test_orphan_becomes_root():
    roots = reconstruct_tree_from_flat_list([
        {"id": "1", "name": "Root", "order": 1},
        {"id": "5-1", "name": "Orphan", "order": 1},
    ])
    assert [r["name"] for r in roots] == ["Root", "Orphan"]
    assert count_nodes(roots) == 2


def test_missing_cleanup_root_puts_box_at_top_level():
    roots = reconstruct_tree_from_flat_list([
        {"id": "4-2", "name": "Orphan", "order": 1},
        {"id": "4-2-7-1", "name": "Deep", "order": 1},
    ])
    assert {r["id"] for r in roots} == {"4-2", "4-99999"}
    assert count_nodes(roots) == 4


def test_elements_without_id_are_skipped_and_parent_id_dropped():
    roots = reconstruct_tree_from_flat_list([
        {"id": "1", "name": "Root", "order": 1, "parentId": "x"},
        {"name": "No id", "order": 2},
    ])
    assert len(roots) == 1
    assert "parentId" not in roots[0]


def test_missing_order_sorts_last():
    roots = reconstruct_tree_from_flat_list([
        {"id": "2", "name": "Unordered"},
        {"id": "1", "name": "Ordered", "order": 1},
    ])
    assert [r["name"] for r in roots] == ["Ordered", "Unordered"]


def test_input_is_not_mutated():
    flat = [{"id": "1", "name": "Root", "order": 1}]
    reconstruct_tree_from_flat_list(flat)
    assert flat == [{"id": "1", "name": "Root", "order": 1}]


def test_flatten_then_reconstruct_round_trips(tree, sample_snapshot):
    rebuilt = _load(reconstruct_tree_from_flat_list(tree.flatten()))
    assert rebuilt.to_json() == sample_snapshot


def test_empty_and_invalid_input():
    assert reconstruct_tree_from_flat_list([]) == []
    with pytest.raises(ValidationError) as excinfo:
        reconstruct_tree_from_flat_list({"id": "1"})
    assert excinfo.value.errors == ["Input must be an array"]


def test_validate_flat_list_reports_every_problem():
    errors = validate_flat_list([{"id": "1", "name": "A", "order": 1}, {"name": ""}, "junk"])
    assert errors == [
        "Item at index 1 missing required 'id' property",
        "Item at index 1 missing required 'name' property",
        "Item at index 1 missing 'order' property",
        "Item at index 2 is not an object",
    ]
    assert validate_flat_list("nope") == ["Input must be an array"]


def test_flatten_then_reconstruct_keeps_references(tree):
    tree.find_by_id("2-1").references = [{"id": "1-2", "name": "Terms"}]
    rebuilt = _load(reconstruct_tree_from_flat_list(tree.flatten()))
    assert rebuilt.find_by_id("2-1").references == [{"id": "1-2", "name": "Terms"}]
    assert rebuilt.to_json() == tree.to_json()
