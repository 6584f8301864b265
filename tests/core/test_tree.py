import json

import pytest

from dlms_toolkit.core.errors import CycleError, ErrorKind, NotFoundError
from dlms_toolkit.core.tree import DocumentTree, normalize_content


def test_normalize_content():
    assert normalize_content(None) == []
    assert normalize_content("text") == ["text"]
    assert normalize_content(("a", "b")) == ["a", "b"]


def test_load_snapshot_round_trips(tree, sample_snapshot, assert_contiguous):
    assert tree.to_json() == sample_snapshot
    assert len(tree) == 6
    assert_contiguous(tree)


def test_load_snapshot_closes_gaps_and_renumbers_duplicates(assert_contiguous):
    t = DocumentTree()
    t.load_snapshot([
        {"id": "1", "name": "A", "children": [
            {"id": "1-3", "name": "Gap"},
            {"id": "1-3", "name": "Duplicate"},
        ]},
        {"id": "7", "name": "B"},
    ])
    assert [n.id for n in t.iter_nodes()] == ["1", "1-1", "1-2", "2"]
    assert [n.name for n in t.iter_nodes()] == ["A", "Gap", "Duplicate", "B"]
    assert_contiguous(t)


def test_unknown_fields_are_preserved():
    t = DocumentTree()
    t.load_snapshot([{"id": "1", "name": "A", "style": "Heading 1", "order": 5,
                      "references": [{"id": "2", "name": "B"}]}])
    data = t.to_json()[0]
    assert data["style"] == "Heading 1"
    assert data["references"] == [{"id": "2", "name": "B"}]
    assert "order" not in data


def test_find_by_id_and_require(tree):
    assert tree.find_by_id("1-2-1").name == "Glossary"
    assert tree.find_by_id("9") is None
    with pytest.raises(NotFoundError):
        tree.require("9")


def test_iter_nodes_is_pre_order(tree):
    assert [n.id for n in tree.iter_nodes()] == ["1", "1-1", "1-2", "1-2-1", "2", "2-1"]


def test_add_child_appends_and_registers(tree, assert_contiguous):
    node = tree.add_child("1", "Appendix", "Extra")
    assert node.id == "1-3"
    assert node.content == ["Extra"]
    root = tree.add_child(None, "Closing")
    assert root.id == "3"
    assert_contiguous(tree)


def test_rename_and_update_content(tree):
    tree.rename("2", "Main Body")
    tree.update_content("2", ["First", "Second"])
    node = tree.find_by_id("2")
    assert (node.name, node.content) == ("Main Body", ["First", "Second"])


def test_discard_releases_ids(tree, assert_contiguous):
    node = tree.find_by_id("1-2")
    parent = tree.parent_node(node)
    tree.discard(node)
    tree.reindex_sequences(parent)
    assert [n.id for n in tree.iter_nodes()] == ["1", "1-1", "2", "2-1"]
    assert_contiguous(tree)


def test_flatten_lists_every_node_with_order(tree):
    flat = tree.flatten()
    assert [(e["id"], e["order"]) for e in flat] == [
        ("1", 1), ("1-1", 1), ("1-2", 2), ("1-2-1", 1), ("2", 2), ("2-1", 1),
    ]
    assert all("children" not in e for e in flat)


def test_flatten_keeps_references(tree):
    tree.find_by_id("2-1").references = [{"id": "1-2", "name": "Terms"}]
    flat = {e["id"]: e for e in tree.flatten()}
    assert flat["2-1"]["references"] == [{"id": "1-2", "name": "Terms"}]
    assert "references" not in flat["1"]


def test_check_move_target_rejects_self_and_descendants(tree):
    terms = tree.find_by_id("1-2")
    tree.check_move_target(terms, tree.find_by_id("2"))
    tree.check_move_target(terms, None)
    with pytest.raises(CycleError) as excinfo:
        tree.check_move_target(terms, terms)
    assert excinfo.value.kind is ErrorKind.CYCLE
    with pytest.raises(CycleError) as excinfo:
        tree.check_move_target(tree.find_by_id("1"), tree.find_by_id("1-2-1"))
    assert excinfo.value.context == {"node_id": "1", "new_parent_id": "1-2-1"}


def test_to_json_is_detached_from_tree(tree):
    snapshot = tree.to_json()
    snapshot[0]["content"].append("mutated")
    assert tree.find_by_id("1").content == ["Welcome"]
    json.dumps(snapshot)


def test_custom_separator(assert_contiguous):
    t = DocumentTree(separator=".")
    t.load_snapshot([{"id": "1", "name": "A", "children": [{"id": "1.4", "name": "B"}]}])
    assert [n.id for n in t.iter_nodes()] == ["1", "1.1"]
    assert_contiguous(t)
