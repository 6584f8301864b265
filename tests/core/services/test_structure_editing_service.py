import pytest

from dlms_toolkit.core.errors import ErrorKind
from dlms_toolkit.core.patch import serialize
from dlms_toolkit.core.requests import Decision, RequestAction
from dlms_toolkit.core.services.structure_editing_service import (
    OperationResult,
    StructureEditingService,
)


@pytest.fixture
def service():
    return StructureEditingService()


def _ids(tree):
    return [n.id for n in tree.iter_nodes()]


def _names(tree):
    return [n.name for n in tree.iter_nodes()]


class TestMoveNode:

    def test_child_to_root_front(self, service, tree, assert_contiguous):
        result = service.move_node(tree, "1-1", None, 0)
        assert isinstance(result, OperationResult)
        assert result.success
        assert result.details["final_id"] == "1"
        assert _names(tree) == ["Scope", "Introduction", "Terms", "Glossary", "Body", "Part A"]
        assert _ids(tree) == ["1", "2", "2-1", "2-1-1", "3", "3-1"]
        assert_contiguous(tree)

    def test_reorder_within_parent(self, service, tree, assert_contiguous):
        result = service.move_node(tree, "1-1", "1", 1)
        assert result.success
        assert _names(tree)[:4] == ["Introduction", "Terms", "Glossary", "Scope"]
        assert _ids(tree)[:4] == ["1", "1-1", "1-1-1", "1-2"]
        assert_contiguous(tree)

    def test_across_levels(self, service, tree, assert_contiguous):
        result = service.move_node(tree, "2-1", "1-2", 0)
        assert result.success
        glossary_parent = tree.find_by_id("1-2")
        assert [c.name for c in tree.children(glossary_parent)] == ["Part A", "Glossary"]
        assert tree.find_by_id("2").children == []
        assert_contiguous(tree)

    def test_root_into_other_root_subtree(self, service, tree, assert_contiguous):
        result = service.move_node(tree, "1", "2-1", 5)
        assert result.success
        assert _ids(tree) == ["1", "1-1", "1-1-1", "1-1-1-1", "1-1-1-2", "1-1-1-2-1"]
        assert_contiguous(tree)

    def test_index_is_clamped(self, service, tree):
        result = service.move_node(tree, "2-1", "1", 99)
        assert result.success
        assert result.details["final_id"] == "1-3"

    def test_into_descendant_is_rejected_without_change(self, service, tree):
        before = serialize(tree.to_json())
        result = service.move_node(tree, "1", "1-2-1", 0)
        assert not result.success
        assert result.error is ErrorKind.CYCLE
        assert result.message == "Cannot move a node into its own descendant."
        assert serialize(tree.to_json()) == before

    def test_into_itself_is_rejected(self, service, tree):
        before = serialize(tree.to_json())
        result = service.move_node(tree, "1-2", "1-2", 0)
        assert result.error is ErrorKind.CYCLE
        assert result.message == "Cannot move a node into itself."
        assert serialize(tree.to_json()) == before

    @pytest.mark.parametrize("moved, parent", [("9", None), ("1-1", "9-9")])
    def test_unknown_ids(self, service, tree, moved, parent):
        result = service.move_node(tree, moved, parent, 0)
        assert not result.success
        assert result.error is ErrorKind.NOT_FOUND

    @pytest.mark.parametrize("moved, parent, index", [("1-1", "1", 0), ("1-2", "1", 42), ("2", None, 1)])
    def test_same_position_is_a_noop(self, service, tree, moved, parent, index):
        before = serialize(tree.to_json())
        result = service.move_node(tree, moved, parent, index)
        assert not result.success
        assert result.error is None
        assert result.details["reason"] == "no_change"
        assert serialize(tree.to_json()) == before


class TestOtherEdits:

    def test_add_node(self, service, tree, assert_contiguous):
        result = service.add_node(tree, "1-2", "  Abbreviations ", "ABC")
        assert result.success
        assert result.details["node_id"] == "1-2-2"
        assert tree.find_by_id("1-2-2").name == "Abbreviations"
        assert_contiguous(tree)

    def test_add_node_validation(self, service, tree):
        assert service.add_node(tree, "1", "   ").error is ErrorKind.VALIDATION
        assert service.add_node(tree, "7", "X").error is ErrorKind.NOT_FOUND

    def test_rename(self, service, tree):
        result = service.rename_node(tree, "2", "Main")
        assert result.success
        assert result.details == {"node_id": "2", "old_name": "Body", "new_name": "Main"}

    def test_rename_unchanged_is_a_noop(self, service, tree):
        result = service.rename_node(tree, "2", "Body")
        assert not result.success
        assert result.error is None

    def test_update_content(self, service, tree):
        assert service.update_content(tree, "2-1", ["Beta"]).success
        assert tree.find_by_id("2-1").content == ["Beta"]
        assert service.update_content(tree, "8", []).error is ErrorKind.NOT_FOUND

    def test_delete_node(self, service, tree, assert_contiguous):
        result = service.delete_node(tree, "1")
        assert result.success
        assert result.details["removed"] == 4
        assert _names(tree) == ["Body", "Part A"]
        assert _ids(tree) == ["1", "1-1"]
        assert_contiguous(tree)


class TestGatedRename:

    def test_propose_then_apply(self, service, tree):
        proposal = service.propose_rename(tree, "1-1")
        assert proposal.success
        request = proposal.request
        assert request.action is RequestAction.RENAME_NODE
        assert request.expects_text and request.default_text == "Scope"
        assert tree.find_by_id("1-1").name == "Scope"

        result = service.apply(tree, request, Decision.approve("Purpose"))
        assert result.success
        assert tree.find_by_id("1-1").name == "Purpose"

    def test_denied_request_changes_nothing(self, service, tree):
        request = service.propose_rename(tree, "1-1").request
        result = service.apply(tree, request, Decision.deny())
        assert not result.success
        assert result.details["reason"] == "cancelled"
        assert tree.find_by_id("1-1").name == "Scope"

    def test_propose_unknown_node(self, service, tree):
        result = service.propose_rename(tree, "5")
        assert result.error is ErrorKind.NOT_FOUND
        assert result.request is None
