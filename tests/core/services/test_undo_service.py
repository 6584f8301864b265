import pytest

from dlms_toolkit.core.services import PendingService, StructureEditingService, UndoService


@pytest.fixture
def pending():
    return PendingService()


@pytest.fixture
def editing():
    return StructureEditingService()


def test_undo_redo_cycle(tree, pending, editing, sample_snapshot):
    service = UndoService()
    service.push_snapshot(tree, pending)
    editing.rename_node(tree, "1", "Preface")
    service.push_snapshot(tree, pending)
    assert service.can_undo() and not service.can_redo()

    assert service.undo(tree, pending)
    assert tree.to_json() == sample_snapshot
    assert service.can_redo()

    assert service.redo(tree, pending)
    assert tree.find_by_id("1").name == "Preface"
    assert not service.can_redo()


def test_pending_list_is_part_of_the_snapshot(tree, pending):
    service = UndoService()
    service.push_snapshot(tree, pending)
    pending.detach_to_pending(tree, "2")
    service.push_snapshot(tree, pending)

    service.undo(tree, pending)
    assert len(pending) == 0
    assert tree.find_by_id("2").name == "Body"


def test_push_clears_redo(tree, pending, editing):
    service = UndoService()
    service.push_snapshot(tree, pending)
    editing.rename_node(tree, "1", "A")
    service.push_snapshot(tree, pending)
    service.undo(tree, pending)
    editing.rename_node(tree, "1", "B")
    service.push_snapshot(tree, pending)
    assert not service.can_redo()
    assert not service.redo(tree, pending)


def test_max_history_trims_oldest(tree, pending, editing):
    service = UndoService(max_history=3)
    service.push_snapshot(tree, pending)
    for name in ("A", "B", "C", "D"):
        editing.rename_node(tree, "1", name)
        service.push_snapshot(tree, pending)
    assert service.undo_count() == 2
    service.undo(tree, pending)
    service.undo(tree, pending)
    assert not service.undo(tree, pending)
    assert tree.find_by_id("1").name == "B"


def test_restore_current_discards_unpushed_changes(tree, pending, editing, sample_snapshot):
    service = UndoService()
    assert not service.restore_current(tree, pending)
    service.push_snapshot(tree, pending)
    editing.delete_node(tree, "1")
    assert service.restore_current(tree, pending)
    assert tree.to_json() == sample_snapshot


def test_clear(tree, pending):
    service = UndoService()
    service.push_snapshot(tree, pending)
    service.push_snapshot(tree, pending)
    service.clear()
    assert service.undo_count() == 0 and service.redo_count() == 0
