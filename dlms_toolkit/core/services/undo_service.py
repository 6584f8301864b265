from __future__ import annotations

"""Undo/redo snapshot management for the document tree and pending list.

This service is UI-agnostic and performs pure in-memory history tracking of
the editor state. It serializes the tree snapshot and the pending list to JSON
text and can restore previous states into a provided tree and pending service.

Design principles
-----------------
- No UI imports and no I/O (filesystem/console).
- Snapshots are immutable strings once stored.
- Redo stack is cleared on every new snapshot push (standard undo/redo behavior).
- Memory usage controlled by a max_history policy (trim oldest).
"""

from dataclasses import dataclass
import json
from typing import List

from dlms_toolkit.core.services.pending_service import PendingService
from dlms_toolkit.core.tree import DocumentTree

__all__ = ["UndoService"]


@dataclass(frozen=True)
class _Snapshot:
    """Immutable serialized editor state.

    Attributes
    ----------
    document_json :
        Serialized tree snapshot.
    pending_json :
        Serialized pending list.
    """

    document_json: str
    pending_json: str


class UndoService:
    """Manage undo/redo stacks for a :class:`DocumentTree`.

    Parameters
    ----------
    max_history : int, default=50
        Maximum number of undo snapshots to keep. Oldest entries are discarded
        when the capacity is exceeded. Values below 1 are coerced to 1.

    Notes
    -----
    Callers push a baseline snapshot once the document is loaded and a new
    snapshot after every mutation. Undo restores the snapshot below the top
    of the stack.

    Examples
    --------
    >>> svc = UndoService(max_history=10)
    >>> svc.push_snapshot(tree, pending)      # baseline
    >>> # ... mutate tree ...
    >>> svc.push_snapshot(tree, pending)      # post
    >>> svc.undo(tree, pending)
    True
    """

    def __init__(self, max_history: int = 50) -> None:
        self._max_history: int = max(1, int(max_history))
        self._undo_stack: List[_Snapshot] = []
        self._redo_stack: List[_Snapshot] = []

    # --------------------------------------------------------------------- API

    def push_snapshot(self, tree: DocumentTree, pending: PendingService) -> None:
        """Capture the current state; clears the redo stack."""
        self._undo_stack.append(self._create_snapshot(tree, pending))
        self._redo_stack.clear()
        self._trim(self._undo_stack)

    def undo(self, tree: DocumentTree, pending: PendingService) -> bool:
        """Restore the previous state.

        Given undo_stack = [..., baseline, post] and the current state == post,
        'post' moves to the redo stack and 'baseline' is restored.
        """
        if len(self._undo_stack) < 2:
            return False
        post_snap = self._undo_stack.pop()
        self._restore(tree, pending, self._undo_stack[-1])
        self._redo_stack.append(post_snap)
        self._trim(self._redo_stack)
        return True

    def redo(self, tree: DocumentTree, pending: PendingService) -> bool:
        """Re-apply the most recently undone state."""
        if not self._redo_stack:
            return False
        post_snap = self._redo_stack.pop()
        self._restore(tree, pending, post_snap)
        self._undo_stack.append(post_snap)
        self._trim(self._undo_stack)
        return True

    def restore_current(self, tree: DocumentTree, pending: PendingService) -> bool:
        """Reload the newest snapshot, discarding changes made since it was pushed."""
        if not self._undo_stack:
            return False
        self._restore(tree, pending, self._undo_stack[-1])
        return True

    def can_undo(self) -> bool:
        return len(self._undo_stack) > 1

    def can_redo(self) -> bool:
        return len(self._redo_stack) > 0

    def undo_count(self) -> int:
        return max(0, len(self._undo_stack) - 1)

    def redo_count(self) -> int:
        return len(self._redo_stack)

    def clear(self) -> None:
        """Clear both undo and redo histories."""
        self._undo_stack.clear()
        self._redo_stack.clear()

    # --------------------------------------------------------------- Internals

    def _trim(self, stack: List[_Snapshot]) -> None:
        overflow = len(stack) - self._max_history
        if overflow > 0:
            del stack[0:overflow]

    @staticmethod
    def _create_snapshot(tree: DocumentTree, pending: PendingService) -> _Snapshot:
        return _Snapshot(
            document_json=json.dumps(tree.to_json()),
            pending_json=json.dumps(pending.to_list()),
        )

    @staticmethod
    def _restore(tree: DocumentTree, pending: PendingService, snap: _Snapshot) -> None:
        # Parse both blobs before touching either target.
        document = json.loads(snap.document_json)
        items = json.loads(snap.pending_json)
        tree.load_snapshot(document)
        pending.load_items(items)
