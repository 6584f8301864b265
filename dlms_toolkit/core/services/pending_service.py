from __future__ import annotations

"""Soft-delete ("pending") lifecycle for document sections.

Detaching a node moves a serialized clone of its subtree into the pending
list together with where it came from. Restoring puts it back at the same
parent and index; when that parent is gone the node is appended as a new
root. Purging forgets the item for good and is confirmation-gated.

The service does not stage snapshots itself; the owning session re-stages
the working copy after every successful call.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from dlms_toolkit.core.errors import ErrorKind
from dlms_toolkit.core.models import PendingItem, utc_now_iso
from dlms_toolkit.core.models.pending import ROOT_PARENT
from dlms_toolkit.core.patch import count_nodes
from dlms_toolkit.core.requests import Decision, MutationRequest, RequestAction
from dlms_toolkit.core.services.structure_editing_service import OperationResult
from dlms_toolkit.core.tree import DocumentTree

__all__ = ["PendingService"]

logger = logging.getLogger(__name__)


class PendingService:
    """Owns the pending list and moves subtrees in and out of a tree."""

    def __init__(self) -> None:
        self._items: List[PendingItem] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def items(self) -> List[PendingItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def _index_of(self, pending_id: str) -> int:
        # Latest detachment wins when several items share an id.
        for index in range(len(self._items) - 1, -1, -1):
            if self._items[index].id == pending_id:
                return index
        return -1

    def find(self, pending_id: str) -> Optional[PendingItem]:
        index = self._index_of(pending_id)
        return self._items[index] if index >= 0 else None

    def find_pending_node(self, node_id: str) -> Optional[Dict[str, Any]]:
        """Find a node by id anywhere inside the pending subtrees."""

        def _search(nodes: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
            for node in nodes:
                if node.get("id") == node_id:
                    return node
                found = _search(node.get("children") or [])
                if found is not None:
                    return found
            return None

        return _search(item.node for item in reversed(self._items))

    def to_list(self) -> List[Dict[str, Any]]:
        return [item.to_dict() for item in self._items]

    def load_items(self, items: Iterable[Dict[str, Any]]) -> None:
        self._items = [PendingItem.from_dict(data) for data in items]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def detach_to_pending(self, tree: DocumentTree, node_id: str) -> OperationResult:
        """Move a node and its subtree from the tree to the pending list."""
        logger.info("Edit: detach_to_pending node=%s", node_id)
        node = tree.find_by_id(node_id)
        if node is None:
            logger.warning("Edit FAIL: detach_to_pending node_not_found node=%s", node_id)
            return OperationResult(False, f"Node '{node_id}' not found.", {"node_id": node_id}, ErrorKind.NOT_FOUND)

        parent = tree.parent_node(node)
        item = PendingItem(
            node=tree.node_to_dict(node),
            pending_at=utc_now_iso(),
            original_parent_id=parent.id if parent is not None else ROOT_PARENT,
            original_index=tree.index_of(node),
        )
        self._items.append(item)

        tree.detach(node)
        tree.delete_ids_recursively(node)
        tree.release_subtree(node)
        tree.reindex_sequences(parent)

        logger.info(
            "Edit OK: detach_to_pending node=%s parent=%s index=%d",
            node_id, item.original_parent_id, item.original_index,
        )
        return OperationResult(True, f"{item.name or 'Item'} moved to Pending", {
            "node_id": node_id,
            "original_parent_id": item.original_parent_id,
            "original_index": item.original_index,
        })

    def restore_from_pending(self, tree: DocumentTree, pending_id: str) -> OperationResult:
        """Reinsert a pending item at its original parent and index."""
        logger.info("Edit: restore_from_pending id=%s", pending_id)
        index = self._index_of(pending_id)
        if index < 0:
            logger.warning("Edit FAIL: restore_from_pending not_found id=%s", pending_id)
            return OperationResult(False, "Pending item not found", {"pending_id": pending_id}, ErrorKind.NOT_FOUND)

        item = self._items[index]
        parent = None
        fallback = False
        if item.original_parent_id != ROOT_PARENT:
            parent = tree.find_by_id(item.original_parent_id)
            if parent is None:
                fallback = True
                logger.info("Original parent %s gone, restoring %s at root", item.original_parent_id, pending_id)

        node = tree.build_from_dict(item.node, parent.id if parent is not None else None)
        size = len(tree.sequence(parent))
        position = item.original_index if not fallback and 0 <= item.original_index <= size else None
        tree.attach(node, parent, position)
        tree.reindex_sequences(parent)
        del self._items[index]

        logger.info("Edit OK: restore_from_pending id=%s final_id=%s fallback=%s", pending_id, node.id, fallback)
        return OperationResult(True, f"Restored {item.name or 'item'}", {
            "pending_id": pending_id,
            "node_id": node.id,
            "fallback_to_root": fallback,
        })

    def purge_from_pending(self, tree: DocumentTree, pending_id: str) -> OperationResult:
        """Permanently forget a pending item. Irreversible."""
        logger.info("Edit: purge_from_pending id=%s", pending_id)
        index = self._index_of(pending_id)
        if index < 0:
            logger.warning("Edit FAIL: purge_from_pending not_found id=%s", pending_id)
            return OperationResult(False, "Pending item not found", {"pending_id": pending_id}, ErrorKind.NOT_FOUND)
        item = self._items.pop(index)
        tree.delete_ids_recursively(item.node)
        logger.info("Edit OK: purge_from_pending id=%s", pending_id)
        return OperationResult(True, f"Permanently deleted {item.name or 'item'}", {"pending_id": pending_id})

    def clear_all_pending(self, tree: DocumentTree) -> OperationResult:
        logger.info("Edit: clear_all_pending count=%d", len(self._items))
        if not self._items:
            return OperationResult(False, "Pending is already empty", {"reason": "empty"})
        count = len(self._items)
        for item in self._items:
            tree.delete_ids_recursively(item.node)
        self._items.clear()
        logger.info("Edit OK: clear_all_pending removed=%d", count)
        return OperationResult(True, f"Cleared {count} pending item(s)", {"removed": count})

    # ------------------------------------------------------------------
    # Confirmation-gated variants
    # ------------------------------------------------------------------

    def propose_purge(self, pending_id: str) -> OperationResult:
        item = self.find(pending_id)
        if item is None:
            return OperationResult(False, "Pending item not found", {"pending_id": pending_id}, ErrorKind.NOT_FOUND)
        descendants = count_nodes(item.node.get("children"))
        request = MutationRequest(
            action=RequestAction.PURGE_PENDING,
            prompt=f'Permanently delete "{item.name or "Untitled"}"?\n\nThis cannot be undone!',
            target_id=pending_id,
            details={"descendants": descendants},
        )
        return OperationResult(True, "Purge awaiting confirmation.", {"pending_id": pending_id}, request=request)

    def propose_clear_all(self) -> OperationResult:
        if not self._items:
            return OperationResult(False, "Pending is already empty", {"reason": "empty"})
        count = len(self._items)
        request = MutationRequest(
            action=RequestAction.CLEAR_PENDING,
            prompt=f"Permanently delete all {count} pending item(s)?\n\nThis cannot be undone!",
            details={"count": count},
        )
        return OperationResult(True, "Clear awaiting confirmation.", {"count": count}, request=request)

    def apply(self, tree: DocumentTree, request: MutationRequest, decision: Decision) -> OperationResult:
        if request.action not in (RequestAction.PURGE_PENDING, RequestAction.CLEAR_PENDING):
            return OperationResult(False, f"Unsupported request '{request.action.value}'.", None, ErrorKind.VALIDATION)
        if not decision.approved:
            logger.info("Edit noop: %s cancelled", request.action.value)
            return OperationResult(False, "Cancelled.", {"reason": "cancelled"})
        if request.action is RequestAction.PURGE_PENDING:
            return self.purge_from_pending(tree, str(request.target_id))
        return self.clear_all_pending(tree)
