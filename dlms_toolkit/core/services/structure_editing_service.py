from __future__ import annotations

"""Service layer for structural edits on the in-memory document tree.

This module provides a UI-agnostic, testable service that encapsulates the
business logic for manipulating the document structure (adding, moving,
renaming, editing and deleting sections).

Scope and guarantees:
- Operates purely in-memory on a DocumentTree, no file I/O nor UI imports.
- Conservative behavior with boundary checks; invalid operations return
  OperationResult(success=False, ...) with clear messaging and the error
  kind, never raise.
- Identifier exhaustion is the exception: it signals a pathological document
  and propagates to the caller.
- After every successful structural change all sibling orders are contiguous
  and every id equals ``parentId + separator + order``.

Examples
--------
Basic usage:

    service = StructureEditingService()
    result = service.move_node(tree, "1-2", None, 0)
    if not result.success:
        print(result.message)

"""

from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional

from dlms_toolkit.core.errors import CycleError, ErrorKind
from dlms_toolkit.core.requests import Decision, MutationRequest, RequestAction
from dlms_toolkit.core.tree import DocumentTree


__all__ = ["OperationResult", "StructureEditingService"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationResult:
    """Result of a document operation.

    Attributes
    ----------
    success
        Whether the operation completed successfully.
    message
        Human-readable summary suitable for logs or UI display.
    details
        Optional structured details for diagnostics or caller logic.
    error
        Error kind of a failed operation. None for successes and for
        rejected no-op requests.
    request
        Pending confirmation request produced by a ``propose_*`` call.
    """
    success: bool
    message: str
    details: Optional[Dict[str, Any]] = None
    error: Optional[ErrorKind] = None
    request: Optional[MutationRequest] = None


class StructureEditingService:
    """Encapsulates structural edit operations on a document tree.

    Design principles:
    - No UI dependencies, no disk I/O.
    - No exceptions for expected invalid actions; return OperationResult.
    - Validation happens before the first mutation, so a rejected operation
      leaves the tree exactly as it was.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger(f"{__name__}.StructureEditingService")

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def move_node(
        self,
        tree: DocumentTree,
        moved_id: str,
        new_parent_id: Optional[str],
        new_index: int,
    ) -> OperationResult:
        """Move a node under ``new_parent_id`` (roots for None) at ``new_index``.

        The index is clamped to the destination sequence. Both the old and the
        new sibling sequences are reindexed, old first.
        """
        logger.info("Edit: move_node node=%s parent=%s index=%s", moved_id, new_parent_id, new_index)
        details: Dict[str, Any] = {"node_id": moved_id, "new_parent_id": new_parent_id, "new_index": new_index}

        node = tree.find_by_id(moved_id)
        if node is None:
            logger.warning("Edit FAIL: move_node node_not_found node=%s", moved_id)
            return OperationResult(False, f"Node '{moved_id}' not found.", details, ErrorKind.NOT_FOUND)

        new_parent = None
        if new_parent_id is not None:
            new_parent = tree.find_by_id(new_parent_id)
            if new_parent is None:
                logger.warning("Edit FAIL: move_node parent_not_found parent=%s", new_parent_id)
                return OperationResult(False, f"Destination '{new_parent_id}' not found.", details, ErrorKind.NOT_FOUND)
            try:
                tree.check_move_target(node, new_parent)
            except CycleError as exc:
                logger.warning("Edit FAIL: move_node cycle node=%s parent=%s", moved_id, new_parent_id)
                return OperationResult(False, str(exc), details, exc.kind)

        old_parent = tree.parent_node(node)
        old_index = tree.index_of(node)
        same_parent = (old_parent is None and new_parent is None) or (
            old_parent is not None and new_parent is not None and old_parent.handle == new_parent.handle
        )
        if same_parent:
            # Index is clamped against the sequence without the moved node.
            remaining = len(tree.sequence(old_parent)) - 1
            if max(0, min(int(new_index), remaining)) == old_index:
                logger.info("Edit noop: move_node same_position node=%s", moved_id)
                return OperationResult(False, "Node is already at that position.", dict(details, reason="no_change"))

        tree.detach(node)
        position = tree.attach(node, new_parent, new_index)
        tree.reindex_sequences(old_parent, new_parent)

        details.update({"old_index": old_index, "final_index": position, "final_id": node.id})
        logger.info("Edit OK: move_node node=%s final_id=%s", moved_id, node.id)
        return OperationResult(True, "Node moved.", details)

    def add_node(
        self,
        tree: DocumentTree,
        parent_id: Optional[str],
        name: str,
        content: Any = None,
    ) -> OperationResult:
        """Append a new section under ``parent_id`` (a new root for None)."""
        logger.info("Edit: add_node parent=%s", parent_id)
        name = (name or "").strip()
        if not name:
            logger.warning("Edit FAIL: add_node empty_name parent=%s", parent_id)
            return OperationResult(False, "Name must not be empty.", {"parent_id": parent_id}, ErrorKind.VALIDATION)
        if parent_id is not None and tree.find_by_id(parent_id) is None:
            logger.warning("Edit FAIL: add_node parent_not_found parent=%s", parent_id)
            return OperationResult(False, f"Parent '{parent_id}' not found.", {"parent_id": parent_id}, ErrorKind.NOT_FOUND)

        child = tree.add_child(parent_id, name, content)
        logger.info("Edit OK: add_node id=%s", child.id)
        return OperationResult(True, f"Added '{name}'.", {"node_id": child.id, "parent_id": parent_id})

    def rename_node(self, tree: DocumentTree, node_id: str, new_name: str) -> OperationResult:
        logger.info("Edit: rename_node node=%s", node_id)
        new_name = (new_name or "").strip()
        if not new_name:
            logger.warning("Edit FAIL: rename_node empty_name node=%s", node_id)
            return OperationResult(False, "Name must not be empty.", {"node_id": node_id}, ErrorKind.VALIDATION)
        node = tree.find_by_id(node_id)
        if node is None:
            logger.warning("Edit FAIL: rename_node node_not_found node=%s", node_id)
            return OperationResult(False, f"Node '{node_id}' not found.", {"node_id": node_id}, ErrorKind.NOT_FOUND)
        if node.name == new_name:
            logger.info("Edit noop: rename_node unchanged node=%s", node_id)
            return OperationResult(False, "Name unchanged.", {"node_id": node_id, "reason": "no_change"})

        old_name = node.name
        tree.rename(node_id, new_name)
        logger.info("Edit OK: rename_node node=%s", node_id)
        return OperationResult(True, "Node renamed.", {"node_id": node_id, "old_name": old_name, "new_name": new_name})

    def update_content(self, tree: DocumentTree, node_id: str, content: Any) -> OperationResult:
        logger.info("Edit: update_content node=%s", node_id)
        if tree.find_by_id(node_id) is None:
            logger.warning("Edit FAIL: update_content node_not_found node=%s", node_id)
            return OperationResult(False, f"Node '{node_id}' not found.", {"node_id": node_id}, ErrorKind.NOT_FOUND)
        node = tree.update_content(node_id, content)
        logger.info("Edit OK: update_content node=%s blocks=%d", node_id, len(node.content))
        return OperationResult(True, "Content updated.", {"node_id": node_id})

    def delete_node(self, tree: DocumentTree, node_id: str) -> OperationResult:
        """Permanently delete a node and its subtree, releasing their ids."""
        logger.info("Edit: delete_node node=%s", node_id)
        node = tree.find_by_id(node_id)
        if node is None:
            logger.warning("Edit FAIL: delete_node node_not_found node=%s", node_id)
            return OperationResult(False, f"Node '{node_id}' not found.", {"node_id": node_id}, ErrorKind.NOT_FOUND)

        parent = tree.parent_node(node)
        removed = sum(1 for _ in tree.iter_nodes(node))
        tree.discard(node)
        tree.reindex_sequences(parent)
        logger.info("Edit OK: delete_node node=%s removed=%d", node_id, removed)
        return OperationResult(True, "Node deleted.", {"node_id": node_id, "removed": removed})

    # -------------------------------------------------------------------------
    # Gated rename
    # -------------------------------------------------------------------------

    def propose_rename(self, tree: DocumentTree, node_id: str) -> OperationResult:
        """Validate a rename and return the text prompt request for it."""
        node = tree.find_by_id(node_id)
        if node is None:
            logger.warning("Edit FAIL: propose_rename node_not_found node=%s", node_id)
            return OperationResult(False, f"Node '{node_id}' not found.", {"node_id": node_id}, ErrorKind.NOT_FOUND)
        request = MutationRequest(
            action=RequestAction.RENAME_NODE,
            prompt=f"Enter a new name for '{node.name}':",
            target_id=node_id,
            expects_text=True,
            default_text=node.name,
        )
        return OperationResult(True, "Rename awaiting input.", {"node_id": node_id}, request=request)

    def apply(self, tree: DocumentTree, request: MutationRequest, decision: Decision) -> OperationResult:
        """Apply an answered rename request."""
        if request.action is not RequestAction.RENAME_NODE:
            return OperationResult(False, f"Unsupported request '{request.action.value}'.", None, ErrorKind.VALIDATION)
        if not decision.approved:
            logger.info("Edit noop: rename_node cancelled node=%s", request.target_id)
            return OperationResult(False, "Rename cancelled.", {"node_id": request.target_id, "reason": "cancelled"})
        return self.rename_node(tree, str(request.target_id), decision.text or "")
