from __future__ import annotations

"""In-memory document tree stored as an arena.

Nodes live in a flat table keyed by a stable handle; parents reference their
children through ordered handle lists. The path id of a node (``"3-2-1"``) is
a derived value, refreshed by :meth:`DocumentTree.reindex_children` whenever a
sibling sequence changes.

Each tree owns its :class:`~dlms_toolkit.core.identifiers.IdRegistry`, which is
cleared on :meth:`DocumentTree.reset` and when a snapshot is loaded.

Examples
--------
    tree = DocumentTree()
    intro = tree.add_child(None, "Introduction")
    tree.add_child(intro.id, "Scope", ["Covers the core only."])
    snapshot = tree.to_json()
"""

import copy
import logging
import uuid
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from dlms_toolkit.core.errors import CycleError, NotFoundError
from dlms_toolkit.core.identifiers import (
    DEFAULT_SEPARATOR,
    IdRegistry,
    join_id,
    order_of,
)
from dlms_toolkit.core.models import NODE_FIELDS, DocumentNode

__all__ = ["DocumentTree", "normalize_content"]

logger = logging.getLogger(__name__)

NodeLike = Union[DocumentNode, Mapping[str, Any]]


def normalize_content(content: Any) -> List[Any]:
    """Return ``content`` as a list of blocks (a scalar becomes one block)."""
    if content is None:
        return []
    if isinstance(content, (list, tuple)):
        return list(content)
    return [content]


class DocumentTree:
    """Arena-backed hierarchy of :class:`DocumentNode` objects.

    Parameters
    ----------
    separator : str, default="-"
        Segment separator of path ids.
    max_suffix_attempts : int, default=1000
        Collision suffix bound handed to the identifier registry.
    """

    def __init__(self, separator: str = DEFAULT_SEPARATOR, max_suffix_attempts: int = 1000) -> None:
        self.separator = separator
        self.registry = IdRegistry(max_suffix_attempts)
        self._nodes: Dict[str, DocumentNode] = {}
        self.roots: List[str] = []

    @classmethod
    def from_settings(cls, settings: Any) -> "DocumentTree":
        return cls(separator=settings.separator, max_suffix_attempts=settings.max_suffix_attempts)

    # ------------------------------------------------------------------
    # Arena access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return sum(1 for _ in self.iter_nodes())

    def node(self, handle: str) -> DocumentNode:
        try:
            return self._nodes[handle]
        except KeyError:
            raise NotFoundError(f"Unknown node handle '{handle}'", {"handle": handle}) from None

    def sequence(self, parent: Optional[DocumentNode]) -> List[str]:
        """Children handle list of ``parent``, or the root sequence for None."""
        return self.roots if parent is None else parent.children

    def children(self, node: Optional[DocumentNode]) -> List[DocumentNode]:
        return [self._nodes[h] for h in self.sequence(node)]

    def root_nodes(self) -> List[DocumentNode]:
        return self.children(None)

    def parent_node(self, node: DocumentNode) -> Optional[DocumentNode]:
        if node.parent is None:
            return None
        return self._nodes.get(node.parent)

    def index_of(self, node: DocumentNode) -> int:
        return self.sequence(self.parent_node(node)).index(node.handle)

    def iter_nodes(self, start: Optional[DocumentNode] = None) -> Iterator[DocumentNode]:
        """Depth-first pre-order walk over ``start`` (inclusive) or all roots."""
        stack = [start.handle] if start is not None else list(reversed(self.roots))
        while stack:
            node = self._nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def is_descendant(self, candidate: DocumentNode, ancestor: DocumentNode) -> bool:
        """True if ``candidate`` lies strictly below ``ancestor``."""
        current = self.parent_node(candidate)
        while current is not None:
            if current.handle == ancestor.handle:
                return True
            current = self.parent_node(current)
        return False

    def check_move_target(self, node: DocumentNode, new_parent: Optional[DocumentNode]) -> None:
        """Raise :class:`CycleError` if ``new_parent`` is ``node`` or lies below it."""
        if new_parent is None:
            return
        if new_parent.handle == node.handle:
            raise CycleError("Cannot move a node into itself.", {"node_id": node.id})
        if self.is_descendant(new_parent, node):
            raise CycleError(
                "Cannot move a node into its own descendant.",
                {"node_id": node.id, "new_parent_id": new_parent.id},
            )

    # ------------------------------------------------------------------
    # Node model
    # ------------------------------------------------------------------

    def create_node(
        self,
        node_id: Any,
        name: str,
        content: Any = None,
        children: Optional[Iterable[DocumentNode]] = None,
        parent_id: Optional[str] = None,
        references: Optional[List[Dict[str, str]]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> DocumentNode:
        """Create an unattached node, registering its (possibly suffixed) id.

        ``children`` are adopted in the given order. Use :meth:`attach` to
        place the new node in the tree.
        """
        handle = uuid.uuid4().hex
        final_id = self.registry.claim(str(node_id), handle)
        node = DocumentNode(
            handle=handle,
            id=final_id,
            name=name,
            content=normalize_content(content),
            parent_id=parent_id,
            order=order_of(final_id, self.separator),
            references=list(references or []),
            extra=dict(extra or {}),
        )
        self._nodes[handle] = node
        for child in children or ():
            child.parent = handle
            node.children.append(child.handle)
        return node

    def attach(self, node: DocumentNode, parent: Optional[DocumentNode], index: Optional[int] = None) -> int:
        """Insert ``node`` into the sequence of ``parent`` (roots for None).

        ``index`` is clamped to ``[0, len]``; None appends. Returns the
        insertion index. Ids are not recomputed here.
        """
        seq = self.sequence(parent)
        position = len(seq) if index is None else max(0, min(int(index), len(seq)))
        seq.insert(position, node.handle)
        node.parent = parent.handle if parent is not None else None
        return position

    def detach(self, node: DocumentNode) -> int:
        """Remove ``node`` from its sibling sequence and return its old index."""
        seq = self.sequence(self.parent_node(node))
        position = seq.index(node.handle)
        del seq[position]
        node.parent = None
        return position

    def stamp_positions(self, parent: Optional[DocumentNode]) -> None:
        """Set each child's ``order`` to its current 1-based position."""
        for position, handle in enumerate(self.sequence(parent), start=1):
            self._nodes[handle].order = position

    def reindex_children(self, node: DocumentNode) -> None:
        """Sort children by ``order`` and rederive their ids recursively."""
        if not node.children:
            return
        node.children.sort(key=lambda h: self._nodes[h].order)
        for position, handle in enumerate(node.children, start=1):
            self.recalculate_id(self._nodes[handle], node.id, position)

    def reindex_roots(self) -> None:
        """Rederive root ids from their positions in the root sequence."""
        for position, handle in enumerate(self.roots, start=1):
            self.recalculate_id(self._nodes[handle], None, position)

    def reindex_sequences(self, *parents: Optional[DocumentNode]) -> None:
        """Reindex several changed sequences, in the given order.

        Positions are stamped on every sequence before any id is rederived:
        reindexing one sequence may recurse into another, which must not be
        re-sorted by orders that predate the change.
        """
        for parent in parents:
            if parent is not None:
                self.stamp_positions(parent)
        for parent in parents:
            if parent is None:
                self.reindex_roots()
            else:
                self.reindex_children(parent)

    def recalculate_id(self, node: DocumentNode, new_parent_id: Optional[str], new_index: int) -> None:
        """Move ``node`` to a new path id and refresh its descendants."""
        self.registry.release(node.id, node.handle)
        node.parent_id = new_parent_id
        node.order = new_index
        node.id = join_id(new_parent_id, new_index, self.separator)
        self.registry.assign(node.id, node.handle)
        self.reindex_children(node)

    def find_by_id(self, node_id: str) -> Optional[DocumentNode]:
        """Locate a node by path id; None when it does not exist."""
        handle = self.registry.owner(node_id)
        if handle is not None:
            node = self._nodes.get(handle)
            if node is not None and node.id == node_id:
                return node
        for node in self.iter_nodes():
            if node.id == node_id:
                return node
        return None

    def require(self, node_id: str) -> DocumentNode:
        node = self.find_by_id(node_id)
        if node is None:
            raise NotFoundError(f"Node '{node_id}' not found", {"node_id": node_id})
        return node

    def delete_ids_recursively(self, node: Optional[NodeLike]) -> None:
        """Deregister the ids of ``node`` and its descendants.

        Accepts a live node or a serialized (pending) node. For serialized
        nodes only ids without a live holder are released.
        """
        if node is None:
            return
        if isinstance(node, DocumentNode):
            for item in self.iter_nodes(node):
                self.registry.release(item.id, item.handle)
            return
        self.registry.release(str(node.get("id")), None)
        for child in node.get("children") or ():
            self.delete_ids_recursively(child)

    def discard(self, node: DocumentNode) -> None:
        """Permanently remove a subtree: release its ids and drop it from the arena."""
        if node.parent is not None or node.handle in self.roots:
            self.detach(node)
        self.delete_ids_recursively(node)
        for item in list(self.iter_nodes(node)):
            self._nodes.pop(item.handle, None)

    def release_subtree(self, node: DocumentNode) -> None:
        """Drop a detached subtree from the arena after its ids were released."""
        for item in list(self.iter_nodes(node)):
            self._nodes.pop(item.handle, None)

    # ------------------------------------------------------------------
    # Editing helpers
    # ------------------------------------------------------------------

    def add_child(self, parent_id: Optional[str], name: str, content: Any = None) -> DocumentNode:
        """Append a new node under ``parent_id`` (a new root for None)."""
        parent = self.require(parent_id) if parent_id is not None else None
        next_order = len(self.sequence(parent)) + 1
        child = self.create_node(
            join_id(parent.id if parent else None, next_order, self.separator),
            name,
            content,
            parent_id=parent.id if parent else None,
        )
        self.attach(child, parent)
        self.reindex_sequences(parent)
        return child

    def rename(self, node_id: str, name: str) -> DocumentNode:
        node = self.require(node_id)
        node.name = name
        return node

    def update_content(self, node_id: str, content: Any) -> DocumentNode:
        node = self.require(node_id)
        node.content = normalize_content(content)
        return node

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def node_to_dict(self, node: DocumentNode) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": node.id,
            "name": node.name,
            "content": copy.deepcopy(node.content),
            "parentId": node.parent_id,
            "children": [self.node_to_dict(self._nodes[h]) for h in node.children],
        }
        if node.references:
            data["references"] = copy.deepcopy(node.references)
        for key, value in node.extra.items():
            data.setdefault(key, copy.deepcopy(value))
        return data

    def to_json(self) -> List[Dict[str, Any]]:
        """Serialize the whole tree to the persisted snapshot shape."""
        return [self.node_to_dict(node) for node in self.root_nodes()]

    def flatten(self) -> List[Dict[str, Any]]:
        """Serialize the tree to the flat-list import format (pre-order)."""
        flat: List[Dict[str, Any]] = []
        for node in self.iter_nodes():
            element: Dict[str, Any] = {
                "id": node.id,
                "name": node.name,
                "content": copy.deepcopy(node.content),
                "order": node.order,
            }
            if node.references:
                element["references"] = copy.deepcopy(node.references)
            for key, value in node.extra.items():
                element.setdefault(key, copy.deepcopy(value))
            flat.append(element)
        return flat

    def build_from_dict(self, data: Mapping[str, Any], parent_id: Optional[str] = None) -> DocumentNode:
        """Create an unattached subtree from a serialized node."""
        node = self.create_node(
            data.get("id", ""),
            str(data.get("name", "")),
            data.get("content"),
            parent_id=parent_id,
            references=data.get("references"),
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in NODE_FIELDS},
        )
        for child_data in data.get("children") or ():
            child = self.build_from_dict(child_data, node.id)
            self.attach(child, node)
        return node

    def load_snapshot(self, snapshot: Iterable[Mapping[str, Any]]) -> None:
        """Replace the tree with ``snapshot`` and normalize every id."""
        self.reset()
        for root_data in snapshot:
            self.attach(self.build_from_dict(root_data), None)
        self.reindex_roots()
        logger.debug("Tree hydrated: roots=%d nodes=%d", len(self.roots), len(self._nodes))

    def reset(self) -> None:
        self._nodes.clear()
        self.roots.clear()
        self.registry.clear()
