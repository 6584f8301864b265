from __future__ import annotations

"""Shared data structures used across the DLMS toolkit core.

This package exposes dataclasses and value objects used by services and other
core layers. It is intentionally free of UI / I/O code so that the contained
objects can be reused in any context (unit-tests, CLI, GUI, etc.).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .pending import PendingItem
from .versioning import Commit, DocumentMetadata, VersionedDocument

__all__ = [
    "DocumentNode",
    "NODE_FIELDS",
    "Commit",
    "DocumentMetadata",
    "VersionedDocument",
    "PendingItem",
    "utc_now_iso",
]

# Keys of the persisted node shape; anything else on an imported node is kept
# verbatim in ``DocumentNode.extra``.
NODE_FIELDS = ("id", "name", "content", "parentId", "children", "order", "references")


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class DocumentNode:
    """A section of the document, stored in the tree arena.

    Attributes
    ----------
    handle
        Stable arena key. Never changes, unlike the path id.
    id
        Path id derived from the node's position (``"3-2-1"``).
    name
        Display title.
    content
        Ordered text blocks.
    parent_id
        Path id of the parent (lookup only), None for roots.
    order
        1-based position among siblings; equals the id's last segment.
    children
        Ordered handles of the owned child nodes.
    parent
        Handle of the parent node, None for roots.
    references
        Weak ``{"id", "name"}`` links to other nodes; informational only.
    extra
        Unknown fields carried through from imported data.
    """

    handle: str
    id: str
    name: str
    content: List[Any] = field(default_factory=list)
    parent_id: Optional[str] = None
    order: int = 0
    children: List[str] = field(default_factory=list)
    parent: Optional[str] = None
    references: List[Dict[str, str]] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)
