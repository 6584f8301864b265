from __future__ import annotations

"""Pending (soft-deleted) item model."""

import copy
from dataclasses import dataclass
from typing import Any, Dict

__all__ = ["PendingItem", "ROOT_PARENT", "PENDING_FIELDS"]

ROOT_PARENT = "root"
PENDING_FIELDS = ("_pendingAt", "_originalParentId", "_originalIndex")


@dataclass
class PendingItem:
    """A detached subtree plus what is needed to put it back.

    Attributes
    ----------
    node
        Serialized clone of the detached node and its descendants.
    pending_at
        ISO-8601 detachment time.
    original_parent_id
        ``"root"`` or the path id of the parent at detachment time.
    original_index
        0-based position within the parent's (or root) sequence.
    """

    node: Dict[str, Any]
    pending_at: str
    original_parent_id: str
    original_index: int

    @property
    def id(self) -> str:
        return str(self.node.get("id", ""))

    @property
    def name(self) -> str:
        return str(self.node.get("name", ""))

    def to_dict(self) -> Dict[str, Any]:
        data = copy.deepcopy(self.node)
        data["_pendingAt"] = self.pending_at
        data["_originalParentId"] = self.original_parent_id
        data["_originalIndex"] = self.original_index
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingItem":
        node = {k: copy.deepcopy(v) for k, v in data.items() if k not in PENDING_FIELDS}
        return cls(
            node=node,
            pending_at=str(data.get("_pendingAt", "")),
            original_parent_id=str(data.get("_originalParentId", ROOT_PARENT)),
            original_index=int(data.get("_originalIndex", -1)),
        )
