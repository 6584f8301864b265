from __future__ import annotations

"""Versioning envelope: metadata, commits and the versioned document.

All objects serialize to the JSON-compatible camelCase shape used by exports
(``{metadata, document, history, uncommittedChanges}``).
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

__all__ = ["Commit", "DocumentMetadata", "VersionedDocument"]


@dataclass(frozen=True)
class Commit:
    """Immutable history entry.

    Attributes
    ----------
    version
        Monotonic version number, 0 for the initial state.
    timestamp
        ISO-8601 creation time.
    author
        Commit author.
    message
        Commit message.
    patch
        Ordered patch operations (``{"op", "path", ...}`` mappings) from the
        previous commit's snapshot to this commit's snapshot.
    node_count
        Total number of nodes in the resulting snapshot.
    """

    version: int
    timestamp: str
    author: str
    message: str
    patch: List[Dict[str, Any]]
    node_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "timestamp": self.timestamp,
            "author": self.author,
            "message": self.message,
            "patch": copy.deepcopy(self.patch),
            "nodeCount": self.node_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Commit":
        return cls(
            version=int(data["version"]),
            timestamp=str(data.get("timestamp", "")),
            author=str(data.get("author", "")),
            message=str(data.get("message", "")),
            patch=copy.deepcopy(list(data.get("patch") or [])),
            node_count=int(data.get("nodeCount", 0)),
        )


@dataclass
class DocumentMetadata:
    """Descriptive metadata of a versioned document.

    ``extra`` keeps any additional keys set through metadata updates.
    """

    document_name: str
    created: str
    last_modified: str
    current_version: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "documentName": self.document_name,
            "created": self.created,
            "lastModified": self.last_modified,
            "currentVersion": self.current_version,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentMetadata":
        known = {"documentName", "created", "lastModified", "currentVersion"}
        return cls(
            document_name=str(data.get("documentName", "Untitled Document")),
            created=str(data.get("created", "")),
            last_modified=str(data.get("lastModified", "")),
            current_version=int(data.get("currentVersion", 0)),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class VersionedDocument:
    """Self-contained document with embedded version history."""

    metadata: DocumentMetadata
    document: List[Dict[str, Any]] = field(default_factory=list)
    history: List[Commit] = field(default_factory=list)
    uncommitted_changes: bool = False

    def commit_for(self, version: int) -> Optional[Commit]:
        for commit in self.history:
            if commit.version == version:
                return commit
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "document": copy.deepcopy(self.document),
            "history": [c.to_dict() for c in self.history],
            "uncommittedChanges": self.uncommitted_changes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VersionedDocument":
        return cls(
            metadata=DocumentMetadata.from_dict(data["metadata"]),
            document=copy.deepcopy(list(data.get("document") or [])),
            history=[Commit.from_dict(c) for c in data.get("history") or []],
            uncommitted_changes=bool(data.get("uncommittedChanges", False)),
        )
