from __future__ import annotations

"""Patch-based version history for a single document.

The service keeps three pieces of state:

- ``current_document``: the :class:`VersionedDocument` envelope (metadata,
  latest staged snapshot, history, uncommitted flag).
- ``working_copy``: the staged, not yet committed snapshot.
- ``last_committed_state``: the snapshot produced by the latest commit.

Every commit stores the patch from the previous committed snapshot to the new
one. Version 0 holds the patch from an empty document to the initial state,
so any version can be rebuilt by replaying patches forward from nothing.

Notes
-----
Replay is O(v) patch applications per lookup. Periodic full snapshots would
bound that cost but are not implemented.
"""

import copy
import json
import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional

from dlms_toolkit.core.errors import (
    ErrorKind,
    NotFoundError,
    PatchReplayError,
    ValidationError,
)
from dlms_toolkit.core.models import Commit, DocumentMetadata, VersionedDocument, utc_now_iso
from dlms_toolkit.core.patch import apply_patch, count_nodes, diff, serialize
from dlms_toolkit.core.services.structure_editing_service import OperationResult

__all__ = ["VersionControlService"]

logger = logging.getLogger(__name__)


class VersionControlService:
    """Stage, commit, replay and revert document snapshots.

    Parameters
    ----------
    default_author : str, default="User"
        Author recorded when a commit names none.
    system_author : str, default="System"
        Author of the version 0 commit.
    """

    def __init__(self, default_author: str = "User", system_author: str = "System") -> None:
        self.default_author = default_author
        self.system_author = system_author
        self.current_document: Optional[VersionedDocument] = None
        self.working_copy: List[Dict[str, Any]] = []
        self.last_committed_state: List[Dict[str, Any]] = []

    @classmethod
    def from_settings(cls, settings: Any) -> "VersionControlService":
        return cls(default_author=settings.default_author, system_author=settings.system_author)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize_versioned_document(
        self, document_name: str, initial_data: Optional[List[Dict[str, Any]]] = None
    ) -> VersionedDocument:
        """Start a new history whose version 0 is ``initial_data``."""
        data = copy.deepcopy(list(initial_data or []))
        now = utc_now_iso()
        document = VersionedDocument(
            metadata=DocumentMetadata(document_name=document_name, created=now, last_modified=now),
            document=copy.deepcopy(data),
        )
        document.history.append(Commit(
            version=0,
            timestamp=now,
            author=self.system_author,
            message="Initial document state",
            patch=diff([], data),
            node_count=count_nodes(data),
        ))
        self.current_document = document
        self.working_copy = copy.deepcopy(data)
        self.last_committed_state = copy.deepcopy(data)
        logger.info("Initialized versioned document: name=%s nodes=%d", document_name, count_nodes(data))
        return document

    def _require_document(self) -> VersionedDocument:
        if self.current_document is None:
            raise NotFoundError("No document initialized")
        return self.current_document

    # ------------------------------------------------------------------
    # Staging and commits
    # ------------------------------------------------------------------

    def save_working_copy(self, snapshot: List[Dict[str, Any]]) -> OperationResult:
        """Stage ``snapshot`` and recompute the uncommitted flag."""
        if self.current_document is None:
            return OperationResult(False, "No document initialized.", None, ErrorKind.NOT_FOUND)
        self.working_copy = copy.deepcopy(list(snapshot))
        document = self.current_document
        document.document = copy.deepcopy(self.working_copy)
        document.metadata.last_modified = utc_now_iso()
        document.uncommitted_changes = serialize(self.working_copy) != serialize(self.last_committed_state)
        logger.debug("Working copy saved: uncommitted=%s", document.uncommitted_changes)
        return OperationResult(True, "Working copy saved.", {"uncommittedChanges": document.uncommitted_changes})

    def has_uncommitted_changes(self) -> bool:
        return bool(self.current_document and self.current_document.uncommitted_changes)

    def commit_changes(self, message: str, author: Optional[str] = None) -> OperationResult:
        """Record the staged changes as the next version."""
        if self.current_document is None:
            return OperationResult(False, "No document initialized.", None, ErrorKind.NOT_FOUND)
        document = self.current_document
        if not document.uncommitted_changes:
            logger.info("Commit noop: nothing to commit")
            return OperationResult(False, "No changes to commit", {"reason": "nothing_to_commit"})

        commit = Commit(
            version=document.metadata.current_version + 1,
            timestamp=utc_now_iso(),
            author=author or self.default_author,
            message=message,
            patch=diff(self.last_committed_state, self.working_copy),
            node_count=count_nodes(self.working_copy),
        )
        document.history.append(commit)
        document.metadata.current_version = commit.version
        document.metadata.last_modified = commit.timestamp
        document.uncommitted_changes = False
        self.last_committed_state = copy.deepcopy(self.working_copy)
        logger.info("Committed version %d: ops=%d message=%s", commit.version, len(commit.patch), message)
        return OperationResult(True, f"Committed version {commit.version}", {
            "version": commit.version,
            "message": message,
            "operations": len(commit.patch),
        })

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def get_document_at_version(self, version: int) -> List[Dict[str, Any]]:
        """Rebuild the snapshot of ``version`` by forward replay from version 0.

        Raises
        ------
        NotFoundError
            If ``version`` is outside ``0..currentVersion``.
        PatchReplayError
            If a commit is missing or its patch does not apply.
        """
        document = self._require_document()
        version = int(version)
        if version < 0 or version > document.metadata.current_version:
            raise NotFoundError(f"Invalid version: {version}", {"version": version})

        state: Any = []
        for number in range(version + 1):
            commit = document.commit_for(number)
            if commit is None:
                logger.error("History corrupted: commit %d missing", number)
                raise PatchReplayError(f"Commit for version {number} is missing from history", version=number)
            state = apply_patch(state, commit.patch, version=number)
        return state

    def revert_to_version(self, version: int) -> OperationResult:
        """Stage the snapshot of ``version``; history is kept intact."""
        if self.current_document is None:
            return OperationResult(False, "No document initialized.", None, ErrorKind.NOT_FOUND)
        try:
            reverted = self.get_document_at_version(version)
        except NotFoundError as exc:
            logger.warning("Revert FAIL: %s", exc)
            return OperationResult(False, str(exc), {"version": version}, ErrorKind.NOT_FOUND)

        document = self.current_document
        self.working_copy = copy.deepcopy(reverted)
        document.document = copy.deepcopy(reverted)
        document.uncommitted_changes = True
        document.metadata.last_modified = utc_now_iso()
        logger.info("Reverted to version %d (staged)", version)
        return OperationResult(True, f"Reverted to version {version}", {
            "version": version,
            "uncommittedChanges": True,
        })

    def get_changes_between_versions(self, from_version: int, to_version: int) -> Dict[str, Any]:
        """Patch from one version's snapshot to another's."""
        changes = diff(self.get_document_at_version(from_version), self.get_document_at_version(to_version))
        return {
            "fromVersion": from_version,
            "toVersion": to_version,
            "changeCount": len(changes),
            "changes": changes,
        }

    # ------------------------------------------------------------------
    # History and metadata
    # ------------------------------------------------------------------

    def get_version_history(self) -> List[Commit]:
        if self.current_document is None:
            return []
        return list(self.current_document.history)

    def get_document_metadata(self) -> Optional[Dict[str, Any]]:
        if self.current_document is None:
            return None
        return self.current_document.metadata.to_dict()

    def update_document_metadata(self, updates: Dict[str, Any]) -> OperationResult:
        if self.current_document is None:
            return OperationResult(False, "No document initialized.", None, ErrorKind.NOT_FOUND)
        merged = self.current_document.metadata.to_dict()
        merged.update(updates)
        merged["lastModified"] = utc_now_iso()
        self.current_document.metadata = DocumentMetadata.from_dict(merged)
        return OperationResult(True, "Metadata updated.", {"keys": sorted(updates)})

    def get_document_stats(self) -> Optional[Dict[str, Any]]:
        document = self.current_document
        if document is None:
            return None
        history_size = len(json.dumps([c.to_dict() for c in document.history]))
        total_size = len(json.dumps(document.to_dict()))
        return {
            "documentName": document.metadata.document_name,
            "currentVersion": document.metadata.current_version,
            "totalVersions": len(document.history),
            "nodeCount": count_nodes(document.document),
            "uncommittedChanges": document.uncommitted_changes,
            "historySizeKB": round(history_size / 1024, 2),
            "totalSizeKB": round(total_size / 1024, 2),
            "created": document.metadata.created,
            "lastModified": document.metadata.last_modified,
        }

    def get_default_filename(self) -> str:
        if self.current_document is None:
            return "document_v0.json"
        name = re.sub(r"[^a-z0-9]", "_", self.current_document.metadata.document_name, flags=re.IGNORECASE).lower()
        version = self.current_document.metadata.current_version
        return f"{name}_v{version}_{date.today().isoformat()}.json"

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_versioned_document(self) -> str:
        return json.dumps(self._require_document().to_dict(), indent=2, ensure_ascii=False)

    def import_versioned_document(self, payload: Any) -> VersionedDocument:
        """Load an exported envelope (JSON text or mapping) and its history.

        Raises
        ------
        ValidationError
            If the payload is not a versioned document.
        PatchReplayError
            If the history cannot rebuild the committed state.
        """
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError as exc:
                raise ValidationError("Invalid JSON", [str(exc)], cause=exc) from exc

        errors: List[str] = []
        if not isinstance(payload, dict):
            errors.append("Versioned document must be an object")
        else:
            if not isinstance(payload.get("metadata"), dict):
                errors.append("Missing 'metadata' object")
            if not isinstance(payload.get("document"), list):
                errors.append("Missing 'document' array")
            if not isinstance(payload.get("history"), list):
                errors.append("Missing 'history' array")
        if errors:
            raise ValidationError("Invalid versioned document format", errors)

        try:
            imported = VersionedDocument.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError("Invalid versioned document format", [str(exc)], cause=exc) from exc

        previous = (self.current_document, self.working_copy, self.last_committed_state)
        self.current_document = imported
        try:
            self.last_committed_state = self.get_document_at_version(imported.metadata.current_version)
        except (NotFoundError, PatchReplayError):
            self.current_document, self.working_copy, self.last_committed_state = previous
            raise
        self.working_copy = copy.deepcopy(imported.document)
        imported.uncommitted_changes = serialize(self.working_copy) != serialize(self.last_committed_state)
        logger.info(
            "Imported document: name=%s version=%d",
            imported.metadata.document_name, imported.metadata.current_version,
        )
        return imported
