from __future__ import annotations

"""Editor session: one document, its history, pending list and collaborators.

:class:`DocumentSession` wires the tree and the services together and
implements the control flow shared by every edit:

1. the edit runs through the structure editing or pending service;
2. on success the working copy is re-staged in version control, an undo
   snapshot is pushed, listeners receive ``documentStructureChanged`` with
   the full snapshot, and an auto-save is scheduled.

Identifier exhaustion and patch replay failures abort the operation in
progress; the session rolls the tree back to the last good state and reports
a failed result carrying the error kind.

Examples
--------
    session = DocumentSession(settings=EditorSettings())
    session.new_document("Handbook")
    session.add_node(None, "Introduction")
    session.commit("Add introduction")
"""

import copy
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from dlms_toolkit.config import EditorSettings
from dlms_toolkit.core.errors import DocumentError, ErrorKind, StorageError, ValidationError
from dlms_toolkit.core.export import create_export_package, export_filename, validate_export_package
from dlms_toolkit.core.interfaces import (
    ConfirmationProvider,
    NotificationSink,
    PersistenceProvider,
    StructureListener,
)
from dlms_toolkit.core.reconstruction import reconstruct_tree_from_flat_list, validate_flat_list
from dlms_toolkit.core.requests import Decision, MutationRequest, RequestAction, resolve_request
from dlms_toolkit.core.search import filter_nodes
from dlms_toolkit.core.services import (
    OperationResult,
    PendingService,
    StructureEditingService,
    UndoService,
    VersionControlService,
)
from dlms_toolkit.core.storage import AutoSaveScheduler
from dlms_toolkit.core.tree import DocumentTree

__all__ = ["DocumentSession", "STRUCTURE_CHANGED"]

logger = logging.getLogger(__name__)

STRUCTURE_CHANGED = "documentStructureChanged"


class DocumentSession:
    """Single-user editing session over one versioned document.

    Parameters
    ----------
    settings
        Editor settings; loaded through the config manager when omitted.
    persistence
        Storage collaborator used by auto-save. Auto-save is off without one.
    notifier
        Receives user-facing success/info/error messages.
    confirmer
        Answers gated requests in :meth:`resolve`.
    timer_factory
        Timer class for the auto-save scheduler.
    """

    def __init__(
        self,
        settings: Optional[EditorSettings] = None,
        persistence: Optional[PersistenceProvider] = None,
        notifier: Optional[NotificationSink] = None,
        confirmer: Optional[ConfirmationProvider] = None,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self.settings = settings or EditorSettings.from_config()
        self.tree = DocumentTree.from_settings(self.settings)
        self.editing = StructureEditingService()
        self.versions = VersionControlService.from_settings(self.settings)
        self.pending = PendingService()
        self.history = UndoService(self.settings.max_undo_history)
        self.persistence = persistence
        self.notifier = notifier
        self.confirmer = confirmer
        self.document_subtitle = ""
        self._listeners: List[StructureListener] = []
        self.autosave = AutoSaveScheduler(
            self._autosave,
            delay=self.settings.autosave_delay,
            enabled=self.settings.autosave_enabled and persistence is not None,
            timer_factory=timer_factory,
        )

    # ------------------------------------------------------------------
    # Listeners and notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: StructureListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: StructureListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, snapshot: List[Dict[str, Any]]) -> None:
        for listener in list(self._listeners):
            listener(STRUCTURE_CHANGED, copy.deepcopy(snapshot))

    def _notify(self, level: str, message: str) -> None:
        if self.notifier is not None:
            self.notifier.notify(level, message)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def document_title(self) -> str:
        metadata = self.versions.get_document_metadata()
        return metadata["documentName"] if metadata else "Untitled Document"

    def snapshot(self) -> List[Dict[str, Any]]:
        return self.tree.to_json()

    def search(self, term: str) -> List[Dict[str, Any]]:
        return filter_nodes(self.snapshot(), term)

    def state(self) -> Dict[str, Any]:
        """Everything the persistence collaborator stores."""
        document = self.versions.current_document
        return {
            "document": self.snapshot(),
            "versioned": document.to_dict() if document is not None else None,
            "pending": self.pending.to_list(),
            "subtitle": self.document_subtitle,
        }

    # ------------------------------------------------------------------
    # Mutation plumbing
    # ------------------------------------------------------------------

    def _run(self, operation: str, action: Callable[[], OperationResult], stage: bool = True) -> OperationResult:
        try:
            result = action()
        except DocumentError as exc:
            if not exc.kind.fatal:
                raise
            logger.exception("Edit FAIL: %s fatal %s", operation, exc.kind.value)
            self.history.restore_current(self.tree, self.pending)
            self._notify("error", str(exc))
            return OperationResult(False, str(exc), dict(exc.context, operation=operation), exc.kind)
        if result.success:
            self._after_mutation(stage)
        return result

    def _after_mutation(self, stage: bool = True) -> None:
        snapshot = self.snapshot()
        if stage:
            self.versions.save_working_copy(snapshot)
        self.history.push_snapshot(self.tree, self.pending)
        self._emit(snapshot)
        self._schedule_autosave()

    def _start_document(self, name: str, snapshot: List[Dict[str, Any]],
                        pending: Optional[List[Dict[str, Any]]] = None) -> None:
        """Replace the whole session state; registry and histories start over."""
        self.tree.load_snapshot(snapshot)
        self.pending.load_items(pending or [])
        self.versions.initialize_versioned_document(name, self.snapshot())
        self.history.clear()
        self.history.push_snapshot(self.tree, self.pending)
        self._emit(self.snapshot())
        self._schedule_autosave()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def new_document(self, name: str = "Untitled Document") -> OperationResult:
        """Start a blank document with a single root section."""
        logger.info("Session: new_document name=%s", name)
        self.document_subtitle = ""
        self._start_document(name, [{"id": "1", "name": "New Document", "content": [], "children": []}])
        self._notify("success", "New document created")
        return OperationResult(True, "New document created", {"name": name})

    def propose_new_document(self, name: str = "Untitled Document") -> OperationResult:
        """Ask for confirmation when uncommitted changes would be discarded."""
        if not self.versions.has_uncommitted_changes():
            return OperationResult(True, "No confirmation needed.", {"name": name, "confirmation_required": False})
        request = MutationRequest(
            action=RequestAction.NEW_DOCUMENT,
            prompt="You have unsaved changes. Creating a new document will discard them. Continue?",
            details={"name": name},
        )
        return OperationResult(True, "New document awaiting confirmation.",
                               {"name": name, "confirmation_required": True}, request=request)

    def load_snapshot(self, snapshot: List[Dict[str, Any]], name: str = "Untitled Document") -> OperationResult:
        if not isinstance(snapshot, list):
            return OperationResult(False, "Snapshot must be an array.", None, ErrorKind.VALIDATION)
        return self._run("load_snapshot", lambda: self._load(name, snapshot), stage=False)

    def _load(self, name: str, snapshot: List[Dict[str, Any]]) -> OperationResult:
        self._start_document(name, snapshot)
        return OperationResult(True, "Document loaded.", {"nodes": len(self.tree)})

    def import_flat_list(self, flat_list: Any, name: str = "Imported Document") -> OperationResult:
        """Rebuild a document from a flat element list and start its history."""
        logger.info("Session: import_flat_list name=%s", name)
        problems = validate_flat_list(flat_list)
        try:
            roots = reconstruct_tree_from_flat_list(
                flat_list,
                non_standard_threshold=self.settings.non_standard_threshold,
                separator=self.settings.separator,
                cleanup_suffix=self.settings.cleanup_suffix,
            )
        except ValidationError as exc:
            self._notify("error", str(exc))
            return OperationResult(False, str(exc), {"errors": exc.errors}, ErrorKind.VALIDATION)

        result = self._run("import_flat_list", lambda: self._load(name, roots), stage=False)
        if not result.success:
            return result
        if problems:
            self._notify("warning", f"Imported with {len(problems)} validation warning(s)")
        return OperationResult(True, "Document imported.", {
            "roots": len(self.tree.roots),
            "nodes": len(self.tree),
            "warnings": problems,
        })

    def import_versioned_document(self, payload: Any) -> OperationResult:
        try:
            document = self.versions.import_versioned_document(payload)
        except ValidationError as exc:
            self._notify("error", str(exc))
            return OperationResult(False, str(exc), {"errors": exc.errors}, ErrorKind.VALIDATION)
        except DocumentError as exc:
            logger.error("Import FAIL: %s", exc)
            self._notify("error", str(exc))
            return OperationResult(False, str(exc), dict(exc.context), exc.kind)
        self.tree.load_snapshot(document.document)
        self.versions.save_working_copy(self.snapshot())
        self.history.clear()
        self.history.push_snapshot(self.tree, self.pending)
        self._emit(self.snapshot())
        self._schedule_autosave()
        return OperationResult(True, f"Imported {document.metadata.document_name}", {
            "version": document.metadata.current_version,
        })

    # ------------------------------------------------------------------
    # Structure edits
    # ------------------------------------------------------------------

    def add_node(self, parent_id: Optional[str], name: str, content: Any = None) -> OperationResult:
        return self._run("add_node", lambda: self.editing.add_node(self.tree, parent_id, name, content))

    def rename_node(self, node_id: str, name: str) -> OperationResult:
        return self._run("rename_node", lambda: self.editing.rename_node(self.tree, node_id, name))

    def update_content(self, node_id: str, content: Any) -> OperationResult:
        return self._run("update_content", lambda: self.editing.update_content(self.tree, node_id, content))

    def move_node(self, moved_id: str, new_parent_id: Optional[str], new_index: int) -> OperationResult:
        result = self._run(
            "move_node", lambda: self.editing.move_node(self.tree, moved_id, new_parent_id, new_index)
        )
        if result.error is ErrorKind.CYCLE:
            self._notify("info", result.message)
        return result

    def delete_node(self, node_id: str) -> OperationResult:
        return self._run("delete_node", lambda: self.editing.delete_node(self.tree, node_id))

    def detach_to_pending(self, node_id: str) -> OperationResult:
        result = self._run("detach_to_pending", lambda: self.pending.detach_to_pending(self.tree, node_id))
        if result.success:
            self._notify("success", result.message)
        return result

    def restore_from_pending(self, pending_id: str) -> OperationResult:
        result = self._run("restore_from_pending", lambda: self.pending.restore_from_pending(self.tree, pending_id))
        if not result.success:
            self._notify("error", result.message)
        return result

    # ------------------------------------------------------------------
    # Gated actions
    # ------------------------------------------------------------------

    def propose_rename(self, node_id: str) -> OperationResult:
        return self.editing.propose_rename(self.tree, node_id)

    def propose_purge(self, pending_id: str) -> OperationResult:
        return self.pending.propose_purge(pending_id)

    def propose_clear_pending(self) -> OperationResult:
        return self.pending.propose_clear_all()

    def propose_commit(self, message: Optional[str] = None) -> OperationResult:
        """Prompt for a commit message unless one is given."""
        if not self.versions.has_uncommitted_changes():
            return OperationResult(False, "No changes to commit", {"reason": "nothing_to_commit"})
        request = MutationRequest(
            action=RequestAction.COMMIT,
            prompt=f'Commit changes: "{message}"?' if message else "Enter commit message:",
            expects_text=not message,
            default_text=message or "Updated document",
        )
        return OperationResult(True, "Commit awaiting input.", None, request=request)

    def apply(self, request: MutationRequest, decision: Decision) -> OperationResult:
        """Apply an answered request. A denial leaves the session untouched."""
        logger.info("Session: apply action=%s token=%s approved=%s",
                    request.action.value, request.token, decision.approved)
        action = request.action
        if action is RequestAction.RENAME_NODE:
            return self._run("rename_node", lambda: self.editing.apply(self.tree, request, decision))
        if action in (RequestAction.PURGE_PENDING, RequestAction.CLEAR_PENDING):
            # Purges change the pending list only; the working copy is unaffected.
            return self._run(action.value, lambda: self.pending.apply(self.tree, request, decision), stage=False)
        if not decision.approved:
            return OperationResult(False, "Cancelled.", {"reason": "cancelled"})
        if action is RequestAction.NEW_DOCUMENT:
            return self.new_document(request.details.get("name", "Untitled Document"))
        if action is RequestAction.COMMIT:
            text = decision.text if request.expects_text else request.default_text
            if not text:
                return OperationResult(False, "Commit cancelled", {"reason": "cancelled"})
            return self.commit(text)
        return OperationResult(False, f"Unsupported request '{action.value}'.", None, ErrorKind.VALIDATION)

    async def resolve(self, proposal: OperationResult) -> OperationResult:
        """Await the confirmer for a proposal, then apply the decision.

        Failed proposals and proposals without a request are returned as-is.
        """
        if not proposal.success or proposal.request is None:
            return proposal
        if self.confirmer is None:
            return OperationResult(False, "No confirmation provider configured.", None, ErrorKind.VALIDATION)
        decision = await resolve_request(proposal.request, self.confirmer)
        return self.apply(proposal.request, decision)

    # ------------------------------------------------------------------
    # Version control
    # ------------------------------------------------------------------

    def commit(self, message: str, author: Optional[str] = None) -> OperationResult:
        result = self.versions.commit_changes(message, author)
        if result.success:
            self._notify("success", f"Successfully committed version {result.details['version']}: {message}")
            self._schedule_autosave()
        else:
            self._notify("info", result.message)
        return result

    def revert(self, version: int) -> OperationResult:
        """Stage an earlier version in the tree; commit to make it permanent."""

        def _revert() -> OperationResult:
            result = self.versions.revert_to_version(version)
            if result.success:
                self.tree.load_snapshot(self.versions.working_copy)
            return result

        return self._run("revert", _revert, stage=False)

    def undo(self) -> OperationResult:
        if not self.history.undo(self.tree, self.pending):
            return OperationResult(False, "Nothing to undo.", {"reason": "empty"})
        self._after_restore()
        return OperationResult(True, "Undone.", {"remaining": self.history.undo_count()})

    def redo(self) -> OperationResult:
        if not self.history.redo(self.tree, self.pending):
            return OperationResult(False, "Nothing to redo.", {"reason": "empty"})
        self._after_restore()
        return OperationResult(True, "Redone.", {"remaining": self.history.redo_count()})

    def _after_restore(self) -> None:
        snapshot = self.snapshot()
        self.versions.save_working_copy(snapshot)
        self._emit(snapshot)
        self._schedule_autosave()

    # ------------------------------------------------------------------
    # Export / persistence
    # ------------------------------------------------------------------

    def export_package(self, title: Optional[str] = None, subtitle: Optional[str] = None) -> Dict[str, Any]:
        document = self.versions.current_document
        return create_export_package(
            self.snapshot(),
            document.to_dict() if document is not None else {},
            title or self.document_title,
            self.document_subtitle if subtitle is None else subtitle,
            self.pending.to_list(),
        )

    def export_filename(self) -> str:
        document = self.versions.current_document
        version = document.metadata.current_version if document is not None else 0
        return export_filename(self.document_title, version)

    def import_package(self, data: Any) -> OperationResult:
        """Load a package produced by :meth:`export_package`."""
        try:
            package = validate_export_package(data)
        except ValidationError as exc:
            self._notify("error", str(exc))
            return OperationResult(False, str(exc), {"errors": exc.errors}, ErrorKind.VALIDATION)
        result = self.import_versioned_document(package["versionHistory"])
        if not result.success:
            return result
        self.tree.load_snapshot(package["documentStructure"])
        self.pending.load_items(package["pendingItems"])
        self.document_subtitle = str(package["metadata"].get("documentSubtitle", ""))
        self.versions.save_working_copy(self.snapshot())
        self.history.clear()
        self.history.push_snapshot(self.tree, self.pending)
        self._emit(self.snapshot())
        self._notify("success", "Document imported successfully")
        return OperationResult(True, "Package imported.", {
            "version": result.details["version"] if result.details else 0,
            "pending": len(self.pending),
        })

    def save_now(self) -> OperationResult:
        """Write the session state through the persistence collaborator."""
        if self.persistence is None:
            return OperationResult(False, "No persistence provider configured.", None, ErrorKind.STORAGE)
        self.autosave.cancel()
        return self._write(self.state())

    def _write(self, state: Dict[str, Any]) -> OperationResult:
        try:
            self.persistence.save(state)
        except StorageError as exc:
            logger.error("Save FAIL: %s", exc)
            self._notify("error", f"Could not save document: {exc}")
            return OperationResult(False, str(exc), dict(exc.context), ErrorKind.STORAGE)
        return OperationResult(True, "Document saved.", None)

    def _schedule_autosave(self) -> None:
        # The state is captured here, on the editing thread, once the edit is complete.
        if self.autosave.enabled:
            self.autosave.schedule(self.state())

    def _autosave(self, state: Dict[str, Any]) -> None:
        self._write(state)

    def restore_saved(self) -> OperationResult:
        """Reload the state last written by :meth:`save_now`."""
        if self.persistence is None:
            return OperationResult(False, "No persistence provider configured.", None, ErrorKind.STORAGE)
        try:
            state = self.persistence.load()
        except StorageError as exc:
            self._notify("error", str(exc))
            return OperationResult(False, str(exc), dict(exc.context), ErrorKind.STORAGE)
        if not state:
            return OperationResult(False, "No saved document found.", None, ErrorKind.NOT_FOUND)
        versioned = state.get("versioned")
        if versioned:
            result = self.import_versioned_document(versioned)
            if not result.success:
                return result
            self.tree.load_snapshot(state.get("document") or [])
            self.versions.save_working_copy(self.snapshot())
        else:
            self._start_document(self.document_title, state.get("document") or [])
        self.pending.load_items(state.get("pending") or [])
        self.document_subtitle = str(state.get("subtitle") or "")
        self.history.clear()
        self.history.push_snapshot(self.tree, self.pending)
        self._emit(self.snapshot())
        return OperationResult(True, "Saved document restored.", {"nodes": len(self.tree)})
