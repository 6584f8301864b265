from __future__ import annotations

"""Collaborator interface definitions.

The document core never renders, prompts or writes files itself. These
protocols describe the collaborators it talks to; any object with matching
methods can be passed to :class:`~dlms_toolkit.core.session.DocumentSession`.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class StructureListener(Protocol):
    """Receives the full snapshot after every successful mutation.

    The core makes no assumption about how or when the listener redraws.
    """

    def __call__(self, event: str, snapshot: List[Dict[str, Any]]) -> None:
        """Handle a structure notification.

        Args:
            event: Notification name (``"documentStructureChanged"``)
            snapshot: Deep copy of the current document snapshot
        """
        ...


@runtime_checkable
class ConfirmationProvider(Protocol):
    """Asynchronous confirmation and text input.

    Used only between the propose and apply phases of gated actions.
    """

    async def confirm(self, message: str) -> bool:
        """Ask a yes/no question.

        Returns:
            True to approve, False to deny
        """
        ...

    async def prompt_text(self, message: str, default: str = "") -> Optional[str]:
        """Ask for a line of text.

        Returns:
            The entered text, or None when the prompt was cancelled
        """
        ...


@runtime_checkable
class PersistenceProvider(Protocol):
    """Durable storage for the editor state."""

    def save(self, state: Dict[str, Any]) -> None:
        """Persist ``state``.

        Raises:
            StorageError: On capacity or I/O failure. The caller reports the
                failure and does not retry.
        """
        ...

    def load(self) -> Optional[Dict[str, Any]]:
        """Return the last saved state, or None when nothing was saved."""
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Receives user-facing messages; return values are ignored."""

    def notify(self, level: str, message: str) -> None:
        """Display a message.

        Args:
            level: One of ``"success"``, ``"info"``, ``"warning"``, ``"error"``
            message: Human-readable text
        """
        ...
