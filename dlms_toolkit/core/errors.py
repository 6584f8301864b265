from __future__ import annotations

"""Document core exception classes.

Every failure the core can report belongs to one :class:`ErrorKind`. Services
convert these exceptions into ``OperationResult`` values at their public
boundary; only identifier exhaustion and patch replay failures are treated as
unrecoverable for the operation in progress.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

__all__ = [
    "ErrorKind",
    "DocumentError",
    "ValidationError",
    "NotFoundError",
    "CycleError",
    "IdentifierExhaustionError",
    "StorageError",
    "PatchReplayError",
]


class ErrorKind(str, Enum):
    """Taxonomy of core failures."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CYCLE = "cycle"
    IDENTIFIER_EXHAUSTION = "identifier_exhaustion"
    STORAGE = "storage"
    PATCH_REPLAY = "patch_replay"

    @property
    def fatal(self) -> bool:
        return self in (ErrorKind.IDENTIFIER_EXHAUSTION, ErrorKind.PATCH_REPLAY)


class DocumentError(Exception):
    """Base exception for all document core errors.

    Attributes
    ----------
    kind
        The :class:`ErrorKind` of the failure (class level).
    context
        Structured details (ids, versions, paths) for diagnostics.
    cause
        Underlying exception, when one triggered this error.
    """

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 cause: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.context: Dict[str, Any] = dict(context or {})
        self.cause = cause


class ValidationError(DocumentError):
    """Raised for malformed input to reconstruction or import.

    ``errors`` lists every individual problem found, so callers can show all
    of them at once.
    """

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, errors: Optional[List[str]] = None,
                 context: Optional[Dict[str, Any]] = None,
                 cause: Optional[Exception] = None) -> None:
        super().__init__(message, context, cause)
        self.errors = list(errors or [])


class NotFoundError(DocumentError):
    """Raised when a node id, pending id or version number does not exist."""

    kind = ErrorKind.NOT_FOUND


class CycleError(DocumentError):
    """Raised when a move targets the moved node itself or one of its descendants."""

    kind = ErrorKind.CYCLE


class IdentifierExhaustionError(DocumentError):
    """Raised when no free ``<id>_<n>`` suffix exists within the configured bound."""

    kind = ErrorKind.IDENTIFIER_EXHAUSTION

    def __init__(self, base_id: str, attempts: int) -> None:
        super().__init__(
            f"Could not find a free identifier for '{base_id}' after {attempts} attempts.",
            {"base_id": base_id, "attempts": attempts},
        )
        self.base_id = base_id
        self.attempts = attempts


class StorageError(DocumentError):
    """Raised when the persistence layer reports a capacity or I/O failure."""

    kind = ErrorKind.STORAGE


class PatchReplayError(DocumentError):
    """Raised when a recorded patch does not apply cleanly during replay.

    This indicates corrupted history; the reconstruction attempt is aborted
    rather than continuing with a desynchronised state.
    """

    kind = ErrorKind.PATCH_REPLAY

    def __init__(self, message: str, version: Optional[int] = None,
                 operation: Optional[Dict[str, Any]] = None,
                 cause: Optional[Exception] = None) -> None:
        super().__init__(message, {"version": version, "operation": operation}, cause)
        self.version = version
        self.operation = operation
