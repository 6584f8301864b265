from __future__ import annotations

"""High-level document services (structure editing, versioning, pending, undo).

Services are instantiated directly; the document session wires them together.
"""

from .structure_editing_service import OperationResult, StructureEditingService  # noqa: F401
from .version_control_service import VersionControlService  # noqa: F401
from .pending_service import PendingService  # noqa: F401
from .undo_service import UndoService  # noqa: F401

__all__: list[str] = [
    "OperationResult",
    "StructureEditingService",
    "VersionControlService",
    "PendingService",
    "UndoService",
]
