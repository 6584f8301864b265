from __future__ import annotations

"""Typed view over the ``editor.yml`` configuration section."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

__all__ = ["EditorSettings"]


@dataclass(frozen=True)
class EditorSettings:
    """Settings consumed by the document core.

    Attributes
    ----------
    separator
        Joins path id segments.
    max_suffix_attempts
        Bound for deterministic ``_n`` suffixing in the id registry.
    non_standard_threshold
        Second-segment value above which an imported id is quarantined.
    cleanup_suffix
        Last segment of cleanup group ids.
    autosave_enabled, autosave_delay
        Debounced persistence behaviour.
    max_undo_history
        Capacity of the undo stack.
    default_author, system_author
        Commit authors for user commits and the initial version.
    """

    separator: str = "-"
    max_suffix_attempts: int = 1000
    non_standard_threshold: int = 10
    cleanup_suffix: str = "99999"
    autosave_enabled: bool = True
    autosave_delay: float = 2.0
    max_undo_history: int = 50
    default_author: str = "User"
    system_author: str = "System"

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "EditorSettings":
        """Build settings from an ``editor.yml``-shaped mapping.

        Missing sections or keys keep their defaults.
        """
        data = data or {}
        ids = data.get("identifiers") or {}
        recon = data.get("reconstruction") or {}
        autosave = data.get("autosave") or {}
        undo = data.get("undo") or {}
        vcs = data.get("version_control") or {}
        defaults = cls()
        return cls(
            separator=str(ids.get("separator", defaults.separator)),
            max_suffix_attempts=int(ids.get("max_suffix_attempts", defaults.max_suffix_attempts)),
            non_standard_threshold=int(recon.get("non_standard_threshold", defaults.non_standard_threshold)),
            cleanup_suffix=str(recon.get("cleanup_suffix", defaults.cleanup_suffix)),
            autosave_enabled=bool(autosave.get("enabled", defaults.autosave_enabled)),
            autosave_delay=float(autosave.get("delay_seconds", defaults.autosave_delay)),
            max_undo_history=int(undo.get("max_history", defaults.max_undo_history)),
            default_author=str(vcs.get("default_author", defaults.default_author)),
            system_author=str(vcs.get("system_author", defaults.system_author)),
        )

    @classmethod
    def from_config(cls) -> "EditorSettings":
        """Load settings through :class:`~dlms_toolkit.config.ConfigManager`."""
        from .manager import ConfigManager

        return cls.from_mapping(ConfigManager().get_editor_config())
