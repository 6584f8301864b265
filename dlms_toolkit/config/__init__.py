"""Configuration files (YAML) and helpers.

``ConfigManager`` reads the packaged defaults from this folder and merges them
with user overrides; ``EditorSettings`` is the typed view used by the core.
"""

from .manager import ConfigManager
from .settings import EditorSettings

__all__ = [
    "ConfigManager",
    "EditorSettings",
]
