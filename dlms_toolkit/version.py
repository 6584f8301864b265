from __future__ import annotations

"""Application version detection utilities.

Provides a single public function, ``get_app_version()``, used to stamp
exported packages with the toolkit version.
"""

from importlib import metadata
from typing import Optional

_CACHED_VERSION: Optional[str] = None


def get_app_version() -> str:
    """Return the installed distribution version (e.g., ``v0.3.0``).

    Falls back to ``"vdev"`` when running from an uninstalled checkout.
    """
    global _CACHED_VERSION
    if _CACHED_VERSION:
        return _CACHED_VERSION
    try:
        text = metadata.version("dlms-toolkit")
    except metadata.PackageNotFoundError:
        text = ""
    _CACHED_VERSION = (text if text.startswith("v") else f"v{text}") if text else "vdev"
    return _CACHED_VERSION
