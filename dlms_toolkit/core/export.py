from __future__ import annotations

"""Complete export packages: structure, version history and pending items."""

import copy
import re
from datetime import date
from typing import Any, Dict, List, Optional

from dlms_toolkit.core.errors import ValidationError
from dlms_toolkit.core.models import utc_now_iso
from dlms_toolkit.version import get_app_version

__all__ = ["create_export_package", "validate_export_package", "export_filename"]


def create_export_package(
    document_structure: List[Dict[str, Any]],
    version_history: Dict[str, Any],
    document_title: str = "Untitled Document",
    document_subtitle: str = "",
    pending_items: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Bundle everything needed to reopen a document elsewhere."""
    return {
        "metadata": {
            "exportDate": utc_now_iso(),
            "documentTitle": document_title,
            "documentSubtitle": document_subtitle,
            "toolVersion": get_app_version(),
        },
        "documentStructure": copy.deepcopy(document_structure),
        "versionHistory": copy.deepcopy(version_history),
        "pendingItems": copy.deepcopy(list(pending_items or [])),
    }


def validate_export_package(data: Any) -> Dict[str, Any]:
    """Check an export package and return its normalized parts.

    Raises
    ------
    ValidationError
        Listing every structural problem found.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid export package", ["Export package must be an object"])
    errors: List[str] = []
    structure = data.get("documentStructure")
    history = data.get("versionHistory")
    pending = data.get("pendingItems", [])
    metadata = data.get("metadata", {})

    if not isinstance(structure, list):
        errors.append("Missing 'documentStructure' array")
    if not isinstance(history, dict):
        errors.append("Missing 'versionHistory' object")
    else:
        for key, kind in (("metadata", dict), ("document", list), ("history", list)):
            if not isinstance(history.get(key), kind):
                errors.append(f"'versionHistory.{key}' is missing or malformed")
    if pending is None:
        pending = []
    if not isinstance(pending, list):
        errors.append("'pendingItems' must be an array")
    if not isinstance(metadata, dict):
        errors.append("'metadata' must be an object")
    if errors:
        raise ValidationError("Invalid export package", errors)

    return {
        "metadata": dict(metadata),
        "documentStructure": copy.deepcopy(structure),
        "versionHistory": copy.deepcopy(history),
        "pendingItems": copy.deepcopy(pending),
    }


def export_filename(document_title: str, version: int, today: Optional[date] = None) -> str:
    """``<sanitized_title>_v<version>_<YYYY-MM-DD>.json`` (title capped at 50 chars)."""
    title = re.sub(r"[^a-z0-9\s-]", "", document_title or "", flags=re.IGNORECASE)
    title = re.sub(r"\s+", "_", title).lower()[:50] or "document"
    return f"{title}_v{version}_{(today or date.today()).isoformat()}.json"
