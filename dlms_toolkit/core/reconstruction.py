from __future__ import annotations

"""Rebuild a nested document from a flat list of elements.

Imported outlines often carry hierarchical ids with gaps, duplicates or
missing intermediate levels. Elements that cannot be placed cleanly are not
rejected; they are quarantined under a per-root cleanup group so that nothing
is silently dropped.

The output uses the persisted snapshot shape and still carries the source
ids. Loading it into a :class:`~dlms_toolkit.core.tree.DocumentTree`
normalizes the ids (gaps closed, duplicates suffixed then renumbered).
"""

import copy
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from dlms_toolkit.core.errors import ValidationError
from dlms_toolkit.core.identifiers import DEFAULT_SEPARATOR

__all__ = [
    "DEFAULT_NON_STANDARD_THRESHOLD",
    "CLEANUP_SUFFIX",
    "reconstruct_tree_from_flat_list",
    "validate_flat_list",
]

logger = logging.getLogger(__name__)

DEFAULT_NON_STANDARD_THRESHOLD = 10
CLEANUP_SUFFIX = "99999"
CLEANUP_ORDER = 9999
CLEANUP_MESSAGE = (
    "This node groups items with problematic, duplicated, or non-sequential IDs. "
    "Please review and re-parent the groups below."
)

_LEADING_DIGITS = re.compile(r"\d+")


def _segment_number(segment: str) -> Optional[int]:
    match = _LEADING_DIGITS.match(segment)
    return int(match.group(0)) if match else None


def _sort_key(element: Dict[str, Any]) -> Tuple[float, str]:
    try:
        order = float(element.get("order"))
    except (TypeError, ValueError):
        order = float("inf")
    raw_id = element.get("id")
    return order, "" if raw_id is None else str(raw_id)


class _CleanupRegistry:
    """Cleanup boxes and their per-segment groups, keyed by root id."""

    def __init__(self, roots: List[Dict[str, Any]], node_map: Dict[str, Dict[str, Any]],
                 separator: str, suffix: str) -> None:
        self._roots = roots
        self._node_map = node_map
        self._separator = separator
        self._suffix = suffix
        self._boxes: Dict[str, Dict[str, Any]] = {}
        self._groups: Dict[str, Dict[str, Any]] = {}

    def group_for(self, ancestor: Dict[str, Any], element: Dict[str, Any], parts: List[str]) -> Dict[str, Any]:
        root_id = ancestor["id"].split(self._separator)[0]
        box = self._boxes.get(root_id)
        if box is None:
            box = {
                "id": f"{root_id}{self._separator}{self._suffix}",
                "name": f"{root_id} - AUTO",
                "content": [CLEANUP_MESSAGE],
                "order": CLEANUP_ORDER,
                "children": [],
            }
            root = self._node_map.get(root_id)
            if root is not None:
                root["children"].append(box)
            else:
                # Ancestor sits under an orphan root; the box becomes a root of its own.
                logger.warning("Cleanup root %s missing, adding cleanup group at top level", root_id)
                self._roots.append(box)
            self._boxes[root_id] = box

        key = parts[1] if len(parts) > 1 else "0"
        group_id = f"{root_id}{self._separator}{key}"
        group = self._groups.get(group_id)
        if group is None:
            group = {
                "id": group_id,
                "name": f"Group {key}",
                "content": [
                    f"This group contains items whose second segment is '{key}'. "
                    f"Original IDs include {element['id']}."
                ],
                "order": _segment_number(key) or 0,
                "children": [],
            }
            box["children"].append(group)
            self._groups[group_id] = group
        return group


def _find_ancestor(parts: List[str], node_map: Dict[str, Dict[str, Any]],
                   separator: str) -> Optional[Dict[str, Any]]:
    prefix = list(parts)
    while len(prefix) > 1:
        prefix.pop()
        ancestor = node_map.get(separator.join(prefix))
        if ancestor is not None:
            return ancestor
    return None


def reconstruct_tree_from_flat_list(
    flat_list: Any,
    non_standard_threshold: int = DEFAULT_NON_STANDARD_THRESHOLD,
    separator: str = DEFAULT_SEPARATOR,
    cleanup_suffix: str = CLEANUP_SUFFIX,
) -> List[Dict[str, Any]]:
    """Nest ``flat_list`` by id and return the root nodes.

    Parameters
    ----------
    flat_list
        Sequence of ``{id, name, content, order}`` mappings. Extra keys are
        carried through unchanged.
    non_standard_threshold
        Second id segments above this value are treated as non-standard and
        quarantined.

    Returns
    -------
    list of dict
        Root nodes: true roots, orphan roots and roots holding cleanup groups.

    Raises
    ------
    ValidationError
        If ``flat_list`` is not a list.
    """
    if not isinstance(flat_list, (list, tuple)):
        raise ValidationError("flat list must be an array", ["Input must be an array"])
    if not flat_list:
        return []

    node_map: Dict[str, Dict[str, Any]] = {}
    elements: List[Dict[str, Any]] = []
    for raw in sorted((e for e in flat_list if isinstance(e, dict)), key=_sort_key):
        raw_id = raw.get("id")
        if raw_id is None or raw_id == "":
            logger.warning("Skipping element without id: %r", raw.get("name"))
            continue
        element = copy.deepcopy(raw)
        element["id"] = str(raw_id)
        element["children"] = []
        element.setdefault("name", "")
        element.pop("parentId", None)
        node_map[element["id"]] = element
        elements.append(element)

    skipped = len(flat_list) - len(elements)
    roots: List[Dict[str, Any]] = []
    cleanup = _CleanupRegistry(roots, node_map, separator, cleanup_suffix)
    quarantined = 0

    for element in elements:
        parts = element["id"].split(separator)
        if len(parts) == 1:
            roots.append(element)
            continue

        ancestor = _find_ancestor(parts, node_map, separator)
        if ancestor is None:
            logger.debug("Orphan element %s promoted to root", element["id"])
            roots.append(element)
            continue

        broken_chain = ancestor["id"] != separator.join(parts[:-1])
        second = _segment_number(parts[1])
        non_standard = broken_chain or (second is not None and second > non_standard_threshold)
        if non_standard:
            cleanup.group_for(ancestor, element, parts)["children"].append(element)
            quarantined += 1
        else:
            ancestor["children"].append(element)

    logger.info(
        "Reconstructed tree: elements=%d roots=%d quarantined=%d skipped=%d",
        len(elements), len(roots), quarantined, skipped,
    )
    return roots


def validate_flat_list(flat_list: Any) -> List[str]:
    """Return one message per missing ``id``/``name``/``order``; empty when valid."""
    if not isinstance(flat_list, (list, tuple)):
        return ["Input must be an array"]
    errors: List[str] = []
    for index, item in enumerate(flat_list):
        if not isinstance(item, dict):
            errors.append(f"Item at index {index} is not an object")
            continue
        if not item.get("id"):
            errors.append(f"Item at index {index} missing required 'id' property")
        if not item.get("name"):
            errors.append(f"Item at index {index} missing required 'name' property")
        if "order" not in item:
            errors.append(f"Item at index {index} missing 'order' property")
    return errors
