from __future__ import annotations

"""Structural diff and patch for document snapshots.

Operations are plain mappings in JSON Patch form:

- ``{"op": "add", "path": p, "value": v}``
- ``{"op": "remove", "path": p}``
- ``{"op": "replace", "path": p, "value": v}``
- ``{"op": "move", "from": p1, "path": p2}``

Paths are JSON pointers into a snapshot: the root index first, then
``children/<index>`` steps, then an optional field (``/0/children/2/name``).

:func:`diff` never emits ``move``; sibling shifts are expressed as removals and
insertions plus id replacements. :func:`apply_patch` accepts all four
operations and never mutates its input.
"""

import copy
import difflib
import json
import logging
from typing import Any, Dict, List, Optional

from dlms_toolkit.core.errors import PatchReplayError

__all__ = [
    "PatchOperation",
    "serialize",
    "diff",
    "apply_patch",
    "describe_operation",
    "count_nodes",
    "parse_pointer",
    "format_pointer",
]

logger = logging.getLogger(__name__)

PatchOperation = Dict[str, Any]

_OPS = ("add", "remove", "replace", "move")


def serialize(value: Any) -> str:
    """Canonical JSON text used to compare snapshots."""
    return json.dumps(value, sort_keys=True, ensure_ascii=False)


def count_nodes(nodes: Any) -> int:
    """Total number of nodes in a snapshot (0 for non-lists)."""
    if not isinstance(nodes, list):
        return 0
    total = len(nodes)
    for node in nodes:
        if isinstance(node, dict):
            total += count_nodes(node.get("children"))
    return total


# ----------------------------------------------------------------------
# Pointers
# ----------------------------------------------------------------------

def _escape(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")


def _unescape(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def format_pointer(tokens: List[Any]) -> str:
    return "".join("/" + _escape(str(t)) for t in tokens)


def parse_pointer(pointer: str) -> List[str]:
    if pointer == "":
        return []
    if not pointer.startswith("/"):
        raise ValueError(f"Invalid pointer '{pointer}'")
    return [_unescape(t) for t in pointer[1:].split("/")]


def _child(path: str, token: Any) -> str:
    return f"{path}/{_escape(str(token))}"


# ----------------------------------------------------------------------
# Diff
# ----------------------------------------------------------------------

def _signature(value: Any) -> str:
    # Nodes are matched on title and body; ids shift with position and are
    # diffed as field replacements instead.
    if isinstance(value, dict) and "name" in value and "children" in value:
        return serialize([value.get("name"), value.get("content")])
    return serialize(value)


def _diff_value(source: Any, target: Any, path: str, ops: List[PatchOperation]) -> None:
    if isinstance(source, dict) and isinstance(target, dict):
        _diff_dict(source, target, path, ops)
    elif isinstance(source, list) and isinstance(target, list):
        _diff_list(source, target, path, ops)
    elif serialize(source) != serialize(target):
        ops.append({"op": "replace", "path": path, "value": copy.deepcopy(target)})


def _diff_dict(source: Dict[str, Any], target: Dict[str, Any], path: str,
               ops: List[PatchOperation]) -> None:
    for key in source:
        if key not in target:
            ops.append({"op": "remove", "path": _child(path, key)})
        else:
            _diff_value(source[key], target[key], _child(path, key), ops)
    for key in target:
        if key not in source:
            ops.append({"op": "add", "path": _child(path, key), "value": copy.deepcopy(target[key])})


def _diff_list(source: List[Any], target: List[Any], path: str, ops: List[PatchOperation]) -> None:
    matcher = difflib.SequenceMatcher(
        None, [_signature(v) for v in source], [_signature(v) for v in target], autojunk=False
    )
    # Blocks are emitted back to front so every index refers to the list as
    # it stands when the operation is applied.
    for tag, i1, i2, j1, j2 in reversed(matcher.get_opcodes()):
        if tag == "equal":
            for offset in reversed(range(i2 - i1)):
                _diff_value(source[i1 + offset], target[j1 + offset], _child(path, i1 + offset), ops)
        elif tag == "delete":
            for index in reversed(range(i1, i2)):
                ops.append({"op": "remove", "path": _child(path, index)})
        elif tag == "insert":
            for offset, index in enumerate(range(j1, j2)):
                ops.append({"op": "add", "path": _child(path, i1 + offset), "value": copy.deepcopy(target[index])})
        else:
            paired = min(i2 - i1, j2 - j1)
            for index in reversed(range(i1 + paired, i2)):
                ops.append({"op": "remove", "path": _child(path, index)})
            for offset, index in enumerate(range(j1 + paired, j2)):
                ops.append({
                    "op": "add",
                    "path": _child(path, i1 + paired + offset),
                    "value": copy.deepcopy(target[index]),
                })
            for offset in reversed(range(paired)):
                _diff_value(source[i1 + offset], target[j1 + offset], _child(path, i1 + offset), ops)


def diff(source: Any, target: Any) -> List[PatchOperation]:
    """Return the operations turning ``source`` into ``target``.

    ``apply_patch(source, diff(source, target))`` equals ``target``.
    """
    ops: List[PatchOperation] = []
    _diff_value(source, target, "", ops)
    return ops


# ----------------------------------------------------------------------
# Apply
# ----------------------------------------------------------------------

def _list_index(container: List[Any], token: str, allow_end: bool) -> int:
    if allow_end and token == "-":
        return len(container)
    if not token.isdigit():
        raise IndexError(f"Invalid array index '{token}'")
    index = int(token)
    upper = len(container) if allow_end else len(container) - 1
    if index > upper:
        raise IndexError(f"Array index {index} out of range")
    return index


def _resolve(document: Any, tokens: List[str]) -> Any:
    current = document
    for token in tokens:
        if isinstance(current, list):
            current = current[_list_index(current, token, allow_end=False)]
        elif isinstance(current, dict):
            current = current[token]
        else:
            raise KeyError(token)
    return current


def _add(document: Any, tokens: List[str], value: Any) -> Any:
    if not tokens:
        return value
    parent = _resolve(document, tokens[:-1])
    last = tokens[-1]
    if isinstance(parent, list):
        parent.insert(_list_index(parent, last, allow_end=True), value)
    elif isinstance(parent, dict):
        parent[last] = value
    else:
        raise KeyError(last)
    return document


def _remove(document: Any, tokens: List[str]) -> Any:
    if not tokens:
        raise KeyError("cannot remove the document root")
    parent = _resolve(document, tokens[:-1])
    last = tokens[-1]
    if isinstance(parent, list):
        return parent.pop(_list_index(parent, last, allow_end=False))
    if isinstance(parent, dict):
        return parent.pop(last)
    raise KeyError(last)


def _replace(document: Any, tokens: List[str], value: Any) -> Any:
    if not tokens:
        return value
    parent = _resolve(document, tokens[:-1])
    last = tokens[-1]
    if isinstance(parent, list):
        parent[_list_index(parent, last, allow_end=False)] = value
    elif isinstance(parent, dict):
        if last not in parent:
            raise KeyError(last)
        parent[last] = value
    else:
        raise KeyError(last)
    return document


def _apply_one(document: Any, operation: PatchOperation) -> Any:
    op = operation.get("op")
    if op not in _OPS:
        raise ValueError(f"Unsupported operation '{op}'")
    tokens = parse_pointer(operation["path"])
    if op == "add":
        return _add(document, tokens, copy.deepcopy(operation["value"]))
    if op == "remove":
        _remove(document, tokens)
        return document
    if op == "replace":
        return _replace(document, tokens, copy.deepcopy(operation["value"]))
    source = parse_pointer(operation["from"])
    if tokens[:len(source)] == source and len(tokens) > len(source):
        raise ValueError("cannot move a value into one of its own children")
    value = _remove(document, source)
    return _add(document, tokens, value)


def apply_patch(document: Any, patch: List[PatchOperation], version: Optional[int] = None) -> Any:
    """Apply ``patch`` to a copy of ``document`` and return the result.

    Raises
    ------
    PatchReplayError
        If any operation does not apply cleanly. No partial result is
        returned.
    """
    result = copy.deepcopy(document)
    for operation in patch:
        try:
            result = _apply_one(result, operation)
        except (KeyError, IndexError, ValueError, TypeError) as exc:
            logger.error("Patch operation failed: version=%s op=%s err=%s", version, operation, exc)
            raise PatchReplayError(
                f"Patch operation {operation.get('op')} at '{operation.get('path')}' failed: {exc}",
                version=version,
                operation=dict(operation),
                cause=exc,
            ) from exc
    return result


# ----------------------------------------------------------------------
# Human-readable descriptions
# ----------------------------------------------------------------------

def _truncate(value: Any, max_length: int) -> str:
    if value is None:
        return "null"
    text = serialize(value) if isinstance(value, (dict, list)) else str(value)
    return text[:max_length] + "..." if len(text) > max_length else text


def _node_title(value: Any) -> str:
    if not value:
        return "Unknown"
    if isinstance(value, dict) and value.get("name"):
        return str(value["name"])
    if isinstance(value, str):
        return value
    return serialize(value)[:50]


def _node_id_for(path: str, previous_state: Optional[List[Any]]) -> Optional[str]:
    """Id of the node a pointer lands in, from the previous state when possible."""
    parts = [p for p in parse_pointer(path) if p != ""]
    if not parts or not parts[0].isdigit():
        return None
    indices = [int(parts[0])]
    for i in range(1, len(parts) - 1, 2):
        if parts[i] == "children" and parts[i + 1].isdigit():
            indices.append(int(parts[i + 1]))

    node_id = "-".join(str(i + 1) for i in indices)
    current: Any = previous_state
    for depth, index in enumerate(indices):
        siblings = current if depth == 0 else (current.get("children") if isinstance(current, dict) else None)
        if not isinstance(siblings, list) or index >= len(siblings):
            return node_id
        current = siblings[index]
    if isinstance(current, dict) and current.get("id"):
        return str(current["id"])
    return node_id


def _previous_value(path: str, previous_state: Optional[List[Any]]) -> Any:
    if previous_state is None:
        return None
    try:
        return _resolve(previous_state, parse_pointer(path))
    except (KeyError, IndexError, TypeError):
        return None


def _join_content(value: Any, max_length: int) -> str:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return _truncate(value, max_length)


def describe_operation(operation: PatchOperation, previous_state: Optional[List[Any]] = None) -> str:
    """One-line description of a patch operation for change lists."""
    op = operation.get("op")
    path = str(operation.get("path", ""))
    value = operation.get("value")
    parts = [p for p in parse_pointer(path) if p != ""]
    node_id = _node_id_for(path, previous_state)
    node_ref = f"node {node_id}" if node_id else "a node"
    if len(parts) >= 2 and parts[-2] == "children":
        # Child insertions and removals are reported against the parent.
        parent_id = _node_id_for(format_pointer(parts[:-2]), previous_state)
        node_ref = f"node {parent_id}" if parent_id else "a node"

    if op == "add":
        if len(parts) >= 2 and parts[-2] == "children":
            child_id = value.get("id") if isinstance(value, dict) else None
            return f'Added child {node_ref} → {child_id or "new child"}: "{_node_title(value)}"'
        if len(parts) > 1 and parts[1] == "content":
            return f'Added content to {node_ref}: "{_join_content(value, 50)}"'
        if len(parts) == 1:
            new_id = value.get("id") if isinstance(value, dict) else None
            return f'Added {new_id or node_id}: "{_node_title(value)}"'
        return f'Added {parts[-1] if parts else "value"} to {node_ref}: "{_truncate(value, 50)}"'

    if op == "remove":
        if len(parts) >= 2 and parts[-2] == "children":
            return f"Removed child from {node_ref}"
        if len(parts) == 1:
            return f"Removed {node_ref}"
        return f"Removed {parts[-1] if parts else 'value'} from {node_ref}"

    if op == "replace":
        prop = parts[-1] if parts else ""
        previous = _previous_value(path, previous_state)
        if prop in ("name", "title"):
            old = _truncate(previous, 40) if previous is not None else "none"
            return f'Changed {node_ref} from: "{old}", to: "{_truncate(value, 40)}"'
        if prop == "content":
            old = _join_content(previous, 40) if previous is not None else "empty"
            return f'Changed {node_ref} content from: "{old}", to: "{_join_content(value, 40)}"'
        if prop.isdigit():
            old = _truncate(previous, 40) if previous is not None else "none"
            return f'Changed {node_ref} item {int(prop) + 1} from: "{old}", to: "{_truncate(value, 40)}"'
        old = _truncate(previous, 40) if previous is not None else "none"
        return f'Changed {node_ref} {prop} from: "{old}", to: "{_truncate(value, 40)}"'

    if op == "move":
        from_id = _node_id_for(str(operation.get("from", "")), previous_state)
        source = f"node {from_id}" if from_id else "a node"
        return f"Moved {source} to position {node_id or 'new location'}"

    return f"{op} operation on {node_ref}"
