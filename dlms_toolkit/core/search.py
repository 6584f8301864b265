from __future__ import annotations

"""Case-insensitive filtering of document snapshots and pending lists."""

import copy
from typing import Any, Dict, Iterable, List

__all__ = ["matches_search_term", "filter_nodes", "filter_pending_items"]


def matches_search_term(node: Dict[str, Any], term: str) -> bool:
    """True if ``term`` occurs in the node's name or content."""
    term = (term or "").strip().lower()
    if not node or not term:
        return False
    title = str(node.get("title") or node.get("name") or "").lower()
    if term in title:
        return True
    content = node.get("content")
    if isinstance(content, list):
        text = " ".join(str(block) for block in content)
    elif isinstance(content, str):
        text = content
    else:
        return False
    return term in text.lower()


def filter_nodes(nodes: Any, term: str) -> List[Dict[str, Any]]:
    """Keep nodes that match or have matching descendants.

    A matching node without matching descendants keeps all of its children.
    The input is not modified.
    """
    if not isinstance(nodes, list):
        return []
    term = (term or "").strip().lower()
    if not term:
        return copy.deepcopy(nodes)

    filtered: List[Dict[str, Any]] = []
    for node in nodes:
        children = filter_nodes(node.get("children") or [], term)
        if matches_search_term(node, term) or children:
            node_copy = copy.deepcopy(node)
            if children:
                node_copy["children"] = children
            filtered.append(node_copy)
    return filtered


def filter_pending_items(items: Iterable[Dict[str, Any]], term: str) -> List[Dict[str, Any]]:
    term = (term or "").strip().lower()
    if not term:
        return [copy.deepcopy(item) for item in items]
    return [copy.deepcopy(item) for item in items if matches_search_term(item, term)]
