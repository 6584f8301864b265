from __future__ import annotations

"""Path identifier helpers and the identifier registry.

A path id is a sequence of ordinal segments joined by a separator
(``"3-2-1"``). Single-segment ids denote roots. Collisions are resolved by
suffixing (``"1-2"``, ``"1-2_1"``, ``"1-2_2"`` ...).
"""

import logging
import re
from typing import Dict, Iterator, List, Optional

from dlms_toolkit.core.errors import IdentifierExhaustionError

__all__ = [
    "DEFAULT_SEPARATOR",
    "IdRegistry",
    "join_id",
    "split_id",
    "parent_of",
    "order_of",
]

logger = logging.getLogger(__name__)

DEFAULT_SEPARATOR = "-"
_LEADING_DIGITS = re.compile(r"\d+")


def split_id(node_id: str, separator: str = DEFAULT_SEPARATOR) -> List[str]:
    return str(node_id).split(separator)


def join_id(parent_id: Optional[str], order: int, separator: str = DEFAULT_SEPARATOR) -> str:
    """Compose a child id; ``parent_id=None`` yields a root id."""
    if parent_id is None:
        return str(order)
    return f"{parent_id}{separator}{order}"


def parent_of(node_id: str, separator: str = DEFAULT_SEPARATOR) -> Optional[str]:
    """Return the id with its last segment dropped, or None for a root id."""
    parts = split_id(node_id, separator)
    if len(parts) < 2:
        return None
    return separator.join(parts[:-1])


def order_of(node_id: str, separator: str = DEFAULT_SEPARATOR) -> int:
    """Numeric value of the last segment.

    Only leading digits count, so suffixed ids such as ``"1-2_1"`` keep the
    order of their base id. Segments without digits map to 0.
    """
    last = split_id(node_id, separator)[-1]
    match = _LEADING_DIGITS.match(last)
    return int(match.group(0)) if match else 0


class IdRegistry:
    """Set of currently assigned ids, scoped to one document.

    Each entry remembers the handle of the node holding the id so that a
    stale release (a node giving up an id another node has meanwhile taken
    over during reindexing) leaves the new holder registered.

    Parameters
    ----------
    max_suffix_attempts : int, default=1000
        Number of ``_n`` suffixes tried before
        :class:`~dlms_toolkit.core.errors.IdentifierExhaustionError` is raised.
    """

    def __init__(self, max_suffix_attempts: int = 1000) -> None:
        self._max_attempts = max(1, int(max_suffix_attempts))
        self._owners: Dict[str, Optional[str]] = {}

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._owners

    def __len__(self) -> int:
        return len(self._owners)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._owners))

    def owner(self, identifier: str) -> Optional[str]:
        return self._owners.get(identifier)

    def unique_id(self, base_id: str) -> str:
        """Return ``base_id`` or the first free ``base_id_<n>``."""
        if base_id not in self._owners:
            return base_id
        for attempt in range(1, self._max_attempts + 1):
            candidate = f"{base_id}_{attempt}"
            if candidate not in self._owners:
                return candidate
        logger.error("Identifier registry exhausted for base id %s", base_id)
        raise IdentifierExhaustionError(base_id, self._max_attempts)

    def claim(self, base_id: str, owner: Optional[str] = None) -> str:
        """Register ``base_id`` (suffixed when taken) and return the final id."""
        final_id = self.unique_id(base_id)
        if final_id != base_id:
            logger.debug("Identifier collision: %s reassigned to %s", base_id, final_id)
        self._owners[final_id] = owner
        return final_id

    def assign(self, identifier: str, owner: Optional[str] = None) -> None:
        """Register ``identifier`` unconditionally for ``owner``.

        Used by reindexing, which derives ids from positions and is
        authoritative over transient holders.
        """
        self._owners[identifier] = owner

    def release(self, identifier: str, owner: Optional[str] = None) -> bool:
        """Deregister ``identifier`` if ``owner`` still holds it.

        With ``owner=None`` only ids without a live holder are removed.
        """
        if identifier not in self._owners:
            return False
        if self._owners[identifier] != owner:
            return False
        del self._owners[identifier]
        return True

    def clear(self) -> None:
        self._owners.clear()
