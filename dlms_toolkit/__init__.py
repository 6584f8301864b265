"""Top-level package for the DLMS document structure toolkit.

The package is GUI-agnostic. Front-ends should depend on the public API
exposed here rather than importing internal modules directly.
"""

from .core.session import DocumentSession  # re-export for convenience
from .core.tree import DocumentTree
from .core.reconstruction import reconstruct_tree_from_flat_list

__all__: list[str] = [
    "DocumentSession",
    "DocumentTree",
    "reconstruct_tree_from_flat_list",
]
