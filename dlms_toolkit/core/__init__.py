"""Document core: tree, identifiers, reconstruction, patches and services."""
