"""Query validation against the metadata registry."""
