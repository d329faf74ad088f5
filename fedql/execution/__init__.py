"""Collaborator interfaces, cache helpers and row merging."""
