from __future__ import annotations


class ObsmemError(Exception):
    """Base class for errors raised by the observation store."""


class ValidationError(ObsmemError, ValueError):
    """Malformed caller input: bad id lists, unknown operations or types."""


class StorageUnavailable(ObsmemError):
    """The memory directory or database file could not be created or opened."""


class QuerySyntaxError(ObsmemError):
    """The full-text query was rejected by the search index."""
