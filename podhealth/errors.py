"""Exception types raised across the health subsystem."""

from __future__ import annotations


class PodHealthError(Exception):
    """Base class for podhealth errors."""


class StorageError(PodHealthError):
    """A storage operation failed."""


class PersistenceConflict(StorageError):
    """A row with the same unique key already exists.

    Overlapping cycles can try to write the same timestamped health row twice.
    """

    def __init__(self, table: str, message: str = "") -> None:
        self.table = table
        super().__init__(f"Duplicate row in {table}: {message}" if message else f"Duplicate row in {table}")


class PlatformNotSupported(PodHealthError):
    """CPU / memory sampling is unavailable on this platform."""
