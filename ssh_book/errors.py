from __future__ import annotations


class SshBookError(Exception):
    """Base class for every failure the bridge and CLI report to the user."""


class StoreError(SshBookError):
    """Base class for record store failures."""


class StorageUnavailable(StoreError):
    """Data directory or document cannot be created, opened, read or written."""


class Corrupt(StoreError):
    """Document exists but does not parse into the dataset shape."""


class NotFound(StoreError):
    """Operation referenced an id absent from its collection."""


class ValidationError(StoreError):
    """Referential integrity or id uniqueness would be violated."""


class LaunchError(SshBookError):
    """Login session could not be started."""
