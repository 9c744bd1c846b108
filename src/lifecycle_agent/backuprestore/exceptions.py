"""Errors reported by the backup/restore orchestrator."""

from __future__ import annotations

from ..primitives.exceptions import LifecycleAgentError, ValidationError


class BackupRestoreError(LifecycleAgentError):
    """Base class for backup/restore failures."""


class BRNotFoundError(BackupRestoreError):
    """A referenced configmap does not exist; the user must create it."""


class BRFailedValidationError(BackupRestoreError, ValidationError):
    """The configmap content cannot be turned into valid objects."""

    def __init__(self, kind: str, message: str) -> None:
        self.kind = kind
        super().__init__(message)


class BRFailedError(BackupRestoreError):
    """The cluster's backup configuration cannot be used as-is."""

    def __init__(self, kind: str, message: str) -> None:
        self.kind = kind
        super().__init__(message)
