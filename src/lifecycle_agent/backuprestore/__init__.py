"""Wave-ordered creation, tracking and cleanup of backup objects."""

from __future__ import annotations

from .annotations import (
    APPLY_LABEL_ANN,
    APPLY_WAVE_ANN,
    BACKUP_LABEL,
    CLUSTER_ID_LABEL,
    DEFAULT_APPLY_WAVE,
    ObjMetadata,
    objs_from_annotations,
    parse_obj_ref,
)
from .exceptions import (
    BackupRestoreError,
    BRFailedError,
    BRFailedValidationError,
    BRNotFoundError,
)
from .handler import BRHandler
from .models import Backup, BackupStatus, ConfigMapRef, Restore
from .tracker import BackupPhase, BackupTracker
from .waves import apply_wave_of, sort_by_apply_wave

__all__ = [
    "APPLY_LABEL_ANN",
    "APPLY_WAVE_ANN",
    "BACKUP_LABEL",
    "BRFailedError",
    "BRFailedValidationError",
    "BRHandler",
    "BRNotFoundError",
    "Backup",
    "BackupPhase",
    "BackupRestoreError",
    "BackupStatus",
    "BackupTracker",
    "CLUSTER_ID_LABEL",
    "ConfigMapRef",
    "DEFAULT_APPLY_WAVE",
    "ObjMetadata",
    "Restore",
    "apply_wave_of",
    "objs_from_annotations",
    "parse_obj_ref",
    "sort_by_apply_wave",
]
