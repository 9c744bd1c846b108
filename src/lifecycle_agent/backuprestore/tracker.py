"""BackupTracker — aggregate state of one wave of backups."""

from __future__ import annotations

from dataclasses import dataclass, field


class BackupPhase:
    """Velero backup phases the tracker distinguishes."""

    NONE = ""
    COMPLETED = "Completed"
    FAILED_VALIDATION = "FailedValidation"
    PARTIALLY_FAILED = "PartiallyFailed"
    FAILED = "Failed"


@dataclass
class BackupTracker:
    """Every tracked backup name lands in exactly one list."""

    pending: list[str] = field(default_factory=list)
    progressing: list[str] = field(default_factory=list)
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    failed_validation: list[str] = field(default_factory=list)

    def record(self, name: str, phase: str) -> None:
        """File *name* under the bucket for its reported *phase*."""
        if phase == BackupPhase.COMPLETED:
            self.succeeded.append(name)
        elif phase == BackupPhase.FAILED_VALIDATION:
            self.failed_validation.append(name)
        elif phase in (BackupPhase.PARTIALLY_FAILED, BackupPhase.FAILED):
            self.failed.append(name)
        elif phase == BackupPhase.NONE:
            self.pending.append(name)
        else:
            self.progressing.append(name)

    @property
    def all_succeeded(self) -> bool:
        return not (
            self.pending or self.progressing or self.failed or self.failed_validation
        )

    @property
    def any_failed(self) -> bool:
        return bool(self.failed or self.failed_validation)

    def summary(self) -> dict[str, list[str]]:
        return {
            "pending backups": self.pending,
            "progressing backups": self.progressing,
            "succeeded backups": self.succeeded,
            "failed backups": self.failed,
            "failed validation backups": self.failed_validation,
        }
