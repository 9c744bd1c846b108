"""Tests for apply waves, apply-label annotations and backup tracking."""

from __future__ import annotations

import pytest

from lifecycle_agent.backuprestore import (
    APPLY_LABEL_ANN,
    APPLY_WAVE_ANN,
    DEFAULT_APPLY_WAVE,
    Backup,
    BackupPhase,
    BackupTracker,
    ObjMetadata,
    apply_wave_of,
    objs_from_annotations,
    parse_obj_ref,
    sort_by_apply_wave,
)
from lifecycle_agent.backuprestore.annotations import escape_json_pointer
from lifecycle_agent.domain.resources import ObjectMeta
from lifecycle_agent.ports.cluster import GroupVersionResource
from lifecycle_agent.primitives.exceptions import ValidationError


def _backup(name: str, wave: str | None = None) -> Backup:
    annotations = {APPLY_WAVE_ANN: wave} if wave is not None else {}
    return Backup(
        metadata=ObjectMeta(
            name=name, namespace="openshift-adp", annotations=annotations
        )
    )


def _names(waves: list[list[Backup]]) -> list[list[str]]:
    return [[b.name for b in wave] for wave in waves]


# ── Apply waves ──────────────────────────────────────────────────────


class TestApplyWaves:
    def test_groups_by_wave_and_sorts_by_name(self) -> None:
        backups = [
            _backup("b", "2"),
            _backup("a", "1"),
            _backup("d", "2"),
            _backup("c", "1"),
        ]
        assert _names(sort_by_apply_wave(backups)) == [["a", "c"], ["b", "d"]]

    def test_missing_wave_runs_last(self) -> None:
        backups = [_backup("late"), _backup("early", "100"), _backup("negative", "-1")]

        assert apply_wave_of(backups[0]) == DEFAULT_APPLY_WAVE
        assert _names(sort_by_apply_wave(backups)) == [
            ["negative"],
            ["early"],
            ["late"],
        ]

    def test_empty_wave_value_uses_default(self) -> None:
        assert apply_wave_of(_backup("x", "")) == DEFAULT_APPLY_WAVE

    def test_non_numeric_wave_names_the_object(self) -> None:
        backups = [_backup("ok", "1"), _backup("b1", "x")]
        with pytest.raises(ValidationError) as exc_info:
            sort_by_apply_wave(backups)
        assert str(exc_info.value) == (
            "failed to convert x in Backup CR b1 to integer: invalid syntax"
        )

    def test_empty_input(self) -> None:
        assert sort_by_apply_wave([]) == []


# ── Apply-label annotations ──────────────────────────────────────────


class TestApplyLabels:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("v1/configmaps/cm", ObjMetadata("", "v1", "configmaps", "", "cm")),
            ("v1/secrets/ns1/s", ObjMetadata("", "v1", "secrets", "ns1", "s")),
            (
                "apps/v1/deployments/d",
                ObjMetadata("apps", "v1", "deployments", "", "d"),
            ),
            (
                "apps/v1/deployments/ns/d",
                ObjMetadata("apps", "v1", "deployments", "ns", "d"),
            ),
        ],
    )
    def test_parse_obj_ref(self, raw: str, expected: ObjMetadata) -> None:
        assert parse_obj_ref(raw) == expected

    @pytest.mark.parametrize("raw", ["secrets/s", "a/b/c/d/e/f", ""])
    def test_invalid_refs(self, raw: str) -> None:
        with pytest.raises(ValidationError, match="invalid apply-label obj"):
            parse_obj_ref(raw)

    def test_gvr(self) -> None:
        obj = parse_obj_ref("apps/v1/deployments/ns/d")
        assert obj.gvr == GroupVersionResource("apps", "v1", "deployments")

    def test_duplicates_are_removed_in_order(self) -> None:
        annotations = {
            APPLY_LABEL_ANN: "v1/secrets/ns/s,apps/v1/deployments/ns/d,v1/secrets/ns/s"
        }
        objs = objs_from_annotations(annotations)
        assert [o.name for o in objs] == ["s", "d"]

    def test_no_annotation(self) -> None:
        assert objs_from_annotations({}) == []
        assert objs_from_annotations({APPLY_LABEL_ANN: ""}) == []

    def test_escape_json_pointer(self) -> None:
        assert escape_json_pointer("lca.openshift.io/backup") == (
            "lca.openshift.io~1backup"
        )
        assert escape_json_pointer("a~b/c") == "a~0b~1c"


# ── Tracker ──────────────────────────────────────────────────────────


class TestBackupTracker:
    def test_each_phase_lands_in_one_list(self) -> None:
        tracker = BackupTracker()
        tracker.record("done", BackupPhase.COMPLETED)
        tracker.record("invalid", BackupPhase.FAILED_VALIDATION)
        tracker.record("partial", BackupPhase.PARTIALLY_FAILED)
        tracker.record("broken", BackupPhase.FAILED)
        tracker.record("new", BackupPhase.NONE)
        tracker.record("running", "InProgress")

        assert tracker.summary() == {
            "pending backups": ["new"],
            "progressing backups": ["running"],
            "succeeded backups": ["done"],
            "failed backups": ["partial", "broken"],
            "failed validation backups": ["invalid"],
        }
        assert tracker.any_failed
        assert not tracker.all_succeeded

    def test_all_succeeded(self) -> None:
        tracker = BackupTracker()
        tracker.record("a", BackupPhase.COMPLETED)
        tracker.record("b", BackupPhase.COMPLETED)

        assert tracker.all_succeeded
        assert not tracker.any_failed

    def test_failed_validation_alone_counts_as_failure(self) -> None:
        tracker = BackupTracker()
        tracker.record("invalid", BackupPhase.FAILED_VALIDATION)
        assert tracker.any_failed
        assert tracker.failed == []
