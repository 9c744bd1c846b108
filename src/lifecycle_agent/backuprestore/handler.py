"""BRHandler — wave-ordered creation, tracking and cleanup of Backup objects.

It also exports what a restore on the upgraded node needs: the Restore
objects grouped by apply wave, and the OADP configuration with its
storage credentials.
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from ..domain.resources import SECRET_GVR
from ..polling import poll_until
from ..primitives.exceptions import (
    AlreadyExistsError,
    ClusterApiError,
    LifecycleAgentError,
    NotFoundError,
    PollTimeoutError,
)
from .annotations import (
    BACKUP_LABEL,
    CLUSTER_ID_LABEL,
    escape_json_pointer,
    objs_from_annotations,
)
from .exceptions import BRFailedError, BRFailedValidationError, BRNotFoundError
from .models import (
    BACKUP_GVR,
    CLUSTER_VERSION_GVR,
    CONFIGMAP_GVR,
    DELETE_BACKUP_REQUEST_GVR,
    DPA_GVR,
    RESTORE_GVR,
    Backup,
    ConfigMapRef,
    Restore,
)
from .tracker import BackupTracker
from .waves import sort_by_apply_wave

if TYPE_CHECKING:
    from collections.abc import Iterator

    from ..ports.cluster import GroupVersionResource, IClusterClient

logger = logging.getLogger("lifecycle_agent.backuprestore")

# Layout under the export directory.
OADP_PATH = "OADP"
OADP_RESTORE_PATH = f"{OADP_PATH}/veleroRestore"
OADP_DPA_PATH = f"{OADP_PATH}/dpa"
OADP_SECRET_PATH = f"{OADP_PATH}/secret"


def _make_dir(path: Path) -> None:
    try:
        path.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as err:
        raise LifecycleAgentError(f"failed to make dir {path}: {err}") from err


def _write_yaml(path: Path, obj: dict[str, Any]) -> None:
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as fh:
            yaml.safe_dump(obj, fh, sort_keys=False)
    except OSError as err:
        raise LifecycleAgentError(f"failed to write {path}: {err}") from err


def _without_identity(obj: dict[str, Any]) -> dict[str, Any]:
    """Copy of *obj* that can be re-created on another cluster."""
    exported = copy.deepcopy(obj)
    meta = exported.get("metadata") or {}
    meta.pop("uid", None)
    meta.pop("resourceVersion", None)
    return exported


def _credential_secrets(dpa: dict[str, Any]) -> list[str]:
    """Names of the secrets referenced by the DPA's velero backup locations."""
    names: dict[str, None] = {}
    for location in (dpa.get("spec") or {}).get("backupLocations") or []:
        credential = (location.get("velero") or {}).get("credential") or {}
        if credential.get("name"):
            names[credential["name"]] = None
    return list(names)


class BRHandler:
    """
    Drives Backup objects through creation and completion.

    * ``get_sorted_backups_from_configmaps`` — read, validate and wave-sort.
    * ``start_or_track_backup`` — create what is missing, classify the rest.
    * ``cleanup_backups`` — delete this cluster's backups and wait for them.
    * ``export_restores_to_dir`` / ``export_oadp_configuration_to_dir`` —
      persist what the restore side needs.
    """

    def __init__(
        self,
        client: IClusterClient,
        *,
        poll_interval: float = 1.0,
        delete_timeout: float = 300.0,
    ) -> None:
        self._client = client
        self._poll_interval = poll_interval
        self._delete_timeout = delete_timeout

    # ── Input ────────────────────────────────────────────────────────

    async def get_sorted_backups_from_configmaps(
        self, refs: list[ConfigMapRef]
    ) -> list[list[Backup]]:
        if not refs:
            logger.info("no configMap CR provided")
            return []

        configmaps = await self._get_configmaps(refs)
        backups = await self.extract_backups_from_configmaps(configmaps)
        return sort_by_apply_wave(backups)

    async def extract_backups_from_configmaps(
        self, configmaps: list[dict[str, Any]]
    ) -> list[Backup]:
        """Every Backup document found in the configmaps' data values.

        Each one is dry-run created first, so an object the API server would
        refuse is reported before anything is applied. Documents of any
        other kind are skipped.
        """
        backups: list[Backup] = []
        for configmap_name, document in self._documents(
            configmaps, BACKUP_GVR, "Backup"
        ):
            await self._create_with_dry_run(BACKUP_GVR, document, configmap_name)
            backups.append(Backup.model_validate(document))
        return backups

    def extract_restores_from_configmaps(
        self, configmaps: list[dict[str, Any]]
    ) -> list[Restore]:
        return [
            Restore.model_validate(document)
            for _, document in self._documents(configmaps, RESTORE_GVR, "Restore")
        ]

    async def _get_configmaps(self, refs: list[ConfigMapRef]) -> list[dict[str, Any]]:
        configmaps: list[dict[str, Any]] = []
        for ref in refs:
            try:
                configmaps.append(
                    await self._client.get(CONFIGMAP_GVR, ref.name, ref.namespace)
                )
            except NotFoundError as err:
                msg = (
                    f"OADP configmap not found, error: {err}. "
                    "Please create the configmap."
                )
                logger.error(msg)
                raise BRNotFoundError(msg) from err
            except ClusterApiError as err:
                raise LifecycleAgentError(
                    f"failed to get oadp configMaps : {err}"
                ) from err
        return configmaps

    @staticmethod
    def _documents(
        configmaps: list[dict[str, Any]], gvr: GroupVersionResource, kind: str
    ) -> Iterator[tuple[str, dict[str, Any]]]:
        """Yield ``(configmap name, document)`` for every *kind* document."""
        for configmap in configmaps:
            configmap_name = (configmap.get("metadata") or {}).get("name", "")
            data: dict[str, str] = configmap.get("data") or {}
            for key in sorted(data):
                try:
                    documents = list(yaml.safe_load_all(data[key]))
                except yaml.YAMLError as err:
                    msg = f"Failed to decode yaml in configmap: {err}"
                    logger.error(msg)
                    raise BRFailedValidationError(kind, msg) from err

                for document in documents:
                    if not isinstance(document, dict):
                        continue
                    if (
                        document.get("apiVersion") != gvr.api_version
                        or document.get("kind") != kind
                    ):
                        continue
                    yield configmap_name, document

    async def _create_with_dry_run(
        self, gvr: GroupVersionResource, document: dict[str, Any], configmap: str
    ) -> None:
        try:
            await self._client.create(gvr, document, dry_run=True)
        except AlreadyExistsError:
            return
        except ClusterApiError as err:
            kind = str(document.get("kind", ""))
            name = (document.get("metadata") or {}).get("name", "")
            msg = f"Invalid {kind} {name} from configmap {configmap}: {err}"
            logger.error(msg)
            raise BRFailedValidationError(kind, msg) from err

    # ── Create or track ──────────────────────────────────────────────

    async def start_or_track_backup(self, backups: list[Backup]) -> BackupTracker:
        """Create missing backups; classify existing ones by reported phase.

        An existing backup is never re-created, whatever its phase.
        """
        tracker = BackupTracker()
        for backup in backups:
            existing = await self._get_backup(backup.name, backup.namespace)
            if existing is None:
                await self.create_new_backup(backup)
                tracker.progressing.append(backup.name)
                continue

            status = existing.status
            phase = status.phase if status is not None else ""
            logger.info(
                "Backup CR status: name=%s phase=%s warnings=%s errors=%s "
                "failure=%s validation errors=%s",
                existing.name,
                phase,
                status.warnings if status else 0,
                status.errors if status else 0,
                status.failure_reason if status else "",
                status.validation_errors if status else [],
            )
            tracker.record(existing.name, phase)

        logger.info("Backups status: %s", tracker.summary())
        return tracker

    async def create_new_backup(self, backup: Backup) -> None:
        cluster_id = await self.get_cluster_id()
        backup.set_labels({CLUSTER_ID_LABEL: cluster_id})
        try:
            await self.apply_backup_labels(backup)
        except LifecycleAgentError as err:
            raise LifecycleAgentError(f"failed to apply backup labels: {err}") from err
        try:
            await self._client.create(BACKUP_GVR, backup.to_create())
        except ClusterApiError as err:
            raise LifecycleAgentError(f"failed to create backup: {err}") from err
        logger.info(
            "Backup created: name=%s namespace=%s", backup.name, backup.namespace
        )

    # ── Label propagation ────────────────────────────────────────────

    async def apply_backup_labels(self, backup: Backup) -> None:
        """Label every apply-label target with the backup's name.

        If at least one target exists the backup is scoped to that label.
        """
        objs = objs_from_annotations(backup.metadata.annotations)
        patch = [
            {
                "op": "add",
                "path": "/metadata/labels",
                "value": {BACKUP_LABEL: backup.name},
            }
        ]
        for obj in objs:
            try:
                await self._client.patch(obj.gvr, obj.name, obj.namespace, patch)
            except ClusterApiError as err:
                raise LifecycleAgentError(
                    f"failed to apply backup label on object {obj} err:{err}"
                ) from err
        if objs:
            backup.add_label_selector(BACKUP_LABEL, backup.name)

    async def cleanup_backup_labels(self, backup: Backup) -> None:
        """Remove the backup label from every target; failures are logged."""
        objs = objs_from_annotations(backup.metadata.annotations)
        path = f"/metadata/labels/{escape_json_pointer(BACKUP_LABEL)}"
        patch = [{"op": "remove", "path": path}]
        for obj in objs:
            try:
                await self._client.patch(obj.gvr, obj.name, obj.namespace, patch)
            except ClusterApiError:
                logger.exception("failed to remove backup label: %s", obj)

    # ── Cleanup ──────────────────────────────────────────────────────

    async def cleanup_backups(self) -> bool:
        """Request deletion of every backup of this cluster.

        Returns True once all are gone, False if they are still present when
        the deletion ceiling is reached.
        """
        cluster_id = await self.get_cluster_id()
        try:
            raw = await self._client.list(
                BACKUP_GVR, label_selector={CLUSTER_ID_LABEL: cluster_id}
            )
        except NotFoundError:
            logger.info("Backup CR is not installed, nothing to cleanup")
            return True
        except ClusterApiError as err:
            raise LifecycleAgentError(f"failed to list Backup: {err}") from err
        backups = [Backup.model_validate(item) for item in raw]

        for backup in backups:
            request = {
                "apiVersion": DELETE_BACKUP_REQUEST_GVR.api_version,
                "kind": "DeleteBackupRequest",
                "metadata": {"name": backup.name, "namespace": backup.namespace},
                "spec": {"backupName": backup.name},
            }
            try:
                await self._client.create(DELETE_BACKUP_REQUEST_GVR, request)
            except ClusterApiError as err:
                raise LifecycleAgentError(
                    f"could not apply deletebackup request: {err}"
                ) from err
            logger.info("Backup deletion request has sent: %s", backup.name)

        for backup in backups:
            try:
                await self.cleanup_backup_labels(backup)
            except LifecycleAgentError:
                logger.exception("failed to clean backup labels")

        return await self.ensure_backups_deleted(backups)

    async def ensure_backups_deleted(self, backups: list[Backup]) -> bool:
        """Poll until none of *backups* exists.

        Returns False on timeout. API errors other than not-found raise.
        """

        async def all_deleted() -> bool:
            remaining = [
                backup.name
                for backup in backups
                if await self._get_backup(backup.name, backup.namespace) is not None
            ]
            if not remaining:
                logger.info("All backups have been deleted")
                return True
            logger.info("Waiting for backups to be deleted: %s", remaining)
            return False

        try:
            await poll_until(
                all_deleted,
                interval=self._poll_interval,
                timeout=self._delete_timeout,
                what="backups to be deleted",
            )
        except PollTimeoutError:
            logger.exception("Timeout waiting for backups to be deleted")
            return False
        except ClusterApiError as err:
            raise LifecycleAgentError(
                f"api call errors when trying to ensure backup deletion: {err}"
            ) from err
        return True

    # ── Export ───────────────────────────────────────────────────────

    async def export_restores_to_dir(
        self, refs: list[ConfigMapRef], to_dir: str | Path
    ) -> None:
        """Write the Restore objects as ``restore<wave>/<n>_<name>_<ns>.yaml``.

        Waves and file numbers start at 1 and follow the apply-wave order.
        """
        configmaps = await self._get_configmaps(refs)
        restores = self.extract_restores_from_configmaps(configmaps)
        waves = sort_by_apply_wave(restores, kind="Restore")

        root = Path(to_dir) / OADP_RESTORE_PATH
        for wave_number, wave in enumerate(waves, start=1):
            group = root / f"restore{wave_number}"
            _make_dir(group)
            for index, restore in enumerate(wave, start=1):
                path = group / f"{index}_{restore.name}_{restore.namespace}.yaml"
                _write_yaml(path, restore.to_export())
                logger.info("Exported restore CR to file: %s", path)

    async def export_oadp_configuration_to_dir(
        self, to_dir: str | Path, oadp_namespace: str
    ) -> None:
        """Write the DataProtectionApplication and its storage credentials.

        Nothing is written when OADP is not installed or not configured.
        Raises ``BRFailedError`` when more than one DPA exists.
        """
        try:
            dpas = await self._client.list(DPA_GVR, namespace=oadp_namespace)
        except NotFoundError:
            return
        except ClusterApiError as err:
            raise LifecycleAgentError(f"failed to list oadp: {err}") from err
        if not dpas:
            return
        if len(dpas) != 1:
            msg = (
                "Only one DataProtectionApplication CR is allowed in the "
                f"{oadp_namespace}"
            )
            logger.error(msg)
            raise BRFailedError("OADP", msg)

        dpa = _without_identity(dpas[0])
        dpa_dir = Path(to_dir) / OADP_DPA_PATH
        _make_dir(dpa_dir)
        path = dpa_dir / f"{dpa['metadata']['name']}.yaml"
        _write_yaml(path, dpa)
        logger.info("Exported DataProtectionApplication CR to file: %s", path)

        secrets = _credential_secrets(dpa)
        if not secrets:
            return
        secret_dir = Path(to_dir) / OADP_SECRET_PATH
        _make_dir(secret_dir)
        for name in secrets:
            try:
                secret = await self._client.get(SECRET_GVR, name, oadp_namespace)
            except ClusterApiError as err:
                raise LifecycleAgentError(
                    f"failed to get storageSecret: {err}"
                ) from err
            path = secret_dir / f"{name}.yaml"
            _write_yaml(path, _without_identity(secret))
            logger.info("Exported secret to file: %s", path)

    # ── Lookups ──────────────────────────────────────────────────────

    async def get_cluster_id(self) -> str:
        try:
            version = await self._client.get(CLUSTER_VERSION_GVR, "version")
        except ClusterApiError as err:
            raise LifecycleAgentError(f"failed to get clusterversion: {err}") from err
        cluster_id = version.get("spec", {}).get("clusterID")
        if not cluster_id:
            raise LifecycleAgentError("clusterversion has no spec.clusterID")
        return str(cluster_id)

    async def _get_backup(self, name: str, namespace: str) -> Backup | None:
        try:
            raw = await self._client.get(BACKUP_GVR, name, namespace)
        except NotFoundError:
            return None
        return Backup.model_validate(raw)
