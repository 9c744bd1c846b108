"""InMemoryClusterClient — dict-backed IClusterClient for tests and local runs."""

from __future__ import annotations

import copy
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from ...ports.cluster import IClusterClient, IHubClientFactory
from ...primitives.exceptions import (
    AlreadyExistsError,
    ClusterApiError,
    ConflictError,
    NotFoundError,
)

if TYPE_CHECKING:
    from ...ports.cluster import GroupVersionResource, PropagationPolicy

logger = logging.getLogger("lifecycle_agent.adapters.memory")

_Key = tuple[str, str, str, str]


def _key(gvr: GroupVersionResource, name: str, namespace: str) -> _Key:
    return (gvr.group, gvr.resource, namespace, name)


def _matches(obj: dict[str, Any], selector: dict[str, str] | None) -> bool:
    if not selector:
        return True
    labels = obj.get("metadata", {}).get("labels") or {}
    return all(labels.get(k) == v for k, v in selector.items())


def _unescape(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def _apply_json_patch(doc: dict[str, Any], patch: list[dict[str, Any]]) -> None:
    """Apply the add/replace/remove subset of RFC 6902 to object members."""
    for op in patch:
        tokens = [_unescape(t) for t in op["path"].lstrip("/").split("/")]
        parent: Any = doc
        for token in tokens[:-1]:
            if not isinstance(parent, dict) or token not in parent:
                raise ClusterApiError(f"json patch path not found: {op['path']}")
            parent = parent[token]
        leaf = tokens[-1]
        if op["op"] in ("add", "replace"):
            if op["op"] == "replace" and leaf not in parent:
                raise ClusterApiError(f"json patch path not found: {op['path']}")
            parent[leaf] = copy.deepcopy(op["value"])
        elif op["op"] == "remove":
            if leaf not in parent:
                raise ClusterApiError(f"json patch path not found: {op['path']}")
            del parent[leaf]
        else:
            raise ClusterApiError(f"unsupported json patch op: {op['op']}")


class InMemoryClusterClient(IClusterClient):
    """
    In-memory object store with cluster API write semantics.

    Features:
    - ``resourceVersion`` bumped on every write; stale writes raise ``ConflictError``
    - ``status`` behaves as a sub-resource (ignored by ``create``/``update``)
    - deletions can be held to emulate finalizers (``hold_deletion``)
    - ``create(..., dry_run=True)`` validates without storing
    - scripted failures per method (``inject_error``)
    - ``calls`` log for asserting what was (not) done
    """

    def __init__(self) -> None:
        self._objects: dict[_Key, dict[str, Any]] = {}
        self._revision = 0
        self._held: set[_Key] = set()
        self._errors: dict[str, list[Exception]] = defaultdict(list)
        self.calls: list[tuple[str, str, str, str]] = []

    # ── Test helpers ─────────────────────────────────────────────────

    def seed(self, gvr: GroupVersionResource, obj: dict[str, Any]) -> dict[str, Any]:
        """Store *obj* as-is (status included) and return the stored copy."""
        meta = obj.setdefault("metadata", {})
        key = _key(gvr, meta["name"], meta.get("namespace", ""))
        stored = copy.deepcopy(obj)
        stored["metadata"]["resourceVersion"] = self._next_revision()
        stored["metadata"].setdefault("generation", 1)
        self._objects[key] = stored
        return copy.deepcopy(stored)

    def inject_error(self, method: str, error: Exception, times: int = 1) -> None:
        """Make the next *times* calls of *method* raise *error*."""
        self._errors[method].extend([error] * times)

    def hold_deletion(
        self, gvr: GroupVersionResource, name: str, namespace: str = ""
    ) -> None:
        """Keep the object around (terminating) after it is deleted."""
        self._held.add(_key(gvr, name, namespace))

    def release_deletion(
        self, gvr: GroupVersionResource, name: str, namespace: str = ""
    ) -> None:
        key = _key(gvr, name, namespace)
        self._held.discard(key)
        obj = self._objects.get(key)
        if obj is not None and obj["metadata"].get("deletionTimestamp"):
            del self._objects[key]

    def exists(
        self, gvr: GroupVersionResource, name: str, namespace: str = ""
    ) -> bool:
        return _key(gvr, name, namespace) in self._objects

    def count_calls(self, method: str, name: str | None = None) -> int:
        return sum(
            1 for call in self.calls if call[0] == method and name in (None, call[3])
        )

    # ── IClusterClient ───────────────────────────────────────────────

    async def get(
        self,
        gvr: GroupVersionResource,
        name: str,
        namespace: str = "",
    ) -> dict[str, Any]:
        self._record("get", gvr, name, namespace)
        obj = self._objects.get(_key(gvr, name, namespace))
        if obj is None:
            raise NotFoundError(str(gvr), name, namespace)
        return copy.deepcopy(obj)

    async def list(
        self,
        gvr: GroupVersionResource,
        *,
        namespace: str | None = None,
        label_selector: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        self._record("list", gvr, "", namespace or "")
        items = [
            copy.deepcopy(obj)
            for (group, resource, ns, _), obj in sorted(self._objects.items())
            if (group, resource) == (gvr.group, gvr.resource)
            and (namespace is None or ns == namespace)
            and _matches(obj, label_selector)
        ]
        return items

    async def create(
        self,
        gvr: GroupVersionResource,
        obj: dict[str, Any],
        *,
        dry_run: bool = False,
    ) -> dict[str, Any]:
        meta = obj.get("metadata") or {}
        name, namespace = meta.get("name", ""), meta.get("namespace", "")
        self._record("create", gvr, name, namespace)
        if not name:
            raise ClusterApiError(f"{gvr}: metadata.name: Required value")
        key = _key(gvr, name, namespace)
        if key in self._objects:
            raise AlreadyExistsError(str(gvr), name, namespace)
        if meta.get("resourceVersion"):
            raise ClusterApiError(
                "resourceVersion should not be set on objects to be created"
            )
        stored = copy.deepcopy(obj)
        stored.pop("status", None)
        stored["metadata"]["generation"] = 1
        if dry_run:
            return stored
        stored["metadata"]["resourceVersion"] = self._next_revision()
        self._objects[key] = stored
        return copy.deepcopy(stored)

    async def update(
        self,
        gvr: GroupVersionResource,
        obj: dict[str, Any],
    ) -> dict[str, Any]:
        current = self._current_for_write("update", gvr, obj)
        stored = copy.deepcopy(obj)
        if "status" in current:
            stored["status"] = current["status"]
        else:
            stored.pop("status", None)
        generation = current["metadata"].get("generation", 1)
        if stored.get("spec") != current.get("spec"):
            generation += 1
        stored["metadata"]["generation"] = generation
        stored["metadata"]["resourceVersion"] = self._next_revision()
        self._objects[self._obj_key(gvr, obj)] = stored
        return copy.deepcopy(stored)

    async def update_status(
        self,
        gvr: GroupVersionResource,
        obj: dict[str, Any],
    ) -> dict[str, Any]:
        current = self._current_for_write("update_status", gvr, obj)
        current["status"] = copy.deepcopy(obj.get("status", {}))
        current["metadata"]["resourceVersion"] = self._next_revision()
        return copy.deepcopy(current)

    async def delete(
        self,
        gvr: GroupVersionResource,
        name: str,
        namespace: str = "",
        *,
        propagation_policy: PropagationPolicy | None = None,
    ) -> None:
        self._record("delete", gvr, name, namespace)
        key = _key(gvr, name, namespace)
        obj = self._objects.get(key)
        if obj is None:
            raise NotFoundError(str(gvr), name, namespace)
        if key in self._held:
            obj["metadata"]["deletionTimestamp"] = datetime.now(
                timezone.utc
            ).isoformat()
            return
        del self._objects[key]
        logger.debug(
            "Deleted %s %s/%s (propagation=%s)",
            gvr,
            namespace,
            name,
            propagation_policy,
        )

    async def patch(
        self,
        gvr: GroupVersionResource,
        name: str,
        namespace: str,
        patch: list[dict[str, Any]],
    ) -> dict[str, Any]:
        self._record("patch", gvr, name, namespace)
        obj = self._objects.get(_key(gvr, name, namespace))
        if obj is None:
            raise NotFoundError(str(gvr), name, namespace)
        patched = copy.deepcopy(obj)
        _apply_json_patch(patched, patch)
        patched["metadata"]["resourceVersion"] = self._next_revision()
        self._objects[_key(gvr, name, namespace)] = patched
        return copy.deepcopy(patched)

    # ── Internals ────────────────────────────────────────────────────

    def _next_revision(self) -> str:
        self._revision += 1
        return str(self._revision)

    def _record(
        self, method: str, gvr: GroupVersionResource, name: str, namespace: str
    ) -> None:
        self.calls.append((method, str(gvr), namespace, name))
        pending = self._errors.get(method)
        if pending:
            raise pending.pop(0)

    @staticmethod
    def _obj_key(gvr: GroupVersionResource, obj: dict[str, Any]) -> _Key:
        meta = obj.get("metadata", {})
        return _key(gvr, meta["name"], meta.get("namespace", ""))

    def _current_for_write(
        self, method: str, gvr: GroupVersionResource, obj: dict[str, Any]
    ) -> dict[str, Any]:
        meta = obj.get("metadata", {})
        name, namespace = meta["name"], meta.get("namespace", "")
        self._record(method, gvr, name, namespace)
        current = self._objects.get(_key(gvr, name, namespace))
        if current is None:
            raise NotFoundError(str(gvr), name, namespace)
        expected = meta.get("resourceVersion")
        if expected and expected != current["metadata"]["resourceVersion"]:
            raise ConflictError(
                f"{gvr} {name!r}: resourceVersion {expected} is stale "
                f"(current {current['metadata']['resourceVersion']})"
            )
        return current


class InMemoryHubClientFactory(IHubClientFactory):
    """Hands out one InMemoryClusterClient per kubeconfig blob."""

    def __init__(self) -> None:
        self.clients: dict[str, InMemoryClusterClient] = {}

    def __call__(self, kubeconfig: str) -> InMemoryClusterClient:
        if not kubeconfig.strip():
            raise ClusterApiError("empty hub kubeconfig")
        return self.clients.setdefault(kubeconfig, InMemoryClusterClient())
