"""IClusterClient — protocol for the cluster API collaborator.

Objects cross this boundary as plain ``dict`` documents shaped like the
cluster API's own JSON (``apiVersion``, ``kind``, ``metadata``, ...). Typed
views live in :mod:`lifecycle_agent.domain.resources`.

Every implementation must raise :class:`~lifecycle_agent.primitives.NotFoundError`
for missing objects so callers can tell "absent" apart from any other failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Protocol, runtime_checkable

PropagationPolicy = Literal["Foreground", "Background", "Orphan"]


@dataclass(frozen=True)
class GroupVersionResource:
    """Addresses one resource collection of the cluster API.

    ``group`` is empty for the core group.
    """

    group: str
    version: str
    resource: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def __str__(self) -> str:
        return f"{self.resource}.{self.group}" if self.group else self.resource


@runtime_checkable
class IClusterClient(Protocol):
    """Narrow cluster API contract used by the saga and the batch orchestrator."""

    async def get(
        self,
        gvr: GroupVersionResource,
        name: str,
        namespace: str = "",
    ) -> dict[str, Any]:
        """Return the object or raise ``NotFoundError``."""
        ...

    async def list(
        self,
        gvr: GroupVersionResource,
        *,
        namespace: str | None = None,
        label_selector: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """List objects, optionally scoped to a namespace and matching labels."""
        ...

    async def create(
        self,
        gvr: GroupVersionResource,
        obj: dict[str, Any],
        *,
        dry_run: bool = False,
    ) -> dict[str, Any]:
        """Create the object; returns it with a fresh ``resourceVersion``.

        With *dry_run* the server validates the object without persisting it.
        Raises ``AlreadyExistsError`` if an object with that name exists.
        """
        ...

    async def update(
        self,
        gvr: GroupVersionResource,
        obj: dict[str, Any],
    ) -> dict[str, Any]:
        """Replace the object (everything but ``status``).

        Raises ``ConflictError`` when ``metadata.resourceVersion`` is stale.
        """
        ...

    async def update_status(
        self,
        gvr: GroupVersionResource,
        obj: dict[str, Any],
    ) -> dict[str, Any]:
        """Replace only the ``status`` sub-resource.

        Raises ``ConflictError`` when ``metadata.resourceVersion`` is stale.
        """
        ...

    async def delete(
        self,
        gvr: GroupVersionResource,
        name: str,
        namespace: str = "",
        *,
        propagation_policy: PropagationPolicy | None = None,
    ) -> None:
        """Request deletion or raise ``NotFoundError``."""
        ...

    async def patch(
        self,
        gvr: GroupVersionResource,
        name: str,
        namespace: str,
        patch: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Apply an RFC 6902 JSON patch to the object."""
        ...


@runtime_checkable
class IHubClientFactory(Protocol):
    """Builds a client for the parent ("hub") system from an opaque kubeconfig."""

    def __call__(self, kubeconfig: str) -> IClusterClient: ...
