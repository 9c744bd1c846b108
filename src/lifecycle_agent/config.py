"""AgentSettings — runtime configuration of the agent process."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

SKIP_RECERT_ENV = "SEEDGEN_SKIP_RECERT"


class AgentSettings(BaseModel):
    """Immutable settings shared by the reconciler and its collaborators.

    Intervals are in seconds. Tests build instances directly with tiny
    intervals; :func:`~lifecycle_agent.agent.build_agent` falls back to
    :meth:`from_env`.
    """

    model_config = ConfigDict(frozen=True)

    host_root: str = "/host"
    pod_name: str = ""
    namespace: str = "openshift-lifecycle-agent"

    health_check_interval: float = Field(default=30.0, ge=0)
    short_interval: float = Field(default=10.0, ge=0)
    poll_interval: float = Field(default=10.0, ge=0)
    poll_retries: int = Field(default=90, ge=1)
    pull_secret_poll_interval: float = Field(default=30.0, ge=0)
    pull_secret_timeout: float = Field(default=600.0, ge=0)
    backup_poll_interval: float = Field(default=1.0, ge=0)
    backup_delete_timeout: float = Field(default=300.0, ge=0)

    @property
    def poll_timeout(self) -> float:
        """Ceiling for hub and cleanup polling (interval x retries)."""
        return self.poll_interval * self.poll_retries

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AgentSettings:
        env = os.environ if environ is None else environ
        overrides: dict[str, str] = {}
        for field, var in (
            ("host_root", "LCA_HOST_ROOT"),
            ("pod_name", "MY_POD_NAME"),
            ("namespace", "LCA_NAMESPACE"),
        ):
            if env.get(var):
                overrides[field] = env[var]
        return cls(**overrides)


def skip_recert_requested(environ: Mapping[str, str] | None = None) -> bool:
    """Only the exact value ``"TRUE"`` enables the escape hatch."""
    env = os.environ if environ is None else environ
    return env.get(SKIP_RECERT_ENV) == "TRUE"
