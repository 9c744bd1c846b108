"""lifecycle-agent — seed image generation and staged backup orchestration.

The cluster API, hub, process execution and health probing are reached
through the protocols in :mod:`lifecycle_agent.ports`.
"""

from __future__ import annotations

# ── Adapters ────────────────────────────────────────────────────
from .adapters import (
    InMemoryClusterClient,
    InMemoryHubClientFactory,
    InMemoryLockStrategy,
    SubprocessExecutor,
    host_executor,
)

# ── Wiring ──────────────────────────────────────────────────────
from .agent import Agent, build_agent

# ── Backup / restore ────────────────────────────────────────────
from .backuprestore import (
    Backup,
    BackupTracker,
    BRHandler,
    ConfigMapRef,
    sort_by_apply_wave,
)
from .compensation import CompensationRegistry
from .config import AgentSettings
from .correlation import generate_reconcile_id, get_reconcile_id, set_reconcile_id

# ── Domain ──────────────────────────────────────────────────────
from .domain import (
    Condition,
    InProgressStage,
    Phase,
    SeedGenerator,
    classify_phase,
)
from .health import HealthCheckRegistry, default_registry
from .polling import poll_until

# ── Primitives ──────────────────────────────────────────────────
from .primitives import (
    ClusterApiError,
    LifecycleAgentError,
    NotFoundError,
    PollTimeoutError,
    RejectionError,
    ValidationError,
)
from .retry import DEFAULT_BACKOFF, TWO_MINUTE_BACKOFF, RetryPolicy

# ── Seed generation ─────────────────────────────────────────────
from .seedgen import (
    ReconcileResult,
    SeedGenReconciler,
    SeedGenRestorer,
    SeedGenSaga,
    Workspace,
)
from .worker import ReconcileWorker

__all__ = [
    # Wiring
    "Agent",
    "build_agent",
    # Adapters
    "InMemoryClusterClient",
    "InMemoryHubClientFactory",
    "InMemoryLockStrategy",
    "SubprocessExecutor",
    "host_executor",
    # Backup / restore
    "Backup",
    "BackupTracker",
    "BRHandler",
    "ConfigMapRef",
    "sort_by_apply_wave",
    # Core
    "AgentSettings",
    "CompensationRegistry",
    "HealthCheckRegistry",
    "ReconcileWorker",
    "RetryPolicy",
    "DEFAULT_BACKOFF",
    "TWO_MINUTE_BACKOFF",
    "default_registry",
    "generate_reconcile_id",
    "get_reconcile_id",
    "poll_until",
    "set_reconcile_id",
    # Domain
    "Condition",
    "InProgressStage",
    "Phase",
    "SeedGenerator",
    "classify_phase",
    # Primitives
    "ClusterApiError",
    "LifecycleAgentError",
    "NotFoundError",
    "PollTimeoutError",
    "RejectionError",
    "ValidationError",
    # Seed generation
    "ReconcileResult",
    "SeedGenReconciler",
    "SeedGenRestorer",
    "SeedGenSaga",
    "Workspace",
]
