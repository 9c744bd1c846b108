"""Primitive building blocks shared by every layer of the agent."""

from __future__ import annotations

from .exceptions import (
    AlreadyExistsError,
    ClusterApiError,
    CompensationError,
    ConflictError,
    ExternalProcessError,
    HealthCheckError,
    LifecycleAgentError,
    LockAcquisitionError,
    NotFoundError,
    PollTimeoutError,
    RejectionError,
    StepFailedError,
    TransientApiError,
    UnexpectedReturnError,
    ValidationError,
    is_conflict,
    is_retriable,
)
from .locking import ResourceIdentifier

__all__ = [
    "LifecycleAgentError",
    "ValidationError",
    "RejectionError",
    "ClusterApiError",
    "NotFoundError",
    "AlreadyExistsError",
    "ConflictError",
    "TransientApiError",
    "PollTimeoutError",
    "StepFailedError",
    "ExternalProcessError",
    "UnexpectedReturnError",
    "HealthCheckError",
    "LockAcquisitionError",
    "CompensationError",
    "ResourceIdentifier",
    "is_conflict",
    "is_retriable",
]
