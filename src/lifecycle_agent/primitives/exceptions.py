"""Exception taxonomy for the lifecycle agent."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .locking import ResourceIdentifier


class LifecycleAgentError(Exception):
    """Root exception for the entire lifecycle agent."""


# ── Validation / Rejection ───────────────────────────────────────────


class ValidationError(LifecycleAgentError):
    """Raised when user supplied input cannot be interpreted.

    E.g. a non-numeric apply-wave annotation or a malformed apply-label entry.
    """


class RejectionError(LifecycleAgentError):
    """Raised when the node fails a seed generation precondition.

    Terminal: the request must be deleted and recreated to retry.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


# ── Cluster API ──────────────────────────────────────────────────────


class ClusterApiError(LifecycleAgentError):
    """Base class for errors reported by the cluster API collaborator."""


class NotFoundError(ClusterApiError):
    """Raised when a requested object does not exist."""

    def __init__(self, resource: str, name: str, namespace: str = "") -> None:
        self.resource = resource
        self.name = name
        self.namespace = namespace
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{resource} {where!r} not found")


class AlreadyExistsError(ClusterApiError):
    """Raised when creating an object that already exists."""

    def __init__(self, resource: str, name: str, namespace: str = "") -> None:
        self.resource = resource
        self.name = name
        self.namespace = namespace
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{resource} {where!r} already exists")


class ConflictError(ClusterApiError):
    """Raised when a write is rejected because of a stale resource version."""


class TransientApiError(ClusterApiError):
    """Raised for errors that are expected to clear on their own.

    Server timeouts, throttling, connection resets and similar.
    """


# ── Timeouts ─────────────────────────────────────────────────────────


class PollTimeoutError(LifecycleAgentError):
    """Raised when a polling ceiling is reached before the condition holds."""

    def __init__(self, what: str, timeout: float) -> None:
        self.what = what
        self.timeout = timeout
        super().__init__(f"timed out after {timeout:g}s waiting for {what}")


# ── External processes ───────────────────────────────────────────────


class ExternalProcessError(LifecycleAgentError):
    """Raised when an external command fails or reports an unexpected state."""

    def __init__(
        self,
        message: str,
        *,
        argv: list[str] | None = None,
        exit_code: int | None = None,
        stderr: str = "",
    ) -> None:
        self.argv = argv or []
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


class UnexpectedReturnError(ExternalProcessError):
    """Raised when control returns after handing off to the imager.

    The imager is expected to terminate the agent before the launch returns,
    so reaching this point means the detached-process contract was broken.
    """


class HealthCheckError(LifecycleAgentError):
    """Raised when the node is not (yet) healthy."""


# ── Saga steps ───────────────────────────────────────────────────────


class StepFailedError(LifecycleAgentError):
    """A seed generation step failed; the message carries the step context.

    E.g. ``failed to pull recert image: podman exited with code 125``.
    """

    def __init__(self, step: str, cause: BaseException | str) -> None:
        self.step = step
        self.cause = cause
        super().__init__(f"{step}: {cause}")


# ── Locking ──────────────────────────────────────────────────────────


class LockAcquisitionError(LifecycleAgentError):
    """Failed to acquire the reconcile guard within the allotted time."""

    def __init__(
        self,
        resource: ResourceIdentifier,
        timeout: float | None,
        reason: str | None = None,
    ) -> None:
        self.resource = resource
        self.timeout = timeout
        self.reason = reason

        msg = f"Failed to acquire lock on {resource}"
        if timeout is not None:
            msg += f" within {timeout}s"
        if reason:
            msg += f" - {reason}"
        super().__init__(msg)


# ── Compensation ─────────────────────────────────────────────────────


class CompensationError(LifecycleAgentError):
    """One or more compensating actions failed while unwinding an attempt."""

    def __init__(self, failures: list[tuple[str, BaseException]]) -> None:
        self.failures = failures
        names = ", ".join(name for name, _ in failures)
        super().__init__(
            f"{len(failures)} compensation(s) failed: {names}. "
            f"First error: {failures[0][1] if failures else 'unknown'}"
        )


def is_conflict(err: BaseException) -> bool:
    """Return True if *err* is a resource-version conflict."""
    return isinstance(err, ConflictError)


def is_retriable(err: BaseException) -> bool:
    """Return True if *err* is a transient cluster API failure."""
    return isinstance(err, TransientApiError)
