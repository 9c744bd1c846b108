"""CompensationRegistry — scoped LIFO stack of best-effort rollback actions.

Usage::

    async with CompensationRegistry("seedgen") as compensations:
        await delete_secret()
        compensations.push("restore secret", restore_secret)
        ...
        compensations.mark_handed_off()
        await launch_worker()

Entries are pushed immediately after an irreversible step succeeds. When the
block exits with an ``Exception`` they are executed newest-first. Nothing is
persisted: after a crash, recovery is re-derived from the workspace and the
persisted phase instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .primitives.exceptions import CompensationError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType

logger = logging.getLogger("lifecycle_agent.compensation")


@dataclass(frozen=True)
class CompensationEntry:
    """A zero-argument fallible rollback action."""

    description: str
    action: Callable[[], Awaitable[object]]


class CompensationRegistry:
    """
    Stack of compensations for a single in-process attempt.

    Lifecycle
    ---------
    * ``push(description, action)`` — register a rollback for the step just done.
    * ``mark_handed_off()`` — control is about to pass to the external worker.
      From here on, a cancellation or interpreter shutdown is the worker
      terminating us, which is the success path: compensations are left undone.
    * ``execute()`` — pop & run in LIFO order; failures are collected.
    * On ``__aexit__`` with an exception, ``execute()`` runs automatically.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._stack: list[CompensationEntry] = []
        self._handed_off = False
        self.executed: list[str] = []
        self.failures: list[tuple[str, BaseException]] = []

    def __len__(self) -> int:
        return len(self._stack)

    @property
    def pending(self) -> list[str]:
        """Descriptions of registered compensations, oldest first."""
        return [entry.description for entry in self._stack]

    @property
    def handed_off(self) -> bool:
        return self._handed_off

    def push(
        self,
        description: str,
        action: Callable[[], Awaitable[object]],
    ) -> None:
        """Register a compensation for the step that just completed."""
        self._stack.append(CompensationEntry(description, action))
        logger.debug("[%s] registered compensation: %s", self.name, description)

    def mark_handed_off(self) -> None:
        self._handed_off = True

    def discard(self) -> None:
        """Forget all registered compensations (the attempt succeeded)."""
        self._stack.clear()

    async def execute(self) -> None:
        """
        Pop and execute compensations in LIFO order.

        Every entry is attempted even if an earlier one fails.

        Raises:
            CompensationError: If one or more compensations failed.
        """
        failures: list[tuple[str, BaseException]] = []
        while self._stack:
            entry = self._stack.pop()
            logger.info("[%s] compensating: %s", self.name, entry.description)
            try:
                await entry.action()
            except Exception as err:  # noqa: BLE001
                logger.exception(
                    "[%s] compensation %r failed", self.name, entry.description
                )
                failures.append((entry.description, err))
            else:
                self.executed.append(entry.description)

        if failures:
            self.failures.extend(failures)
            raise CompensationError(failures)

    async def __aenter__(self) -> CompensationRegistry:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc is None:
            self.discard()
            return False

        if not isinstance(exc, Exception) and self._handed_off:
            logger.info(
                "[%s] %s during hand-off; leaving %d compensation(s) undone",
                self.name,
                type(exc).__name__,
                len(self._stack),
            )
            return False

        try:
            await self.execute()
        except CompensationError as comp_err:
            # The original failure is what surfaces to the caller.
            logger.warning("[%s] %s", self.name, comp_err)
        return False
