"""ReconcileWorker — single-worker trigger queue driving the reconciler."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from .ports.background_worker import IBackgroundWorker
from .seedgen.constants import SEEDGEN_NAME
from .seedgen.status import ReconcileResult

if TYPE_CHECKING:
    from .config import AgentSettings
    from .seedgen.bootstrap import SeedGenRestorer
    from .seedgen.reconciler import SeedGenReconciler

logger = logging.getLogger("lifecycle_agent.worker")


class ReconcileWorker(IBackgroundWorker):
    """Reactive worker that reconciles requests one at a time.

    Call :meth:`trigger` to enqueue a name; a name already waiting is not
    queued twice. Results asking for a requeue are honoured: immediately, or
    after ``requeue_after`` seconds. A reconcile that raises is retried after
    ``settings.short_interval``.

    When a *restorer* is given it runs once in :meth:`start`, before the
    first reconcile, and the request is triggered if anything was restored.

    Implements ``IBackgroundWorker`` (``start`` / ``stop``).
    """

    def __init__(
        self,
        reconciler: SeedGenReconciler,
        settings: AgentSettings,
        *,
        restorer: SeedGenRestorer | None = None,
    ) -> None:
        self._reconciler = reconciler
        self._settings = settings
        self._restorer = restorer
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._trigger = asyncio.Event()
        self._pending: dict[str, None] = {}
        self._timers: list[asyncio.TimerHandle] = []

    @property
    def pending(self) -> list[str]:
        return list(self._pending)

    def trigger(self, name: str = SEEDGEN_NAME) -> None:
        """Enqueue *name* and wake the worker."""
        self._pending[name] = None
        self._trigger.set()

    async def start(self) -> None:
        if self._running:
            return
        if self._restorer is not None and await self._restorer.restore():
            self.trigger(SEEDGEN_NAME)
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("ReconcileWorker started")

    async def stop(self) -> None:
        self._running = False
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        self._trigger.set()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError, asyncio.TimeoutError):
                await asyncio.wait_for(self._task, timeout=5.0)
        logger.info("ReconcileWorker stopped")

    async def run_once(self, name: str = SEEDGEN_NAME) -> ReconcileResult:
        """Reconcile *name* once without scheduling a requeue (useful in tests)."""
        return await self._reconciler.reconcile(name)

    async def _run_loop(self) -> None:
        while self._running:
            await self._trigger.wait()
            self._trigger.clear()
            while self._pending and self._running:
                name = next(iter(self._pending))
                del self._pending[name]
                await self._process(name)

    async def _process(self, name: str) -> None:
        try:
            result = await self._reconciler.reconcile(name)
        except Exception:
            logger.exception("ReconcileWorker error reconciling %s", name)
            self._schedule(name, self._settings.short_interval)
            return

        if not result.requeue:
            return
        if result.requeue_after > 0:
            self._schedule(name, result.requeue_after)
        else:
            self.trigger(name)

    def _schedule(self, name: str, delay: float) -> None:
        logger.debug("Requeueing %s in %.1fs", name, delay)
        loop = asyncio.get_running_loop()
        now = loop.time()
        self._timers = [t for t in self._timers if t.when() > now]
        self._timers.append(loop.call_later(delay, self.trigger, name))
