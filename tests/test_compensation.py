"""Tests for the compensation registry."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from lifecycle_agent.compensation import CompensationRegistry
from lifecycle_agent.primitives.exceptions import CompensationError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


def _recorder(
    log: list[str], name: str, *, fail: bool = False
) -> Callable[[], Awaitable[None]]:
    async def action() -> None:
        log.append(name)
        if fail:
            raise RuntimeError(f"{name} failed")

    return action


class TestExecute:
    async def test_runs_newest_first(self) -> None:
        log: list[str] = []
        registry = CompensationRegistry("test")
        for name in ("pull-secret", "secret", "cr"):
            registry.push(name, _recorder(log, name))

        assert registry.pending == ["pull-secret", "secret", "cr"]
        await registry.execute()

        assert log == ["cr", "secret", "pull-secret"]
        assert registry.executed == ["cr", "secret", "pull-secret"]
        assert len(registry) == 0

    async def test_failures_do_not_stop_the_unwind(self) -> None:
        log: list[str] = []
        registry = CompensationRegistry("test")
        registry.push("first", _recorder(log, "first"))
        registry.push("second", _recorder(log, "second", fail=True))
        registry.push("third", _recorder(log, "third"))

        with pytest.raises(CompensationError) as exc_info:
            await registry.execute()

        assert log == ["third", "second", "first"]
        assert registry.executed == ["third", "first"]
        assert [name for name, _ in exc_info.value.failures] == ["second"]
        assert "second failed" in str(exc_info.value)


class TestContextManager:
    async def test_success_discards_compensations(self) -> None:
        log: list[str] = []
        async with CompensationRegistry("test") as registry:
            registry.push("restore", _recorder(log, "restore"))

        assert log == []
        assert len(registry) == 0

    async def test_exception_unwinds_and_propagates(self) -> None:
        log: list[str] = []
        registry = CompensationRegistry("test")
        with pytest.raises(ValueError, match="step failed"):
            async with registry:
                registry.push("a", _recorder(log, "a"))
                registry.push("b", _recorder(log, "b"))
                raise ValueError("step failed")

        assert log == ["b", "a"]

    async def test_original_error_wins_over_compensation_failure(self) -> None:
        log: list[str] = []
        registry = CompensationRegistry("test")
        with pytest.raises(ValueError, match="step failed"):
            async with registry:
                registry.push("a", _recorder(log, "a", fail=True))
                raise ValueError("step failed")

        assert log == ["a"]
        assert [name for name, _ in registry.failures] == ["a"]

    async def test_exception_after_hand_off_still_unwinds(self) -> None:
        log: list[str] = []
        registry = CompensationRegistry("test")
        with pytest.raises(RuntimeError):
            async with registry:
                registry.push("a", _recorder(log, "a"))
                registry.mark_handed_off()
                raise RuntimeError("launch returned")

        assert log == ["a"]

    async def test_cancellation_after_hand_off_leaves_compensations(self) -> None:
        log: list[str] = []
        registry = CompensationRegistry("test")
        with pytest.raises(asyncio.CancelledError):
            async with registry:
                registry.push("a", _recorder(log, "a"))
                registry.mark_handed_off()
                raise asyncio.CancelledError

        assert log == []
        assert registry.handed_off
        assert registry.pending == ["a"]

    async def test_cancellation_before_hand_off_unwinds(self) -> None:
        log: list[str] = []
        registry = CompensationRegistry("test")
        with pytest.raises(asyncio.CancelledError):
            async with registry:
                registry.push("a", _recorder(log, "a"))
                raise asyncio.CancelledError

        assert log == ["a"]
