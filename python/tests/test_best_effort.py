"""Tests for best-effort side-channel helpers."""

import asyncio
import logging

import pytest

from taskbridge.orchestration.best_effort import best_effort, drain_pending, spawn_best_effort


async def _ok():
    return "value"


async def _boom():
    raise RuntimeError("store unavailable")


async def test_success_reports_ok():
    result = await best_effort("workspace update", _ok(), task_id="task-1")
    assert result.ok is True
    assert result.error is None


async def test_failure_is_logged_not_raised(caplog):
    with caplog.at_level(logging.WARNING, logger="taskbridge.orchestration.best_effort"):
        result = await best_effort("chat update", _boom(), task_id="task-1")

    assert result.ok is False
    assert result.error == "store unavailable"
    assert "chat update" in caplog.text
    assert "task-1" in caplog.text


async def test_cancellation_propagates():
    async def _cancelled():
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await best_effort("detach", _cancelled())


async def test_spawn_runs_in_background():
    seen = []

    async def _record():
        seen.append(1)

    task = spawn_best_effort("record", _record())
    await drain_pending(timeout=1.0)
    assert task.done()
    assert task.result().ok is True
    assert seen == [1]


async def test_spawned_failure_is_contained():
    task = spawn_best_effort("explode", _boom(), task_id="task-2")
    await drain_pending(timeout=1.0)
    assert task.result().ok is False
