"""Tests for the fire-and-forget task spawner."""

import asyncio
import logging
from unittest.mock import MagicMock

import pytest

from diagnosis_engine.core.background import BackgroundTasks


@pytest.mark.asyncio
async def test_spawned_task_runs_detached():
    tasks = BackgroundTasks()
    done = asyncio.Event()

    async def work():
        done.set()

    tasks.spawn(work(), name="work")
    await tasks.drain()

    assert done.is_set()
    assert tasks.pending == 0


@pytest.mark.asyncio
async def test_failure_is_logged_not_raised():
    logger = MagicMock(spec=logging.Logger)
    tasks = BackgroundTasks(logger=logger)

    async def boom():
        raise RuntimeError("extraction exploded")

    tasks.spawn(boom(), name="boom")
    await tasks.drain()

    logger.error.assert_called_once()
    assert "extraction exploded" in logger.error.call_args[0][0]


@pytest.mark.asyncio
async def test_drain_waits_for_tasks_spawned_during_drain():
    tasks = BackgroundTasks()
    order = []

    async def child():
        order.append("child")

    async def parent():
        await asyncio.sleep(0)
        tasks.spawn(child(), name="child")
        order.append("parent")

    tasks.spawn(parent(), name="parent")
    await tasks.drain()

    assert order == ["parent", "child"]
