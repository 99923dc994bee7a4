"""Polling of asynchronous Proxmox tasks."""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog

from homelab_cli.core.exceptions import TaskFailedError, TaskTimeoutError, TransportError
from homelab_cli.core.models import Task

logger = structlog.get_logger(__name__)

POLL_INTERVAL_SECONDS = 2.0
DEFAULT_TASK_TIMEOUT = 300.0


class TaskStatusSource(Protocol):
    async def poll_task_status(self, node: str, upid: str) -> Task | None: ...


class TaskPoller:
    """Waits for a Proxmox task (UPID) to reach a terminal state."""

    def __init__(self, source: TaskStatusSource, *, poll_interval: float = POLL_INTERVAL_SECONDS) -> None:
        self._source = source
        self._poll_interval = poll_interval

    async def wait(self, task: Task, timeout: float = DEFAULT_TASK_TIMEOUT) -> Task:
        """Block until ``task`` finishes.

        Returns the final task snapshot when the exit status is ``OK``. Raises
        ``TaskFailedError`` for any other exit status and ``TaskTimeoutError``
        when ``timeout`` seconds pass first; the timeout interrupts a pending
        sleep or status query.
        """
        logger.debug("task-wait", upid=task.upid, node=task.node, timeout=timeout)
        try:
            async with asyncio.timeout(timeout):
                return await self._poll(task)
        except TimeoutError as exc:
            logger.warning("task-timeout", upid=task.upid, node=task.node, timeout=timeout)
            raise TaskTimeoutError(task.upid, timeout) from exc

    async def _poll(self, task: Task) -> Task:
        while True:
            try:
                snapshot = await self._source.poll_task_status(task.node, task.upid)
            except TransportError as exc:
                # The task may not be visible on the node yet.
                logger.debug("task-poll-transient", upid=task.upid, error=str(exc))
                snapshot = None
            if snapshot is None or snapshot.is_running:
                await asyncio.sleep(self._poll_interval)
                continue
            if snapshot.succeeded:
                logger.info("task-succeeded", upid=task.upid, node=task.node)
                return snapshot
            logger.error("task-failed", upid=task.upid, node=task.node, exit_status=snapshot.exit_status)
            raise TaskFailedError(task.upid, snapshot.exit_status)


__all__ = ["DEFAULT_TASK_TIMEOUT", "POLL_INTERVAL_SECONDS", "TaskPoller", "TaskStatusSource"]
