# =============================================================================
# core/tasks.py  -  Task Registry (records only)
# =============================================================================
#
# Stores and reports background / scheduled task records for the
# manage_tasks tool and the active://task-status resource.
#
# Nothing in this process executes tasks or advances their status, and no
# MCP tool creates records.  register() / update() / add_scheduled() are the
# write side for code that embeds this server (e.g. a host process that runs
# its own jobs and hands ctx.tasks their progress).  Left alone, both
# listings stay empty.  A record registered as "running" stays that way
# unless update() is called on it.
# =============================================================================

import random
import string
import time
from datetime import datetime, timezone
from typing import Any, Optional

from core.errors import InvalidParameters, NotFound
from core.models import ScheduledTask, TaskRecord

TASK_STATUSES = ("running", "completed", "failed")


def generate_task_id() -> str:
    """"task_<epoch-ms>_<9 random lowercase/digit chars>"."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"task_{int(time.time() * 1000)}_{suffix}"


class TaskRegistry:
    def __init__(self):
        self._tasks: dict[str, TaskRecord] = {}
        self._scheduled: list[ScheduledTask] = []

    def register(self, task_type: str) -> TaskRecord:
        task = TaskRecord(
            id=generate_task_id(),
            type=task_type,
            started_at=datetime.now(timezone.utc),
        )
        self._tasks[task.id] = task
        return task

    def update(
        self,
        task_id: str,
        status: Optional[str] = None,
        progress: Optional[int] = None,
        result: Any = None,
        error: Optional[str] = None,
    ) -> TaskRecord:
        """Record an externally-observed state change for a task."""
        task = self.get(task_id)
        if status is not None:
            if status not in TASK_STATUSES:
                raise InvalidParameters(f"Unknown task status '{status}'")
            task.status = status
            if status != "running":
                task.ended_at = datetime.now(timezone.utc)
        if progress is not None:
            task.progress = max(0, min(int(progress), 100))
        if result is not None:
            task.result = result
        if error is not None:
            task.error = error
        return task

    def get(self, task_id: str) -> TaskRecord:
        if not task_id:
            raise InvalidParameters("Task ID is required")
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFound(f"Task not found: {task_id}")
        return task

    def list_tasks(self) -> list[TaskRecord]:
        return list(self._tasks.values())

    def add_scheduled(self, task: ScheduledTask) -> None:
        self._scheduled.append(task)

    def scheduled_tasks(self) -> list[ScheduledTask]:
        return list(self._scheduled)

    def snapshot(self) -> dict[str, Any]:
        return {
            "background_tasks": [t.to_dict() for t in self.list_tasks()],
            "scheduled_tasks": [t.to_dict() for t in self.scheduled_tasks()],
        }
