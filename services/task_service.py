"""
Direct task service.

Point-to-point requests between actors. Anyone may assign a task to someone
else; only the addressee may complete it, and completed tasks stay completed.
"""

from __future__ import annotations

import logging

from domain.errors import AlreadyResolvedError, NotFoundError, UnauthorizedError
from domain.identity import Actor
from domain.operation_log import LogAction
from domain.task import DirectTask
from repositories.log_repository import OperationLogRepository
from repositories.task_repository import DirectTaskRepository

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(self, tasks: DirectTaskRepository, logs: OperationLogRepository) -> None:
        self._tasks = tasks
        self._logs = logs

    def create_task(self, to_user: str, message: str, actor: Actor) -> DirectTask:
        if not message or not message.strip():
            raise ValueError("task message is required")
        if not to_user or not to_user.strip():
            raise ValueError("task recipient is required")
        if to_user == actor.name:
            raise ValueError("tasks are addressed to another actor")

        task = self._tasks.create(actor.name, to_user, message.strip())
        self._logs.append(actor.name, LogAction.TASK_ASSIGN, f"Assigned task to {to_user}")
        return task

    def complete_task(self, task_id: str, actor: Actor) -> DirectTask:
        """
        Raises:
        - NotFoundError if the task does not exist.
        - UnauthorizedError if `actor` is not the addressee.
        - AlreadyResolvedError if the task is already completed.
        """

        task = self._tasks.load(task_id)
        if task is None:
            raise NotFoundError(f"Task '{task_id}' does not exist")
        if task.to_user != actor.name:
            raise UnauthorizedError(f"Only {task.to_user} can complete this task")
        if not task.is_pending:
            raise AlreadyResolvedError(f"Task '{task_id}' is already completed")

        completed = self._tasks.mark_completed(task)
        self._logs.append(actor.name, LogAction.TASK_COMPLETE, f"Completed task from {task.from_user}")
        return completed


__all__ = ["TaskService"]
