"""
Direct task repository (persistence + live mirror).
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Tuple
from uuid import uuid4

from domain.errors import AlreadyResolvedError, ConflictError
from domain.task import DirectTask, TaskStatus
from domain.time import Clock, parse_utc_datetime, to_iso_utc, utc_now
from repositories.base import CollectionMirror
from repositories.store import CollectionKind, RecordStore


def _task_to_document(task: DirectTask) -> dict[str, Any]:
    return {
        "fromUser": task.from_user,
        "toUser": task.to_user,
        "message": task.message,
        "status": task.status.value,
        "createdAt": to_iso_utc(task.created_at, name="created_at"),
        "completedAt": to_iso_utc(task.completed_at, name="completed_at") if task.completed_at else None,
    }


def _document_to_task(document: Mapping[str, Any]) -> DirectTask:
    completed_at = document.get("completedAt")
    return DirectTask(
        task_id=str(document["id"]),
        from_user=str(document["fromUser"]),
        to_user=str(document["toUser"]),
        message=str(document.get("message") or ""),
        status=TaskStatus(str(document.get("status") or TaskStatus.PENDING.value)),
        created_at=parse_utc_datetime(document["createdAt"]),
        completed_at=parse_utc_datetime(completed_at) if completed_at else None,
    )


class DirectTaskRepository:
    def __init__(self, store: RecordStore, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock
        self._mirror: CollectionMirror[DirectTask] = CollectionMirror(
            store, CollectionKind.DIRECT_TASKS, _document_to_task
        )

    @property
    def mirror(self) -> CollectionMirror[DirectTask]:
        return self._mirror

    @property
    def snapshot(self) -> Tuple[DirectTask, ...]:
        return self._mirror.items

    def subscribe(self, callback: Callable[[Tuple[DirectTask, ...]], None]) -> Callable[[], None]:
        return self._mirror.listen(callback)

    def load(self, task_id: str) -> Optional[DirectTask]:
        document = self._store.get(CollectionKind.DIRECT_TASKS, task_id)
        return _document_to_task(document) if document is not None else None

    def create(self, from_user: str, to_user: str, message: str) -> DirectTask:
        task = DirectTask(
            task_id=f"task-{uuid4().hex}",
            from_user=from_user,
            to_user=to_user,
            message=message,
            created_at=self._clock(),
        )
        self._store.insert(CollectionKind.DIRECT_TASKS, task.task_id, _task_to_document(task))
        return task

    def mark_completed(self, task: DirectTask) -> DirectTask:
        """Complete a pending task; completion is terminal (AlreadyResolvedError otherwise)."""

        completed_at = self._clock()
        try:
            self._store.update(
                CollectionKind.DIRECT_TASKS,
                task.task_id,
                {"status": TaskStatus.COMPLETED.value, "completedAt": to_iso_utc(completed_at, name="completed_at")},
                expected={"status": TaskStatus.PENDING.value},
            )
        except ConflictError as exc:
            raise AlreadyResolvedError(f"Task '{task.task_id}' is already completed") from exc

        return DirectTask(
            task_id=task.task_id,
            from_user=task.from_user,
            to_user=task.to_user,
            message=task.message,
            created_at=task.created_at,
            status=TaskStatus.COMPLETED,
            completed_at=completed_at,
        )

    def close(self) -> None:
        self._mirror.close()


__all__ = ["DirectTaskRepository"]
