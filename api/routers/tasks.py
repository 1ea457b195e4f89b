"""
Direct Tasks API Endpoints.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_session
from api.models import TaskCreate, TaskResponse
from services.session import Session

router = APIRouter()


@router.get(
    "/tasks",
    response_model=list[TaskResponse],
    summary="List Tasks",
    description="Tasks the actor sent or received.",
)
def list_tasks(session: Session = Depends(get_session)):
    name = session.actor.name
    return [
        TaskResponse.from_domain(task)
        for task in session.tasks.snapshot
        if name in (task.from_user, task.to_user)
    ]


@router.post(
    "/tasks",
    response_model=TaskResponse,
    status_code=201,
    summary="Assign Task",
)
def create_task(payload: TaskCreate, session: Session = Depends(get_session)):
    task = session.task_service.create_task(payload.to_user.strip(), payload.message, session.actor)
    return TaskResponse.from_domain(task)


@router.post(
    "/tasks/{task_id}/complete",
    response_model=TaskResponse,
    summary="Complete Task",
    description="Only the addressee can complete a task; completion is final.",
)
def complete_task(task_id: str, session: Session = Depends(get_session)):
    task = session.task_service.complete_task(task_id, session.actor)
    return TaskResponse.from_domain(task)
