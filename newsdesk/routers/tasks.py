from typing import Optional

from fastapi import APIRouter, HTTPException, Request

from newsdesk.models.schemas import (
    ReassignRequest,
    TaskCreateRequest,
    TaskStatus,
    TransitionResponse,
    Trigger,
    TriggerRequest,
)
from newsdesk.services.store import StaleTaskError, TaskNotFound, TaskStore
from newsdesk.services.tasks import InvalidReassignment, apply_trigger, reassign_task
from newsdesk.utils.logging import audit_log

router = APIRouter(prefix="/tasks")

def _store(request: Request) -> TaskStore:
    return request.app.state.store

def _run(request: Request, task_id: str, trigger: Trigger, confidence: Optional[float] = None):
    try:
        result, task = apply_trigger(_store(request), task_id, trigger, request.state.request_id,
                                     confidence=confidence)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StaleTaskError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return TransitionResponse(result=result, task=task)

@router.post("")
def create_task(body: TaskCreateRequest, request: Request):
    task = _store(request).create_task(**body.model_dump())
    audit_log(request.state.request_id, "task_created", payload={"task_id": task.id, "title": task.title})
    return task

@router.get("")
def list_tasks(request: Request, status: Optional[TaskStatus] = None):
    return _store(request).list_tasks(status=status)

@router.get("/{task_id}")
def get_task(task_id: str, request: Request):
    try:
        return _store(request).get_task(task_id)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.post("/{task_id}/dispatch", response_model=TransitionResponse)
def dispatch(task_id: str, request: Request):
    return _run(request, task_id, Trigger.DISPATCH)

@router.post("/{task_id}/approve", response_model=TransitionResponse)
def approve(task_id: str, request: Request):
    return _run(request, task_id, Trigger.APPROVE)

@router.post("/{task_id}/send-back", response_model=TransitionResponse)
def send_back(task_id: str, request: Request):
    return _run(request, task_id, Trigger.SEND_BACK)

@router.post("/{task_id}/cancel", response_model=TransitionResponse)
def cancel(task_id: str, request: Request):
    return _run(request, task_id, Trigger.CANCEL)

@router.post("/{task_id}/triggers", response_model=TransitionResponse)
def fire_trigger(task_id: str, body: TriggerRequest, request: Request):
    return _run(request, task_id, body.trigger, confidence=body.confidence)

@router.post("/{task_id}/reassign")
def reassign(task_id: str, body: ReassignRequest, request: Request):
    try:
        return reassign_task(_store(request), task_id, body.assignee_phone, request.state.request_id,
                             assignee_name=body.assignee_name)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InvalidReassignment, StaleTaskError) as e:
        raise HTTPException(status_code=409, detail=str(e))

@router.get("/{task_id}/notifications")
def notifications(task_id: str, request: Request):
    return _store(request).list_notifications(task_id=task_id.upper())

@router.get("/{task_id}/messages")
def messages(task_id: str, request: Request):
    return _store(request).list_messages(task_id.upper())
