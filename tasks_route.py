# tasks_route.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlmodel import Session

import tasks
from db import get_session
from history import build_timeline
from models import TaskStatus
from schemas import TaskCreate, TaskEventIn, TaskRead, TaskUpdate, TimelineEntryRead

router = APIRouter(prefix="/api", tags=["tasks"])


@router.get("/items", response_model=List[TaskRead])
def list_items(status: Optional[TaskStatus] = None, session: Session = Depends(get_session)):
  return [TaskRead.model_validate(t) for t in tasks.list_tasks(session, status)]


@router.get("/items/{task_id}", response_model=TaskRead)
def get_item(task_id: int, session: Session = Depends(get_session)):
  return TaskRead.model_validate(tasks.get_task(session, task_id))


@router.post("/items", response_model=TaskRead, status_code=201)
def create_item(data: TaskCreate, session: Session = Depends(get_session)):
  return TaskRead.model_validate(tasks.create_task(session, data))


@router.patch("/items/{task_id}", response_model=TaskRead)
def update_item(task_id: int, changes: TaskUpdate, session: Session = Depends(get_session)):
  return TaskRead.model_validate(tasks.update_task(session, task_id, changes))


@router.delete("/items/{task_id}", status_code=204)
def delete_item(task_id: int, session: Session = Depends(get_session)):
  tasks.delete_task(session, task_id)
  return Response(status_code=204)


@router.post("/items/{task_id}/events", response_model=TaskRead)
def add_task_event(task_id: int, event: TaskEventIn, session: Session = Depends(get_session)):
  return TaskRead.model_validate(tasks.append_task_event(session, task_id, event))


@router.get("/items/{task_id}/history", response_model=List[TimelineEntryRead])
def item_history(task_id: int, session: Session = Depends(get_session)):
  task = tasks.get_task(session, task_id)
  timeline = build_timeline(task.created_at, task.status_history, task.task_events)
  return [TimelineEntryRead.model_validate(e) for e in timeline]
