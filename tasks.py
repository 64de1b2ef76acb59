# tasks.py
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from clock import now_ms
from db import TASK_COUNTER, storage_guard
from errors import ConflictError, DuplicateIdError, NotFoundError, ValidationError
from models import (
  Counter,
  LineItem,
  Photo,
  StatusHistory,
  Task,
  TaskEvent,
  TaskStatus,
  TaskWorker,
)
from schemas import LineItemIn, TaskCreate, TaskEventIn, TaskUpdate, WorkerIn

logger = logging.getLogger(__name__)

MAX_DAILY_SEQUENCE = 99

REQUIRED_TEXT_FIELDS = {
  "customer": "Customer",
  "vehicle_plate_no": "Vehicle plate number",
  "vehicle_make": "Vehicle make",
  "vehicle_model": "Vehicle model",
}

_TASK_LOAD_OPTIONS = (
  selectinload(Task.line_items),
  selectinload(Task.workers),
  selectinload(Task.status_history),
  selectinload(Task.task_events),
  selectinload(Task.photos),
)


def day_prefix(day: date) -> int:
  return int(day.strftime("%Y%m%d"))


def next_task_id(existing_ids: Iterable[int], day: date) -> int:
  """Highest NN used on ``day`` plus one, as ``yyyymmddNN``."""
  prefix = day_prefix(day)
  max_seq = 0
  for task_id in existing_ids:
    if task_id // 100 == prefix:
      max_seq = max(max_seq, task_id % 100)
  if max_seq >= MAX_DAILY_SEQUENCE:
    raise ConflictError(f"Daily task limit of {MAX_DAILY_SEQUENCE} reached for {prefix}")
  return prefix * 100 + max_seq + 1


def _require_text(value: Optional[str], label: str) -> str:
  cleaned = (value or "").strip()
  if not cleaned:
    raise ValidationError(f"{label} is required")
  return cleaned


def _optional_text(value: Optional[str]) -> Optional[str]:
  cleaned = (value or "").strip()
  return cleaned or None


def _build_line_items(items: List[LineItemIn]) -> List[LineItem]:
  out = []
  for li in items:
    description = li.description.strip()
    if not description:
      # Empty form rows are skipped; a blank row that carries money is an error.
      if li.amount:
        raise ValidationError("Line item description is required when it has an amount")
      continue
    out.append(LineItem(position=len(out), description=description, amount=li.amount))
  return out


def _build_workers(workers: List[WorkerIn]) -> List[TaskWorker]:
  out = []
  for i, w in enumerate(workers):
    out.append(TaskWorker(position=i, name=_require_text(w.name, "Worker name"), wage=w.wage, paid=w.paid))
  return out


def _sum_amounts(values: Iterable[Decimal]) -> Decimal:
  return sum(values, Decimal("0"))


def _lock_task_counter(session: Session) -> None:
  stmt = (
    update(Counter)
    .where(Counter.name == TASK_COUNTER)
    .values(value=Counter.value + 1)
    .execution_options(synchronize_session=False)
  )
  session.exec(stmt)


def _allocate_task_id(session: Session, day: date) -> int:
  _lock_task_counter(session)
  prefix = day_prefix(day)
  ids = session.exec(select(Task.id).where(Task.id >= prefix * 100, Task.id < (prefix + 1) * 100)).all()
  return next_task_id(ids, day)


def _get_for_update(session: Session, task_id: int) -> Task:
  task = session.exec(select(Task).where(Task.id == task_id).with_for_update()).first()
  if task is None:
    raise NotFoundError(f"Task {task_id} not found")
  return task


def get_task(session: Session, task_id: int) -> Task:
  task = session.exec(select(Task).where(Task.id == task_id).options(*_TASK_LOAD_OPTIONS)).first()
  if task is None:
    raise NotFoundError(f"Task {task_id} not found")
  return task


def list_tasks(session: Session, status: Optional[TaskStatus] = None) -> List[Task]:
  stmt = select(Task).options(*_TASK_LOAD_OPTIONS).order_by(Task.created_at.desc(), Task.id.desc())
  if status is not None:
    stmt = stmt.where(Task.status == status)
  return list(session.exec(stmt).all())


def create_task(session: Session, data: TaskCreate, now: Optional[int] = None) -> Task:
  fields = {name: _require_text(getattr(data, name), label) for name, label in REQUIRED_TEXT_FIELDS.items()}
  line_items = _build_line_items(data.line_items)
  if not line_items:
    raise ValidationError("At least one line item with a description is required")
  workers = _build_workers(data.workers)

  ts = now if now is not None else now_ms()
  with storage_guard(session):
    task_id = _allocate_task_id(session, datetime.fromtimestamp(ts / 1000).date())

    task = Task(
      id=task_id,
      status=TaskStatus.TODO,
      description=_optional_text(data.description),
      price=_sum_amounts(li.amount for li in line_items),
      paid=_sum_amounts(w.wage for w in workers),
      created_at=ts,
      updated_at=ts,
      **fields,
    )
    task.line_items = line_items
    task.workers = workers
    task.status_history = [StatusHistory(status=TaskStatus.TODO, timestamp=ts)]
    task.photos = [
      Photo(file_id=p.file_id, file_name=p.file_name, thumbnail_link=p.thumbnail_link, view_link=p.view_link)
      for p in data.photos
    ]
    session.add(task)
    try:
      session.commit()
    except IntegrityError as exc:
      session.rollback()
      raise DuplicateIdError(f"Task id {task_id} already exists") from exc

    logger.info("Task created id=%s customer=%s price=%s", task_id, task.customer, task.price)
    return get_task(session, task_id)


def _apply_status(task: Task, new_status: TaskStatus, ts: int) -> None:
  old_status = task.status
  task.status_history.append(StatusHistory(status=new_status, from_status=old_status, timestamp=ts))
  task.status = new_status
  if new_status == TaskStatus.DONE:
    task.completed_at = ts
  elif old_status == TaskStatus.DONE:
    task.completed_at = None
  logger.info("Task %s status %s -> %s", task.id, old_status.value, new_status.value)


def update_task(session: Session, task_id: int, changes: TaskUpdate, now: Optional[int] = None) -> Task:
  """Partial update under a row lock; re-sending the current status adds no history."""
  present = changes.model_fields_set

  text_updates = {}
  for name, label in REQUIRED_TEXT_FIELDS.items():
    if name in present:
      text_updates[name] = _require_text(getattr(changes, name), label)
  if "status" in present and changes.status is None:
    raise ValidationError("Status cannot be empty")
  if "line_items" in present and changes.line_items is None:
    raise ValidationError("Line items cannot be null")
  if "workers" in present and changes.workers is None:
    raise ValidationError("Workers cannot be null")
  line_items = _build_line_items(changes.line_items) if changes.line_items is not None else None
  workers = _build_workers(changes.workers) if changes.workers is not None else None

  with storage_guard(session):
    task = _get_for_update(session, task_id)
    ts = now if now is not None else now_ms()

    for name, value in text_updates.items():
      setattr(task, name, value)
    if "description" in present:
      task.description = _optional_text(changes.description)

    if changes.status is not None and changes.status != task.status:
      _apply_status(task, changes.status, ts)

    if line_items is not None:
      task.line_items = line_items
      task.price = _sum_amounts(li.amount for li in line_items)

    if workers is not None:
      task.workers = workers
      task.paid = _sum_amounts(w.wage for w in workers)
    elif "paid" in present and changes.paid is not None:
      task.paid = changes.paid

    task.updated_at = ts
    session.add(task)
    session.commit()
    logger.debug("Task %s updated fields=%s", task_id, sorted(present))
    return get_task(session, task_id)


def delete_task(session: Session, task_id: int) -> None:
  with storage_guard(session):
    task = _get_for_update(session, task_id)
    session.delete(task)
    session.commit()
  logger.info("Task deleted id=%s", task_id)


def append_task_event(session: Session, task_id: int, event: TaskEventIn) -> Task:
  if event.type is None or event.timestamp is None:
    raise ValidationError("Event type and timestamp are required")

  with storage_guard(session):
    task = _get_for_update(session, task_id)
    task.task_events.append(TaskEvent(type=event.type, timestamp=event.timestamp, invoice_number=event.invoice_number or None))
    session.add(task)
    session.commit()
    logger.info("Task %s event %s invoice=%s", task_id, event.type.value, event.invoice_number)
    return get_task(session, task_id)
