# sync.py
"""HTTP client for the ledger API plus the optimistic kanban board and billing flows."""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

import httpx

from clock import now_ms
from collaborators import WorkerDirectory, fill_wages
from models import TaskEventType, TaskStatus
from schemas import (
  InvoiceCreate,
  InvoiceRead,
  InvoiceUpdate,
  TaskCreate,
  TaskEventIn,
  TaskRead,
  TaskUpdate,
  TimelineEntryRead,
  WorkerIn,
  WorkerRead,
)

logger = logging.getLogger(__name__)

# Done tasks drop off the active board this long after completion.
DONE_VISIBLE_MS = 2 * 60 * 1000


class ClientError(Exception):
  def __init__(self, kind: str, message: str, status_code: Optional[int] = None):
    super().__init__(f"{kind}: {message}")
    self.kind = kind
    self.message = message
    self.status_code = status_code


def _body(model) -> Dict[str, Any]:
  return model.model_dump(mode="json", by_alias=True, exclude_unset=True)


class WorkshopClient:
  def __init__(self, http: httpx.Client):
    self._http = http

  @classmethod
  def connect(cls, base_url: str, timeout: float = 30.0) -> "WorkshopClient":
    return cls(httpx.Client(base_url=base_url, timeout=timeout))

  def close(self) -> None:
    self._http.close()

  def _request(self, method: str, path: str, **kwargs) -> Any:
    try:
      r = self._http.request(method, path, **kwargs)
    except httpx.HTTPError as exc:
      raise ClientError("transport_error", str(exc)) from exc

    if r.status_code >= 400:
      try:
        payload = r.json()
      except ValueError:
        payload = {}
      raise ClientError(
        payload.get("error", "http_error"),
        payload.get("message", r.text or f"HTTP {r.status_code}"),
        r.status_code,
      )
    if r.status_code == 204 or not r.content:
      return None
    return r.json()

  # ---- tasks ----

  def list_tasks(self) -> List[TaskRead]:
    return [TaskRead.model_validate(x) for x in self._request("GET", "/api/items")]

  def get_task(self, task_id: int) -> TaskRead:
    return TaskRead.model_validate(self._request("GET", f"/api/items/{task_id}"))

  def create_task(self, data: TaskCreate) -> TaskRead:
    return TaskRead.model_validate(self._request("POST", "/api/items", json=_body(data)))

  def update_task(self, task_id: int, changes: TaskUpdate) -> TaskRead:
    return TaskRead.model_validate(self._request("PATCH", f"/api/items/{task_id}", json=_body(changes)))

  def delete_task(self, task_id: int) -> None:
    self._request("DELETE", f"/api/items/{task_id}")

  def add_task_event(self, task_id: int, event: TaskEventIn) -> TaskRead:
    return TaskRead.model_validate(self._request("POST", f"/api/items/{task_id}/events", json=_body(event)))

  def task_history(self, task_id: int) -> List[TimelineEntryRead]:
    return [TimelineEntryRead.model_validate(x) for x in self._request("GET", f"/api/items/{task_id}/history")]

  # ---- invoices ----

  def list_invoices(self) -> List[InvoiceRead]:
    return [InvoiceRead.model_validate(x) for x in self._request("GET", "/api/invoices")]

  def get_invoice(self, invoice_id: str) -> InvoiceRead:
    return InvoiceRead.model_validate(self._request("GET", f"/api/invoices/{invoice_id}"))

  def create_invoice(self, data: InvoiceCreate) -> InvoiceRead:
    return InvoiceRead.model_validate(self._request("POST", "/api/invoices", json=_body(data)))

  def update_invoice(self, invoice_id: str, changes: InvoiceUpdate) -> InvoiceRead:
    return InvoiceRead.model_validate(self._request("PUT", f"/api/invoices/{invoice_id}", json=_body(changes)))

  def delete_invoice(self, invoice_id: str) -> None:
    self._request("DELETE", f"/api/invoices/{invoice_id}")


# ---- optimistic board ----


def is_visible_on_board(task: TaskRead, now: int, window_ms: int = DONE_VISIBLE_MS) -> bool:
  if task.status == TaskStatus.DONE and task.completed_at:
    return now - task.completed_at < window_ms
  return True


def _local_status(task: TaskRead, status: TaskStatus, ts: int) -> Dict[str, Any]:
  # Same completed_at rule the server applies on a status change.
  if status == task.status:
    return {}
  changes: Dict[str, Any] = {"status": status}
  if status == TaskStatus.DONE:
    changes["completed_at"] = ts
  elif task.status == TaskStatus.DONE:
    changes["completed_at"] = None
  return changes


@dataclass
class StatusChange:
  task_id: int
  status: TaskStatus
  at: Optional[int] = None

  def apply(self, task: TaskRead) -> TaskRead:
    ts = self.at if self.at is not None else now_ms()
    return task.model_copy(update=_local_status(task, self.status, ts))

  def send(self, client: WorkshopClient) -> TaskRead:
    return client.update_task(self.task_id, TaskUpdate(status=self.status))


@dataclass
class AssignWorkers:
  task_id: int
  workers: List[WorkerIn]
  status: TaskStatus = TaskStatus.ASSIGNED
  at: Optional[int] = None

  def apply(self, task: TaskRead) -> TaskRead:
    ts = self.at if self.at is not None else now_ms()
    local = [WorkerRead(name=w.name, wage=w.wage, paid=w.paid) for w in self.workers]
    paid = sum((w.wage for w in self.workers), Decimal("0"))
    return task.model_copy(update={**_local_status(task, self.status, ts), "workers": local, "paid": paid})

  def send(self, client: WorkshopClient) -> TaskRead:
    return client.update_task(self.task_id, TaskUpdate(status=self.status, workers=self.workers))


class Board:
  def __init__(self, client: WorkshopClient, clock: Callable[[], int] = now_ms):
    self.client = client
    self.clock = clock
    self.tasks: Dict[int, TaskRead] = {}

  def refresh(self) -> None:
    self.tasks = {t.id: t for t in self.client.list_tasks()}

  def execute(self, command) -> TaskRead:
    current = self.tasks.get(command.task_id)
    if current is not None:
      self.tasks[command.task_id] = command.apply(current)

    try:
      result = command.send(self.client)
    except ClientError as exc:
      logger.warning("Command %s failed (%s); re-syncing board", type(command).__name__, exc.kind)
      self.refresh()
      raise

    self.tasks[result.id] = result
    return result

  def move(self, task_id: int, status: TaskStatus) -> TaskRead:
    return self.execute(StatusChange(task_id=task_id, status=status, at=self.clock()))

  def assign(self, task_id: int, workers: List[WorkerIn], directory: Optional[WorkerDirectory] = None) -> TaskRead:
    if directory is not None:
      workers = fill_wages(workers, directory)
    return self.execute(AssignWorkers(task_id=task_id, workers=workers, at=self.clock()))

  def column(self, status: TaskStatus, now: Optional[int] = None) -> List[TaskRead]:
    ts = now if now is not None else self.clock()
    rows = [t for t in self.tasks.values() if t.status == status and is_visible_on_board(t, ts)]
    return sorted(rows, key=lambda t: t.created_at, reverse=True)


# ---- billing ----


@dataclass
class BillingResult:
  invoice: InvoiceRead
  failed_task_ids: List[int] = field(default_factory=list)


def _annotate(client: WorkshopClient, task_ids: List[int], event: TaskEventIn) -> List[int]:
  failed = []
  for task_id in task_ids:
    try:
      client.add_task_event(task_id, event)
    except ClientError as exc:
      logger.warning("Could not add %s event to task %s: %s", event.type.value, task_id, exc.message)
      failed.append(task_id)
  return failed


def bill_tasks(client: WorkshopClient, tasks: List[TaskRead], now: Optional[int] = None) -> BillingResult:
  """Issue one invoice for ``tasks`` and stamp each task with ``invoice_generated``."""
  if not tasks:
    raise ValueError("Nothing to invoice")

  invoice = client.create_invoice(
    InvoiceCreate(
      task_ids=[t.id for t in tasks],
      customer_name=tasks[0].customer,
      total_amount=sum((t.price for t in tasks), Decimal("0")),
      tasks=[t.model_dump(mode="json", by_alias=True) for t in tasks],
    )
  )
  ts = now if now is not None else now_ms()
  event = TaskEventIn(type=TaskEventType.INVOICE_GENERATED, timestamp=ts, invoice_number=invoice.id)
  return BillingResult(invoice=invoice, failed_task_ids=_annotate(client, invoice.task_ids, event))


def record_payment(client: WorkshopClient, invoice: InvoiceRead, received: bool, now: Optional[int] = None) -> BillingResult:
  ts = now if now is not None else now_ms()
  if received:
    changes = InvoiceUpdate(payment_received=True, payment_received_date=ts)
  else:
    changes = InvoiceUpdate(payment_received=False)
  updated = client.update_invoice(invoice.id, changes)
  if not received:
    return BillingResult(invoice=updated)

  event = TaskEventIn(type=TaskEventType.PAYMENT_RECEIVED, timestamp=ts, invoice_number=updated.id)
  return BillingResult(invoice=updated, failed_task_ids=_annotate(client, updated.task_ids, event))
