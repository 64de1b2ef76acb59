# tests/test_invoices.py
import sqlite3
import threading
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

import invoices
import tasks
from errors import NotFoundError, StorageError, ValidationError
from schemas import InvoiceCreate, InvoiceUpdate, LineItemIn, TaskRead, TaskUpdate

from .fakes import make_task, ms

T0 = ms(2025, 10, 11, 9, 0)


def _invoice_for(session, task_ids, now=T0):
  snapshot = [TaskRead.model_validate(tasks.get_task(session, i)).model_dump(mode="json", by_alias=True) for i in task_ids]
  total = sum((Decimal(str(t["price"])) for t in snapshot), Decimal("0"))
  return invoices.create_invoice(
    session,
    InvoiceCreate(task_ids=task_ids, customer_name="Alice", total_amount=total, tasks=snapshot),
    now=now,
  )


def test_format_invoice_number():
  assert invoices.format_invoice_number(2025, 1) == "250001"
  assert invoices.format_invoice_number(2031, 1234) == "311234"
  assert invoices.format_invoice_number(2100, 7) == "000007"


def test_back_to_back_invoices_are_sequential(session):
  task = tasks.create_task(session, make_task(), now=T0)

  first = _invoice_for(session, [task.id])
  second = _invoice_for(session, [task.id], now=T0 + 1)

  assert (first.id, second.id) == ("250001", "250002")


def test_sequence_is_global_across_years(session):
  task = tasks.create_task(session, make_task(), now=T0)

  old = _invoice_for(session, [task.id], now=ms(2025, 12, 31, 23, 0))
  new = _invoice_for(session, [task.id], now=ms(2026, 1, 1, 8, 0))

  assert (old.id, new.id) == ("250001", "260002")


def test_next_invoice_number_runs_in_callers_transaction(session):
  number = invoices.next_invoice_number(session, now=T0)
  session.rollback()

  assert number == "250001"
  assert invoices.next_invoice_number(session, now=T0) == "250001"


def test_create_invoice_defaults(session):
  task = tasks.create_task(session, make_task(), now=T0)

  inv = _invoice_for(session, [task.id])

  assert inv.task_ids == [task.id]
  assert inv.customer_name == "Alice"
  assert inv.total_amount == Decimal("230")
  assert inv.payment_received is False
  assert inv.payment_received_date is None
  assert inv.created_at == inv.updated_at == T0
  assert inv.tasks_snapshot[0]["id"] == task.id


@pytest.mark.parametrize(
  "payload",
  [
    dict(task_ids=[], customer_name="Alice", total_amount=1, tasks=[{"id": 1}]),
    dict(task_ids=[1], customer_name="  ", total_amount=1, tasks=[{"id": 1}]),
    dict(task_ids=[1], customer_name="Alice", tasks=[{"id": 1}]),
    dict(task_ids=[1], customer_name="Alice", total_amount=1, tasks=[]),
  ],
)
def test_create_invoice_validation(session, payload):
  with pytest.raises(ValidationError):
    invoices.create_invoice(session, InvoiceCreate(**payload))


def test_rejected_invoice_does_not_consume_a_number(session):
  with pytest.raises(ValidationError):
    invoices.create_invoice(session, InvoiceCreate(task_ids=[1], customer_name="Alice", total_amount=1))

  task = tasks.create_task(session, make_task(), now=T0)
  assert _invoice_for(session, [task.id]).id == "250001"


@pytest.mark.parametrize("total", ["230", True, "lots"])
def test_total_amount_must_be_a_number(total):
  with pytest.raises(PydanticValidationError):
    InvoiceCreate(task_ids=[1], customer_name="Alice", total_amount=total, tasks=[{"id": 1}])


def test_store_failure_mid_transaction_is_a_storage_error(session, monkeypatch):
  task = tasks.create_task(session, make_task(), now=T0)
  inv = _invoice_for(session, [task.id])

  def locked(*args, **kwargs):
    raise OperationalError("BEGIN IMMEDIATE", {}, sqlite3.OperationalError("database is locked"))

  payload = InvoiceCreate(task_ids=[task.id], customer_name="Alice", total_amount=230, tasks=[{"id": task.id}])
  monkeypatch.setattr(session, "exec", locked)

  with pytest.raises(StorageError):
    invoices.create_invoice(session, payload, now=T0 + 1)
  with pytest.raises(StorageError):
    invoices.update_invoice(session, inv.id, InvoiceUpdate(payment_received=True), now=T0 + 1)

  monkeypatch.undo()
  assert _invoice_for(session, [task.id], now=T0 + 2).id == "250002"


def test_snapshot_survives_task_edits(session):
  task = tasks.create_task(session, make_task(), now=T0)
  inv = _invoice_for(session, [task.id])

  tasks.update_task(session, task.id, TaskUpdate(line_items=[LineItemIn(description="Engine swap", amount=5000)]), now=T0 + 1)
  session.expire_all()
  again = invoices.get_invoice(session, inv.id)

  assert again.total_amount == Decimal("230")
  assert again.tasks_snapshot[0]["price"] == 230
  assert [li["description"] for li in again.tasks_snapshot[0]["lineItems"]] == ["Bumper repair", "Paint"]


def test_payment_flag_stamps_and_clears_date(session):
  task = tasks.create_task(session, make_task(), now=T0)
  inv = _invoice_for(session, [task.id])

  paid = invoices.update_invoice(session, inv.id, InvoiceUpdate(payment_received=True), now=T0 + 10)
  assert paid.payment_received is True
  assert paid.payment_received_date == T0 + 10
  assert paid.updated_at == T0 + 10

  # Re-sending the flag keeps the original date.
  paid = invoices.update_invoice(session, inv.id, InvoiceUpdate(payment_received=True), now=T0 + 20)
  assert paid.payment_received_date == T0 + 10

  unpaid = invoices.update_invoice(session, inv.id, InvoiceUpdate(payment_received=False), now=T0 + 30)
  assert unpaid.payment_received is False
  assert unpaid.payment_received_date is None


def test_explicit_payment_date_wins(session):
  task = tasks.create_task(session, make_task(), now=T0)
  inv = _invoice_for(session, [task.id])

  paid = invoices.update_invoice(
    session, inv.id, InvoiceUpdate(payment_received=True, payment_received_date=T0 + 5), now=T0 + 99
  )

  assert paid.payment_received_date == T0 + 5


def test_payment_does_not_touch_task_events(session):
  task = tasks.create_task(session, make_task(), now=T0)
  inv = _invoice_for(session, [task.id])

  invoices.update_invoice(session, inv.id, InvoiceUpdate(payment_received=True), now=T0 + 1)

  assert tasks.get_task(session, task.id).task_events == []


def test_delete_invoice_leaves_tasks(session):
  task = tasks.create_task(session, make_task(), now=T0)
  inv = _invoice_for(session, [task.id])

  invoices.delete_invoice(session, inv.id)

  with pytest.raises(NotFoundError):
    invoices.get_invoice(session, inv.id)
  assert tasks.get_task(session, task.id).price == Decimal("230")


def test_unknown_invoice_raises_not_found(session):
  with pytest.raises(NotFoundError):
    invoices.update_invoice(session, "259999", InvoiceUpdate(payment_received=True))
  with pytest.raises(NotFoundError):
    invoices.delete_invoice(session, "259999")


def test_list_invoices_newest_first_with_search(session):
  task = tasks.create_task(session, make_task(), now=T0)
  first = _invoice_for(session, [task.id])
  second = _invoice_for(session, [task.id], now=T0 + 1)

  assert [i.id for i in invoices.list_invoices(session)] == [second.id, first.id]
  assert [i.id for i in invoices.list_invoices(session, q="0001")] == [first.id]
  assert invoices.list_invoices(session, q="nobody") == []


def test_concurrent_invoices_get_distinct_gapless_numbers(engine):
  with Session(engine) as s:
    task_id = tasks.create_task(s, make_task(), now=T0).id

  ids, errors = [], []

  def worker():
    try:
      with Session(engine) as s:
        inv = invoices.create_invoice(
          s,
          InvoiceCreate(task_ids=[task_id], customer_name="Alice", total_amount=230, tasks=[{"id": task_id}]),
          now=T0,
        )
        ids.append(inv.id)
    except Exception as exc:
      errors.append(exc)

  threads = [threading.Thread(target=worker) for _ in range(10)]
  for t in threads:
    t.start()
  for t in threads:
    t.join()

  assert errors == []
  assert sorted(ids) == [f"25{n:04d}" for n in range(1, 11)]
