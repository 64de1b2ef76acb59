# invoices.py
import logging
from datetime import datetime
from typing import List, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import update
from sqlmodel import Session, select

from clock import now_ms
from db import INVOICE_COUNTER, storage_guard
from errors import NotFoundError, StorageError, ValidationError
from models import Counter, Invoice
from schemas import InvoiceCreate, InvoiceUpdate

logger = logging.getLogger(__name__)


def format_invoice_number(year: int, sequence: int) -> str:
  return f"{year % 100:02d}{sequence:04d}"


def next_invoice_number(session: Session, now: Optional[int] = None) -> str:
  """Bump the invoice counter in the caller's transaction and format ``yyNNNN``."""
  stmt = (
    update(Counter)
    .where(Counter.name == INVOICE_COUNTER)
    .values(value=Counter.value + 1)
    .returning(Counter.value)
    .execution_options(synchronize_session=False)
  )
  with storage_guard(session):
    sequence = session.exec(stmt).scalar_one_or_none()
  if sequence is None:
    raise StorageError("Invoice counter is missing; run init_db first")

  ts = now if now is not None else now_ms()
  return format_invoice_number(datetime.fromtimestamp(ts / 1000).year, sequence)


def get_invoice(session: Session, invoice_id: str) -> Invoice:
  inv = session.get(Invoice, invoice_id)
  if not inv:
    raise NotFoundError(f"Invoice {invoice_id} not found")
  return inv


def list_invoices(session: Session, q: Optional[str] = None) -> List[Invoice]:
  rows = session.exec(select(Invoice).order_by(Invoice.created_at.desc(), Invoice.id.desc())).all()
  if not q:
    return list(rows)
  ql = q.strip().lower()
  return [r for r in rows if ql in r.id.lower() or ql in r.customer_name.lower()]


def create_invoice(session: Session, data: InvoiceCreate, now: Optional[int] = None) -> Invoice:
  if not data.task_ids:
    raise ValidationError("Task IDs are required")
  customer_name = data.customer_name.strip()
  if not customer_name:
    raise ValidationError("Customer name is required")
  if data.total_amount is None:
    raise ValidationError("Total amount is required")
  if not data.tasks:
    raise ValidationError("Tasks snapshot is required")

  ts = now if now is not None else now_ms()
  with storage_guard(session):
    # Number and row go into the same transaction, so a failed insert leaves no gap.
    invoice_id = next_invoice_number(session, now=ts)
    inv = Invoice(
      id=invoice_id,
      task_ids=list(data.task_ids),
      customer_name=customer_name,
      total_amount=data.total_amount,
      tasks_snapshot=jsonable_encoder(data.tasks),
      payment_received=False,
      created_at=ts,
      updated_at=ts,
    )
    session.add(inv)
    session.commit()
    session.refresh(inv)
  logger.info("Invoice %s created customer=%s tasks=%s total=%s", invoice_id, customer_name, inv.task_ids, inv.total_amount)
  return inv


def update_invoice(session: Session, invoice_id: str, changes: InvoiceUpdate, now: Optional[int] = None) -> Invoice:
  # Task events are added by the caller, not here.
  ts = now if now is not None else now_ms()
  present = changes.model_fields_set

  with storage_guard(session):
    inv = session.exec(select(Invoice).where(Invoice.id == invoice_id).with_for_update()).first()
    if not inv:
      raise NotFoundError(f"Invoice {invoice_id} not found")

    if "payment_received_date" in present:
      inv.payment_received_date = changes.payment_received_date

    if changes.payment_received is not None:
      was_received = inv.payment_received
      inv.payment_received = changes.payment_received
      if inv.payment_received and "payment_received_date" not in present:
        if not was_received or inv.payment_received_date is None:
          inv.payment_received_date = ts

    # An unpaid invoice carries no payment date.
    if not inv.payment_received:
      inv.payment_received_date = None

    inv.updated_at = ts
    session.add(inv)
    session.commit()
    session.refresh(inv)
  logger.info("Invoice %s payment_received=%s", invoice_id, inv.payment_received)
  return inv


def delete_invoice(session: Session, invoice_id: str) -> None:
  with storage_guard(session):
    inv = get_invoice(session, invoice_id)
    session.delete(inv)
    session.commit()
  logger.info("Invoice deleted id=%s", invoice_id)
