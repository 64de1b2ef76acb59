# billing_route.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlmodel import Session

import invoices
from db import get_session
from schemas import InvoiceCreate, InvoiceRead, InvoiceUpdate

router = APIRouter(prefix="/api", tags=["billing"])


@router.get("/invoices", response_model=List[InvoiceRead])
def list_invoices(q: Optional[str] = None, session: Session = Depends(get_session)):
  return [InvoiceRead.model_validate(inv) for inv in invoices.list_invoices(session, q)]


@router.get("/invoices/{invoice_id}", response_model=InvoiceRead)
def get_invoice(invoice_id: str, session: Session = Depends(get_session)):
  return InvoiceRead.model_validate(invoices.get_invoice(session, invoice_id))


@router.post("/invoices", response_model=InvoiceRead, status_code=201)
def create_invoice(data: InvoiceCreate, session: Session = Depends(get_session)):
  return InvoiceRead.model_validate(invoices.create_invoice(session, data))


@router.put("/invoices/{invoice_id}", response_model=InvoiceRead)
def update_invoice(invoice_id: str, changes: InvoiceUpdate, session: Session = Depends(get_session)):
  return InvoiceRead.model_validate(invoices.update_invoice(session, invoice_id, changes))


@router.delete("/invoices/{invoice_id}", status_code=204)
def delete_invoice(invoice_id: str, session: Session = Depends(get_session)):
  invoices.delete_invoice(session, invoice_id)
  return Response(status_code=204)
