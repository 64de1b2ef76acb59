# errors.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)


class LedgerError(Exception):
  kind = "ledger_error"
  status_code = 500

  def __init__(self, message: str):
    super().__init__(message)
    self.message = message

  def to_dict(self) -> dict:
    return {"error": self.kind, "message": self.message}


class ValidationError(LedgerError):
  kind = "validation_error"
  status_code = 400


class NotFoundError(LedgerError):
  kind = "not_found"
  status_code = 404


class ConflictError(LedgerError):
  kind = "conflict"
  status_code = 409


class DuplicateIdError(ConflictError):
  kind = "duplicate_id"


class StorageError(LedgerError):
  kind = "storage_error"
  status_code = 503


def _ledger_error_handler(_request: Request, exc: LedgerError) -> JSONResponse:
  return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _request_validation_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
  parts = []
  for err in exc.errors():
    loc = ".".join(str(x) for x in err.get("loc", ()) if x != "body")
    parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
  return JSONResponse(status_code=400, content=ValidationError("; ".join(parts) or "Invalid request").to_dict())


def _operational_error_handler(_request: Request, exc: OperationalError) -> JSONResponse:
  logger.error("Store unavailable: %s", exc)
  return JSONResponse(status_code=503, content=StorageError("Storage is unavailable, retry later").to_dict())


def register_error_handlers(app: FastAPI) -> None:
  app.add_exception_handler(LedgerError, _ledger_error_handler)
  app.add_exception_handler(RequestValidationError, _request_validation_handler)
  app.add_exception_handler(OperationalError, _operational_error_handler)
