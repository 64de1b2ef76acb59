# db.py
import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlmodel import SQLModel, Session, create_engine, select

from errors import StorageError
from models import Counter

logger = logging.getLogger(__name__)

INVOICE_COUNTER = "invoice"
TASK_COUNTER = "task"

engine: Optional[Engine] = None


def _make_sqlite_serializable(eng: Engine) -> None:
  # pysqlite defers BEGIN until the first write, so a read-modify-write can
  # interleave. Take the write lock up front instead.
  @event.listens_for(eng, "connect")
  def _on_connect(dbapi_connection, _record):
    dbapi_connection.isolation_level = None

  @event.listens_for(eng, "begin")
  def _on_begin(conn):
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, echo: bool = False) -> Engine:
  if database_url.startswith("sqlite"):
    eng = create_engine(
      database_url,
      echo=echo,
      connect_args={"check_same_thread": False, "timeout": 30},
    )
    _make_sqlite_serializable(eng)
    return eng
  return create_engine(database_url, echo=echo, pool_pre_ping=True)


def configure_engine(database_url: str, echo: bool = False) -> Engine:
  global engine
  if engine is not None:
    engine.dispose()
  engine = build_engine(database_url, echo=echo)
  logger.info("Engine configured dialect=%s", engine.dialect.name)
  return engine


def get_engine() -> Engine:
  if engine is None:
    raise RuntimeError("Database engine is not configured")
  return engine


def init_db() -> None:
  eng = get_engine()
  SQLModel.metadata.create_all(eng)
  with Session(eng) as session:
    existing = set(session.exec(select(Counter.name)).all())
    for name in (INVOICE_COUNTER, TASK_COUNTER):
      if name not in existing:
        session.add(Counter(name=name, value=0))
        logger.info("Seeded counter %s", name)
    session.commit()


def get_session():
  with Session(get_engine()) as session:
    yield session


@contextmanager
def storage_guard(session: Session):
  # Busy timeouts surface on the first statement of a transaction, not only at commit.
  try:
    yield session
  except OperationalError as exc:
    session.rollback()
    logger.exception("Store operation failed")
    raise StorageError("Storage is unavailable, retry later") from exc
  except Exception:
    session.rollback()
    raise
