# tests/conftest.py
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

import db
from config import Settings
from main import create_app


@pytest.fixture()
def engine(tmp_path: Path):
  # Real SQLite file per test so locking and counters are exercised.
  eng = db.configure_engine(f"sqlite:///{tmp_path / 'ledger.sqlite3'}")
  db.init_db()
  yield eng
  eng.dispose()


@pytest.fixture()
def session(engine):
  with Session(engine) as s:
    yield s


@pytest.fixture()
def client(tmp_path: Path):
  settings = Settings(database_url=f"sqlite:///{tmp_path / 'api.sqlite3'}")
  app = create_app(settings, configure_logging=False)
  with TestClient(app) as c:
    yield c
  db.get_engine().dispose()
