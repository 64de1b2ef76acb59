# main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import db
from billing_route import router as billing_router
from config import Settings, load_settings
from errors import register_error_handlers
from logging_setup import setup_logging
from tasks_route import router as tasks_router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, configure_logging: bool = True) -> FastAPI:
  settings = settings or load_settings()
  if configure_logging:
    setup_logging(settings.log_level, settings.log_dir)

  db.configure_engine(settings.database_url, echo=settings.db_echo)

  @asynccontextmanager
  async def lifespan(_app: FastAPI):
    db.init_db()
    logger.info("Workshop ledger ready cors=%s", settings.cors_origins)
    yield
    db.get_engine().dispose()

  app = FastAPI(title="Workshop Ledger", version="1.0.0", lifespan=lifespan)
  app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
  )
  register_error_handlers(app)

  @app.get("/health")
  def health():
    return {"ok": True, "db": db.get_engine().dialect.name}

  app.include_router(tasks_router)
  app.include_router(billing_router)
  return app


if __name__ == "__main__":
  import uvicorn

  uvicorn.run(create_app(), host="0.0.0.0", port=4000)
