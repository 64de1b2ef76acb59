# config.py
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_CORS_ORIGINS = "http://127.0.0.1:5173,http://localhost:5173"


def _env_bool(name: str, default: bool) -> bool:
  raw = os.getenv(name)
  if raw is None:
    return default
  return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_list(name: str, default: str) -> List[str]:
  return [x.strip() for x in os.getenv(name, default).split(",") if x.strip()]


def _env_level(name: str, default: int) -> int:
  raw = os.getenv(name, "").strip().upper()
  if not raw:
    return default
  level = logging.getLevelName(raw)
  return level if isinstance(level, int) else default


@dataclass
class Settings:
  database_url: str
  cors_origins: List[str] = field(default_factory=list)
  db_echo: bool = False
  log_level: int = logging.INFO
  log_dir: Optional[Path] = None


def load_settings() -> Settings:
  database_url = os.getenv("DATABASE_URL", "").strip()
  if not database_url:
    raise RuntimeError("DATABASE_URL is not set in backend .env")

  log_dir = os.getenv("LOG_DIR", "").strip()
  return Settings(
    database_url=database_url,
    cors_origins=_env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
    db_echo=_env_bool("DB_ECHO", False),
    log_level=_env_level("LOG_LEVEL", logging.INFO),
    log_dir=Path(log_dir).expanduser() if log_dir else None,
  )
