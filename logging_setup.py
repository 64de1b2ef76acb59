# logging_setup.py
import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _ThirdPartyFilter(logging.Filter):
  """
  Keep the console readable:
  - our own modules log at the configured level
  - uvicorn access lines and SQLAlchemy chatter only from WARNING
  """

  def filter(self, record: logging.LogRecord) -> bool:
    name = record.name
    if name.startswith("sqlalchemy") or name == "uvicorn.access":
      return record.levelno >= logging.WARNING
    return True


def setup_logging(level: int = logging.INFO, log_dir: Optional[Path] = None) -> None:
  """Configure the root logger once, before the app starts serving."""
  root = logging.getLogger()
  root.setLevel(logging.DEBUG)

  # Drop handlers from earlier calls (reloads, tests).
  for h in list(root.handlers):
    root.removeHandler(h)

  fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

  ch = logging.StreamHandler(sys.stderr)
  ch.setLevel(level)
  ch.setFormatter(fmt)
  ch.addFilter(_ThirdPartyFilter())
  root.addHandler(ch)

  if log_dir is not None:
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(str(log_dir / "workshop.log"), encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(fmt)
    root.addHandler(fh)

  logging.captureWarnings(True)
