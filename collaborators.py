# collaborators.py
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import BinaryIO, List, Optional, Protocol, Sequence, Tuple

from schemas import PhotoIn, WorkerIn

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def photo_key(customer: str, plate_no: str) -> str:
  return f"{_NON_ALNUM.sub('_', customer)}_{_NON_ALNUM.sub('_', plate_no)}"


def photo_folder(customer: str, plate_no: str, uploaded_at: datetime) -> str:
  # e.g. 2025/10/Jane_Doe_AB_123
  return f"{uploaded_at.year}/{uploaded_at.month:02d}/{photo_key(customer, plate_no)}"


@dataclass
class StoredPhoto:
  file_id: str
  file_name: str
  url: str

  def to_photo_in(self) -> PhotoIn:
    return PhotoIn(file_id=self.file_id, file_name=self.file_name, thumbnail_link=self.url, view_link=self.url)


class PhotoStore(Protocol):
  """Object storage for vehicle photos, keyed by :func:`photo_folder`."""

  def upload(self, files: Sequence[Tuple[str, BinaryIO]], customer: str, plate_no: str) -> List[StoredPhoto]:
    ...

  def list(self, customer: str, plate_no: str) -> List[StoredPhoto]:
    ...


class WorkerDirectory(Protocol):
  def hourly_rate(self, name: str) -> Optional[Decimal]:
    ...


def fill_wages(workers: Sequence[WorkerIn], directory: WorkerDirectory) -> List[WorkerIn]:
  """Fill in zero wages from the directory's default rate; explicit wages win."""
  out = []
  for w in workers:
    rate = directory.hourly_rate(w.name.strip()) if w.wage == 0 else None
    out.append(w.model_copy(update={"wage": rate}) if rate else w)
  return out


def upload_task_photos(store: PhotoStore, files: Sequence[Tuple[str, BinaryIO]], customer: str, plate_no: str) -> List[PhotoIn]:
  if not files:
    return []
  return [p.to_photo_in() for p in store.upload(files, customer, plate_no)]
