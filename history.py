# history.py
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from models import TaskEventType, TaskStatus

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

STATUS_LABELS = {
  TaskStatus.TODO: "Todo",
  TaskStatus.ASSIGNED: "Assigned",
  TaskStatus.PROCESSING: "Processing",
  TaskStatus.DONE: "Done",
}

EVENT_LABELS = {
  TaskEventType.INVOICE_GENERATED: "Invoice Generated",
  TaskEventType.PAYMENT_RECEIVED: "Payment Received",
}


@dataclass
class Duration:
  days: int
  hours: int
  minutes: int
  label: str


@dataclass
class TimelineEntry:
  kind: str  # status | event
  timestamp: int
  label: str
  status: Optional[TaskStatus] = None
  from_status: Optional[TaskStatus] = None
  event_type: Optional[TaskEventType] = None
  invoice_number: Optional[str] = None
  duration: Optional[Duration] = None


def split_duration(start_ms: int, end_ms: int) -> Duration:
  diff = max(0, end_ms - start_ms)
  total_hours = diff // HOUR_MS
  days = total_hours // 24
  hours = total_hours % 24
  minutes = (diff % HOUR_MS) // MINUTE_MS

  if days > 0:
    label = f"{days}d {hours}h"
  elif total_hours > 0:
    label = f"{total_hours}h"
  else:
    label = f"{diff // MINUTE_MS}m"
  return Duration(days=days, hours=hours, minutes=minutes, label=label)


def status_label(status: TaskStatus, from_status: Optional[TaskStatus] = None) -> str:
  if from_status is None:
    return STATUS_LABELS[status]
  return f"{STATUS_LABELS[from_status]} → {STATUS_LABELS[status]}"


def build_timeline(created_at: int, status_history: Sequence[Any], task_events: Sequence[Any] = ()) -> List[TimelineEntry]:
  """Status entries (with time since the previous one) merged with events; status first on ties."""
  entries: List[TimelineEntry] = []

  prev = created_at
  for h in status_history:
    entries.append(
      TimelineEntry(
        kind="status",
        timestamp=h.timestamp,
        label=status_label(h.status, h.from_status),
        status=h.status,
        from_status=h.from_status,
        duration=split_duration(prev, h.timestamp),
      )
    )
    prev = h.timestamp

  for ev in task_events:
    entries.append(
      TimelineEntry(
        kind="event",
        timestamp=ev.timestamp,
        label=EVENT_LABELS[ev.type],
        event_type=ev.type,
        invoice_number=ev.invoice_number,
      )
    )

  # sorted() is stable, so per-list order survives timestamp ties.
  return sorted(entries, key=lambda e: (e.timestamp, 0 if e.kind == "status" else 1))
