# tests/test_history.py
from types import SimpleNamespace

from history import build_timeline, split_duration
from models import TaskEventType, TaskStatus

MIN = 60 * 1000
HOUR = 60 * MIN
DAY = 24 * HOUR

T0 = 1_760_000_000_000


def entry(status, ts, from_status=None):
  return SimpleNamespace(status=status, timestamp=ts, from_status=from_status)


def event(kind, ts, invoice_number=None):
  return SimpleNamespace(type=kind, timestamp=ts, invoice_number=invoice_number)


def test_split_duration_floors_each_unit():
  d = split_duration(T0, T0 + 2 * DAY + 3 * HOUR + 59 * MIN + 59_999)
  assert (d.days, d.hours, d.minutes, d.label) == (2, 3, 59, "2d 3h")

  assert split_duration(T0, T0 + 5 * HOUR + 30 * MIN).label == "5h"
  assert split_duration(T0, T0 + 12 * MIN + 5_000).label == "12m"
  assert split_duration(T0, T0).label == "0m"


def test_split_duration_never_negative():
  d = split_duration(T0, T0 - HOUR)
  assert (d.days, d.hours, d.minutes, d.label) == (0, 0, 0, "0m")


def test_status_segments_measure_time_since_previous_entry():
  history = [
    entry(TaskStatus.TODO, T0),
    entry(TaskStatus.ASSIGNED, T0 + 30 * MIN, TaskStatus.TODO),
    entry(TaskStatus.DONE, T0 + 30 * MIN + 26 * HOUR, TaskStatus.ASSIGNED),
  ]

  timeline = build_timeline(T0, history)

  assert [e.label for e in timeline] == ["Todo", "Todo → Assigned", "Assigned → Done"]
  assert [e.duration.label for e in timeline] == ["0m", "30m", "1d 2h"]
  assert all(e.kind == "status" for e in timeline)


def test_events_are_merged_by_time_without_duration():
  history = [
    entry(TaskStatus.TODO, T0),
    entry(TaskStatus.DONE, T0 + 2 * HOUR, TaskStatus.TODO),
  ]
  events = [
    event(TaskEventType.PAYMENT_RECEIVED, T0 + 5 * HOUR, "250001"),
    event(TaskEventType.INVOICE_GENERATED, T0 + 2 * HOUR, "250001"),
  ]

  timeline = build_timeline(T0, history, events)

  assert [e.label for e in timeline] == ["Todo", "Todo → Done", "Invoice Generated", "Payment Received"]
  assert timeline[2].duration is None
  assert timeline[2].invoice_number == "250001"
  assert timeline[3].event_type == TaskEventType.PAYMENT_RECEIVED


def test_timeline_with_only_creation_entry():
  timeline = build_timeline(T0, [entry(TaskStatus.TODO, T0)], [])
  assert len(timeline) == 1
  assert timeline[0].status == TaskStatus.TODO
  assert timeline[0].from_status is None
