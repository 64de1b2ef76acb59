# schemas.py
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from models import TaskEventType, TaskStatus

# Money goes over the wire as a JSON number, like the rest of the client code expects.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]
# Incoming amounts must fit the Numeric(12, 2) columns exactly.
MoneyIn = Annotated[Money, Field(max_digits=12, decimal_places=2)]


def _reject_text(value: Any) -> Any:
  if isinstance(value, (str, bool)):
    raise ValueError("Total amount is required")
  return value


class ApiModel(BaseModel):
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class LineItemIn(ApiModel):
  description: str = ""
  amount: MoneyIn = Field(default=Decimal("0"), ge=0)


class WorkerIn(ApiModel):
  name: str = ""
  wage: MoneyIn = Field(default=Decimal("0"), ge=0)
  paid: bool = False


class PhotoIn(ApiModel):
  file_id: str
  file_name: str
  thumbnail_link: Optional[str] = None
  view_link: Optional[str] = None


class TaskCreate(ApiModel):
  customer: str = ""
  vehicle_plate_no: str = ""
  vehicle_make: str = ""
  vehicle_model: str = ""
  description: Optional[str] = None
  line_items: List[LineItemIn] = Field(default_factory=list)
  workers: List[WorkerIn] = Field(default_factory=list)
  photos: List[PhotoIn] = Field(default_factory=list)


class TaskUpdate(ApiModel):
  """Only fields present in the payload (`model_fields_set`) are applied."""

  status: Optional[TaskStatus] = None
  customer: Optional[str] = None
  vehicle_plate_no: Optional[str] = None
  vehicle_make: Optional[str] = None
  vehicle_model: Optional[str] = None
  description: Optional[str] = None
  line_items: Optional[List[LineItemIn]] = None
  workers: Optional[List[WorkerIn]] = None
  paid: Optional[MoneyIn] = None


class TaskEventIn(ApiModel):
  type: Optional[TaskEventType] = None
  timestamp: Optional[int] = None
  invoice_number: Optional[str] = None


class LineItemRead(ApiModel):
  description: str
  amount: Money


class WorkerRead(ApiModel):
  name: str
  wage: Money
  paid: bool


class StatusHistoryRead(ApiModel):
  status: TaskStatus
  timestamp: int
  from_status: Optional[TaskStatus] = None


class TaskEventRead(ApiModel):
  type: TaskEventType
  timestamp: int
  invoice_number: Optional[str] = None


class PhotoRead(ApiModel):
  file_id: str
  file_name: str
  thumbnail_link: Optional[str] = None
  view_link: Optional[str] = None


class TaskRead(ApiModel):
  id: int
  status: TaskStatus
  customer: str
  vehicle_plate_no: str
  vehicle_make: str
  vehicle_model: str
  description: Optional[str] = None
  line_items: List[LineItemRead]
  price: Money
  workers: List[WorkerRead]
  paid: Money
  completed_at: Optional[int] = None
  created_at: int
  updated_at: int
  status_history: List[StatusHistoryRead]
  task_events: List[TaskEventRead]
  photos: List[PhotoRead]


class InvoiceCreate(ApiModel):
  task_ids: List[int] = Field(default_factory=list)
  customer_name: str = ""
  total_amount: Optional[Annotated[MoneyIn, BeforeValidator(_reject_text)]] = None
  tasks: List[Dict[str, Any]] = Field(default_factory=list)


class InvoiceUpdate(ApiModel):
  payment_received: Optional[bool] = None
  payment_received_date: Optional[int] = None


class InvoiceRead(ApiModel):
  id: str
  task_ids: List[int]
  customer_name: str
  total_amount: Money
  tasks_snapshot: List[Dict[str, Any]]
  payment_received: bool
  payment_received_date: Optional[int] = None
  created_at: int
  updated_at: int


class DurationRead(ApiModel):
  days: int
  hours: int
  minutes: int
  label: str


class TimelineEntryRead(ApiModel):
  kind: str  # status | event
  timestamp: int
  label: str
  status: Optional[TaskStatus] = None
  from_status: Optional[TaskStatus] = None
  event_type: Optional[TaskEventType] = None
  invoice_number: Optional[str] = None
  duration: Optional[DurationRead] = None
