# models.py
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, BigInteger
from sqlmodel import Field, Relationship, SQLModel


class TaskStatus(str, Enum):
  TODO = "todo"
  ASSIGNED = "assigned"
  PROCESSING = "processing"
  DONE = "done"


class TaskEventType(str, Enum):
  INVOICE_GENERATED = "invoice_generated"
  PAYMENT_RECEIVED = "payment_received"


class Counter(SQLModel, table=True):
  name: str = Field(primary_key=True)  # invoice | task
  value: int = 0


class Task(SQLModel, table=True):
  id: int = Field(primary_key=True, sa_type=BigInteger)  # yyyymmddNN
  status: TaskStatus = Field(default=TaskStatus.TODO, index=True)
  customer: str = Field(index=True)
  vehicle_plate_no: str
  vehicle_make: str
  vehicle_model: str
  description: Optional[str] = None
  price: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
  paid: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
  completed_at: Optional[int] = Field(default=None, sa_type=BigInteger)  # epoch ms
  created_at: int = Field(sa_type=BigInteger)
  updated_at: int = Field(sa_type=BigInteger)

  line_items: List["LineItem"] = Relationship(
    back_populates="task",
    sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "LineItem.position"},
  )
  workers: List["TaskWorker"] = Relationship(
    back_populates="task",
    sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "TaskWorker.position"},
  )
  status_history: List["StatusHistory"] = Relationship(
    back_populates="task",
    sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "StatusHistory.id"},
  )
  task_events: List["TaskEvent"] = Relationship(
    back_populates="task",
    sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "TaskEvent.id"},
  )
  photos: List["Photo"] = Relationship(
    back_populates="task",
    sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "Photo.id"},
  )


class LineItem(SQLModel, table=True):
  id: Optional[int] = Field(default=None, primary_key=True)
  task_id: int = Field(foreign_key="task.id", index=True, sa_type=BigInteger)
  position: int = 0
  description: str
  amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)

  task: Optional[Task] = Relationship(back_populates="line_items")


class TaskWorker(SQLModel, table=True):
  id: Optional[int] = Field(default=None, primary_key=True)
  task_id: int = Field(foreign_key="task.id", index=True, sa_type=BigInteger)
  position: int = 0
  name: str
  wage: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
  paid: bool = False

  task: Optional[Task] = Relationship(back_populates="workers")


class StatusHistory(SQLModel, table=True):
  id: Optional[int] = Field(default=None, primary_key=True)
  task_id: int = Field(foreign_key="task.id", index=True, sa_type=BigInteger)
  status: TaskStatus
  from_status: Optional[TaskStatus] = None
  timestamp: int = Field(sa_type=BigInteger)

  task: Optional[Task] = Relationship(back_populates="status_history")


class TaskEvent(SQLModel, table=True):
  id: Optional[int] = Field(default=None, primary_key=True)
  task_id: int = Field(foreign_key="task.id", index=True, sa_type=BigInteger)
  type: TaskEventType
  timestamp: int = Field(sa_type=BigInteger)
  invoice_number: Optional[str] = None

  task: Optional[Task] = Relationship(back_populates="task_events")


class Photo(SQLModel, table=True):
  id: Optional[int] = Field(default=None, primary_key=True)
  task_id: int = Field(foreign_key="task.id", index=True, sa_type=BigInteger)
  file_id: str
  file_name: str
  thumbnail_link: Optional[str] = None
  view_link: Optional[str] = None

  task: Optional[Task] = Relationship(back_populates="photos")


class Invoice(SQLModel, table=True):
  id: str = Field(primary_key=True, index=True)  # yyNNNN, e.g. 250001
  task_ids: List[int] = Field(default_factory=list, sa_type=JSON)
  customer_name: str
  total_amount: Decimal = Field(max_digits=12, decimal_places=2)
  tasks_snapshot: List[Dict[str, Any]] = Field(default_factory=list, sa_type=JSON)
  payment_received: bool = False
  payment_received_date: Optional[int] = Field(default=None, sa_type=BigInteger)
  created_at: int = Field(sa_type=BigInteger, index=True)
  updated_at: int = Field(sa_type=BigInteger)
