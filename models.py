# models.py
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

class User(SQLModel, table=True):
  uid: str = Field(primary_key=True, index=True)
  email: str = Field(index=True, unique=True)
  display_name: str = ""
  role: str = "user"  # user|admin|trainer
  plan: str = "none"  # basic|premium|pro|none
  subscription_status: str = "trial"  # active|expired|trial|canceled
  subscription_start: Optional[datetime] = None
  subscription_end: Optional[datetime] = None
  auto_renew: bool = False
  subscription_price: Optional[float] = None
  payment_methods: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
  created_at: datetime = Field(default_factory=datetime.utcnow)
  updated_at: datetime = Field(default_factory=datetime.utcnow)

class Payment(SQLModel, table=True):
  id: str = Field(primary_key=True, index=True)  # PAY-3f9c0a1b2c4d
  user_id: str = Field(index=True)
  amount: float
  currency: str = "USD"
  status: str = "completed"  # completed|pending|failed|refunded
  type: str = "subscription"  # subscription|one-time
  plan: Optional[str] = None
  method: str = "manual"
  description: Optional[str] = None
  created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
  meta: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON))


class RevenuePeriod(BaseModel):
  model_config = ConfigDict(frozen=True)

  period_start: datetime
  period_end: datetime
  total_revenue: float = 0.0
  new_subscriptions: int = 0
  renewals: int = 0
  skipped_records: int = 0


class RevenueComparison(BaseModel):
  current: RevenuePeriod
  previous: RevenuePeriod
  percent_change: Optional[float] = None  # None when previous revenue is 0
