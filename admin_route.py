# admin_route.py
import logging
import os
import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from db import get_session
from models import Payment, User, RevenueComparison, RevenuePeriod
from payment_store import (
  PageQuery, PaymentPage, UserPage, UserPageQuery,
  list_payments, list_users, payment_fetcher,
)
from revenue import compare_periods, compute_revenue, month_window, monthly_reports, previous_month
from seed import seed_if_empty

logger = logging.getLogger(__name__)

SEED_RANDOM = int(os.getenv("SEED_RANDOM", "2025"))

router = APIRouter(prefix="/api", tags=["admin"])


class UserCreate(BaseModel):
  uid: str
  email: str
  display_name: str = ""
  role: Literal["user", "admin", "trainer"] = "user"
  plan: Literal["basic", "premium", "pro", "none"] = "none"
  subscription_status: Literal["active", "expired", "trial", "canceled"] = "trial"


class RoleUpdate(BaseModel):
  role: Literal["user", "admin", "trainer"]


class ManualPayment(BaseModel):
  user_id: str
  amount: float = Field(ge=0)
  type: Literal["subscription", "one-time"] = "one-time"
  plan: Optional[Literal["basic", "premium", "pro"]] = None
  is_renewal: bool = False
  description: Optional[str] = None


class StatusUpdate(BaseModel):
  status: Literal["completed", "pending", "failed", "refunded"]


class SubscriptionUpdate(BaseModel):
  plan: Optional[Literal["basic", "premium", "pro", "none"]] = None
  status: Optional[Literal["active", "expired", "trial", "canceled"]] = None
  start_date: Optional[datetime] = None
  end_date: Optional[datetime] = None
  auto_renew: Optional[bool] = None
  price: Optional[float] = Field(default=None, ge=0)


class PaymentMethodCreate(BaseModel):
  id: Optional[str] = None
  type: Literal["credit_card", "paypal", "bank_transfer", "manual"]
  last4: Optional[str] = Field(default=None, pattern=r"^\d{4}$")
  is_default: bool = False


def page_query(
  q: Optional[str] = None,
  status: Optional[str] = None,
  user_id: Optional[str] = None,
  limit: int = Query(20, ge=1, le=100),
  before: Optional[datetime] = None,
) -> PageQuery:
  return PageQuery(q=q, status=status, user_id=user_id, limit=limit, before=_naive_utc(before))


def user_page_query(
  q: Optional[str] = None,
  role: Optional[str] = None,
  subscription_status: Optional[str] = None,
  limit: int = Query(20, ge=1, le=100),
  before: Optional[datetime] = None,
) -> UserPageQuery:
  return UserPageQuery(q=q, role=role, subscription_status=subscription_status, limit=limit, before=_naive_utc(before))


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
  # stored timestamps are naive UTC
  if value is None or value.tzinfo is None:
    return value
  return value.astimezone(timezone.utc).replace(tzinfo=None)


def _get_user(session: Session, uid: str) -> User:
  user = session.get(User, uid)
  if not user:
    raise HTTPException(status_code=404, detail="User not found")
  return user


@router.get("/users", response_model=UserPage)
def get_users(page: UserPageQuery = Depends(user_page_query), session: Session = Depends(get_session)):
  return list_users(session, page)

@router.post("/users", response_model=User)
def create_user(body: UserCreate, session: Session = Depends(get_session)):
  if session.get(User, body.uid):
    raise HTTPException(status_code=409, detail="User id already exists")
  if session.exec(select(User).where(User.email == body.email)).first():
    raise HTTPException(status_code=409, detail="Email already registered")
  user = User(**body.model_dump())
  session.add(user)
  session.commit()
  session.refresh(user)
  return user

@router.get("/users/{uid}", response_model=User)
def get_user(uid: str, session: Session = Depends(get_session)):
  return _get_user(session, uid)

@router.patch("/users/{uid}/role", response_model=User)
def set_user_role(uid: str, body: RoleUpdate, session: Session = Depends(get_session)):
  user = _get_user(session, uid)
  user.role = body.role
  user.updated_at = datetime.utcnow()
  session.add(user)
  session.commit()
  session.refresh(user)
  logger.info("User %s role set to %s", uid, body.role)
  return user

@router.patch("/users/{uid}/subscription", response_model=User)
def update_user_subscription(uid: str, body: SubscriptionUpdate, session: Session = Depends(get_session)):
  user = _get_user(session, uid)
  now = datetime.utcnow()
  if user.subscription_start is None:
    # first subscription: 30 day basic trial unless the body says otherwise
    user.plan = "basic"
    user.subscription_status = "trial"
    user.subscription_start = now
    user.subscription_end = now + timedelta(days=30)
    user.auto_renew = False
    user.subscription_price = 9.99

  changes = body.model_dump(exclude_none=True)
  if "plan" in changes:
    user.plan = changes["plan"]
  if "status" in changes:
    user.subscription_status = changes["status"]
  if "start_date" in changes:
    user.subscription_start = _naive_utc(changes["start_date"])
  if "end_date" in changes:
    user.subscription_end = _naive_utc(changes["end_date"])
  if "auto_renew" in changes:
    user.auto_renew = changes["auto_renew"]
  if "price" in changes:
    user.subscription_price = changes["price"]

  if user.subscription_start > user.subscription_end:
    raise HTTPException(status_code=400, detail="Subscription start must not be after its end")

  user.updated_at = now
  session.add(user)
  session.commit()
  session.refresh(user)
  logger.info("User %s subscription set to %s/%s", uid, user.plan, user.subscription_status)
  return user

@router.delete("/users/{uid}")
def delete_user(uid: str, session: Session = Depends(get_session)):
  user = _get_user(session, uid)
  # payments keep their user_id back-reference for revenue history
  session.delete(user)
  session.commit()
  logger.info("User %s deleted", uid)
  return {"ok": True, "uid": uid}

@router.post("/users/{uid}/payment-methods", response_model=User)
def add_payment_method(uid: str, body: PaymentMethodCreate, session: Session = Depends(get_session)):
  user = _get_user(session, uid)
  methods = [dict(m) for m in user.payment_methods or []]
  method_id = body.id or f"pm_{uuid.uuid4().hex[:8]}"
  if any(m.get("id") == method_id for m in methods):
    raise HTTPException(status_code=409, detail="Payment method id already exists")
  if body.is_default:
    for m in methods:
      m["is_default"] = False
  methods.append({"id": method_id, "type": body.type, "last4": body.last4, "is_default": body.is_default})

  # JSON column: assign a new list so the change is flushed
  user.payment_methods = methods
  user.updated_at = datetime.utcnow()
  session.add(user)
  session.commit()
  session.refresh(user)
  return user

@router.delete("/users/{uid}/payment-methods/{method_id}", response_model=User)
def remove_payment_method(uid: str, method_id: str, session: Session = Depends(get_session)):
  user = _get_user(session, uid)
  methods = [dict(m) for m in user.payment_methods or []]
  remaining = [m for m in methods if m.get("id") != method_id]
  if len(remaining) == len(methods):
    raise HTTPException(status_code=404, detail="Payment method not found")
  user.payment_methods = remaining
  user.updated_at = datetime.utcnow()
  session.add(user)
  session.commit()
  session.refresh(user)
  return user

@router.get("/users/{uid}/payments", response_model=List[Payment])
def get_user_payments(uid: str, session: Session = Depends(get_session)):
  _get_user(session, uid)
  stmt = select(Payment).where(Payment.user_id == uid).order_by(Payment.created_at.desc())
  return session.exec(stmt).all()


@router.get("/payments", response_model=PaymentPage)
def get_payments(page: PageQuery = Depends(page_query), session: Session = Depends(get_session)):
  return list_payments(session, page)

@router.post("/payments", response_model=Payment)
def create_manual_payment(body: ManualPayment, session: Session = Depends(get_session)):
  _get_user(session, body.user_id)
  payment = Payment(
    id=f"PAY-{uuid.uuid4().hex[:12]}",
    user_id=body.user_id,
    amount=body.amount,
    status="completed",
    type=body.type,
    plan=body.plan,
    method="manual",
    description=body.description or "Manual payment entry",
    meta={"is_renewal": body.is_renewal and body.type == "subscription"},
  )
  session.add(payment)
  session.commit()
  session.refresh(payment)
  logger.info("Manual payment %s of %.2f recorded for %s", payment.id, payment.amount, payment.user_id)
  return payment

@router.patch("/payments/{payment_id}/status", response_model=Payment)
def update_payment_status(payment_id: str, body: StatusUpdate, session: Session = Depends(get_session)):
  payment = session.get(Payment, payment_id)
  if not payment:
    raise HTTPException(status_code=404, detail="Payment not found")
  payment.status = body.status
  session.add(payment)
  session.commit()
  session.refresh(payment)
  return payment


@router.get("/revenue", response_model=RevenuePeriod)
def get_revenue(start: datetime, end: datetime, session: Session = Depends(get_session)):
  start, end = _naive_utc(start), _naive_utc(end)
  if start > end:
    raise HTTPException(status_code=400, detail="start must not be after end")
  return compute_revenue(payment_fetcher(session), start, end)

@router.get("/revenue/compare", response_model=RevenueComparison)
def get_revenue_comparison(
  year: Optional[int] = Query(None, ge=1970, le=9999),
  month: Optional[int] = Query(None, ge=1, le=12),
  session: Session = Depends(get_session),
):
  today = datetime.utcnow()
  year = year or today.year
  month = month or today.month
  current = month_window(year, month)
  previous = month_window(*previous_month(year, month))
  return compare_periods(payment_fetcher(session), current, previous)

@router.get("/revenue/monthly/{year}", response_model=List[RevenuePeriod])
def get_monthly_reports(year: int = Path(ge=1970, le=9999), session: Session = Depends(get_session)):
  return monthly_reports(payment_fetcher(session), year)


@router.post("/seed")
def seed(session: Session = Depends(get_session)):
  return seed_if_empty(session, random.Random(SEED_RANDOM))
