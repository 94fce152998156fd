# payment_store.py
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from models import Payment, User
from revenue import DataUnavailable, PaymentFetcher

logger = logging.getLogger(__name__)


class PageQuery(BaseModel):
  q: Optional[str] = None
  status: Optional[str] = None
  user_id: Optional[str] = None
  limit: int = Field(default=20, ge=1, le=100)
  before: Optional[datetime] = None  # created_at of the last item already seen


class UserPageQuery(BaseModel):
  q: Optional[str] = None
  role: Optional[str] = None
  subscription_status: Optional[str] = None
  limit: int = Field(default=20, ge=1, le=100)
  before: Optional[datetime] = None


class PaymentPage(BaseModel):
  items: List[Payment]
  next_cursor: Optional[datetime] = None


class UserPage(BaseModel):
  items: List[User]
  next_cursor: Optional[datetime] = None


def _match(q: str, *values: Optional[str]) -> bool:
  ql = q.strip().lower()
  return any(ql in (v or "").lower() for v in values)


def payment_record(row: Payment) -> Dict[str, Any]:
  return {
    "id": row.id,
    "user_id": row.user_id,
    "amount": row.amount,
    "status": row.status,
    "type": row.type,
    "plan": row.plan,
    "created_at": row.created_at,
    "metadata": dict(row.meta) if isinstance(row.meta, dict) else row.meta,
  }


def fetch_payments(session: Session, created_after: datetime, created_before: datetime) -> List[Dict[str, Any]]:
  stmt = (
    select(Payment)
    .where(Payment.created_at >= created_after, Payment.created_at <= created_before)
    .order_by(Payment.created_at.desc())
  )
  try:
    rows = session.exec(stmt).all()
  except SQLAlchemyError as exc:
    logger.error("Payment query failed for %s to %s: %s", created_after, created_before, exc)
    raise DataUnavailable("payment query failed") from exc
  return [payment_record(r) for r in rows]


def payment_fetcher(session: Session) -> PaymentFetcher:
  def fetch(created_after: datetime, created_before: datetime) -> List[Dict[str, Any]]:
    return fetch_payments(session, created_after, created_before)
  return fetch


def _next_cursor(items: List[Any], limit: int) -> Optional[datetime]:
  if len(items) < limit:
    return None
  return items[-1].created_at


def list_payments(session: Session, page: PageQuery) -> PaymentPage:
  stmt = select(Payment).order_by(Payment.created_at.desc(), Payment.id.desc())
  if page.status:
    stmt = stmt.where(Payment.status == page.status)
  if page.user_id:
    stmt = stmt.where(Payment.user_id == page.user_id)
  if page.before is not None:
    stmt = stmt.where(Payment.created_at < page.before)

  if not page.q:
    rows = list(session.exec(stmt.limit(page.limit)).all())
  else:
    # no text index on the store; filter in memory
    rows = [
      r for r in session.exec(stmt).all()
      if _match(page.q, r.id, r.user_id, r.plan, r.status, r.method, r.description)
    ][:page.limit]
  return PaymentPage(items=rows, next_cursor=_next_cursor(rows, page.limit))


def list_users(session: Session, page: UserPageQuery) -> UserPage:
  stmt = select(User).order_by(User.created_at.desc(), User.uid.desc())
  if page.role:
    stmt = stmt.where(User.role == page.role)
  if page.subscription_status:
    stmt = stmt.where(User.subscription_status == page.subscription_status)
  if page.before is not None:
    stmt = stmt.where(User.created_at < page.before)

  if not page.q:
    rows = list(session.exec(stmt.limit(page.limit)).all())
  else:
    rows = [
      r for r in session.exec(stmt).all()
      if _match(page.q, r.uid, r.email, r.display_name, r.role, r.plan)
    ][:page.limit]
  return UserPage(items=rows, next_cursor=_next_cursor(rows, page.limit))
