# revenue.py
"""
Revenue aggregation over the payments collection.

The aggregator never talks to the store directly: callers hand it a
``fetch(created_after, created_before)`` callable returning payment records
(mappings shaped like ``payment_store.payment_record``). Each call to
``compute_revenue`` issues exactly one fetch and holds no state between calls.
"""
import calendar
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from models import RevenueComparison, RevenuePeriod

logger = logging.getLogger(__name__)

PaymentFetcher = Callable[[datetime, datetime], Sequence[Mapping[str, Any]]]
Window = Tuple[datetime, datetime]

REQUIRED_FIELDS = ("amount", "status", "type", "created_at")


class RevenueError(Exception):
  pass


class DataUnavailable(RevenueError):
  """The payment query could not be completed."""


class MalformedRecord(RevenueError):
  def __init__(self, record_id: Any, reason: str):
    super().__init__(f"payment {record_id}: {reason}")
    self.record_id = record_id
    self.reason = reason


def _amount(record: Mapping[str, Any]) -> Decimal:
  raw = record["amount"]
  if isinstance(raw, bool):
    raise MalformedRecord(record.get("id"), f"invalid amount {raw!r}")
  try:
    value = Decimal(str(raw).strip())
  except (InvalidOperation, ValueError):
    raise MalformedRecord(record.get("id"), f"invalid amount {raw!r}")
  if not value.is_finite() or value < 0:
    raise MalformedRecord(record.get("id"), f"invalid amount {raw!r}")
  return value


def _validate(record: Mapping[str, Any]) -> None:
  for name in REQUIRED_FIELDS:
    if record.get(name) is None:
      raise MalformedRecord(record.get("id"), f"missing {name}")
  metadata = record.get("metadata")
  if metadata is None:
    return
  if not isinstance(metadata, Mapping):
    raise MalformedRecord(record.get("id"), f"metadata is not a mapping: {metadata!r}")
  flag = metadata.get("is_renewal")
  if record["type"] == "subscription" and flag is not None and not isinstance(flag, bool):
    raise MalformedRecord(record.get("id"), f"invalid is_renewal {flag!r}")


def is_renewal(record: Mapping[str, Any]) -> bool:
  # Only subscriptions can be renewals; absent flag means a new signup.
  if record.get("type") != "subscription":
    return False
  metadata = record.get("metadata") or {}
  return metadata.get("is_renewal") is True


def compute_revenue(fetch: PaymentFetcher, period_start: datetime, period_end: datetime) -> RevenuePeriod:
  """
  Summarise completed payments created inside ``[period_start, period_end]``.

  Both bounds are inclusive. ``DataUnavailable`` from ``fetch`` propagates
  unchanged. Malformed records are skipped, logged and counted in
  ``skipped_records``.
  """
  if period_start > period_end:
    raise ValueError(f"period_start {period_start} is after period_end {period_end}")

  records = fetch(period_start, period_end)
  logger.info("Found %d payments in period %s to %s", len(records), period_start, period_end)

  total = Decimal("0")
  new_subscriptions = 0
  renewals = 0
  skipped = 0

  for record in records:
    try:
      _validate(record)
      amount = _amount(record)
    except MalformedRecord as exc:
      skipped += 1
      logger.warning("Skipping malformed payment record: %s", exc)
      continue

    if record["status"] != "completed":
      continue

    total += amount
    if record["type"] == "subscription":
      if is_renewal(record):
        renewals += 1
      else:
        new_subscriptions += 1

  if skipped:
    logger.warning(
      "Skipped %d of %d payment records in period %s to %s",
      skipped, len(records), period_start, period_end,
    )

  return RevenuePeriod(
    period_start=period_start,
    period_end=period_end,
    total_revenue=float(total),
    new_subscriptions=new_subscriptions,
    renewals=renewals,
    skipped_records=skipped,
  )


def percent_change(current: RevenuePeriod, previous: RevenuePeriod) -> Optional[float]:
  # No baseline: undefined, not zero and not infinite.
  if previous.total_revenue == 0:
    return None
  return (current.total_revenue - previous.total_revenue) / previous.total_revenue * 100


def compare_periods(fetch: PaymentFetcher, current: Window, previous: Window) -> RevenueComparison:
  current_period = compute_revenue(fetch, *current)
  previous_period = compute_revenue(fetch, *previous)
  return RevenueComparison(
    current=current_period,
    previous=previous_period,
    percent_change=percent_change(current_period, previous_period),
  )


def month_window(year: int, month: int) -> Window:
  """First and last instant of a calendar month, both inclusive."""
  if not 1 <= month <= 12:
    raise ValueError(f"month must be in 1..12, got {month}")
  start = datetime(year, month, 1)
  last_day = calendar.monthrange(year, month)[1]
  end = datetime(year, month, last_day, 23, 59, 59, 999999)
  return start, end


def previous_month(year: int, month: int) -> Tuple[int, int]:
  if month == 1:
    return year - 1, 12
  return year, month - 1


def monthly_reports(fetch: PaymentFetcher, year: int) -> List[RevenuePeriod]:
  return [compute_revenue(fetch, *month_window(year, month)) for month in range(1, 13)]
