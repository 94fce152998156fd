import random
from datetime import datetime

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine, select

from models import Payment, User
from payment_store import PageQuery, UserPageQuery, fetch_payments, list_payments, list_users, payment_fetcher
from revenue import DataUnavailable, compute_revenue, month_window
from seed import generate_payments, seed_if_empty


def test_fetch_window_is_inclusive_at_both_ends(seeded):
  start, end = month_window(2025, 1)
  ids = [r["id"] for r in fetch_payments(seeded, start, end)]
  assert "PAY-jan-new" in ids   # exactly at start
  assert "PAY-jan-last" in ids  # exactly at end
  assert "PAY-feb-new" not in ids
  assert ids[0] == "PAY-jan-last"  # newest first


def test_fetch_returns_payment_records(seeded):
  start, end = month_window(2025, 2)
  records = {r["id"]: r for r in fetch_payments(seeded, start, end)}
  assert records["PAY-feb-ref"]["metadata"] == {"is_renewal": True}
  assert records["PAY-feb-ref"]["status"] == "refunded"
  assert records["PAY-feb-new"]["amount"] == 30


def test_store_backed_aggregation(seeded):
  january = compute_revenue(payment_fetcher(seeded), *month_window(2025, 1))
  assert january.total_revenue == 70
  assert january.new_subscriptions == 1
  assert january.renewals == 1

  february = compute_revenue(payment_fetcher(seeded), *month_window(2025, 2))
  assert february.total_revenue == 30
  assert february.new_subscriptions == 1
  assert february.renewals == 0


def test_store_failure_raises_data_unavailable():
  engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
  with Session(engine) as session:
    with pytest.raises(DataUnavailable) as info:
      fetch_payments(session, datetime(2025, 1, 1), datetime(2025, 1, 31))
  assert info.value.__cause__ is not None


def test_list_payments_cursor_pagination(seeded):
  first = list_payments(seeded, PageQuery(limit=4))
  assert [p.id for p in first.items] == ["PAY-feb-ref", "PAY-feb-new", "PAY-jan-last", "PAY-jan-fail"]
  assert first.next_cursor == datetime(2025, 1, 20)

  second = list_payments(seeded, PageQuery(limit=4, before=first.next_cursor))
  assert [p.id for p in second.items] == ["PAY-jan-ren", "PAY-jan-new"]
  assert second.next_cursor is None


def test_list_payments_filters(seeded):
  page = list_payments(seeded, PageQuery(status="completed", user_id="u-2"))
  assert [p.id for p in page.items] == ["PAY-jan-ren"]

  page = list_payments(seeded, PageQuery(q="FEB"))
  assert {p.id for p in page.items} == {"PAY-feb-new", "PAY-feb-ref"}


def test_list_users_search(seeded):
  page = list_users(seeded, UserPageQuery(q="trainer"))
  assert [u.uid for u in page.items] == ["u-2"]
  assert page.next_cursor is None


def test_list_users_filters(seeded):
  page = list_users(seeded, UserPageQuery(role="trainer"))
  assert [u.uid for u in page.items] == ["u-2"]

  page = list_users(seeded, UserPageQuery(subscription_status="active"))
  assert [u.uid for u in page.items] == ["u-1"]

  page = list_users(seeded, UserPageQuery(role="admin"))
  assert page.items == []


def test_generate_payments_shape():
  payments = generate_payments(["a", "b", "c"], 2025, random.Random(7))
  assert 6 <= len(payments) <= 24
  for p in payments:
    assert datetime(2025, 1, 1) <= p.created_at <= datetime(2025, 5, 28)
    assert p.status in ("completed", "pending", "refunded")
    assert p.amount in (9.99, 19.99, 29.99)
    if p.type == "one-time":
      assert p.meta["is_renewal"] is False


def test_generate_payments_is_reproducible():
  a = generate_payments(["a", "b"], 2025, random.Random(42))
  b = generate_payments(["a", "b"], 2025, random.Random(42))
  assert [(p.id, p.amount, p.created_at) for p in a] == [(p.id, p.amount, p.created_at) for p in b]


def test_seed_if_empty_only_seeds_once(session):
  first = seed_if_empty(session, random.Random(1))
  assert first["seeded"] is True
  assert len(session.exec(select(User)).all()) == 5
  assert len(session.exec(select(Payment)).all()) == first["payments"]

  second = seed_if_empty(session, random.Random(1))
  assert second == {"ok": True, "seeded": False, "payments": 0}


def test_non_mapping_meta_is_skipped_by_store_aggregation(seeded):
  seeded.add(Payment(
    id="PAY-jan-badmeta", user_id="u-1", amount=99, status="completed",
    type="subscription", plan="pro", created_at=datetime(2025, 1, 10), meta=["x"],
  ))
  seeded.commit()

  start, end = month_window(2025, 1)
  records = {r["id"]: r for r in fetch_payments(seeded, start, end)}
  assert records["PAY-jan-badmeta"]["metadata"] == ["x"]

  january = compute_revenue(payment_fetcher(seeded), start, end)
  assert january.total_revenue == 70
  assert january.skipped_records == 1
