import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from db import get_session
from main import app
from models import Payment, User


@pytest.fixture
def engine():
  engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
  )
  SQLModel.metadata.create_all(engine)
  yield engine
  engine.dispose()


@pytest.fixture
def session(engine):
  with Session(engine) as session:
    yield session


@pytest.fixture
def client(engine):
  def override_session():
    with Session(engine) as session:
      yield session

  app.dependency_overrides[get_session] = override_session
  yield TestClient(app)
  app.dependency_overrides.clear()


@pytest.fixture
def broken_client():
  # no tables: every query fails with OperationalError
  engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
  )

  def override_session():
    with Session(engine) as session:
      yield session

  app.dependency_overrides[get_session] = override_session
  yield TestClient(app)
  app.dependency_overrides.clear()
  engine.dispose()


def make_payment(pid, amount, created_at, status="completed", type="subscription", renewal=None, user_id="u-1", plan="basic"):
  meta = {} if renewal is None else {"is_renewal": renewal}
  return Payment(
    id=pid,
    user_id=user_id,
    amount=amount,
    status=status,
    type=type,
    plan=plan if type == "subscription" else None,
    created_at=created_at,
    meta=meta,
  )


@pytest.fixture
def seeded(session):
  session.add(User(uid="u-1", email="one@example.com", display_name="Jamie Fox", plan="basic", subscription_status="active"))
  session.add(User(uid="u-2", email="two@example.com", display_name="Robin Park", role="trainer"))
  session.add_all([
    # January 2025
    make_payment("PAY-jan-new", 10, datetime(2025, 1, 1, 0, 0, 0), renewal=False),
    make_payment("PAY-jan-ren", 20, datetime(2025, 1, 15, 12, 0), renewal=True, user_id="u-2"),
    make_payment("PAY-jan-fail", 5, datetime(2025, 1, 20), status="failed", type="one-time"),
    make_payment("PAY-jan-last", 40, datetime(2025, 1, 31, 23, 59, 59, 999999), type="one-time"),
    # February 2025
    make_payment("PAY-feb-new", 30, datetime(2025, 2, 1), renewal=False),
    make_payment("PAY-feb-ref", 19.99, datetime(2025, 2, 3), status="refunded", renewal=True),
  ])
  session.commit()
  return session
