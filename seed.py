# seed.py
import logging
import random
from datetime import datetime
from typing import List, Sequence

from sqlmodel import Session, select

from models import Payment, User

logger = logging.getLogger(__name__)

PLAN_PRICES = {
  "basic": 9.99,
  "premium": 19.99,
  "pro": 29.99,
}

METHODS = ["credit_card", "credit_card", "paypal", "bank_transfer"]

DEMO_USERS = [
  dict(uid="u-alex", email="alex@example.com", display_name="Alex Carter", plan="premium", subscription_status="active"),
  dict(uid="u-bea", email="bea@example.com", display_name="Bea Moreno", plan="basic", subscription_status="active"),
  dict(uid="u-chen", email="chen@example.com", display_name="Chen Li", plan="pro", subscription_status="active"),
  dict(uid="u-dana", email="dana@example.com", display_name="Dana Okafor", role="trainer"),
  dict(uid="u-admin", email="admin@example.com", display_name="Gym Admin", role="admin"),
]


def _status(rng: random.Random) -> str:
  r = rng.random()
  if r > 0.95:
    return "refunded"
  if r > 0.9:
    return "pending"
  return "completed"


def generate_payments(user_ids: Sequence[str], year: int, rng: random.Random) -> List[Payment]:
  """2-8 payments per user, dated January to May of ``year``."""
  payments = []
  for user_id in user_ids:
    for _ in range(rng.randint(2, 8)):
      created = datetime(year, rng.randint(1, 5), rng.randint(1, 28))
      plan = rng.choice(list(PLAN_PRICES))
      ptype = "subscription" if rng.random() > 0.2 else "one-time"
      renewal = ptype == "subscription" and rng.random() > 0.7
      payments.append(Payment(
        id=f"PAY-{rng.getrandbits(48):012x}",
        user_id=user_id,
        amount=PLAN_PRICES[plan],
        status=_status(rng),
        type=ptype,
        plan=plan,
        method=rng.choice(METHODS),
        description=f"{'Monthly subscription' if ptype == 'subscription' else 'One-time payment'} - {plan}",
        created_at=created,
        meta={"is_renewal": renewal},
      ))
  return payments


def seed_if_empty(session: Session, rng: random.Random, year: int = 2025) -> dict:
  # Seed only if there are no payments yet
  any_payment = session.exec(select(Payment)).first()
  if any_payment:
    return {"ok": True, "seeded": False, "payments": 0}

  users = list(session.exec(select(User)).all())
  if not users:
    users = [User(**u) for u in DEMO_USERS]
    session.add_all(users)

  payments = generate_payments([u.uid for u in users], year, rng)
  session.add_all(payments)
  session.commit()

  logger.info("Seeded %d payments for %d users", len(payments), len(users))
  return {"ok": True, "seeded": True, "payments": len(payments)}
