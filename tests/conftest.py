import os
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.pop('DATABASE_URL', None)
os.environ.setdefault('APP_ENV', 'test')
os.environ.setdefault('STRIPE_SECRET_KEY', 'sk_test_x')
os.environ.setdefault('STRIPE_WEBHOOK_SECRET', 'whsec_test_secret')
os.environ.setdefault('SUPABASE_URL', 'https://example.supabase.co')
os.environ.setdefault('SUPABASE_SERVICE_ROLE_KEY', 'x')

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.database import get_db  # noqa: E402
from app.integrations.payments import StripeGateway, get_gateway  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Base, FundingGoal, Lab, Profile, RecurringFunding, UserEmail  # noqa: E402


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def gateway():
    return MagicMock(spec=StripeGateway)


@pytest.fixture
def client(db, gateway):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def funded_lab(db):
    """A payer with a customer, a lab with a payout account, a goal and a plan."""
    db.add_all(
        [
            Profile(user_id='user-1', username='ada', payment_acc_id='cus_123'),
            UserEmail(user_id='user-1', email='ada@example.com'),
            Lab(lab_id='lab-1', lab_name='Heterodox Lab', funding_id='acct_lab'),
            FundingGoal(id='goal-1', lab_id='lab-1', goal_name='Microscope', goal_amount=5000, amount_contributed=100),
            RecurringFunding(lab_id='lab-1', monthly_amount=25),
        ]
    )
    db.commit()
    return db
