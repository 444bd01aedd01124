"""
Shared fixtures for the alert engine tests.

Every test gets its own SQLite file so savepoints, unique constraints and
the partial open-trigger index behave as they do in production, and two
sessions can race on the same database.
"""
import os

# Must be set before alert_engine.database builds its module-level engine
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from alert_engine.database import Base, build_engine
from alert_engine.models.db_models import (
    DebtDB, DebtStatus, LeaseDB, LeaseStatus, LoanType, PropertyDB,
)


NOW = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def days_from_today(days: int) -> date:
    return TODAY + timedelta(days=days)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'alerts.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def mock_db():
    return MagicMock()


@pytest.fixture
def make_property(db):
    def _make(listing_agent_id="agent-1", name="Harbor Point Plaza", address="100 Harbor Way"):
        prop = PropertyDB(
            id=str(uuid4()),
            name=name,
            address=address,
            listing_agent_id=listing_agent_id,
        )
        db.add(prop)
        db.commit()
        return prop
    return _make


@pytest.fixture
def make_lease(db, make_property):
    def _make(end_in_days=None, status=LeaseStatus.ACTIVE, prop=None, tenant_name="Acme Dental",
              monthly_rent=Decimal("12500.00")):
        prop = prop or make_property()
        lease = LeaseDB(
            id=str(uuid4()),
            property_id=prop.id,
            tenant_name=tenant_name,
            start_date=TODAY - timedelta(days=3 * 365),
            end_date=days_from_today(end_in_days) if end_in_days is not None else None,
            monthly_rent=monthly_rent,
            square_feet=2400,
            status=status,
        )
        db.add(lease)
        db.commit()
        return lease
    return _make


@pytest.fixture
def make_debt(db, make_property):
    def _make(matures_in_days=None, status=DebtStatus.ACTIVE, prop=None, lender_name="First Coastal Bank",
              amount=Decimal("4200000.00")):
        prop = prop or make_property()
        debt = DebtDB(
            id=str(uuid4()),
            property_id=prop.id,
            lender_name=lender_name,
            amount=amount,
            interest_rate=Decimal("6.25"),
            maturity_date=days_from_today(matures_in_days) if matures_in_days is not None else None,
            loan_type=LoanType.MORTGAGE,
            status=status,
        )
        db.add(debt)
        db.commit()
        return debt
    return _make
