# tests/conftest.py
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import hrm_jobs.models  # noqa: F401
from hrm_jobs.db import Base, make_engine
from hrm_jobs.models.tenant import Tenant

TENANT = "acme"
OTHER_TENANT = "globex"

# Fixed clock used across tests: a Wednesday in the middle of a month
NOW = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    eng = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def seed(session_factory):
    """Insert rows in one committed transaction"""
    def add(*rows):
        with session_factory() as s:
            s.add_all(rows)
            s.commit()
    return add


@pytest.fixture
def tenants(seed):
    seed(Tenant(tenant_id=TENANT, name="Acme"), Tenant(tenant_id=OTHER_TENANT, name="Globex"))
    return [TENANT, OTHER_TENANT]
