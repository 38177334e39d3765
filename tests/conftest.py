import os

os.environ.setdefault("DB_BACKEND", "sqlite")

from dataclasses import dataclass

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from sixgate.db import DB
from sixgate.models import Base, Organization
from sixgate.store import SqlRowStore


@dataclass(frozen=True)
class Tenants:
    a: str
    b: str


@pytest.fixture
def server_db(tmp_path):
    db_path = tmp_path / "sixgate.sqlite"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    previous_engine = DB.engine
    previous_session = DB.SessionLocal
    DB.engine = engine
    DB.SessionLocal = sessionmaker(bind=engine)
    try:
        yield engine
    finally:
        DB.engine = previous_engine
        DB.SessionLocal = previous_session
        engine.dispose()


@pytest.fixture
def db_session(server_db):
    session = DB.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db_session):
    return SqlRowStore(db_session)


@pytest.fixture
def tenants(db_session):
    org_a = Organization(organization_name="Hair Talkz", organization_code="SALON-A")
    org_b = Organization(organization_name="Mario's Restaurant", organization_code="REST-B")
    db_session.add_all([org_a, org_b])
    db_session.commit()
    return Tenants(a=org_a.id, b=org_b.id)
