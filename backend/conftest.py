from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="mmstock-storage-"))
# Cheap hashing for tests.
os.environ["ARGON2_TIME_COST"] = "1"
os.environ["ARGON2_MEMORY_COST"] = "8192"
os.environ["ARGON2_PARALLELISM"] = "1"

import mmstock  # noqa: E402,F401  registers every model on Base.metadata
from mmstock.database import Base  # noqa: E402
from mmstock.apps.accounts import models as account_models  # noqa: E402
from mmstock.apps.locations import services as location_services  # noqa: E402
from mmstock.security import get_password_hash  # noqa: E402


def _enable_savepoints(engine) -> None:
    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT semantics.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def create_company(db, *, slug: str = "multimarmore", name: str = "Multimarmore", color: str = "#1a56db"):
    company = account_models.Company(slug=slug, name=name, brand_color=color, id_prefix="IDMM")
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def create_user(
    db,
    company,
    *,
    email: str,
    role: account_models.AppRole = account_models.AppRole.OPERATOR,
    full_name: str = "Utilizador Teste",
    password: str = "segredo123",
    is_active: bool = True,
):
    user = account_models.User(
        company_id=company.id,
        email=email,
        full_name=full_name,
        role=role,
        hashed_password=get_password_hash(password),
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def company(db_session):
    return create_company(db_session)


@pytest.fixture()
def other_company(db_session):
    return create_company(db_session, slug="magratex", name="Magratex", color="#057a55")


@pytest.fixture()
def operator(db_session, company):
    return create_user(db_session, company, email="operador@multimarmore.pt", full_name="Rui Operador")


@pytest.fixture()
def admin(db_session, company):
    return create_user(
        db_session,
        company,
        email="admin@multimarmore.pt",
        full_name="Ana Admin",
        role=account_models.AppRole.ADMIN,
    )


@pytest.fixture()
def superadmin(db_session, company):
    return create_user(
        db_session,
        company,
        email="super@multimarmore.pt",
        full_name="Sofia Super",
        role=account_models.AppRole.SUPERADMIN,
    )


@pytest.fixture()
def parques(db_session, company):
    """Default parques keyed by code."""
    created = location_services.seed_default_locations(db_session, company_id=company.id)
    db_session.commit()
    return {location.code: location for location in created}
