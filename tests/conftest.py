"""
Shared pytest fixtures.

Provides:
    - engine: in-memory SQLite engine with all tables (per test)
    - db: SQLAlchemy session bound to that engine
    - client: FastAPI TestClient with get_db overridden to the test session
    - user / other_user: Profiles
    - make_ngo / make_org_unit / make_work_item: factories
"""
from datetime import date
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ngo_ops_core import crud, models
from ngo_ops_core.api.main import app
from ngo_ops_core.database import get_db


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(engine)
    yield engine
    models.Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def user(db):
    return crud.create_profile(db, "coordinator@example.org", "Casey Coordinator")


@pytest.fixture
def other_user(db):
    return crud.create_profile(db, "reviewer@example.org", "Robin Reviewer")


@pytest.fixture
def make_ngo(db):
    def _make_ngo(legal_name: str = "Helping Hands Foundation", **kwargs) -> models.Ngo:
        return crud.create_ngo(db, legal_name, **kwargs)
    return _make_ngo


@pytest.fixture
def make_org_unit(db):
    def _make_org_unit(department_name: str, sub_department_name: Optional[str] = None) -> models.OrgUnit:
        return crud.create_org_unit(db, department_name, sub_department_name)
    return _make_org_unit


@pytest.fixture
def make_work_item(db):
    """Insert a work item directly, in any status, bypassing lifecycle rules."""

    def _make_work_item(
        title: str = "Collect annual report",
        status: models.WorkItemStatus = models.WorkItemStatus.IN_PROGRESS,
        module: models.ModuleType = models.ModuleType.NGO_COORDINATION,
        due_date: Optional[date] = None,
        **kwargs,
    ) -> models.WorkItem:
        if kwargs.get("evidence_required") and "evidence_status" not in kwargs:
            kwargs["evidence_status"] = models.EvidenceStatus.MISSING
        work_item = models.WorkItem(title=title, status=status, module=module, due_date=due_date, **kwargs)
        db.add(work_item)
        db.commit()
        db.refresh(work_item)
        return work_item

    return _make_work_item
