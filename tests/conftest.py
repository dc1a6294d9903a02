from __future__ import annotations

import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import staffplan.db as app_db

os.environ.setdefault("BOOTSTRAP_TOKEN", "test-bootstrap-token")


@pytest.fixture(autouse=True)
def reset_database(tmp_path, monkeypatch):
    db_file = tmp_path / "test_staffplan.db"
    db_url = f"sqlite:///{db_file}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.delenv("MERGE_MODE", raising=False)

    # Rebuild DB bindings per test so every test gets its own writable SQLite file.
    app_db.engine.dispose()
    app_db.DATABASE_URL = app_db.get_database_url()
    app_db.engine = create_engine(
        app_db.DATABASE_URL,
        connect_args={"check_same_thread": False},
        pool_pre_ping=True,
    )
    app_db.SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=app_db.engine,
        expire_on_commit=False,
    )

    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.Base.metadata.create_all(bind=app_db.engine)
    yield
    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.engine.dispose()


@pytest.fixture
def plan_document():
    """One project with a three-month Developer line and a one-month QA line, three staff."""
    return {
        "projects": [
            {
                "id": "p1",
                "name": "Apollo",
                "color": "#FF0000",
                "startMonth": 0,
                "startYear": 2024,
                "endMonth": 11,
                "endYear": 2024,
                "allocationMode": "percentage",
            }
        ],
        "users": [
            {"id": "u1", "name": "Alice", "department": "Engineering"},
            {"id": "u2", "name": "Bob", "department": "Engineering", "endDate": "2024-03-15"},
            {"id": "u3", "name": "Chen", "department": "Finance", "startDate": "2024-06-01", "workDays": "sun-thu"},
        ],
        "positions": [
            {"id": "pos-p1-dev-0", "projectId": "p1", "monthIndex": 0, "name": "Developer", "percentage": 100, "lineId": "dev"},
            {"id": "pos-p1-dev-1", "projectId": "p1", "monthIndex": 1, "name": "Developer", "percentage": 100, "lineId": "dev"},
            {"id": "pos-p1-dev-2", "projectId": "p1", "monthIndex": 2, "name": "Developer", "percentage": 100, "lineId": "dev"},
            {"id": "pos-p1-qa-0", "projectId": "p1", "monthIndex": 0, "name": "QA", "percentage": 50, "lineId": "qa"},
        ],
        "allocations": [
            {
                "id": "a1",
                "userId": "u1",
                "projectId": "p1",
                "monthIndex": 0,
                "percentage": 60,
                "positionId": "pos-p1-dev-0",
                "positionName": "Developer",
            },
            {
                "id": "a2",
                "userId": "u1",
                "projectId": "p1",
                "monthIndex": 2,
                "percentage": 40,
                "positionId": "pos-p1-dev-2",
                "positionName": "Developer",
            },
        ],
        "entities": [{"id": "e1", "name": "Main Ltd", "currencyCode": "GBP"}],
        "startMonth": 0,
        "startYear": 2024,
    }


class PersistRecorder:
    """Stands in for the storage API: records every save and hands back a new lastModified."""

    def __init__(self):
        self.calls = []

    def __call__(self, payload, *, allow_deletions=False, last_modified=None):
        self.calls.append({"payload": payload, "allow_deletions": allow_deletions, "last_modified": last_modified})
        return f"2024-01-01T00:00:{len(self.calls):02d}Z"


@pytest.fixture
def persist():
    return PersistRecorder()
