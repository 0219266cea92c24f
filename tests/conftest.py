"""
Shared fixtures: an in-memory SQLite database per test and a TestClient whose
session dependency points at it.
"""
import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("MEDIA_DIR", tempfile.mkdtemp(prefix="careconnect-media-"))

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import careconnect.models  # noqa: F401
from careconnect.auth import create_access_token, hash_password
from careconnect.database import get_session
from careconnect.main import app
from careconnect.models import CaregiverLink, Medication, User


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
def session(engine) -> Iterator[Session]:
    with Session(engine) as s:
        yield s


@pytest.fixture
def client(session: Session) -> Iterator[TestClient]:
    def _override():
        yield session

    app.dependency_overrides[get_session] = _override
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session: Session):
    counter = {"n": 0}

    def _make(role: str = "elderly_user", full_name: str | None = None) -> User:
        counter["n"] += 1
        user = User(
            email=f"{role}{counter['n']}@example.com",
            full_name=full_name,
            role=role,
            hashed_password=hash_password("secret"),
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def link(session: Session):
    def _link(caregiver: User, elderly: User) -> CaregiverLink:
        row = CaregiverLink(caregiver_id=caregiver.id, elderly_user_id=elderly.id)
        session.add(row)
        session.commit()
        return row

    return _link


@pytest.fixture
def make_medication(session: Session):
    def _make(user: User, name: str = "Aspirin", total_stock: int = 30, low_stock_threshold: int = 5) -> Medication:
        medication = Medication(
            user_id=user.id,
            name=name,
            dosage="100mg",
            time="08:00",
            total_stock=total_stock,
            low_stock_threshold=low_stock_threshold,
        )
        session.add(medication)
        session.commit()
        session.refresh(medication)
        return medication

    return _make


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


@pytest.fixture
def headers():
    return auth_headers
