from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import ochat.models  # noqa: F401
from ochat.core.config import settings
from ochat.core.database import Base, get_db
from ochat.main import app
from ochat.services.presence import presence

# One shared in-memory database for every HTTP test
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def _reset_state(tmp_path, monkeypatch) -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    presence.clear()
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    yield
    presence.clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def session_factory() -> sessionmaker:
    return TestingSessionLocal


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def login(client):
    """Log a user in over HTTP and return the JSON body."""

    def _login(username: str, color: str | None = None) -> dict:
        payload = {"username": username}
        if color:
            payload["color"] = color
        response = client.post("/api/users/login", json=payload)
        assert response.status_code == 200, response.text
        return response.json()

    return _login
