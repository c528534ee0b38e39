import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.db import get_db
from app.main import app
from app.models.base import Base
from app.models import entities  # noqa: F401


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def log_only_email(monkeypatch):
    monkeypatch.setattr(settings, "email_delivery", "log")


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def _headers_for(user_id: str, name: str | None = None) -> dict[str, str]:
    headers = {"X-Forwarded-User": user_id}
    if name:
        headers["X-Forwarded-Name"] = name
    return headers


@pytest.fixture
def as_user():
    return _headers_for


@pytest.fixture
def owner_headers():
    return _headers_for("alice", "Alice")


@pytest.fixture
def family(client, owner_headers):
    """A family owned by alice, with its default member invite."""
    resp = client.post("/v1/families", json={"name": "Smith Family"}, headers=owner_headers)
    assert resp.status_code == 201
    return resp.json()


@pytest.fixture
def join(client):
    def _join(user_id: str, code: str):
        return client.post("/v1/invites/join", json={"invite_code": code}, headers=_headers_for(user_id))

    return _join


@pytest.fixture
def issue_code(client, owner_headers):
    def _issue(family_id: int, role: str = "member", headers=None):
        resp = client.post(
            f"/v1/families/{family_id}/invites",
            json={"role": role},
            headers=headers or owner_headers,
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["code"]

    return _issue
