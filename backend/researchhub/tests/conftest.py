import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path
import shutil

import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from researchhub.main import app
from researchhub.database import Base, get_db
from researchhub import models, notify

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def upload_dir(tmp_path):
    d = tmp_path / "uploads"
    d.mkdir()
    os.environ["UPLOAD_DIR"] = str(d)
    yield d
    shutil.rmtree(d, ignore_errors=True)

@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def last_token_for(email: str) -> str:
    """Pull the one-time token from the newest captured email to ``email``."""

    for to_email, _subject, message in reversed(notify.EMAIL_OUTBOX):
        if to_email == email:
            return message.rsplit("/", 1)[-1]
    raise AssertionError(f"No email captured for {email}")


def register_user(client, *, email: str | None = None, password: str = "secret", verify: bool = True, **extra):
    """
    purpose: create a user through the public API and optionally confirm the email
    outputs: dict with id, email, username, password
    status: active
    """

    email = email or f"user-{uuid.uuid4().hex[:12]}@example.com"
    payload = {
        "username": extra.pop("username", f"user_{uuid.uuid4().hex[:10]}"),
        "email": email,
        "password": password,
        "affiliation": extra.pop("affiliation", "University of Testing"),
        **extra,
    }
    resp = client.post("/api/auth/register", json=payload)
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    if verify:
        verified = client.get(f"/api/auth/verify-email/{last_token_for(email)}")
        assert verified.status_code == 200, verified.text
    return {"id": data["id"], "email": email, "username": payload["username"], "password": password}


def ensure_auth_headers(client, *, email: str | None = None, password: str = "secret", **extra):
    """
    purpose: convenience wrapper returning authorization headers for API tests
    depends_on: register_user
    outputs: tuple(headers dict, user dict)
    status: active
    """

    user = register_user(client, email=email, password=password, **extra)
    resp = client.post("/api/auth/login", json={"email": user["email"], "password": password})
    assert resp.status_code == 200, resp.text
    token = resp.json()["data"]["access_token"]
    return {"Authorization": f"Bearer {token}"}, user


def promote_to_admin(email: str) -> None:
    db = TestingSessionLocal()
    try:
        user = db.query(models.User).filter(models.User.email == email).one()
        user.role = models.UserRole.ADMINISTRATOR
        db.commit()
    finally:
        db.close()


def project_payload(**overrides):
    payload = {
        "title": "Protein folding survey",
        "description": "Collaborative review of folding prediction methods.",
        "goals": ["Collect benchmarks"],
        "objectives": ["Compare models"],
        "start_date": "2026-01-01T00:00:00",
        "end_date": "2026-12-31T00:00:00",
        "category": "research",
    }
    payload.update(overrides)
    return payload


def create_project(client, headers, **overrides):
    resp = client.post("/api/projects", json=project_payload(**overrides), headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]
