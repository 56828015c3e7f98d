import os

# must be set before the app modules read their configuration
os.environ["SQL_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("MONGO_URI", None)

import pytest
from fastapi.testclient import TestClient

from Connections.db_sql import SessionLocal, engine
from Models.base import Base
from main import app
from seed_users import provision_user

PASSWORD = "secret123"


@pytest.fixture
def client():
    Base.metadata.drop_all(bind=engine)
    with TestClient(app) as c:
        yield c
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(client):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make(email, role="student", branch="CS", name=None, password=PASSWORD):
        u, _ = provision_user(
            db,
            email=email,
            password=password,
            name=name or email.split("@")[0].title(),
            branch=branch,
            role=role,
        )
        return u

    return _make


@pytest.fixture
def login(client):
    def _login(email, password=PASSWORD):
        resp = client.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _login


@pytest.fixture
def auth_headers(login):
    def _headers(email, password=PASSWORD):
        return {"Authorization": f"Bearer {login(email, password)['access_token']}"}

    return _headers


@pytest.fixture
def lodge(client, auth_headers):
    def _lodge(email, category="Academic", description="The lab projector has been broken for two weeks."):
        resp = client.post(
            "/complaints/",
            json={"category": category, "description": description},
            headers=auth_headers(email),
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _lodge
