import os, tempfile, uuid
import pytest

# keep the app's module-level create_all away from the working directory
_fd, _DEFAULT_DB = tempfile.mkstemp(suffix=".db")
os.close(_fd)
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_DEFAULT_DB}")

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from main import app
from db import Base, enforce_sqlite_foreign_keys, get_db

@pytest.fixture(scope="session")
def tmp_db_path():
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    return path

@pytest.fixture(scope="session")
def test_engine(tmp_db_path):
    url = f"sqlite:///{tmp_db_path}"
    engine = create_engine(url, connect_args={"check_same_thread": False})

    enforce_sqlite_foreign_keys(engine)

    Base.metadata.create_all(bind=engine)
    return engine

@pytest.fixture(scope="session")
def TestingSessionLocal(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

@pytest.fixture(scope="session", autouse=True)
def override_di(TestingSessionLocal):
    def _get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()
    app.dependency_overrides[get_db] = _get_db

@pytest.fixture
def client():
    return TestClient(app)

def register(client, name="Owner"):
    """Register a fresh account; return (auth headers, user dict)."""
    r = client.post("/api/auth/register", json={
        "name": name,
        "email": f"{uuid.uuid4().hex[:12]}@example.com",
        "password": "secret123",
    })
    assert r.status_code == 201, r.text
    body = r.json()
    return {"Authorization": f"Bearer {body['token']}"}, body["user"]

@pytest.fixture
def auth(client):
    return register(client)[0]

@pytest.fixture
def rating_form(client, auth):
    """Form with an optional text question, a required rating and a required text question."""
    r = client.post("/api/forms", json={
        "title": "Workshop feedback",
        "description": "Tell us how it went",
        "questions": [
            {"type": "text", "text": "Comments", "required": False},
            {"type": "multiple-choice", "text": "Rating", "options": ["Good", "Bad"], "required": True},
            {"type": "text", "text": "Suggestions", "required": False},
        ],
    }, headers=auth)
    assert r.status_code == 201, r.text
    return r.json()

@pytest.fixture
def make_user(client):
    return lambda name="Owner": register(client, name)
