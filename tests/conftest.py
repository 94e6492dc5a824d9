from datetime import datetime

import pytest
from werkzeug.security import generate_password_hash

from app.umbra import create_app
from app.umbra.db import session_scope
from app.umbra.models import Base, User

ADMIN = ("admin@example.com", "admin123")
PROCESSOR = ("proc@example.com", "proc123")
PROCESSOR_2 = ("proc2@example.com", "proc234")
PENDING = ("pending@example.com", "pend123")


def _user(email: str, password: str, name: str, role: str, status: str = "APPROVED") -> User:
    now = datetime.utcnow()
    return User(
        email=email,
        name=name,
        password_hash=generate_password_hash(password),
        role=role,
        status=status,
        is_blocked=False,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "UPLOAD_MAX_BYTES"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add_all(
            [
                _user(*ADMIN, name="Admin", role="ADMIN"),
                _user(*PROCESSOR, name="Processor One", role="PROCESSOR"),
                _user(*PROCESSOR_2, name="Processor Two", role="PROCESSOR"),
                _user(*PENDING, name="Pending User", role="USER", status="PENDING"),
            ]
        )

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def login(client):
    def _login(credentials=ADMIN):
        email, password = credentials
        r = client.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.json
        return r.json["user"]

    return _login


@pytest.fixture()
def user_id(app):
    def _user_id(email: str) -> int:
        with session_scope(app) as s:
            return s.query(User).filter(User.email == email).one().id

    return _user_id
