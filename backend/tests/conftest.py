import os

from cryptography.fernet import Fernet

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from timesync.auth import create_access_token, get_password_hash
from timesync.connectors.factory import ConnectorCache
from timesync.database import Base, get_db
from timesync.main import app
from timesync.models import Goal, User
from timesync.services.credentials import save_connection
from timesync.services.locks import UserSyncLocks

from fakes import FakeConnector

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Override dependency for test database session
def override_get_db() -> Session:
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db

@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def session_factory():
    return TestingSessionLocal

@pytest.fixture
def db() -> Session:
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

def _make_user(db: Session, username: str) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        full_name=username.title(),
        hashed_password=get_password_hash("secret"),
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user

@pytest.fixture
def user(db: Session) -> User:
    return _make_user(db, "alice")

@pytest.fixture
def other_user(db: Session) -> User:
    return _make_user(db, "bob")

@pytest.fixture
def goal(db: Session, user: User) -> Goal:
    goal = Goal(user_id=user.id, name="Ship the redesign")
    db.add(goal)
    db.commit()
    db.refresh(goal)
    return goal

@pytest.fixture
def connection(db: Session, user: User):
    return save_connection(db, user.id, api_key="remote-key", workspace_id="ws-1", external_user_id="remote-user-1")

@pytest.fixture
def fake_connector() -> FakeConnector:
    return FakeConnector()

@pytest.fixture
def client(fake_connector: FakeConnector) -> TestClient:
    app.state.connector_cache = ConnectorCache(builder=lambda credentials: fake_connector)
    app.state.sync_locks = UserSyncLocks()
    return TestClient(app)

@pytest.fixture
def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": user.username}, expires_delta=timedelta(minutes=5))
    return {"Authorization": f"Bearer {token}"}
