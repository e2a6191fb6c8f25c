import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_dummy"
os.environ["STRIPE_PRICE_ID_MONTHLY"] = "price_monthly_test"
os.environ["STRIPE_PRICE_ID_YEARLY"] = "price_yearly_test"
os.environ["APPLE_SHARED_SECRET"] = "apple-shared-secret"
os.environ["OPENROUTER_API_KEY"] = "or-test-key"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dreamcatcher.db.base import Base
from dreamcatcher.db.session import get_db
from dreamcatcher.main import app
from dreamcatcher.services.dream_analyst import AnalystReply, get_dream_analyst

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeAnalyst:
    """Stands in for the OpenRouter client."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def analyze_dream(self, dream_text, premium=False):
        self.calls.append(("analyze", dream_text, premium))
        if self.error:
            raise self.error
        return AnalystReply(text=f"Interpretation of: {dream_text}", model="test/model")

    def chat_with_analyst(self, history, message):
        self.calls.append(("chat", history, message))
        if self.error:
            raise self.error
        return AnalystReply(text=f"Reply to: {message}", model="test/model")


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def analyst():
    return FakeAnalyst()


@pytest.fixture
def client(db_session, analyst):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dream_analyst] = lambda: analyst
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()


def register_user(client, email="dreamer@example.com", password="sweet-dreams-123"):
    response = client.post(
        "/auth/register",
        json={"email": email, "password": password, "first_name": "Dreamer"},
    )
    assert response.status_code == 201, response.text
    body = response.json()
    return body["user"]["id"], {"Authorization": f"Bearer {body['token']}"}


@pytest.fixture
def user(client):
    """(user_id, auth headers) for a freshly registered free user."""
    return register_user(client)


@pytest.fixture
def make_user(client):
    """Register extra users: make_user("other@example.com") -> (user_id, headers)."""
    def _make_user(email, password="sweet-dreams-123"):
        return register_user(client, email=email, password=password)
    return _make_user
