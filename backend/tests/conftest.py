"""
Shared fixtures: the FastAPI app wired to an in-memory store and the
deterministic model gateway.

To run these tests:
    pip install -e ".[test]"
    pytest backend/tests -v
"""
import os

# Must be set before server/config are imported
os.environ["ENV"] = "test"
os.environ["STORE_BACKEND"] = "memory"
os.environ["MODEL_BACKEND"] = "fake"
os.environ["JWT_SECRET"] = "test-secret"

import asyncio
import pytest
from fastapi.testclient import TestClient

from server import app, get_model_gateway, get_store
from auth import create_jwt_token
from llm.gateway import FakeModelGateway
from todo_store import InMemoryStore


def make_user(store, email, name="Test User"):
    return asyncio.run(store.upsert_oauth_user(email, name, None, "google", f"google-{email}"))


def bearer(user):
    return {"Authorization": f"Bearer {create_jwt_token(user.id, user.email)}"}


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def gateway():
    return FakeModelGateway()


@pytest.fixture
def client(store, gateway):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_model_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user(store):
    return make_user(store, "alice@example.com", "Alice Example")


@pytest.fixture
def auth_headers(user):
    return bearer(user)


@pytest.fixture
def other_user(store):
    return make_user(store, "bob@example.com", "Bob Example")


@pytest.fixture
def other_headers(other_user):
    return bearer(other_user)
