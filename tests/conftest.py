"""
Shared fixtures for the chat service tests.

The Motor database is replaced by an in-memory mongomock-motor database so
the routes, the chat service and the relay run unchanged against it.
"""

import asyncio
import os
from datetime import datetime, timedelta, timezone

os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("CLOUDINARY_CLOUD_NAME", "demo")
os.environ.setdefault("CHAT_RATE_LIMIT_MESSAGES", "0")

import jwt
import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from petnest import config, database
from petnest.main import app


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def mock_db(monkeypatch):
    db = AsyncMongoMockClient(tz_aware=True)["petnest_test"]
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture
def client(mock_db):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(mock_db):
    """Insert a user document and return its id as a string."""

    def _make(name="Alice", **extra):
        doc = {"name": name, "email": f"{name.lower()}@example.com", "role": "user", **extra}
        result = run(mock_db.users.insert_one(doc))
        return str(result.inserted_id)

    return _make


def create_access_token(data: dict) -> str:
    """Mint a bearer token the way the account service issues them."""
    payload = {**data, "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}
