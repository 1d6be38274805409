"""
Test configuration: every test gets a fresh in-memory Mongo database with a
few seeded users, and an app wired to it.
"""

import asyncio
import uuid

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from messaging.main import create_app
from tests.helpers import ALICE, BOB, CAROL, DAVE, USERS, UserSession


@pytest.fixture
def db():
    database = AsyncMongoMockClient()[f"messaging_test_{uuid.uuid4().hex[:8]}"]
    asyncio.run(database["users"].insert_many([dict(u) for u in USERS]))
    return database


@pytest.fixture
def app(db):
    return create_app(db)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def alice(client):
    return UserSession(client, ALICE)


@pytest.fixture
def bob(client):
    return UserSession(client, BOB)


@pytest.fixture
def carol(client):
    return UserSession(client, CAROL)


@pytest.fixture
def dave(client):
    return UserSession(client, DAVE)
