import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from fastapi.testclient import TestClient

from database import Base, engine
from main import app

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def register(client, email, password=PASSWORD, full_name="Test User"):
    return client.post(
        "/auth/register",
        data={"username": email, "password": password, "full_name": full_name},
    )


def login(client, email, password=PASSWORD):
    return client.post("/auth/login", data={"username": email, "password": password})


def sign_in(client, email):
    register(client, email)
    token = login(client, email).json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def alice(client):
    return sign_in(client, "alice@example.com")


@pytest.fixture
def bob(client):
    return sign_in(client, "bob@example.com")
