from fastapi.testclient import TestClient

from main import app
from auth import SessionManager, SIGNED_IN, SIGNED_OUT, SIGNED_UP, session_manager


def register(client, email="carol@example.com", password="secret123", full_name="Carol"):
    return client.post(
        "/auth/register",
        data={"username": email, "password": password, "full_name": full_name},
    )


def login(client, email="carol@example.com", password="secret123"):
    return client.post("/auth/login", data={"username": email, "password": password})


def test_register_creates_profile(client):
    response = register(client)
    assert response.status_code == 201
    assert response.json()["email"] == "carol@example.com"

    token = login(client).json()["access_token"]
    session = client.get("/auth/session", headers={"Authorization": f"Bearer {token}"}).json()
    assert session["signed_in"] is True
    assert session["user"]["email"] == "carol@example.com"
    assert session["user"]["full_name"] == "Carol"


def test_duplicate_register_is_rejected(client):
    register(client)
    response = register(client)
    assert response.status_code == 400
    assert response.json()["detail"] == "User already exists"


def test_short_password_is_rejected(client):
    response = register(client, password="123")
    assert response.status_code == 400
    assert login(client, password="123").status_code == 400


def test_login_with_bad_credentials(client):
    register(client)
    response = login(client, password="wrong-password")
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid credentials"


def test_session_without_token(client):
    assert client.get("/auth/session").json() == {"signed_in": False, "user": None}


def test_session_with_garbage_token(client):
    response = client.get("/auth/session", headers={"Authorization": "Bearer not-a-token"})
    assert response.json()["signed_in"] is False


def test_protected_routes_require_token(client):
    assert client.get("/water").status_code == 401
    assert client.get("/shell").status_code == 401


def test_logout_revokes_token(client):
    register(client)
    headers = {"Authorization": f"Bearer {login(client).json()['access_token']}"}
    assert client.get("/water", headers=headers).status_code == 200

    assert client.post("/auth/logout", headers=headers).status_code == 200
    assert client.get("/water", headers=headers).status_code == 401
    assert client.get("/auth/session", headers=headers).json()["signed_in"] is False

    # a fresh sign-in still works
    headers = {"Authorization": f"Bearer {login(client).json()['access_token']}"}
    assert client.get("/water", headers=headers).status_code == 200


def test_listeners_receive_session_changes(client):
    events = []
    unsubscribe = session_manager.subscribe(lambda event, user: events.append((event, user.email)))
    try:
        register(client)
        token = login(client).json()["access_token"]
        client.post("/auth/logout", headers={"Authorization": f"Bearer {token}"})
    finally:
        unsubscribe()

    assert events == [
        (SIGNED_UP, "carol@example.com"),
        (SIGNED_IN, "carol@example.com"),
        (SIGNED_OUT, "carol@example.com"),
    ]


def test_failed_login_notifies_nobody(client):
    register(client)
    events = []
    unsubscribe = session_manager.subscribe(lambda event, user: events.append(event))
    try:
        login(client, password="wrong-password")
    finally:
        unsubscribe()
    assert events == []


def test_app_listener_is_removed_on_shutdown():
    before = session_manager.listener_count
    with TestClient(app):
        assert session_manager.listener_count == before + 1
    assert session_manager.listener_count == before


class FakeUser:
    id = 7
    email = "x@example.com"


def test_unsubscribe_stops_notifications():
    manager = SessionManager()
    seen = []
    unsubscribe = manager.subscribe(lambda event, user: seen.append(event))
    manager.notify(SIGNED_IN, FakeUser())
    unsubscribe()
    unsubscribe()
    manager.notify(SIGNED_OUT, FakeUser())
    assert seen == [SIGNED_IN]


def test_failing_listener_does_not_block_others():
    manager = SessionManager()
    seen = []

    def broken(event, user):
        raise RuntimeError("boom")

    manager.subscribe(broken)
    manager.subscribe(lambda event, user: seen.append(event))
    manager.notify(SIGNED_IN, FakeUser())
    assert seen == [SIGNED_IN]


def test_concurrent_duplicate_register_reports_auth_error(client, monkeypatch):
    import auth
    from database import SessionLocal
    from models import User

    real_hash = auth.get_password_hash

    def hash_after_rival_signup(password):
        # another request registers the same email between the check and the insert
        rival = SessionLocal()
        try:
            rival.add(User(email="carol@example.com", hashed_password=real_hash(password)))
            rival.commit()
        finally:
            rival.close()
        return real_hash(password)

    monkeypatch.setattr(auth, "get_password_hash", hash_after_rival_signup)
    response = register(client)
    assert response.status_code == 400
    assert response.json()["detail"] == "User already exists"
