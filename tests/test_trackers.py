from datetime import date, datetime, timezone

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import CompileError, IntegrityError, OperationalError

import trackers
from database import SessionLocal
from models import DailyReflection, HabitLog, User


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def users(db):
    alice = User(email="alice@example.com", hashed_password="x")
    bob = User(email="bob@example.com", hashed_password="x")
    db.add_all([alice, bob])
    db.commit()
    return alice, bob


def test_user_is_passed_explicitly(db, users):
    alice, bob = users
    trackers.water.create(db, alice, {"amount_ml": 250})
    trackers.water.create(db, bob, {"amount_ml": 400})

    assert trackers.water.list(db, alice).summary["total_ml"] == 250
    assert trackers.water.list(db, bob).summary["total_ml"] == 400


def test_required_fields_are_checked(db, users):
    alice, _ = users
    with pytest.raises(HTTPException) as exc:
        trackers.gym.create(db, alice, {"name": "  "})
    assert exc.value.status_code == 422
    with pytest.raises(HTTPException):
        trackers.health.create(db, alice, {"metric_type": "mood"})
    assert trackers.gym.list(db, alice).items == []


def test_unknown_filter_is_an_error(db, users):
    alice, _ = users
    with pytest.raises(ValueError):
        trackers.gym.list(db, alice, colour="red")


def test_aware_timestamps_are_stored_as_utc(db, users):
    alice, _ = users
    trackers.water.create(db, alice, {
        "amount_ml": 300,
        "logged_at": datetime.fromisoformat("2024-01-02T01:30:00+02:00"),
    })
    assert trackers.water.list(db, alice, day=date(2024, 1, 1)).summary["total_ml"] == 300
    assert trackers.water.list(db, alice, day=date(2024, 1, 2)).summary["total_ml"] == 0


def test_toggle_twice_is_identity(db, users):
    alice, _ = users
    habit_id = trackers.habits.create(db, alice, {"name": "Meditate"}).items[0].id
    day = datetime.now(timezone.utc).date()

    trackers.habits.toggle(db, alice, habit_id, day=day)
    trackers.habits.toggle(db, alice, habit_id, day=day)
    snapshot = trackers.habits.toggle(db, alice, habit_id, day=day)
    assert [(log.habit_id, log.completed) for log in snapshot.logs] == [(habit_id, True)]


def test_storage_failure_is_reported_and_nothing_changes(client, alice, monkeypatch):
    client.post("/water", json={"amount_ml": 250}, headers=alice)

    def failing_commit(db):
        db.rollback()
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(trackers, "commit", failing_commit)
    response = client.post("/water", json={"amount_ml": 500}, headers=alice)
    assert response.status_code == 503
    assert response.json() == {"detail": "Storage operation failed"}

    monkeypatch.undo()
    assert client.get("/water", headers=alice).json()["summary"]["total_ml"] == 250


def test_second_habit_log_for_same_day_is_rejected(db, users):
    alice, _ = users
    habit_id = trackers.habits.create(db, alice, {"name": "Walk"}).items[0].id
    day = date(2024, 3, 1)
    db.add(HabitLog(user_id=alice.id, habit_id=habit_id, logged_date=day, completed=True))
    db.commit()

    db.add(HabitLog(user_id=alice.id, habit_id=habit_id, logged_date=day, completed=False))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
    assert len(trackers.habits.history(db, alice, habit_id)) == 1


def test_second_reflection_for_same_day_is_rejected(db, users):
    alice, bob = users
    day = date(2024, 3, 1)
    db.add(DailyReflection(user_id=alice.id, date=day))
    db.add(DailyReflection(user_id=bob.id, date=day))
    db.commit()

    db.add(DailyReflection(user_id=alice.id, date=day, notes="again"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
    assert len(trackers.reflections.list(db, alice).items) == 1


class FakeDialectSession:
    class bind:
        class dialect:
            name = "mysql"

    def get_bind(self):
        return self.bind


def test_upsert_on_unsupported_dialect_is_a_storage_error():
    with pytest.raises(CompileError):
        trackers.upsert_insert(FakeDialectSession())


def test_unsupported_upsert_is_reported_as_storage_failure(client, alice, monkeypatch):
    habit = client.post("/habits", json={"name": "Read"}, headers=alice).json()["items"][0]
    monkeypatch.delitem(trackers.UPSERT_INSERTS, "sqlite")

    response = client.post(f"/habits/{habit['id']}/toggle", headers=alice)
    assert response.status_code == 503
    assert response.json() == {"detail": "Storage operation failed"}
    response = client.put("/reflections", json={"notes": "x"}, headers=alice)
    assert response.status_code == 503
