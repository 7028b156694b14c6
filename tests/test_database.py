"""Tests for the database layer."""

from datetime import datetime, timedelta

import pytest

from habit_tracker import database
from habit_tracker.database import (
    Friendship,
    Habit,
    HabitLog,
    User,
    are_friends,
    friend_ids,
    get_completion_dates,
    get_user_by_login,
    init_db,
    init_engine,
    pending_requests_for,
    ping_database,
)


@pytest.fixture
def db_session():
    """Create an in-memory SQLite database for testing."""
    init_engine("sqlite://")
    init_db()
    session = database.get_db()
    yield session
    session.close()
    database.dispose_engine()


def _user(db, name):
    user = User(username=name, email=f"{name}@example.com", password_hash="x")
    db.add(user)
    db.commit()
    return user


class TestEngine:
    def test_ping_returns_timestamp(self, db_session):
        assert ping_database() is not None

    def test_get_db_requires_engine(self, monkeypatch):
        monkeypatch.setattr(database, "engine", None)
        with pytest.raises(RuntimeError):
            database.get_db()

    def test_in_memory_sqlite_shares_one_connection(self):
        from sqlalchemy.pool import StaticPool
        eng = init_engine("sqlite://")
        assert isinstance(eng.pool, StaticPool)


class TestDatabaseModels:
    def test_create_user_and_lookup_by_login(self, db_session):
        _user(db_session, "alice")
        assert get_user_by_login(db_session, "alice").username == "alice"
        assert get_user_by_login(db_session, "ALICE@example.com").username == "alice"
        assert get_user_by_login(db_session, "bob") is None

    def test_duplicate_log_same_day_rejected(self, db_session):
        from sqlalchemy.exc import IntegrityError

        alice = _user(db_session, "alice")
        habit = Habit(user_id=alice.id, name="Read")
        db_session.add(habit)
        db_session.commit()

        today = datetime.utcnow().date()
        db_session.add(HabitLog(habit_id=habit.id, completed_on=today))
        db_session.commit()
        db_session.add(HabitLog(habit_id=habit.id, completed_on=today))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_completion_dates_window(self, db_session):
        alice = _user(db_session, "alice")
        habit = Habit(user_id=alice.id, name="Read")
        db_session.add(habit)
        db_session.commit()

        today = datetime.utcnow().date()
        for n in (0, 3, 10):
            db_session.add(HabitLog(habit_id=habit.id, completed_on=today - timedelta(days=n)))
        db_session.commit()

        assert get_completion_dates(db_session, habit.id) == [
            today, today - timedelta(days=3), today - timedelta(days=10),
        ]
        assert len(get_completion_dates(db_session, habit.id, days=7)) == 2


class TestFriendQueries:
    def test_friend_ids_both_directions(self, db_session):
        alice, bob, carol = (_user(db_session, n) for n in ("alice", "bob", "carol"))
        db_session.add(Friendship(requester_id=alice.id, addressee_id=bob.id, status="accepted"))
        db_session.add(Friendship(requester_id=carol.id, addressee_id=alice.id, status="pending"))
        db_session.commit()

        assert friend_ids(db_session, alice.id) == [bob.id]
        assert friend_ids(db_session, bob.id) == [alice.id]
        assert are_friends(db_session, bob.id, alice.id)
        assert not are_friends(db_session, alice.id, carol.id)
        assert [r.requester_id for r in pending_requests_for(db_session, alice.id)] == [carol.id]
