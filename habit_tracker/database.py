"""
Database layer for the Habit Tracker backend.
Stores users, habits, habit completions and friendships.

The engine is process-wide and shared by every route handler; each handler
opens its own session via ``get_db()`` and closes it when done.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import (
    create_engine, Column, Integer, String, Text, Date, DateTime,
    ForeignKey, Index, UniqueConstraint, or_, and_, text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

Base = declarative_base()

engine: Optional[Engine] = None
SessionLocal = sessionmaker(autoflush=False)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class User(Base):
    """Registered account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(32), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    avatar_url = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Habit(Base):
    """A habit owned by a single user."""
    __tablename__ = "habits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    frequency = Column(String(16), nullable=False, default="daily")  # daily, weekly
    color = Column(String(16), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class HabitLog(Base):
    """One completion of a habit on a given (UTC) day."""
    __tablename__ = "habit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    habit_id = Column(Integer, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    completed_on = Column(Date, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("habit_id", "completed_on", name="uq_habit_log_day"),
        Index("ix_habit_log_habit_day", "habit_id", "completed_on"),
    )


class Friendship(Base):
    """Friend request / friendship between two users."""
    __tablename__ = "friendships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    requester_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    addressee_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(16), nullable=False, default="pending")  # pending, accepted
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("requester_id", "addressee_id", name="uq_friendship_pair"),
    )


# ---------------------------------------------------------------------------
# Engine / session management
# ---------------------------------------------------------------------------

def init_engine(url: str) -> Engine:
    """Create the process-wide engine for ``url`` and bind the session factory."""
    global engine

    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url == "sqlite://":
            kwargs["poolclass"] = StaticPool

    if engine is not None:
        engine.dispose()
    engine = create_engine(url, **kwargs)
    SessionLocal.configure(bind=engine)
    return engine


def _require_engine() -> Engine:
    if engine is None:
        raise RuntimeError("Database engine not initialised; call init_engine() first.")
    return engine


def init_db():
    """Create all tables if they don't exist."""
    Base.metadata.create_all(bind=_require_engine())


def dispose_engine():
    """Release pooled connections."""
    if engine is not None:
        engine.dispose()


def get_db() -> Session:
    """Get a database session. Caller must close it."""
    _require_engine()
    return SessionLocal()


def ping_database():
    """Run a trivial query and return the store's current timestamp.

    Raises whatever the driver raises when the store is unreachable.
    """
    with _require_engine().connect() as conn:
        return conn.execute(text("SELECT CURRENT_TIMESTAMP")).scalar()


# ---------------------------------------------------------------------------
# Helper queries
# ---------------------------------------------------------------------------

def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.get(User, user_id)


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.query(User).filter(User.username == username).first()


def get_user_by_login(db: Session, login: str) -> Optional[User]:
    """Look a user up by username or (case-insensitive) email."""
    return (
        db.query(User)
        .filter(or_(User.username == login, User.email == login.lower()))
        .first()
    )


def get_user_habit(db: Session, user_id: int, habit_id: int) -> Optional[Habit]:
    return (
        db.query(Habit)
        .filter(Habit.id == habit_id, Habit.user_id == user_id)
        .first()
    )


def list_user_habits(db: Session, user_id: int) -> List[Habit]:
    return (
        db.query(Habit)
        .filter(Habit.user_id == user_id)
        .order_by(Habit.created_at.asc(), Habit.id.asc())
        .all()
    )


def get_completion_dates(db: Session, habit_id: int, days: Optional[int] = None) -> List[date]:
    """Completion dates for a habit, newest first."""
    q = db.query(HabitLog.completed_on).filter(HabitLog.habit_id == habit_id)
    if days is not None:
        cutoff = datetime.utcnow().date() - timedelta(days=days)
        q = q.filter(HabitLog.completed_on > cutoff)
    return [row[0] for row in q.order_by(HabitLog.completed_on.desc()).all()]


def get_log_for_day(db: Session, habit_id: int, day: date) -> Optional[HabitLog]:
    return (
        db.query(HabitLog)
        .filter(HabitLog.habit_id == habit_id, HabitLog.completed_on == day)
        .first()
    )


def get_friendship_between(db: Session, a: int, b: int) -> Optional[Friendship]:
    """Return the friendship row for the unordered pair (a, b), if any."""
    return (
        db.query(Friendship)
        .filter(
            or_(
                and_(Friendship.requester_id == a, Friendship.addressee_id == b),
                and_(Friendship.requester_id == b, Friendship.addressee_id == a),
            )
        )
        .first()
    )


def are_friends(db: Session, a: int, b: int) -> bool:
    row = get_friendship_between(db, a, b)
    return row is not None and row.status == "accepted"


def friend_ids(db: Session, user_id: int) -> List[int]:
    """IDs of every user with an accepted friendship with ``user_id``."""
    rows = (
        db.query(Friendship)
        .filter(
            Friendship.status == "accepted",
            or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id),
        )
        .all()
    )
    return [
        r.addressee_id if r.requester_id == user_id else r.requester_id
        for r in rows
    ]


def pending_requests_for(db: Session, user_id: int) -> List[Friendship]:
    return (
        db.query(Friendship)
        .filter(Friendship.addressee_id == user_id, Friendship.status == "pending")
        .order_by(Friendship.created_at.desc())
        .all()
    )
