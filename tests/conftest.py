"""Root conftest for all tests.

Every test gets a fresh in-memory SQLite schedule. StaticPool keeps one
connection alive so the setup session, the executor's session scope and the
verification session all see the same database.
"""

import uuid
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from truepace.calendar.store import ScheduleStore
from truepace.db.models import ActivityType, Base, Profile, RunLog, ScheduledWorkout, WorkoutStatus
from truepace.db.session import make_session_scope

USER_ID = "user-1"
OTHER_USER_ID = "user-2"

# 2026-02-10 is a Tuesday
TODAY = date(2026, 2, 10)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def session_scope(session_factory):
    """Commit-or-rollback scope, as the batch executor uses it."""
    return make_session_scope(session_factory)


@pytest.fixture
def store(db_session) -> ScheduleStore:
    return ScheduleStore(db_session)


@pytest.fixture
def make_workout(db_session):
    """Insert and commit a workout; returns the persisted row."""

    def _make(
        scheduled_date: date,
        activity_type: ActivityType = ActivityType.RUN,
        *,
        user_id: str = USER_ID,
        distance: float | None = 5.0,
        duration: int | None = 30,
        rpe: int | None = 5,
        description: str | None = "5km Run",
        status: WorkoutStatus = WorkoutStatus.SCHEDULED,
        workout_id: str | None = None,
    ) -> ScheduledWorkout:
        workout = ScheduledWorkout(
            id=workout_id or str(uuid.uuid4()),
            user_id=user_id,
            scheduled_date=scheduled_date,
            activity_type=activity_type,
            target_distance_km=distance,
            target_duration_min=duration,
            target_rpe=rpe,
            description=description,
            status=status,
        )
        db_session.add(workout)
        db_session.commit()
        return workout

    return _make


@pytest.fixture
def make_run_log(db_session):
    def _make(workout: ScheduledWorkout, *, distance: float = 5.0, rpe: int = 5, pain: bool = False) -> RunLog:
        log = RunLog(
            workout_id=workout.id,
            user_id=workout.user_id,
            actual_distance_km=distance,
            actual_duration_min=30,
            actual_rpe=rpe,
            pain_reported=pain,
        )
        db_session.add(log)
        db_session.commit()
        return log

    return _make


@pytest.fixture
def make_profile(db_session):
    def _make(goal: str = "TARGET_5K", user_id: str = USER_ID) -> Profile:
        profile = Profile(id=user_id, goal=goal, experience_level="BEGINNER", days_available=["MON", "WED", "SAT"])
        db_session.add(profile)
        db_session.commit()
        return profile

    return _make


@pytest.fixture
def load_workout(session_factory):
    """Read a workout through a fresh session, i.e. what is actually committed."""

    def _load(workout_id: str) -> ScheduledWorkout | None:
        with session_factory() as session:
            return session.get(ScheduledWorkout, workout_id)

    return _load


@pytest.fixture
def load_schedule(session_factory):
    """All committed workouts for a user, ordered by date."""

    def _load(user_id: str = USER_ID, activity_type: ActivityType | None = None) -> list[ScheduledWorkout]:
        with session_factory() as session:
            query = session.query(ScheduledWorkout).filter(ScheduledWorkout.user_id == user_id)
            if activity_type is not None:
                query = query.filter(ScheduledWorkout.activity_type == activity_type)
            return query.order_by(ScheduledWorkout.scheduled_date, ScheduledWorkout.created_at).all()

    return _load
