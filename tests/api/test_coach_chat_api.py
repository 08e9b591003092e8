"""HTTP tests for the coach router.

The TestClient is used without entering its context so the lifespan hook
does not touch the configured database; both dependencies are overridden
to point at the in-memory test schedule.
"""

from datetime import date

import pytest
from fastapi.testclient import TestClient

from truepace.api.coach_chat import get_mutation_executor
from truepace.coach.confirmation import MutationExecutor
from truepace.db.session import get_db
from truepace.main import app

USER_ID = "user-1"
TODAY = date(2026, 2, 10)


@pytest.fixture
def client(session_scope, session_factory):
    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_mutation_executor] = lambda: MutationExecutor(
        session_scope=session_scope, today_provider=lambda: TODAY
    )
    app.dependency_overrides[get_db] = override_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _reschedule(workout_id: str, new_date: str = "friday", **extra) -> dict:
    return {"toolName": "rescheduleWorkout", "input": {"workoutId": workout_id, "newDate": new_date, "reason": "busy", **extra}}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_unconfirmed_batch_awaits_confirmation(client, make_workout, load_workout):
    run = make_workout(date(2026, 2, 11))

    response = client.post("/coach/tool-calls", json={"userId": USER_ID, "toolCalls": [_reschedule(run.id)]})

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "awaiting_confirmation"
    assert body["requires_confirmation"] is True
    assert body["pending"][0]["toolName"] == "rescheduleWorkout"
    assert load_workout(run.id).scheduled_date == date(2026, 2, 11)


def test_affirmative_message_executes_batch(client, make_workout, load_workout):
    run = make_workout(date(2026, 2, 11))

    response = client.post(
        "/coach/tool-calls",
        json={"userId": USER_ID, "toolCalls": [_reschedule(run.id)], "latestUserMessage": "yes, go ahead"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "executed"
    assert body["results"][0]["modified"][0]["scheduled_date"] == "2026-02-13"
    assert load_workout(run.id).scheduled_date == date(2026, 2, 13)


def test_rejected_batch_returns_422(client, make_workout):
    make_workout(date(2026, 2, 11))

    response = client.post(
        "/coach/tool-calls",
        json={"userId": USER_ID, "toolCalls": [_reschedule("missing-id", confirmed=True)]},
    )

    assert response.status_code == 422
    body = response.json()
    assert body["state"] == "rejected"
    assert body["error"]["code"] == "not_found"
    assert body["error"]["index"] == 0


def test_resolve_found(client, make_workout):
    run = make_workout(TODAY)

    response = client.get("/coach/resolve", params={"userId": USER_ID, "ref": "today_workout", "today": "2026-02-10"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "found"
    assert body["workout_id"] == run.id
    assert body["strategy"] == "symbolic"


def test_resolve_not_found_lists_candidates(client, make_workout):
    make_workout(date(2026, 2, 12), description="6km Tempo Run")

    response = client.get("/coach/resolve", params={"userId": USER_ID, "ref": "yoga", "today": "2026-02-10"})

    body = response.json()
    assert body["status"] == "not_found"
    assert body["candidates"][0]["description"] == "6km Tempo Run"
    assert "YYYY-MM-DD" in body["message"]
