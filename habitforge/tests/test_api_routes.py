from habitforge.conftest import seed_basics
from habitforge.models.habit import HabitStatus


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_readyz_reports_memory_backend(client):
    r = client.get("/readyz")
    assert r.status_code == 200
    body = r.json()
    assert body["backend"] == "memory"
    assert body["pending_awards"] == 0


def test_habit_status_created_then_existing(client, store):
    seed_basics(store)

    first = client.post("/v1/users/user-1/habit-status", params={"habit_id": "habit-run"})
    assert first.status_code == 201
    assert first.json()["created"] is True
    assert first.json()["habit_task"]["task_date"] == "2024-03-10"

    second = client.post("/v1/users/user-1/habit-status", params={"habit_id": "habit-run"})
    assert second.status_code == 200
    assert second.json()["created"] is False
    assert second.json()["habit_task"]["id"] == first.json()["habit_task"]["id"]


def test_habit_status_for_all_habits(client, store):
    seed_basics(store)
    r = client.post("/v1/users/user-1/habit-status")
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Status retrieved for all user habits"
    assert [h["habit_name"] for h in body["habits"]] == ["Morning run"]


def test_unknown_user_gets_error_shape(client):
    r = client.post("/v1/users/ghost/habit-status", headers={"x-request-id": "rid-404"})
    assert r.status_code == 404
    body = r.json()
    assert body["error"]["code"] == "not_found"
    assert body["error"]["request_id"] == "rid-404"
    assert r.headers["x-request-id"] == "rid-404"


def test_complete_task_and_double_completion(client, store):
    seed_basics(store)
    task_id = client.post("/v1/users/user-1/habit-status", params={"habit_id": "habit-run"}).json()["habit_task"]["id"]

    done = client.post(f"/v1/habit-tasks/{task_id}/complete")
    assert done.status_code == 200
    body = done.json()
    assert body["message"] == "Habit task completed successfully"
    assert body["experience_gained"]["total_experience"] == 11
    assert body["current_streak"]["count"] == 1

    again = client.post(f"/v1/habit-tasks/{task_id}/complete")
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "already_completed"


def test_complete_unknown_task(client):
    r = client.post("/v1/habit-tasks/nope/complete")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "not_found"
    assert "x-request-id" in r.headers


def test_leaderboard_rejects_unknown_type(client):
    r = client.get("/v1/leaderboard", params={"type": "fastest-runner"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "validation_error"


def test_leaderboard_requires_category(client):
    r = client.get("/v1/leaderboard", params={"type": "streak-by-category"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "validation_error"


def test_leaderboard_after_completion(client, store):
    seed_basics(store)
    task_id = client.post("/v1/users/user-1/habit-status", params={"habit_id": "habit-run"}).json()["habit_task"]["id"]
    client.post(f"/v1/habit-tasks/{task_id}/complete")

    r = client.get("/v1/leaderboard", params={"type": "level-by-category", "category_id": "cat-fitness"})
    assert r.status_code == 200
    body = r.json()
    assert body["type"] == "Level by Category"
    assert body["entries"][0]["username"] == "alice"
    assert body["entries"][0]["total_experience"] == 11


def test_create_and_activate_habit(client, store):
    seed_basics(store)
    created = client.post(
        "/v1/habits",
        json={"user_id": "user-1", "category_id": "cat-fitness", "name": "Read"},
    )
    assert created.status_code == 201
    habit = created.json()
    assert habit["status"] == HabitStatus.DRAFT.value

    activated = client.patch(f"/v1/habits/{habit['id']}/status", json={"status": "Active"})
    assert activated.status_code == 200
    assert activated.json()["status"] == "Active"
    assert activated.json()["start_date"] == "2024-03-10"

    listed = client.get("/v1/users/user-1/habits")
    assert sorted(h["name"] for h in listed.json()) == ["Morning run", "Read"]


def test_create_habit_rejects_blank_name(client, store):
    seed_basics(store)
    r = client.post("/v1/habits", json={"user_id": "user-1", "category_id": "cat-fitness", "name": ""})
    assert r.status_code == 400
    assert r.json()["error"]["details"][0]["field"].endswith("name")


def test_experience_endpoints(client, store):
    seed_basics(store)
    task_id = client.post("/v1/users/user-1/habit-status", params={"habit_id": "habit-run"}).json()["habit_task"]["id"]
    client.post(f"/v1/habit-tasks/{task_id}/complete")

    levels = client.get("/v1/users/user-1/levels").json()
    assert levels["total_experience"] == 11
    assert levels["category_levels"][0]["category_name"] == "Fitness"

    experience = client.get("/v1/users/user-1/experience").json()
    assert experience["today_experience"] == 11

    history = client.get("/v1/users/user-1/experience/history", params={"limit": 500}).json()
    assert history["pagination"] == {"limit": 100, "offset": 0, "count": 1}
    assert history["transactions"][0]["habit"]["name"] == "Morning run"

    stats = client.get("/v1/users/user-1/experience/categories/cat-fitness").json()
    assert stats["category"]["name"] == "Fitness"
    assert stats["stats"]["total_transactions"] == 1

    report = client.post("/v1/users/user-1/experience/reconcile").json()
    assert report["mismatches"] == []


def test_profile(client, store):
    seed_basics(store)
    r = client.get("/v1/users/user-1/profile")
    assert r.status_code == 200
    body = r.json()
    assert body["user"]["username"] == "alice"
    assert body["habits"][0]["created"] is True
    assert body["friends"] == {"friends": [], "pending_requests": [], "sent_requests": []}


def test_retry_endpoint_records_queued_awards(client, store, ledger, monkeypatch):
    seed_basics(store)
    task_id = client.post("/v1/users/user-1/habit-status", params={"habit_id": "habit-run"}).json()["habit_task"]["id"]

    def unavailable(transaction):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(ledger, "append", unavailable)
    done = client.post(f"/v1/habit-tasks/{task_id}/complete").json()
    assert done["experience_recorded"] is False
    assert client.get("/readyz").json()["pending_awards"] == 1

    still_down = client.post("/v1/experience/pending/retry").json()
    assert still_down == {"recorded": 0, "pending": 1}

    monkeypatch.undo()
    replayed = client.post("/v1/experience/pending/retry").json()
    assert replayed == {"recorded": 1, "pending": 0}

    history = client.get("/v1/users/user-1/experience/history").json()
    assert [t["experience_gained"] for t in history["transactions"]] == [11]
    assert client.get("/v1/users/user-1/experience").json()["total_experience"] == 11
