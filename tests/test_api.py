from datetime import date

import pytest

import config
import database


def initialize(client, headers):
    response = client.post("/api/months/initialize", headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


def test_root_and_health(client):
    assert client.get("/").status_code == 200
    body = client.get("/test").json()
    assert body["connection_status"] == "Connected"
    assert body["database"] == "✅ Connected & Working"


def test_missing_database_returns_500(client, monkeypatch):
    monkeypatch.setattr(database, "db", None)
    response = client.post("/api/auth/login", json={"email": "a@b.co", "password": "x"})
    assert response.status_code == 500
    assert response.json() == {"detail": "Database not available"}
    assert client.get("/test").json()["connection_status"] == "Not Connected"


def test_initialize_months(client, auth_headers):
    months = initialize(client, auth_headers)
    assert [m["order"] for m in months] == list(range(1, 14))
    assert months[0]["name"] == "January"
    assert months[0]["start_day"] == 3
    assert months[5]["start_day"] == 0
    assert months[12]["start_day"] == 3
    assert all(m["days"] == 28 for m in months)
    assert all("id" in m and "_id" not in m for m in months)


def test_initialize_months_is_idempotent(client, auth_headers, mongo):
    first = initialize(client, auth_headers)
    second = initialize(client, auth_headers)
    assert [m["id"] for m in first] == [m["id"] for m in second]
    assert mongo["month"].count_documents({}) == 13


def test_months_are_scoped_to_user(client, auth_headers, other_headers):
    months = initialize(client, auth_headers)
    assert client.get("/api/months", headers=other_headers).json() == []
    response = client.get(f"/api/months/{months[0]['id']}", headers=other_headers)
    assert response.status_code == 404
    response = client.delete(f"/api/months/{months[0]['id']}", headers=other_headers)
    assert response.status_code == 404


def test_invalid_month_id(client, auth_headers):
    assert client.get("/api/months/not-an-id", headers=auth_headers).status_code == 400


def test_create_month(client, auth_headers):
    response = client.post("/api/months", json={"name": "Sol", "order": 13}, headers=auth_headers)
    assert response.status_code == 201
    month = response.json()
    assert month["start_day"] == 3
    assert month["days"] == 28

    response = client.post(
        "/api/months", json={"name": "Custom", "order": 2, "start_day": 1}, headers=auth_headers
    )
    assert response.json()["start_day"] == 1


def test_create_month_rejects_duplicate_order(client, auth_headers):
    initialize(client, auth_headers)
    response = client.post("/api/months", json={"name": "Again", "order": 4}, headers=auth_headers)
    assert response.status_code == 409


@pytest.mark.parametrize("order", [0, 14])
def test_create_month_validates_order(client, auth_headers, order):
    response = client.post("/api/months", json={"name": "Bad", "order": order}, headers=auth_headers)
    assert response.status_code == 422


def test_update_month_name(client, auth_headers):
    month = initialize(client, auth_headers)[0]
    response = client.put(f"/api/months/{month['id']}", json={"name": "Ocak"}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["name"] == "Ocak"
    assert response.json()["start_day"] == 3


def test_update_month_order_moves_task_dates(client, auth_headers):
    months = initialize(client, auth_headers)
    client.delete(f"/api/months/{months[12]['id']}", headers=auth_headers)
    january = months[0]
    created = client.post(
        "/api/tasks",
        json={"month_id": january["id"], "week_number": 1, "task_text": "Read"},
        headers=auth_headers,
    ).json()

    response = client.put(f"/api/months/{january['id']}", json={"order": 13}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["start_day"] == 3

    task = client.get(f"/api/tasks/{created['id']}", headers=auth_headers).json()
    assert task["start_date"] == "2025-12-03"
    assert task["end_date"] == "2025-12-09"


def test_update_month_order_conflict(client, auth_headers):
    months = initialize(client, auth_headers)
    response = client.put(f"/api/months/{months[0]['id']}", json={"order": 2}, headers=auth_headers)
    assert response.status_code == 409


def test_delete_month_removes_its_tasks(client, auth_headers, mongo):
    months = initialize(client, auth_headers)
    client.post("/api/tasks/initialize", headers=auth_headers)
    response = client.delete(f"/api/months/{months[0]['id']}", headers=auth_headers)
    assert response.status_code == 204
    assert mongo["month"].count_documents({}) == 12
    assert mongo["weeklytask"].count_documents({"month_id": months[0]["id"]}) == 0
    assert mongo["weeklytask"].count_documents({}) == 48


def test_month_grid(client, auth_headers):
    month = initialize(client, auth_headers)[0]
    grid = client.get(f"/api/months/{month['id']}/grid", headers=auth_headers).json()
    assert grid["start_day"] == 3
    assert grid["cells"][:4] == [None, None, None, 1]
    assert len(grid["cells"]) == 35
    assert grid["rows"][0] == [None, None, None, 1, 2, 3, 4]


def test_initialize_tasks(client, auth_headers):
    months = initialize(client, auth_headers)
    tasks = client.post("/api/tasks/initialize", headers=auth_headers).json()
    assert len(tasks) == 52
    assert tasks[0]["month_id"] == months[0]["id"]
    assert tasks[0]["start_date"] == "2025-01-01"
    assert tasks[-1]["end_date"] == "2025-12-30"

    again = client.post("/api/tasks/initialize", headers=auth_headers).json()
    assert [t["id"] for t in again] == [t["id"] for t in tasks]


def test_initialized_tasks_partition_each_month(client, auth_headers):
    months = initialize(client, auth_headers)
    client.post("/api/tasks/initialize", headers=auth_headers)
    for month in months:
        tasks = client.get(f"/api/months/{month['id']}/tasks", headers=auth_headers).json()
        assert [t["week_number"] for t in tasks] == [1, 2, 3, 4]
        days = [d for t in tasks for d in t["days"]]
        assert sorted(days) == list(range(1, 29))


def test_create_task_derives_days_and_dates(client, auth_headers):
    february = initialize(client, auth_headers)[1]
    response = client.post(
        "/api/tasks",
        json={"month_id": february["id"], "week_number": 3, "task_text": "  Learn Rust ", "color": "#34D399"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    task = response.json()
    assert task["days"] == list(range(15, 22))
    assert task["start_date"] == "2025-02-12"
    assert task["end_date"] == "2025-02-18"
    assert task["task_text"] == "Learn Rust"


def test_create_task_accepts_days_inside_week(client, auth_headers):
    month = initialize(client, auth_headers)[0]
    response = client.post(
        "/api/tasks",
        json={"month_id": month["id"], "week_number": 2, "days": [10, 8, 10], "task_text": "Gym"},
        headers=auth_headers,
    )
    assert response.json()["days"] == [8, 10]


def test_create_task_rejects_days_outside_week(client, auth_headers):
    month = initialize(client, auth_headers)[0]
    for days in ([1, 8], [29], [0]):
        response = client.post(
            "/api/tasks",
            json={"month_id": month["id"], "week_number": 2, "days": days, "task_text": "Gym"},
            headers=auth_headers,
        )
        assert response.status_code == 422


def test_create_task_for_foreign_month(client, auth_headers, other_headers):
    month = initialize(client, auth_headers)[0]
    response = client.post(
        "/api/tasks",
        json={"month_id": month["id"], "week_number": 1, "task_text": "Sneaky"},
        headers=other_headers,
    )
    assert response.status_code == 404


def test_update_task(client, auth_headers):
    month = initialize(client, auth_headers)[0]
    task = client.post(
        "/api/tasks",
        json={"month_id": month["id"], "week_number": 1, "days": [2, 3], "task_text": "Draft"},
        headers=auth_headers,
    ).json()

    response = client.put(f"/api/tasks/{task['id']}", json={"task_text": "Final"}, headers=auth_headers)
    assert response.json()["task_text"] == "Final"
    assert response.json()["days"] == [2, 3]

    response = client.put(f"/api/tasks/{task['id']}", json={"week_number": 4}, headers=auth_headers)
    updated = response.json()
    assert updated["days"] == list(range(22, 29))
    assert updated["start_date"] == "2025-01-22"
    assert updated["end_date"] == "2025-01-28"


def test_delete_task(client, auth_headers, other_headers):
    month = initialize(client, auth_headers)[0]
    task = client.post(
        "/api/tasks",
        json={"month_id": month["id"], "week_number": 1, "task_text": "Temp"},
        headers=auth_headers,
    ).json()
    assert client.delete(f"/api/tasks/{task['id']}", headers=other_headers).status_code == 404
    assert client.delete(f"/api/tasks/{task['id']}", headers=auth_headers).status_code == 204
    assert client.get(f"/api/tasks/{task['id']}", headers=auth_headers).status_code == 404


def test_calendar_weeks(client):
    weeks = client.get("/api/calendar/weeks").json()
    assert len(weeks) == 52
    assert weeks[0]["code"] == "25-01"
    assert weeks[0]["label"] == "25-01 January"

    week = client.get("/api/calendar/weeks/5").json()
    assert (week["month_order"], week["week_in_month"]) == (2, 1)
    assert (week["first_day"], week["last_day"]) == (1, 7)
    assert week["start_date"] == "2025-01-29"

    last = client.get("/api/calendar/weeks/52").json()
    assert (last["month_order"], last["week_in_month"]) == (13, 4)

    assert client.get("/api/calendar/weeks/53").status_code == 400


def test_initialize_tasks_skips_claimed_months(client, auth_headers, mongo):
    months = initialize(client, auth_headers)
    # Another initialize already claimed January but has not inserted yet
    mongo["month"].update_one({"order": 1}, {"$set": {"tasks_seeded": True}})
    tasks = client.post("/api/tasks/initialize", headers=auth_headers).json()
    assert len(tasks) == 48
    assert all(t["month_id"] != months[0]["id"] for t in tasks)
    assert mongo["month"].count_documents({"tasks_seeded": True}) == 13

    client.post("/api/tasks/initialize", headers=auth_headers)
    assert mongo["weeklytask"].count_documents({}) == 48


def test_create_task_from_global_week(client, auth_headers):
    february = initialize(client, auth_headers)[1]
    response = client.post(
        "/api/tasks",
        json={"month_id": february["id"], "global_week": 7, "task_text": "Go basics"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    task = response.json()
    assert task["week_number"] == 3
    assert task["days"] == list(range(15, 22))
    assert task["start_date"] == "2025-02-12"


def test_create_task_global_week_must_match_month(client, auth_headers):
    february = initialize(client, auth_headers)[1]
    response = client.post(
        "/api/tasks",
        json={"month_id": february["id"], "global_week": 1, "task_text": "Wrong month"},
        headers=auth_headers,
    )
    assert response.status_code == 422


def test_create_task_needs_exactly_one_week_selector(client, auth_headers):
    month = initialize(client, auth_headers)[0]
    for selector in ({}, {"week_number": 1, "global_week": 1}):
        response = client.post(
            "/api/tasks",
            json={"month_id": month["id"], "task_text": "Either", **selector},
            headers=auth_headers,
        )
        assert response.status_code == 422


def test_week_codes_follow_anchor_year(client, monkeypatch):
    monkeypatch.setattr(config, "CALENDAR_ANCHOR_DATE", date(2026, 1, 1))
    week = client.get("/api/calendar/weeks/1").json()
    assert week["code"] == "26-01"
    assert week["start_date"] == "2026-01-01"
