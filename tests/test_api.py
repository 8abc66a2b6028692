"""
HTTP tests for the task API, the reply classifier preview and the sweep endpoint.
"""


def _create(client, **overrides):
    body = {
        "title": "Cover the election count",
        "description": "Live updates every hour",
        "assignee_phone": "97312345678",
        "assignee_name": "Ali",
        "creator_id": "editor-1",
    }
    body.update(overrides)
    r = client.post("/tasks", json=body)
    assert r.status_code == 200
    return r.json()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers.get("X-Request-Id")


def test_create_and_fetch(client):
    task = _create(client)
    assert task["status"] == "DRAFT"

    r = client.get(f"/tasks/{task['id']}")
    assert r.status_code == 200
    assert r.json()["title"] == "Cover the election count"


def test_missing_task_is_404(client):
    assert client.get("/tasks/ZZZZ9999").status_code == 404
    assert client.post("/tasks/ZZZZ9999/dispatch").status_code == 404


def test_dispatch_then_manager_flow(client):
    task = _create(client)

    r = client.post(f"/tasks/{task['id']}/dispatch")
    assert r.status_code == 200
    assert r.json()["result"]["status"] == "SENT"

    for trigger in ("ACCEPT", "PROGRESS", "COMPLETE"):
        r = client.post(f"/tasks/{task['id']}/triggers", json={"trigger": trigger, "confidence": 0.9})
        assert r.status_code == 200

    r = client.post(f"/tasks/{task['id']}/send-back")
    assert r.json()["task"]["status"] == "IN_PROGRESS"

    client.post(f"/tasks/{task['id']}/triggers", json={"trigger": "COMPLETE"})
    r = client.post(f"/tasks/{task['id']}/approve")
    data = r.json()
    assert data["task"]["status"] == "COMPLETED"
    assert data["task"]["completed_at"] is not None


def test_invalid_transition_is_not_an_error(client):
    task = _create(client)
    r = client.post(f"/tasks/{task['id']}/approve")
    assert r.status_code == 200
    data = r.json()
    assert data["result"]["reason"] == "INVALID_TRANSITION"
    assert data["task"]["status"] == "DRAFT"


def test_low_confidence_trigger(client):
    task = _create(client)
    client.post(f"/tasks/{task['id']}/dispatch")
    r = client.post(f"/tasks/{task['id']}/triggers", json={"trigger": "ACCEPT", "confidence": 0.5})
    data = r.json()
    assert data["result"]["reason"] == "LOW_CONFIDENCE"
    assert data["task"]["status"] == "SENT"

    notices = client.get(f"/tasks/{task['id']}/notifications").json()
    assert notices[-1]["type"] == "REVIEW_REQUIRED"


def test_confidence_out_of_range_is_rejected(client):
    task = _create(client)
    r = client.post(f"/tasks/{task['id']}/triggers", json={"trigger": "ACCEPT", "confidence": 3})
    assert r.status_code == 422


def test_cancel_and_reassign(client):
    task = _create(client)
    client.post(f"/tasks/{task['id']}/dispatch")
    r = client.post(f"/tasks/{task['id']}/triggers", json={"trigger": "DECLINE"})
    assert r.json()["task"]["status"] == "REJECTED"

    r = client.post(f"/tasks/{task['id']}/reassign", json={"assignee_phone": "97388888888", "assignee_name": "Sara"})
    assert r.status_code == 200
    assert r.json()["status"] == "DRAFT"
    assert r.json()["assignee_name"] == "Sara"

    r = client.post(f"/tasks/{task['id']}/cancel")
    assert r.json()["task"]["status"] == "CANCELLED"


def test_reassign_completed_is_conflict(client, store):
    task = _create(client)
    store.update_task(task["id"], status="COMPLETED")
    r = client.post(f"/tasks/{task['id']}/reassign", json={"assignee_phone": "97388888888"})
    assert r.status_code == 409


def test_list_filtered_by_status(client):
    a = _create(client, title="A")
    _create(client, title="B")
    client.post(f"/tasks/{a['id']}/dispatch")

    r = client.get("/tasks", params={"status": "SENT"})
    assert [t["id"] for t in r.json()] == [a["id"]]


def test_classify_preview(client):
    r = client.post("/classify", json={"text": "I need BD 20 for parking"})
    data = r.json()
    assert data["action"] == "UNKNOWN"
    assert data["extracted_info"]["budget"] == 20


def test_sweep_endpoint(client):
    task = _create(client, deadline="2020-01-01T00:00:00Z")
    client.post(f"/tasks/{task['id']}/dispatch")

    r = client.post("/escalation/sweep", json={"now": "2030-01-01T00:00:00Z"})
    assert r.status_code == 200
    assert r.json()["overdue"] == 1
    assert client.get(f"/tasks/{task['id']}").json()["status"] == "OVERDUE"


def test_sweep_without_body(client):
    r = client.post("/escalation/sweep")
    assert r.status_code == 200
    assert r.json()["applied"] == 0
