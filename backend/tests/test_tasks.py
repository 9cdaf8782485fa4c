"""
Tests for the task lifecycle endpoints (/api/tasks).

Tests cover:
- Create with defaults, validation and assignee resolution
- completedAt tracking across status changes
- Listing: filters, search, overdue, sorting, pagination
- Partial update and soft delete
- Bulk create atomicity
"""

import logging
from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import models
from tests.conftest import future_iso, insert_task
from time_utils import utc_now

logger = logging.getLogger(__name__)


def task_payload(assignee: models.User, **overrides) -> dict:
    payload = {
        "title": "Prepare sprint demo",
        "description": "Collect screenshots and write the talking points",
        "dueDate": future_iso(1),
        "assignedTo": assignee.id,
    }
    payload.update(overrides)
    return payload


# ============== Create ==============


def test_create_task_requires_authentication(client: TestClient, regular_user: models.User):
    response = client.post("/api/tasks", json=task_payload(regular_user))

    assert response.status_code == 401
    assert response.json()["success"] is False


def test_create_task_applies_defaults(
    client: TestClient,
    auth_headers: dict,
    admin_user: models.User,
    regular_user: models.User
):
    """A new task defaults to todo/medium and expands both user references."""
    response = client.post(
        "/api/tasks",
        json=task_payload(regular_user, tags=[" demo ", "sprint"], estimatedHours=4),
        headers=auth_headers
    )

    assert response.status_code == 201, response.json()
    body = response.json()
    assert body["success"] is True
    task = body["data"]["task"]
    assert task["status"] == "todo"
    assert task["priority"] == "medium"
    assert task["completedAt"] is None
    assert task["isOverdue"] is False
    assert task["tags"] == ["demo", "sprint"]
    assert task["estimatedHours"] == 4
    assert task["attachments"] == []
    assert task["assignedTo"] == {"id": regular_user.id, "name": "Regular User", "email": "regular.user@example.com"}
    assert task["createdBy"]["id"] == admin_user.id


def test_create_then_get_returns_same_fields(client: TestClient, auth_headers: dict, regular_user: models.User):
    payload = task_payload(regular_user, priority="high", tags=["backend"], actualHours=1.5)
    created = client.post("/api/tasks", json=payload, headers=auth_headers).json()["data"]["task"]

    response = client.get(f"/api/tasks/{created['id']}", headers=auth_headers)

    assert response.status_code == 200
    fetched = response.json()["data"]["task"]
    for field in ("title", "description", "priority", "tags", "actualHours", "status"):
        assert fetched[field] == created[field]
    assert fetched["assignedTo"]["id"] == regular_user.id


def test_create_task_trims_title_and_description(client: TestClient, auth_headers: dict, regular_user: models.User):
    response = client.post(
        "/api/tasks",
        json=task_payload(regular_user, title="   Trim me   ", description="  body  "),
        headers=auth_headers
    )

    assert response.status_code == 201
    task = response.json()["data"]["task"]
    assert task["title"] == "Trim me"
    assert task["description"] == "body"


def test_create_task_with_past_due_date_is_rejected(
    client: TestClient,
    auth_headers: dict,
    regular_user: models.User,
    test_db: Session
):
    past = (utc_now() - timedelta(days=1)).isoformat()

    response = client.post("/api/tasks", json=task_payload(regular_user, dueDate=past), headers=auth_headers)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert any(err["param"] == "dueDate" and err["location"] == "body" for err in body["errors"])
    assert test_db.query(models.Task).count() == 0


def test_create_task_missing_required_fields(client: TestClient, auth_headers: dict):
    response = client.post("/api/tasks", json={"title": "No due date"}, headers=auth_headers)

    assert response.status_code == 400
    params = {err["param"] for err in response.json()["errors"]}
    assert {"description", "dueDate", "assignedTo"} <= params


def test_create_task_title_too_short(client: TestClient, auth_headers: dict, regular_user: models.User):
    response = client.post("/api/tasks", json=task_payload(regular_user, title="ab"), headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["errors"][0]["param"] == "title"


def test_create_task_rejects_unknown_status(client: TestClient, auth_headers: dict, regular_user: models.User):
    response = client.post("/api/tasks", json=task_payload(regular_user, status="blocked"), headers=auth_headers)

    assert response.status_code == 400


def test_create_task_rejects_hours_out_of_range(client: TestClient, auth_headers: dict, regular_user: models.User):
    response = client.post("/api/tasks", json=task_payload(regular_user, estimatedHours=1000), headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["errors"][0]["param"] == "estimatedHours"


def test_create_task_with_unknown_assignee(
    client: TestClient,
    auth_headers: dict,
    regular_user: models.User,
    test_db: Session
):
    response = client.post("/api/tasks", json=task_payload(regular_user, assignedTo=9999), headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Assigned user not found"
    assert test_db.query(models.Task).count() == 0


def test_create_task_as_completed_stamps_completed_at(client: TestClient, auth_headers: dict, regular_user: models.User):
    response = client.post("/api/tasks", json=task_payload(regular_user, status="completed"), headers=auth_headers)

    assert response.status_code == 201
    assert response.json()["data"]["task"]["completedAt"] is not None


# ============== completedAt lifecycle ==============


def test_completed_at_follows_status(client: TestClient, auth_headers: dict, regular_user: models.User):
    """todo -> completed stamps completedAt; completed -> todo clears it."""
    task = client.post("/api/tasks", json=task_payload(regular_user), headers=auth_headers).json()["data"]["task"]
    assert task["status"] == "todo"
    assert task["completedAt"] is None

    completed = client.put(
        f"/api/tasks/{task['id']}", json={"status": "completed"}, headers=auth_headers
    ).json()["data"]["task"]
    assert completed["status"] == "completed"
    assert completed["completedAt"] is not None

    # Saving other fields keeps the original completion time
    renamed = client.put(
        f"/api/tasks/{task['id']}", json={"title": "Renamed after completion"}, headers=auth_headers
    ).json()["data"]["task"]
    assert renamed["completedAt"] == completed["completedAt"]

    reopened = client.put(
        f"/api/tasks/{task['id']}", json={"status": "todo"}, headers=auth_headers
    ).json()["data"]["task"]
    assert reopened["status"] == "todo"
    assert reopened["completedAt"] is None


def test_every_status_keeps_completion_invariant(client: TestClient, auth_headers: dict, task: models.Task):
    for status in ("in-progress", "completed", "in-review", "completed", "todo"):
        updated = client.put(f"/api/tasks/{task.id}", json={"status": status}, headers=auth_headers).json()["data"]["task"]
        assert (updated["status"] == "completed") == (updated["completedAt"] is not None)


# ============== Get / Update / Delete ==============


def test_get_unknown_task_returns_404(client: TestClient, auth_headers: dict):
    response = client.get("/api/tasks/424242", headers=auth_headers)

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Task not found"}


def test_update_is_partial(client: TestClient, auth_headers: dict, task: models.Task):
    response = client.put(f"/api/tasks/{task.id}", json={"priority": "urgent"}, headers=auth_headers)

    assert response.status_code == 200
    updated = response.json()["data"]["task"]
    assert updated["priority"] == "urgent"
    assert updated["title"] == "Write release notes"
    assert updated["tags"] == ["docs", "release"]


def test_update_reassigns_to_existing_user(
    client: TestClient,
    auth_headers: dict,
    task: models.Task,
    another_user: models.User
):
    response = client.put(f"/api/tasks/{task.id}", json={"assignedTo": another_user.id}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["data"]["task"]["assignedTo"]["id"] == another_user.id


def test_update_rejects_unknown_assignee(client: TestClient, auth_headers: dict, task: models.Task):
    response = client.put(f"/api/tasks/{task.id}", json={"assignedTo": 9999}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Assigned user not found"


def test_update_rejects_past_due_date(client: TestClient, auth_headers: dict, task: models.Task):
    past = (utc_now() - timedelta(hours=2)).isoformat()

    response = client.put(f"/api/tasks/{task.id}", json={"dueDate": past}, headers=auth_headers)

    assert response.status_code == 400


def test_update_rejects_null_title(client: TestClient, auth_headers: dict, task: models.Task):
    response = client.put(f"/api/tasks/{task.id}", json={"title": None}, headers=auth_headers)

    assert response.status_code == 400


def test_update_cannot_change_creator(
    client: TestClient,
    auth_headers: dict,
    task: models.Task,
    admin_user: models.User,
    another_user: models.User
):
    response = client.put(f"/api/tasks/{task.id}", json={"createdBy": another_user.id}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["data"]["task"]["createdBy"]["id"] == admin_user.id


def test_soft_delete_hides_task(client: TestClient, auth_headers: dict, task: models.Task, test_db: Session):
    response = client.delete(f"/api/tasks/{task.id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["success"] is True

    assert client.get(f"/api/tasks/{task.id}", headers=auth_headers).status_code == 404
    listed = client.get("/api/tasks", headers=auth_headers).json()["data"]["tasks"]
    assert task.id not in [t["id"] for t in listed]

    # Row is retained
    row = test_db.query(models.Task).filter(models.Task.id == task.id).one()
    assert row.is_deleted is True
    assert row.deleted_at is not None


def test_soft_delete_twice_returns_404(client: TestClient, auth_headers: dict, task: models.Task):
    client.delete(f"/api/tasks/{task.id}", headers=auth_headers)

    response = client.delete(f"/api/tasks/{task.id}", headers=auth_headers)

    assert response.status_code == 404


def test_update_deleted_task_returns_404(client: TestClient, auth_headers: dict, task: models.Task):
    client.delete(f"/api/tasks/{task.id}", headers=auth_headers)

    response = client.put(f"/api/tasks/{task.id}", json={"title": "Too late"}, headers=auth_headers)

    assert response.status_code == 404


# ============== List ==============


def test_list_filters_by_status_priority_and_assignee(
    client: TestClient,
    auth_headers: dict,
    test_db: Session,
    admin_user: models.User,
    regular_user: models.User,
    another_user: models.User
):
    match = insert_task(test_db, regular_user, admin_user, status=models.TaskStatus.in_progress, priority=models.TaskPriority.high)
    insert_task(test_db, regular_user, admin_user, status=models.TaskStatus.todo, priority=models.TaskPriority.high)
    insert_task(test_db, another_user, admin_user, status=models.TaskStatus.in_progress, priority=models.TaskPriority.high)

    response = client.get(
        "/api/tasks",
        params={"status": "in-progress", "priority": "high", "assignedTo": regular_user.id},
        headers=auth_headers
    )

    assert response.status_code == 200
    assert [t["id"] for t in response.json()["data"]["tasks"]] == [match.id]


def test_list_tags_match_any(
    client: TestClient,
    auth_headers: dict,
    test_db: Session,
    admin_user: models.User,
    regular_user: models.User
):
    frontend = insert_task(test_db, regular_user, admin_user, tags=["frontend"])
    backend = insert_task(test_db, regular_user, admin_user, tags=["backend", "api"])
    insert_task(test_db, regular_user, admin_user, tags=["ops"])

    response = client.get("/api/tasks", params={"tags": "frontend,api"}, headers=auth_headers)

    ids = {t["id"] for t in response.json()["data"]["tasks"]}
    assert ids == {frontend.id, backend.id}


def test_list_search_is_case_insensitive(
    client: TestClient,
    auth_headers: dict,
    test_db: Session,
    admin_user: models.User,
    regular_user: models.User
):
    by_title = insert_task(test_db, regular_user, admin_user, title="Fix LOGIN redirect")
    by_description = insert_task(test_db, regular_user, admin_user, description="The login form flickers")
    by_tag = insert_task(test_db, regular_user, admin_user, tags=["login-flow"])
    insert_task(test_db, regular_user, admin_user, title="Unrelated", description="Nothing here")

    response = client.get("/api/tasks", params={"search": "Login"}, headers=auth_headers)

    ids = {t["id"] for t in response.json()["data"]["tasks"]}
    assert ids == {by_title.id, by_description.id, by_tag.id}


def test_list_search_treats_wildcards_literally(
    client: TestClient,
    auth_headers: dict,
    test_db: Session,
    admin_user: models.User,
    regular_user: models.User
):
    literal = insert_task(test_db, regular_user, admin_user, title="Reach 100% coverage")
    insert_task(test_db, regular_user, admin_user, title="Reach 1000 users")

    response = client.get("/api/tasks", params={"search": "100%"}, headers=auth_headers)

    assert [t["id"] for t in response.json()["data"]["tasks"]] == [literal.id]


def test_list_search_ignores_tag_list_punctuation(
    client: TestClient,
    auth_headers: dict,
    test_db: Session,
    admin_user: models.User,
    regular_user: models.User
):
    insert_task(test_db, regular_user, admin_user, title="Alpha", description="No tags at all", tags=[])
    insert_task(test_db, regular_user, admin_user, title="Beta", description="Two tags", tags=["docs", "release"])

    for term in ("[", "]", "\"", ", "):
        response = client.get("/api/tasks", params={"search": term}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"]["tasks"] == [], term


def test_list_search_does_not_span_two_tags(
    client: TestClient,
    auth_headers: dict,
    test_db: Session,
    admin_user: models.User,
    regular_user: models.User
):
    insert_task(test_db, regular_user, admin_user, title="Beta", description="Two tags", tags=["docs", "release"])

    response = client.get("/api/tasks", params={"search": "s\", \"r"}, headers=auth_headers)

    assert response.json()["data"]["tasks"] == []


def test_list_tags_match_values_with_quotes(
    client: TestClient,
    auth_headers: dict,
    test_db: Session,
    admin_user: models.User,
    regular_user: models.User
):
    quoted = insert_task(test_db, regular_user, admin_user, title="Gamma", tags=['say"hi'])
    insert_task(test_db, regular_user, admin_user, title="Delta", tags=["say", "hi"])

    by_tag = client.get("/api/tasks", params={"tags": 'say"hi'}, headers=auth_headers)
    by_search = client.get("/api/tasks", params={"search": 'Y"H'}, headers=auth_headers)

    assert [t["id"] for t in by_tag.json()["data"]["tasks"]] == [quoted.id]
    assert [t["id"] for t in by_search.json()["data"]["tasks"]] == [quoted.id]


def test_list_due_date_matches_calendar_day(
    client: TestClient,
    auth_headers: dict,
    test_db: Session,
    admin_user: models.User,
    regular_user: models.User
):
    target = (utc_now() + timedelta(days=5)).replace(hour=10, minute=0, second=0, microsecond=0)
    same_day = insert_task(test_db, regular_user, admin_user, due_date=target)
    insert_task(test_db, regular_user, admin_user, due_date=target + timedelta(days=1))

    response = client.get("/api/tasks", params={"dueDate": target.date().isoformat()}, headers=auth_headers)

    assert [t["id"] for t in response.json()["data"]["tasks"]] == [same_day.id]


def test_list_overdue_excludes_completed_and_ignores_status(
    client: TestClient,
    auth_headers: dict,
    test_db: Session,
    admin_user: models.User,
    regular_user: models.User
):
    yesterday = utc_now() - timedelta(days=1)
    overdue = insert_task(test_db, regular_user, admin_user, due_date=yesterday, status=models.TaskStatus.in_progress)
    insert_task(
        test_db, regular_user, admin_user,
        due_date=yesterday, status=models.TaskStatus.completed, completed_at=utc_now()
    )
    insert_task(test_db, regular_user, admin_user)

    response = client.get("/api/tasks", params={"overdue": "true", "status": "todo"}, headers=auth_headers)

    tasks = response.json()["data"]["tasks"]
    assert [t["id"] for t in tasks] == [overdue.id]
    assert tasks[0]["isOverdue"] is True


def test_list_pagination(
    client: TestClient,
    auth_headers: dict,
    test_db: Session,
    admin_user: models.User,
    regular_user: models.User
):
    for i in range(7):
        insert_task(test_db, regular_user, admin_user, title=f"Paged task {i}")

    first = client.get("/api/tasks", params={"page": 1, "limit": 3}, headers=auth_headers).json()["data"]
    last = client.get("/api/tasks", params={"page": 3, "limit": 3}, headers=auth_headers).json()["data"]

    assert first["pagination"] == {"current": 1, "pages": 3, "total": 7, "hasNext": True, "hasPrev": False}
    assert len(first["tasks"]) == 3
    assert last["pagination"]["hasNext"] is False
    assert last["pagination"]["hasPrev"] is True
    assert len(last["tasks"]) == 1


def test_list_default_order_is_newest_first(
    client: TestClient,
    auth_headers: dict,
    test_db: Session,
    admin_user: models.User,
    regular_user: models.User
):
    ids = [insert_task(test_db, regular_user, admin_user, title=f"Ordered {i}").id for i in range(3)]

    listed = client.get("/api/tasks", headers=auth_headers).json()["data"]["tasks"]

    assert [t["id"] for t in listed] == list(reversed(ids))


def test_list_sort_by_title_ascending(
    client: TestClient,
    auth_headers: dict,
    test_db: Session,
    admin_user: models.User,
    regular_user: models.User
):
    for title in ("Charlie", "Alpha", "Bravo"):
        insert_task(test_db, regular_user, admin_user, title=title)

    listed = client.get("/api/tasks", params={"sortBy": "title", "sortOrder": "asc"}, headers=auth_headers).json()["data"]["tasks"]

    assert [t["title"] for t in listed] == ["Alpha", "Bravo", "Charlie"]


def test_list_rejects_invalid_paging(client: TestClient, auth_headers: dict):
    assert client.get("/api/tasks", params={"limit": 101}, headers=auth_headers).status_code == 400
    response = client.get("/api/tasks", params={"page": 0}, headers=auth_headers)
    assert response.status_code == 400
    error = response.json()["errors"][0]
    assert error["param"] == "page"
    assert error["location"] == "query"


def test_list_rejects_unknown_sort_field(client: TestClient, auth_headers: dict):
    response = client.get("/api/tasks", params={"sortBy": "estimatedHours"}, headers=auth_headers)

    assert response.status_code == 400


# ============== Bulk create ==============


def test_bulk_create_inserts_all(
    client: TestClient,
    auth_headers: dict,
    regular_user: models.User,
    another_user: models.User
):
    payload = {"tasks": [
        task_payload(regular_user, title="Bulk one"),
        task_payload(another_user, title="Bulk two", status="completed"),
    ]}

    response = client.post("/api/tasks/bulk", json=payload, headers=auth_headers)

    assert response.status_code == 201, response.json()
    tasks = response.json()["data"]["tasks"]
    assert [t["title"] for t in tasks] == ["Bulk one", "Bulk two"]
    assert tasks[1]["completedAt"] is not None
    assert tasks[0]["assignedTo"]["id"] == regular_user.id


def test_bulk_create_with_unknown_assignee_inserts_nothing(
    client: TestClient,
    auth_headers: dict,
    regular_user: models.User,
    test_db: Session
):
    payload = {"tasks": [
        task_payload(regular_user, title="Valid task"),
        task_payload(regular_user, title="Orphan task", assignedTo=9999),
    ]}

    response = client.post("/api/tasks/bulk", json=payload, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "One or more assigned users not found"
    assert test_db.query(models.Task).count() == 0


def test_bulk_create_validates_each_item(
    client: TestClient,
    auth_headers: dict,
    regular_user: models.User,
    test_db: Session
):
    payload = {"tasks": [
        task_payload(regular_user),
        task_payload(regular_user, title="x"),
    ]}

    response = client.post("/api/tasks/bulk", json=payload, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["errors"][0]["param"] == "tasks.1.title"
    assert test_db.query(models.Task).count() == 0


def test_bulk_create_rejects_empty_and_oversized_batches(client: TestClient, auth_headers: dict, regular_user: models.User):
    assert client.post("/api/tasks/bulk", json={"tasks": []}, headers=auth_headers).status_code == 400

    too_many = {"tasks": [task_payload(regular_user, title=f"Task {i}") for i in range(101)]}
    assert client.post("/api/tasks/bulk", json=too_many, headers=auth_headers).status_code == 400
