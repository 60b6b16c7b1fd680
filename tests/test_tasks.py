"""
Tests for tasks, the kanban board, task templates, reminders and the
calendar month view.
"""

from datetime import timedelta

from sqlalchemy import select

from lexledger.models import AuditAction, Notification, Reminder, Task, TaskStatus
from lexledger.tasks import apply_status
from lexledger.timestamps import now_utc
from tests.conftest import audit_rows


# =============================================================================
# COMPLETION TIMESTAMP
# =============================================================================

class TestCompletedAt:
    def test_stamped_on_move_into_done(self):
        task = Task(title="File brief", status=TaskStatus.IN_PROGRESS)
        apply_status(task, TaskStatus.DONE)
        assert task.completed_at is not None

    def test_not_restamped_when_already_done(self):
        first = now_utc() - timedelta(days=2)
        task = Task(title="File brief", status=TaskStatus.DONE, completed_at=first)
        apply_status(task, TaskStatus.DONE)
        assert task.completed_at == first

    def test_kept_when_moved_out_of_done(self):
        first = now_utc() - timedelta(days=2)
        task = Task(title="File brief", status=TaskStatus.DONE, completed_at=first)
        apply_status(task, TaskStatus.REVIEW)
        assert task.status == TaskStatus.REVIEW
        assert task.completed_at == first

    async def test_board_move_stamps_completion(self, auth_client, db):
        response = await auth_client.post("/tasks", json={"title": "Draft petition"})
        assert response.status_code == 201
        task = response.json()
        assert task["status"] == "To Do"
        assert task["priority"] == "Medium"
        assert task["completed_at"] is None

        response = await auth_client.post("/tasks/update-status", json={"task_id": task["id"], "status": "Done"})
        assert response.status_code == 200
        done = response.json()
        assert done["completed_at"] is not None

        # Saving it again as Done keeps the original stamp
        response = await auth_client.post(f"/tasks/{task['id']}/edit", json={"status": "Done"})
        assert response.json()["completed_at"] == done["completed_at"]

        row = (await audit_rows(db, AuditAction.UPDATE, "Task"))[0]
        assert row.old_data == {"status": "To Do"}
        assert row.new_data == {"status": "Done"}

    async def test_invalid_status_is_rejected(self, auth_client):
        response = await auth_client.post("/tasks", json={"title": "Draft", "status": "Someday"})
        assert response.status_code == 422
        assert "status" in response.json()["errors"]


# =============================================================================
# BOARD
# =============================================================================

class TestBoard:
    async def test_board_groups_by_status(self, auth_client, db, sample_matter, test_user):
        db.add_all([
            Task(title="Research", matter_id=sample_matter.id, assigned_to_id=test_user.id),
            Task(title="Hearing", status=TaskStatus.IN_PROGRESS),
        ])
        await db.commit()

        response = await auth_client.get("/tasks/board")
        assert response.status_code == 200
        board = response.json()
        assert board["total"] == 2
        assert set(board["columns"]) == {"To Do", "In Progress", "Review", "Done"}
        [card] = board["columns"]["To Do"]
        assert card["task"]["title"] == "Research"
        assert card["matter_name"] == "Yılmaz v. Demir"
        assert card["assignee_name"] == "Test User"
        assert board["columns"]["Done"] == []

    async def test_board_filters_by_matter(self, auth_client, db, sample_matter):
        db.add_all([Task(title="Research", matter_id=sample_matter.id), Task(title="Other")])
        await db.commit()

        board = (await auth_client.get("/tasks/board", params={"matter_id": sample_matter.id})).json()
        assert board["total"] == 1


# =============================================================================
# TEMPLATES
# =============================================================================

class TestTemplates:
    async def test_apply_template_creates_tasks(self, auth_client, db, sample_matter):
        response = await auth_client.post("/tasks/templates", json={
            "name": "New litigation",
            "category": "Litigation",
            "items": [
                {"title": "Conflict check", "priority": "High", "due_in_days": 1},
                {"title": "Engagement letter"},
            ],
        })
        assert response.status_code == 201
        template = response.json()
        assert [item["title"] for item in template["items"]] == ["Conflict check", "Engagement letter"]

        response = await auth_client.post(
            f"/tasks/templates/{template['id']}/apply",
            json={"matter_id": sample_matter.id},
        )
        assert response.status_code == 201
        created = response.json()
        assert [t["title"] for t in created] == ["Conflict check", "Engagement letter"]
        assert created[0]["priority"] == "High"
        assert created[0]["due_date"] is not None
        assert created[1]["due_date"] is None
        assert all(t["template_id"] == template["id"] for t in created)
        assert all(t["matter_id"] == sample_matter.id for t in created)

    async def test_template_needs_items(self, auth_client):
        response = await auth_client.post("/tasks/templates", json={"name": "Empty", "items": []})
        assert response.status_code == 422
        assert "items" in response.json()["errors"]

    async def test_apply_to_unknown_matter_is_rejected(self, auth_client):
        response = await auth_client.post("/tasks/templates", json={
            "name": "Quick", "items": [{"title": "Call client"}],
        })
        template_id = response.json()["id"]
        response = await auth_client.post(f"/tasks/templates/{template_id}/apply", json={"matter_id": "missing"})
        assert response.status_code == 422


# =============================================================================
# REMINDERS
# =============================================================================

class TestReminders:
    async def test_task_reminder_is_scheduled(self, auth_client, db, test_user):
        reminder_at = now_utc() - timedelta(minutes=5)
        response = await auth_client.post("/tasks", json={
            "title": "Call opposing counsel",
            "reminder_at": reminder_at.isoformat(),
            "assigned_to_id": test_user.id,
        })
        assert response.status_code == 201
        task_id = response.json()["id"]

        result = await db.execute(select(Reminder))
        [reminder] = result.scalars().all()
        assert reminder.entity_type == "Task"
        assert reminder.entity_id == task_id
        assert reminder.sent is False

        due = (await auth_client.get("/reminders/due")).json()
        assert [r["entity_id"] for r in due] == [task_id]

    async def test_dispatch_notifies_and_marks_sent(self, auth_client, admin_client, db, test_user):
        user_id = test_user.id
        response = await auth_client.post("/reminders", json={
            "trigger_at": (now_utc() - timedelta(minutes=1)).isoformat(),
            "entity_type": "Matter",
            "entity_id": "matter-1",
            "message": "Statute of limitations",
            "user_id": user_id,
        })
        assert response.status_code == 201

        response = await admin_client.post("/reminders/dispatch")
        assert response.status_code == 200
        assert response.json() == {"sent": 1, "failed": 0}

        result = await db.execute(select(Notification).where(Notification.user_id == user_id))
        [notification] = result.scalars().all()
        assert notification.message == "Statute of limitations"
        assert notification.type == "warning"

        assert (await auth_client.get("/reminders/due")).json() == []

    async def test_dispatch_is_admin_only(self, auth_client):
        response = await auth_client.post("/reminders/dispatch")
        assert response.status_code == 403

    async def test_future_reminder_is_not_due(self, auth_client):
        await auth_client.post("/reminders", json={
            "trigger_at": (now_utc() + timedelta(days=1)).isoformat(),
            "entity_type": "Task",
            "entity_id": "task-1",
        })
        assert (await auth_client.get("/reminders/due")).json() == []

    async def test_mark_sent(self, auth_client):
        response = await auth_client.post("/reminders", json={
            "trigger_at": now_utc().isoformat(),
            "entity_type": "Task",
            "entity_id": "task-1",
        })
        reminder_id = response.json()["id"]
        response = await auth_client.post(f"/reminders/{reminder_id}/sent")
        assert response.status_code == 200
        assert response.json()["sent"] is True


# =============================================================================
# CALENDAR
# =============================================================================

class TestCalendar:
    async def test_month_view_merges_task_deadlines(self, auth_client, db):
        due = now_utc().replace(day=15, hour=10, minute=0, second=0, microsecond=0)
        open_task = Task(title="File appeal", due_date=due)
        done_task = Task(title="Old filing", due_date=due, status=TaskStatus.DONE)
        db.add_all([open_task, done_task])
        await db.commit()

        response = await auth_client.post("/calendar", json={
            "title": "Client meeting",
            "date": due.replace(hour=14).isoformat(),
        })
        assert response.status_code == 201
        assert response.json()["type"] == "Meeting"

        response = await auth_client.get("/calendar", params={"year": due.year, "month": due.month})
        assert response.status_code == 200
        items = response.json()["items"]
        by_id = {item["id"]: item for item in items}
        assert f"task-{open_task.id}" in by_id
        assert by_id[f"task-{open_task.id}"]["type"] == "Deadline"
        assert by_id[f"task-{open_task.id}"]["is_task"] is True
        assert f"task-{done_task.id}" not in by_id
        assert len(items) == 2

    async def test_event_range_query(self, auth_client):
        start = now_utc().replace(microsecond=0)
        await auth_client.post("/calendar", json={"title": "Hearing", "date": (start + timedelta(days=2)).isoformat(), "type": "Court"})
        await auth_client.post("/calendar", json={"title": "Later", "date": (start + timedelta(days=40)).isoformat()})

        response = await auth_client.get("/calendar/events", params={
            "start": start.isoformat(),
            "end": (start + timedelta(days=7)).isoformat(),
        })
        assert [e["title"] for e in response.json()] == ["Hearing"]

    async def test_invalid_event_type(self, auth_client):
        response = await auth_client.post("/calendar", json={
            "title": "Party", "date": now_utc().isoformat(), "type": "Party",
        })
        assert response.status_code == 422
