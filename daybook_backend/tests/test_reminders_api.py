import asyncio
import time

from conftest import iso_minutes_from_now, make_config
from fastapi.testclient import TestClient

from src.api.main import create_app
from src.api.periodic import start_periodic_task, stop_periodic_tasks
from src.api.repositories import create_memory_store


def create_reminder_payload(title="Pay rent", minutes=60, **extra):
    payload = {"title": title, "scheduledDate": iso_minutes_from_now(minutes)}
    payload.update(extra)
    return payload


def _post(client, **kwargs):
    res = client.post("/api/reminders", json=create_reminder_payload(**kwargs))
    assert res.status_code == 201, res.text
    return res.json()


class TestRemindersCRUD:
    def test_create_reminder_defaults(self, client):
        reminder = _post(client)
        assert reminder["priority"] == "medium"
        assert reminder["isCompleted"] is False
        assert reminder["notificationSent"] is False
        assert reminder["description"] is None
        for key in ["id", "title", "scheduledDate", "createdAt"]:
            assert key in reminder

    def test_scheduled_date_required(self, client):
        res = client.post("/api/reminders", json={"title": "No time"})
        assert res.status_code == 422
        assert res.json()["error"] == "ValidationError"

    def test_invalid_priority_rejected(self, client):
        res = client.post("/api/reminders", json=create_reminder_payload(priority="urgent"))
        assert res.status_code == 422

    def test_scheduled_date_outside_utc_range_rejected(self, client):
        res = client.post(
            "/api/reminders", json={"title": "Far", "scheduledDate": "9999-12-31T23:59:59-05:00"}
        )
        assert res.status_code == 422
        assert res.json()["error"] == "ValidationError"

    def test_list_earliest_first_and_completed_filter(self, client):
        late = _post(client, title="late", minutes=120)
        early = _post(client, title="early", minutes=-30)
        done = _post(client, title="done", minutes=10, isCompleted=True)

        items = client.get("/api/reminders").json()
        assert [r["id"] for r in items] == [early["id"], done["id"], late["id"]]

        open_items = client.get("/api/reminders", params={"completed": "false"}).json()
        assert [r["id"] for r in open_items] == [early["id"], late["id"]]

    def test_get_update_delete(self, client):
        reminder = _post(client, description="Transfer")
        rid = reminder["id"]

        res_put = client.put(f"/api/reminders/{rid}", json={"priority": "high"})
        assert res_put.status_code == 200
        updated = res_put.json()
        assert updated["priority"] == "high"
        assert updated["description"] == "Transfer"
        assert client.get(f"/api/reminders/{rid}").json() == updated

        assert client.delete(f"/api/reminders/{rid}").status_code == 204
        res_404 = client.get(f"/api/reminders/{rid}")
        assert res_404.status_code == 404
        assert res_404.json()["detail"] == "Reminder not found"

    def test_update_not_found(self, client):
        res = client.put("/api/reminders/31337", json={"isCompleted": True})
        assert res.status_code == 404
        assert res.json()["kind"] == "reminder"
        assert res.json()["id"] == 31337


class TestPendingAndCheck:
    def test_pending_lists_only_due_unnotified(self, client):
        due = _post(client, title="due", minutes=-1)
        _post(client, title="future", minutes=30)
        _post(client, title="sent", minutes=-5, notificationSent=True)
        _post(client, title="completed", minutes=-5, isCompleted=True)

        res = client.get("/api/reminders/pending")
        assert res.status_code == 200
        assert [r["id"] for r in res.json()] == [due["id"]]

    def test_check_notifies_and_queues_for_browser(self, client):
        assert client.put("/api/notifications/permission", json={"permission": "granted"}).status_code == 200
        reminder = _post(client, title="Pay rent", minutes=-5, priority="high")

        res = client.post("/api/reminders/check")
        assert res.status_code == 200
        report = res.json()
        assert report["checked"] == 1
        assert report["notified"] == [reminder["id"]]
        assert report["suppressed"] == []
        assert report["failures"] == []

        queued = client.get("/api/notifications").json()
        assert len(queued) == 1
        assert queued[0]["title"] == "Pay rent"
        assert queued[0]["body"] == "Reminder is due!"
        assert queued[0]["tag"] == f"reminder-{reminder['id']}"
        assert client.get("/api/notifications").json() == []

        assert client.get(f"/api/reminders/{reminder['id']}").json()["notificationSent"] is True
        assert client.post("/api/reminders/check").json()["checked"] == 0

    def test_check_without_permission_marks_but_queues_nothing(self, client):
        assert client.get("/api/notifications/permission").json() == {"permission": "default"}
        reminder = _post(client, minutes=-5)

        report = client.post("/api/reminders/check").json()
        assert report["notified"] == [reminder["id"]]
        assert client.get("/api/notifications").json() == []
        assert client.get(f"/api/reminders/{reminder['id']}").json()["notificationSent"] is True

    def test_disabled_notifications_suppress_delivery(self, client):
        client.put("/api/notifications/permission", json={"permission": "granted"})
        client.put("/api/settings", json={"notificationsEnabled": False})
        reminder = _post(client, minutes=-5)

        report = client.post("/api/reminders/check").json()
        assert report["suppressed"] == [reminder["id"]]
        assert report["notified"] == []
        assert client.get("/api/notifications").json() == []
        assert client.get(f"/api/reminders/{reminder['id']}").json()["notificationSent"] is True

    def test_completing_does_not_clear_notification_sent(self, client):
        reminder = _post(client, minutes=-5)
        client.post("/api/reminders/check")
        rid = reminder["id"]

        done = client.put(f"/api/reminders/{rid}", json={"isCompleted": True}).json()
        assert done["notificationSent"] is True
        restored = client.put(f"/api/reminders/{rid}", json={"isCompleted": False}).json()
        assert restored["notificationSent"] is True
        moved = client.put(f"/api/reminders/{rid}", json={"scheduledDate": iso_minutes_from_now(-1)}).json()
        assert moved["notificationSent"] is True
        assert client.get("/api/reminders/pending").json() == []

    def test_invalid_permission_rejected(self, client):
        res = client.put("/api/notifications/permission", json={"permission": "maybe"})
        assert res.status_code == 422


class TestReminderLoop:
    def test_lifespan_runs_periodic_check(self):
        config = make_config(reminder_check_enabled=True, reminder_check_interval_seconds=0.05)
        app = create_app(config=config, store=create_memory_store())

        with TestClient(app) as client:
            client.put("/api/notifications/permission", json={"permission": "granted"})
            reminder = _post(client, title="Loop", minutes=-1)

            deadline = time.monotonic() + 5
            sent = False
            while time.monotonic() < deadline:
                if client.get(f"/api/reminders/{reminder['id']}").json()["notificationSent"]:
                    sent = True
                    break
                time.sleep(0.05)

            assert sent
            assert [n["tag"] for n in client.get("/api/notifications").json()] == [f"reminder-{reminder['id']}"]

        # Shutdown cancelled the loop
        assert getattr(app.state, "_daybook_periodic_tasks") == []


class TestPeriodicRunner:
    def test_failing_run_does_not_stop_the_loop(self):
        app = create_app(config=make_config(), store=create_memory_store())
        runs = []

        async def flaky():
            runs.append(len(runs))
            if len(runs) == 1:
                raise RuntimeError("first run fails")

        async def scenario():
            task = start_periodic_task(app, name="flaky-check", interval_seconds=0.01, func=flaky)
            for _ in range(200):
                if len(runs) >= 3:
                    break
                await asyncio.sleep(0.01)
            assert task.get_name() == "flaky-check"
            await stop_periodic_tasks(app)
            assert task.cancelled()

        asyncio.run(scenario())
        assert len(runs) >= 3
        assert getattr(app.state, "_daybook_periodic_tasks") == []
