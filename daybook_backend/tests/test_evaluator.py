import asyncio
from datetime import timedelta

from conftest import RecordingPort

from src.api.errors import StorageUnavailableError
from src.api.evaluator import ReminderEvaluator
from src.api.notifications import OutboxNotificationPort
from src.api.repositories import EntityStore
from src.api.schemas import ReminderCreate, ReminderUpdate, SettingsUpdate


def _create(store, clock, title, minutes, **extra):
    return store.reminders.create(
        ReminderCreate(title=title, scheduled_date=clock() + timedelta(minutes=minutes), **extra)
    )


class _FlakyReminders:
    """Delegates to a real reminder repository but fails updates for chosen ids."""

    def __init__(self, inner, failing_ids):
        self._inner = inner
        self.failing_ids = set(failing_ids)

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def update(self, entity_id, data):
        if entity_id in self.failing_ids:
            raise StorageUnavailableError("database is locked")
        return self._inner.update(entity_id, data)


class TestReminderEvaluator:
    def test_due_reminder_is_notified_and_marked(self, store, clock):
        port = RecordingPort()
        evaluator = ReminderEvaluator(store, port, clock=clock)
        reminder = _create(store, clock, "Pay rent", -5, priority="high")

        report = asyncio.run(evaluator.run_tick())

        assert port.calls == [("Pay rent", "Reminder is due!", f"reminder-{reminder['id']}")]
        assert report.checked == 1
        assert report.notified == [reminder["id"]]
        assert report.failures == []
        assert store.reminders.get(reminder["id"])["notification_sent"] is True

    def test_description_is_used_as_body(self, store, clock):
        port = RecordingPort()
        reminder = _create(store, clock, "Standup", -1, description="Room 4")
        asyncio.run(ReminderEvaluator(store, port, clock=clock).run_tick())
        assert port.calls == [("Standup", "Room 4", f"reminder-{reminder['id']}")]

    def test_second_tick_does_not_refire(self, store, clock):
        port = RecordingPort()
        evaluator = ReminderEvaluator(store, port, clock=clock)
        _create(store, clock, "Once", -1)

        async def two_ticks():
            await evaluator.run_tick()
            return await evaluator.run_tick()

        second = asyncio.run(two_ticks())
        assert len(port.calls) == 1
        assert second.checked == 0

    def test_future_completed_and_notified_reminders_are_skipped(self, store, clock):
        port = RecordingPort()
        _create(store, clock, "Later", 30)
        _create(store, clock, "Done", -10, is_completed=True)
        _create(store, clock, "Already", -10, notification_sent=True)

        report = asyncio.run(ReminderEvaluator(store, port, clock=clock).run_tick())
        assert port.calls == []
        assert report.checked == 0

    def test_reminder_fires_once_its_time_comes(self, store, clock):
        port = RecordingPort()
        evaluator = ReminderEvaluator(store, port, clock=clock)
        _create(store, clock, "Soon", 2)

        async def scenario():
            await evaluator.run_tick()
            clock.advance(minutes=3)
            await evaluator.run_tick()

        asyncio.run(scenario())
        assert [c[0] for c in port.calls] == ["Soon"]

    def test_disabled_notifications_consume_due_reminders(self, store, clock):
        port = RecordingPort()
        store.settings.update(SettingsUpdate(notifications_enabled=False))
        reminder = _create(store, clock, "Quiet", -1)

        report = asyncio.run(ReminderEvaluator(store, port, clock=clock).run_tick())

        assert port.calls == []
        assert report.suppressed == [reminder["id"]]
        assert store.reminders.get(reminder["id"])["notification_sent"] is True

        # Re-enabling does not replay the backlog
        store.settings.update(SettingsUpdate(notifications_enabled=True))
        asyncio.run(ReminderEvaluator(store, port, clock=clock).run_tick())
        assert port.calls == []

    def test_notification_failure_does_not_stop_the_batch(self, store, clock):
        port = RecordingPort(fail_on_titles={"Broken"})
        broken = _create(store, clock, "Broken", -3)
        fine = _create(store, clock, "Fine", -2)

        report = asyncio.run(ReminderEvaluator(store, port, clock=clock).run_tick())

        assert port.calls == [("Fine", "Reminder is due!", f"reminder-{fine['id']}")]
        assert [(f.reminder_id, f.error) for f in report.failures] == [(broken["id"], "RuntimeError")]
        assert report.notified == [fine["id"]]
        # The failed one stays due and is retried next tick
        assert store.reminders.get(broken["id"])["notification_sent"] is False

    def test_failed_mark_refires_on_next_tick(self, store, clock):
        port = RecordingPort()
        first = _create(store, clock, "First", -3)
        second = _create(store, clock, "Second", -2)
        flaky = _FlakyReminders(store.reminders, failing_ids={first["id"]})
        wrapped = EntityStore(
            notes=store.notes, expenses=store.expenses, reminders=flaky, settings=store.settings
        )
        evaluator = ReminderEvaluator(wrapped, port, clock=clock)

        async def scenario():
            report = await evaluator.run_tick()
            flaky.failing_ids.clear()
            await evaluator.run_tick()
            return report

        report = asyncio.run(scenario())
        assert [f.reminder_id for f in report.failures] == [first["id"]]
        assert report.failures[0].error == "StorageUnavailableError"
        assert report.notified == [second["id"]]
        # at-least-once: the first reminder was shown again once marking succeeded
        assert [c[0] for c in port.calls] == ["First", "Second", "First"]
        assert store.reminders.get(first["id"])["notification_sent"] is True

    def test_reminder_deleted_mid_tick_is_reported(self, store, clock):
        port = RecordingPort()
        gone = _create(store, clock, "Gone", -1)

        class _DeletingPort(RecordingPort):
            def show(self, title, body, tag):
                super().show(title, body, tag)
                store.reminders.delete(gone["id"])

        report = asyncio.run(ReminderEvaluator(store, _DeletingPort(), clock=clock).run_tick())
        assert [(f.reminder_id, f.error) for f in report.failures] == [(gone["id"], "NotFoundError")]

    def test_restored_or_rescheduled_reminder_stays_notified(self, store, clock):
        port = RecordingPort()
        evaluator = ReminderEvaluator(store, port, clock=clock)
        reminder = _create(store, clock, "Sticky", -1)

        async def scenario():
            await evaluator.run_tick()
            store.reminders.update(reminder["id"], ReminderUpdate(is_completed=True))
            store.reminders.update(reminder["id"], ReminderUpdate(is_completed=False))
            store.reminders.update(
                reminder["id"], ReminderUpdate(scheduled_date=clock() + timedelta(minutes=5))
            )
            clock.advance(minutes=10)
            await evaluator.run_tick()

        asyncio.run(scenario())
        assert len(port.calls) == 1
        assert store.reminders.get(reminder["id"])["notification_sent"] is True

    def test_explicit_reset_rearms_notification(self, store, clock):
        port = RecordingPort()
        evaluator = ReminderEvaluator(store, port, clock=clock)
        reminder = _create(store, clock, "Again", -1)

        async def scenario():
            await evaluator.run_tick()
            store.reminders.update(reminder["id"], ReminderUpdate(notification_sent=False))
            await evaluator.run_tick()

        asyncio.run(scenario())
        assert len(port.calls) == 2


class TestOutboxNotificationPort:
    def test_show_is_noop_until_permission_granted(self):
        port = OutboxNotificationPort()
        assert port.permission_state() == "default"
        port.show("t", "b", "reminder-1")
        assert port.drain() == []

        port.set_permission("granted")
        port.show("t", "b", "reminder-1")
        assert [n.tag for n in port.drain()] == ["reminder-1"]
        assert port.drain() == []

    def test_same_tag_collapses(self):
        port = OutboxNotificationPort(permission="granted")
        port.show("first", "b", "reminder-1")
        port.show("other", "b", "reminder-2")
        port.show("second", "b", "reminder-1")
        assert [(n.title, n.tag) for n in port.pending()] == [("other", "reminder-2"), ("second", "reminder-1")]

    def test_outbox_is_bounded(self):
        port = OutboxNotificationPort(maxsize=2, permission="granted")
        for i in range(3):
            port.show(f"n{i}", "b", f"reminder-{i}")
        assert [n.title for n in port.drain()] == ["n1", "n2"]

    def test_request_permission_reports_known_state(self):
        port = OutboxNotificationPort(permission="denied")
        assert asyncio.run(port.request_permission()) == "denied"
