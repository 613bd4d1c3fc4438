"""
Tests for the scheduled trigger adapter.
"""

import threading
from datetime import datetime

import pytest

from models import db, MealPlan
from services.errors import ModelUnavailable
from services.scheduler import (
    LocalScheduler, ScheduledTriggerAdapter, TriggerTask, next_scheduled_time
)
from services.settings import update_settings

from conftest import NOW


def scheduled_threads_alive():
    return any(t.name == 'scheduled-generation' and t.is_alive() for t in threading.enumerate())


@pytest.fixture
def submitted():
    return []


@pytest.fixture
def adapter(app, planner, submitted):
    return ScheduledTriggerAdapter(app, planner, submitted.append, clock=lambda: NOW, poll_interval=0.01)


class TestNextScheduledTime:

    def test_later_today(self):
        assert next_scheduled_time('evening', NOW) == datetime(2026, 10, 19, 17)

    def test_tomorrow_when_hour_passed(self):
        assert next_scheduled_time('morning', NOW) == datetime(2026, 10, 20, 5)

    def test_exactly_at_hour_moves_to_next_day(self):
        assert next_scheduled_time('morning', datetime(2026, 10, 19, 5)) == datetime(2026, 10, 20, 5)


class TestTriggerTask:

    def test_first_completion_wins(self):
        task = TriggerTask()
        assert task.set_completed(False) is True
        assert task.set_completed(True) is False
        assert task.success is False


class TestAdapter:

    def test_generates_and_reregisters_first(self, ctx, adapter, planner, fake_client, notifier, submitted):
        update_settings(notifications_granted=True)
        fake_client.add_menu('パン', 'うどん', 'カレー')
        task = TriggerTask()

        assert adapter.handle(task) is True
        assert task.success is True
        assert submitted == [datetime(2026, 10, 20, 5)]
        assert planner.wait_until_idle()
        assert MealPlan.query.count() == 3
        titles = [title for title, _ in notifier.messages]
        assert 'Meal plan generated' in titles

    def test_skips_when_window_is_planned(self, ctx, adapter, fake_client, submitted):
        db.session.add(MealPlan(date=datetime(2026, 10, 19, 12), meal_slot='lunch', menu_text='そば'))
        db.session.commit()
        task = TriggerTask()

        assert adapter.handle(task) is True
        assert fake_client.recipe_calls == []
        assert len(submitted) == 1

    def test_generation_failure_reports_failure(self, ctx, adapter, fake_client, submitted):
        fake_client.menus.append(ModelUnavailable())
        task = TriggerTask()

        assert adapter.handle(task) is False
        assert task.success is False
        assert len(submitted) == 1

    def test_expiration_aborts_without_writes(self, ctx, adapter, fake_client, submitted, wait_for):
        fake_client.menu_gate = threading.Event()
        fake_client.add_menu('パン', 'うどん', 'カレー')
        task = TriggerTask()
        timer = threading.Timer(0.1, task.expire)
        timer.start()

        assert adapter.handle(task) is False
        assert task.success is False
        assert len(submitted) == 1

        fake_client.menu_gate.set()
        assert wait_for(lambda: not scheduled_threads_alive())
        assert MealPlan.query.count() == 0

    def test_uses_configured_mode(self, ctx, adapter, submitted):
        update_settings(generation_mode='evening')
        adapter.schedule_next()
        assert submitted == [datetime(2026, 10, 19, 17)]


def test_local_scheduler_runs_due_trigger(app, planner, fake_client):
    clock_values = iter([datetime(2026, 10, 19, 4, 59, 59, 990000)])

    def clock():
        return next(clock_values, NOW)

    fake_client.add_menu('パン', 'うどん', 'カレー')
    scheduler = LocalScheduler(app, planner, expiration=5, clock=clock)
    stop = threading.Event()
    original = scheduler.adapter.handle

    def handle_once(task):
        result = original(task)
        stop.set()
        return result

    scheduler.adapter.handle = handle_once
    scheduler.run_forever(stop)

    assert planner.wait_until_idle()
    with app.app_context():
        assert MealPlan.query.count() == 3
