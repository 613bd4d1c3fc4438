"""
Tests for notification delivery.
"""

import requests

from services.notifications import (
    LoggingNotifier, WebhookNotifier, build_notifier, meal_plan_ready_body,
    send_background_plan_notification, send_meal_plan_ready,
)
from services.settings import AppSettings

from conftest import RecordingNotifier


class FakeResponse:
    def __init__(self, status=200):
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f'{self.status} error')


def test_build_notifier():
    assert isinstance(build_notifier({'NOTIFY_WEBHOOK_URL': ''}), LoggingNotifier)
    notifier = build_notifier({'NOTIFY_WEBHOOK_URL': 'https://hooks.example.com/x', 'NOTIFY_TIMEOUT': 3})
    assert isinstance(notifier, WebhookNotifier)
    assert notifier.timeout == 3


def test_webhook_posts_json(monkeypatch):
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append((url, json, timeout))
        return FakeResponse()

    monkeypatch.setattr(requests, 'post', fake_post)
    assert WebhookNotifier('https://hooks.example.com/x', timeout=2).notify('Title', 'Body') is True
    assert calls == [('https://hooks.example.com/x', {'title': 'Title', 'body': 'Body'}, 2)]


def test_webhook_failure_returns_false(monkeypatch):
    def failing_post(url, json=None, timeout=None):
        raise requests.ConnectionError('refused')

    monkeypatch.setattr(requests, 'post', failing_post)
    assert WebhookNotifier('https://hooks.example.com/x').notify('Title', 'Body') is False

    monkeypatch.setattr(requests, 'post', lambda url, json=None, timeout=None: FakeResponse(500))
    assert WebhookNotifier('https://hooks.example.com/x').notify('Title', 'Body') is False


def test_ready_message_requires_permission():
    notifier = RecordingNotifier()
    assert send_meal_plan_ready(notifier, AppSettings(), 5, 3) is False
    assert notifier.messages == []

    assert send_meal_plan_ready(notifier, AppSettings(notifications_granted=True), 5, 3) is True
    assert notifier.messages == [('Meal plan ready', meal_plan_ready_body(5, 3))]


def test_ready_body_mentions_added_items():
    assert '3 items' in meal_plan_ready_body(5, 3)
    assert 'Nothing needed' in meal_plan_ready_body(5, 0)


def test_background_notification_names_window():
    notifier = RecordingNotifier()
    settings = AppSettings(notifications_granted=True)
    send_background_plan_notification(notifier, settings, 'evening')
    send_background_plan_notification(notifier, settings, 'morning')
    assert "Tonight's dinner" in notifier.messages[0][1]
    assert "Today's breakfast" in notifier.messages[1][1]
