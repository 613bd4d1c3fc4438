"""
Notification Service

Delivers "meal plan ready" messages to the user. Delivery is gated on the
notifications_granted setting and failures are logged, never raised.
"""

import logging

import requests

logger = logging.getLogger(__name__)

MEAL_PLAN_READY_TITLE = 'Meal plan ready'
BACKGROUND_PLAN_TITLE = 'Meal plan generated'


class Notifier:
    """Interface for notification delivery."""

    def notify(self, title, body):
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Writes notifications to the log; used when no webhook is configured."""

    def notify(self, title, body):
        logger.info("Notification: %s - %s", title, body)
        return True


class WebhookNotifier(Notifier):
    """Posts notifications as JSON to an HTTP endpoint."""

    def __init__(self, url, timeout=10):
        self.url = url
        self.timeout = timeout

    def notify(self, title, body):
        try:
            response = requests.post(
                self.url, json={'title': title, 'body': body}, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Notification delivery failed: %s", e)
            return False
        return True


def build_notifier(config):
    url = config.get('NOTIFY_WEBHOOK_URL')
    if url:
        return WebhookNotifier(url, timeout=config.get('NOTIFY_TIMEOUT', 10))
    return LoggingNotifier()


def meal_plan_ready_body(dish_count, added_count):
    if added_count > 0:
        return (f"Generated recipes for {dish_count} dishes and added "
                f"{added_count} items to the shopping list.")
    return (f"Generated recipes for {dish_count} dishes. "
            "Nothing needed to be added to the shopping list.")


def send_meal_plan_ready(notifier, settings, dish_count, added_count):
    """
    Tell the user the batch is done.

    Returns:
        True if the notification was delivered
    """
    if not settings.notifications_granted:
        logger.info("Notifications not granted, skipping meal plan ready message")
        return False
    return notifier.notify(MEAL_PLAN_READY_TITLE, meal_plan_ready_body(dish_count, added_count))


def send_background_plan_notification(notifier, settings, mode):
    """Tell the user a scheduled run created the plan."""
    if not settings.notifications_granted:
        return False
    if mode == 'evening':
        body = "Tonight's dinner and tomorrow's breakfast and lunch are planned."
    else:
        body = "Today's breakfast, lunch and dinner are planned."
    return notifier.notify(BACKGROUND_PLAN_TITLE, body)
