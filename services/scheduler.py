"""
Scheduled Plan Generation

Fires plan generation at the configured mode's hour when the app is not
in the foreground. Each run re-registers the next trigger first, skips
when the window is already planned, and stops cleanly if the host
expires the task before generation finishes.
"""

import logging
import threading
from datetime import datetime, timedelta

from constants import GENERATION_MODES
from .errors import GenerationError, PersistenceFailure
from .notifications import send_background_plan_notification
from .orchestrator import needs_generation
from .settings import load_settings

logger = logging.getLogger(__name__)


def next_scheduled_time(mode, now):
    """Next occurrence of the mode's hour strictly after now."""
    hour = GENERATION_MODES[mode]
    candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class TriggerTask:
    """
    One scheduled run as seen by the host.

    expire() is called by the host when its time budget runs out.
    set_completed() reports the result exactly once; later calls are ignored.
    """

    def __init__(self, scheduled_for=None):
        self.scheduled_for = scheduled_for
        self.cancelled = threading.Event()
        self.completed = threading.Event()
        self.success = None
        self._lock = threading.Lock()

    def expire(self):
        self.cancelled.set()

    def set_completed(self, success):
        with self._lock:
            if self.completed.is_set():
                return False
            self.success = success
            self.completed.set()
            return True


class ScheduledTriggerAdapter:
    """
    Glue between a host scheduler and the orchestrator.

    Args:
        app: Flask app for the app context of the background run
        orchestrator: MealPlanOrchestrator
        submit: callable(run_at) registering the next trigger with the host
        clock: callable returning the current local datetime
    """

    def __init__(self, app, orchestrator, submit, clock=datetime.now, poll_interval=0.5):
        self.app = app
        self.orchestrator = orchestrator
        self.submit = submit
        self.clock = clock
        self.poll_interval = poll_interval

    def schedule_next(self, mode=None):
        with self.app.app_context():
            mode = mode or load_settings().generation_mode
        run_at = next_scheduled_time(mode, self.clock())
        logger.info("Next %s plan generation scheduled for %s", mode, run_at)
        self.submit(run_at)
        return run_at

    def handle(self, task):
        """
        Execute one trigger.

        Returns:
            True if the run succeeded (including "nothing to do")
        """
        # Registered before the work so a crash cannot break the chain
        self.schedule_next()

        result = {}
        worker = threading.Thread(
            target=self._run_into, args=(task, result), name='scheduled-generation', daemon=True
        )
        worker.start()
        while worker.is_alive():
            if task.cancelled.is_set():
                logger.warning("Scheduled generation expired before finishing")
                task.set_completed(False)
                return False
            worker.join(self.poll_interval)

        success = result.get('success', False)
        task.set_completed(success)
        return success

    def _run_into(self, task, result):
        try:
            result['success'] = self._run(task)
        except Exception:
            logger.exception("Scheduled generation crashed")
            result['success'] = False

    def _run(self, task):
        with self.app.app_context():
            settings = load_settings()
            mode = settings.generation_mode
            if not needs_generation(mode, self.clock()):
                logger.info("Plans for the %s window already exist, skipping", mode)
                return True
            try:
                self.orchestrator.generate_plan(mode=mode, should_abort=task.cancelled.is_set)
            except (GenerationError, PersistenceFailure) as e:
                logger.error("Scheduled generation failed: %s", e.message)
                return False
            send_background_plan_notification(self.orchestrator.notifier, settings, mode)
            return True


class LocalScheduler:
    """
    Minimal in-process host: sleeps until the next trigger and runs it.

    The host expires a run after `expiration` seconds.
    """

    def __init__(self, app, orchestrator, expiration=600, clock=datetime.now):
        self.expiration = expiration
        self.clock = clock
        self._next_run = None
        self.adapter = ScheduledTriggerAdapter(app, orchestrator, self._register, clock=clock)

    def _register(self, run_at):
        self._next_run = run_at

    def run_forever(self, stop_event=None):
        stop_event = stop_event or threading.Event()
        if self._next_run is None:
            self.adapter.schedule_next()
        while not stop_event.is_set():
            wait = (self._next_run - self.clock()).total_seconds()
            if wait > 0 and stop_event.wait(wait):
                break
            task = TriggerTask(scheduled_for=self._next_run)
            timer = threading.Timer(self.expiration, task.expire)
            timer.daemon = True
            timer.start()
            try:
                self.adapter.handle(task)
            finally:
                timer.cancel()
