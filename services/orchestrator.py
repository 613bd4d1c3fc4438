"""
Meal Plan Orchestrator

Owns the generation state and the coordination thread. Creates plans for
a time window, launches one recipe unit per dish, and runs shopping
fulfillment when the settlement detector hands over a settled batch.

Threads:
- caller (request / CLI / scheduler): generate_plan and the plan edits
- recipe pool: generation units, network only
- coordination thread: records unit outcomes, detects settlement, fulfills

All database writes happen while holding state.lock.
"""

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, time as dtime
from typing import List

from flask import has_app_context
from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError

from constants import GENERATION_MODES, MEAL_SLOTS, SLOT_HOURS
from models import db, MealPlan, MealHistory, Recipe, ShoppingEntry
from .errors import (
    GenerationError, GenerationTimeout, ModelUnavailable, PersistenceFailure, FulfillmentError
)
from .fulfillment import ShoppingFulfillmentEngine, clear_auto_added
from .inventory import inventory_snapshot, history_snapshot
from .notifications import send_meal_plan_ready
from .parsing import dishes_for_plans, split_menu
from .settings import load_settings
from .settlement import BatchSettlementDetector
from .tracker import GenerationState, RecipeGenerationTracker, UnitOutcome

logger = logging.getLogger(__name__)

_EVALUATE = 'evaluate'
_STOP = 'stop'


@dataclass
class PlanSet:
    """Result of one plan generation."""
    mode: str
    plans: List[MealPlan]
    reason: str = ''
    dishes: List[str] = field(default_factory=list)


def _day_start(now):
    return datetime.combine(now.date(), dtime())


def window_slots(mode, now):
    """(meal_slot, datetime) triad the mode plans for."""
    today = _day_start(now)
    tomorrow = today + timedelta(days=1)
    if mode == 'evening':
        return [
            ('dinner', today + timedelta(hours=SLOT_HOURS['dinner'])),
            ('breakfast', tomorrow + timedelta(hours=SLOT_HOURS['breakfast'])),
            ('lunch', tomorrow + timedelta(hours=SLOT_HOURS['lunch'])),
        ]
    return [(slot, today + timedelta(hours=SLOT_HOURS[slot])) for slot in MEAL_SLOTS]


def plans_in_window(mode, now):
    """Existing plans inside the mode's window, in time order."""
    today = _day_start(now)
    tomorrow = today + timedelta(days=1)
    if mode == 'evening':
        day_after = today + timedelta(days=2)
        condition = or_(
            and_(MealPlan.date >= today, MealPlan.date < tomorrow, MealPlan.meal_slot == 'dinner'),
            and_(MealPlan.date >= tomorrow, MealPlan.date < day_after,
                 MealPlan.meal_slot.in_(('breakfast', 'lunch'))),
        )
    else:
        condition = and_(MealPlan.date >= today, MealPlan.date < tomorrow)
    return MealPlan.query.filter(condition).order_by(MealPlan.date).all()


def needs_generation(mode, now):
    """
    True when the mode's scheduled hour has passed and its window is not planned.

    evening counts as planned only with tonight's dinner and both of
    tomorrow's breakfast and lunch.
    """
    if now.hour < GENERATION_MODES[mode]:
        return False
    plans = plans_in_window(mode, now)
    if mode == 'evening':
        dinner = [p for p in plans if p.meal_slot == 'dinner']
        morning = [p for p in plans if p.meal_slot != 'dinner']
        return not dinner or len(morning) < 2
    return not plans


class MealPlanOrchestrator:
    """
    Coordinates plan generation, recipe units, settlement and fulfillment.

    Args:
        app: Flask app, used to push app contexts on the coordination thread
        client: ContentGenerationClient
        notifier: Notifier for "meal plan ready" messages
        clock: callable returning the current local datetime
    """

    def __init__(self, app, client, notifier, workers=4, unit_deadline=180,
                 sweep_interval=5, merge_ingredients=False, clock=datetime.now, state=None):
        self.app = app
        self.client = client
        self.notifier = notifier
        self.clock = clock
        self.sweep_interval = sweep_interval
        self.state = state or GenerationState()
        self.events = queue.Queue()
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix='recipe')
        self.tracker = RecipeGenerationTracker(
            self.state, client, self.executor, self.events,
            servings=self._servings, deadline=unit_deadline,
        )
        self.detector = BatchSettlementDetector(self.state, self.tracker, handoff=self._fulfill_batch)
        self.engine = ShoppingFulfillmentEngine(client, lock=self.state.lock, merge=merge_ingredients)
        self._thread = None
        self._last_sweep = time.monotonic()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(
                target=self._coordinate, name='planner-coordination', daemon=True
            )
            self._thread.start()
        return self

    def shutdown(self, wait=True):
        if self._thread is not None and self._thread.is_alive():
            self.events.put(_STOP)
            if wait:
                self._thread.join()
        self.executor.shutdown(wait=wait)

    def wait_until_idle(self, timeout=10):
        """Block until no unit is in flight and the coordination queue is drained."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self.state.lock:
                busy = bool(self.state.in_flight) or self.state.fulfilling
            if not busy and self.events.unfinished_tasks == 0:
                return True
            time.sleep(0.01)
        return False

    def _servings(self):
        if has_app_context():
            return load_settings().servings_count
        with self.app.app_context():
            return load_settings().servings_count

    # ------------------------------------------------------------------
    # Coordination thread
    # ------------------------------------------------------------------

    def _coordinate(self):
        while True:
            try:
                event = self.events.get(timeout=self.sweep_interval)
            except queue.Empty:
                self._sweep()
                continue
            try:
                if event == _STOP:
                    return
                with self.app.app_context():
                    self._dispatch(event)
            except Exception:
                logger.exception("Coordination event failed: %r", event)
            finally:
                self.events.task_done()
            if time.monotonic() - self._last_sweep > self.sweep_interval:
                self._sweep()

    def _dispatch(self, event):
        if isinstance(event, UnitOutcome):
            self.tracker.finish_dish(event.dish, event.outcome, event.token)
        elif event == _EVALUATE:
            batch = self.detector.evaluate()
            if batch is not None:
                self._fulfill_batch(batch)

    def _sweep(self):
        self._last_sweep = time.monotonic()
        try:
            with self.app.app_context():
                expired = self.tracker.expire_abandoned()
            if expired:
                logger.warning("Forced timeout for abandoned recipe units: %s", expired)
        except Exception:
            logger.exception("Abandoned unit sweep failed")

    def _fulfill_batch(self, batch):
        """Run shopping fulfillment for a captured batch, then notify."""
        try:
            settings = load_settings()
            dish_count = len(batch.dishes)
            if not settings.auto_fill_enabled:
                logger.info("Shopping auto-fill disabled, skipping fulfillment")
                added = 0
            else:
                plans = MealPlan.query.filter(MealPlan.id.in_(batch.plan_ids)).all() \
                    if batch.plan_ids else []
                resolved = self._resolve_recipes(batch.dishes, plans)
                try:
                    added = self.engine.fulfill(
                        batch.dishes, resolved, inventory_snapshot(), ShoppingEntry.query.all(),
                        meal_plans=plans, is_current=lambda: self._is_current(batch.cycle),
                    )
                except FulfillmentError as e:
                    logger.error("Shopping fulfillment failed: %s", e.message)
                    return
            if added is None or not self._is_current(batch.cycle):
                logger.info("Batch was superseded, skipping the ready notification")
                return
            send_meal_plan_ready(self.notifier, settings, dish_count, added)
        finally:
            with self.state.lock:
                self.state.fulfilling = False
            # A newer batch may have settled while this fill was running
            self.events.put(_EVALUATE)

    def _is_current(self, cycle):
        with self.state.lock:
            return self.state.cycle == cycle

    @staticmethod
    def _resolve_recipes(dishes, plans):
        """Saved recipe per dish, read fresh rather than from loaded plan collections."""
        plan_ids = [plan.id for plan in plans]
        if not dishes or not plan_ids:
            return {}
        recipes = (Recipe.query
                   .filter(Recipe.meal_plan_id.in_(plan_ids), Recipe.dish_name.in_(list(dishes)))
                   .order_by(Recipe.id)
                   .all())
        resolved = {}
        for recipe in recipes:
            resolved.setdefault(recipe.dish_name, recipe)
        return resolved

    # ------------------------------------------------------------------
    # Plan generation
    # ------------------------------------------------------------------

    def generate_plan(self, mode=None, inventory=None, history=None, should_abort=None):
        """
        Generate and save the plans of a window, then start recipe generation.

        Existing plans in the window are replaced only after the menu was
        generated, so a failed generation leaves them untouched.

        Returns:
            PlanSet with the three new plans

        Raises:
            GenerationError: the menu could not be generated (nothing written)
            PersistenceFailure: saving failed (nothing written)
        """
        settings = load_settings()
        mode = mode or settings.generation_mode
        if mode not in GENERATION_MODES:
            raise ValueError(f'Unknown generation mode: {mode}')

        now = self.clock()
        if inventory is None:
            inventory = inventory_snapshot()
        if history is None:
            history = history_snapshot()

        logger.info("Generating %s meal plan", mode)
        try:
            menu = self.client.generate_daily_menu(mode, inventory, history, now.date())
        except GenerationError:
            raise
        except Exception as e:
            logger.exception("Unexpected failure generating the %s meal plan", mode)
            raise ModelUnavailable(str(e))

        if should_abort is not None and should_abort():
            raise GenerationTimeout('Generation was cancelled before the plan was saved.')

        with self.state.lock:
            try:
                for plan in plans_in_window(mode, now):
                    db.session.delete(plan)
                plans = [
                    MealPlan(date=at, meal_slot=slot, menu_text=menu.menu_for(slot), status='planned')
                    for slot, at in window_slots(mode, now)
                ]
                db.session.add_all(plans)
                if settings.auto_fill_enabled:
                    clear_auto_added(ShoppingEntry.query.all(), commit=False)
                db.session.commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error("Saving meal plan failed: %s", e)
                raise PersistenceFailure('Saving the meal plan failed.')

            dishes = dishes_for_plans(plans)
            self.state.install_batch(dishes, [plan.id for plan in plans])
            logger.info("Installed batch of %d dishes", len(dishes))
            for plan in plans:
                for dish in plan.dishes:
                    self.tracker.start_dish(dish, plan)

        # Covers batches whose dishes need no new unit
        self.events.put(_EVALUATE)
        return PlanSet(mode=mode, plans=plans, reason=menu.reason, dishes=dishes)

    def window_plans(self, mode=None):
        mode = mode or load_settings().generation_mode
        return plans_in_window(mode, self.clock())

    def needs_generation(self, mode=None):
        mode = mode or load_settings().generation_mode
        return needs_generation(mode, self.clock())

    # ------------------------------------------------------------------
    # Single plan operations
    # ------------------------------------------------------------------

    def request_recipe(self, plan, dish):
        """Start recipe generation for one dish of a plan (detail view path)."""
        if dish not in plan.dishes:
            raise ValueError(f'{dish} is not on this plan')
        return self.tracker.start_dish(dish, plan)

    def recipe_status(self, plan, dish):
        if plan.recipe_for(dish) is not None:
            return 'ready'
        if self.tracker.is_in_flight(dish):
            return 'generating'
        if self.tracker.error_for(dish) is not None:
            return 'error'
        return 'missing'

    def complete_plan(self, plan):
        """Mark a plan as eaten and record it in the meal history."""
        with self.state.lock:
            plan.status = 'completed'
            db.session.add(MealHistory(date=plan.date, menu_text=plan.menu_text, meal_slot=plan.meal_slot))
            db.session.commit()

    def rename_plan(self, plan, menu_text):
        """
        Replace a plan's menu and generate recipes for its dishes.

        Returns:
            False when the new text is empty or unchanged
        """
        dishes = split_menu(menu_text or '')
        trimmed = (menu_text or '').strip()
        if not dishes or trimmed == plan.menu_text:
            return False
        with self.state.lock:
            plan.menu_text = trimmed
            if plan.status != 'completed':
                plan.status = 'changed'
            db.session.commit()
            for dish in plan.dishes:
                self.tracker.start_dish(dish, plan)
        return True

    def delete_plan(self, plan):
        with self.state.lock:
            db.session.delete(plan)
            db.session.commit()

    # ------------------------------------------------------------------
    # Manual shopping fill
    # ------------------------------------------------------------------

    def fill_shopping_list(self, mode=None, merge=None):
        """
        Re-run fulfillment for the current window's saved recipes.

        Previously auto-added entries are replaced in the same transaction,
        so running this again does not accumulate duplicates. A window
        without saved recipes just removes them.

        Raises:
            FulfillmentError: consolidation or saving failed, a fill is already
                running, or the plan was regenerated while this fill ran
        """
        mode = mode or load_settings().generation_mode
        with self.state.lock:
            if self.state.fulfilling:
                raise FulfillmentError(RuntimeError('A shopping list fill is already running.'))
            self.state.fulfilling = True
            cycle = self.state.cycle
        try:
            plans = plans_in_window(mode, self.clock())
            dishes = set(dishes_for_plans(plans))
            entries = ShoppingEntry.query.all()
            auto_added = [e for e in entries if e.source_label is not None]
            manual = [e for e in entries if e.source_label is None]
            added = self.engine.fulfill(
                dishes, self._resolve_recipes(dishes, plans), inventory_snapshot(), manual,
                meal_plans=plans, merge=merge, replacing=auto_added,
                is_current=lambda: self._is_current(cycle),
            )
            if added is None:
                raise FulfillmentError(RuntimeError('The meal plan was regenerated during the fill.'))
            return added
        finally:
            with self.state.lock:
                self.state.fulfilling = False
            self.events.put(_EVALUATE)
