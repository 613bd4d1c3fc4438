"""
Recipe Generation Tracker

Shared generation state plus the only code allowed to mutate it.

Generation units run on a thread pool and never touch the database:
each unit calls the generation client and posts its outcome to the
coordination queue. The coordination thread then calls finish_dish(),
which persists the recipe (or records the error) and removes the dish
from the in-flight set, in that order, under the state lock.
"""

import itertools
import logging
import threading
import time
from collections import namedtuple
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Set

from sqlalchemy.exc import SQLAlchemyError

from models import db, MealPlan, Recipe, RecipeIngredient
from .errors import GenerationError, GenerationTimeout, ModelUnavailable, PersistenceFailure
from .generation import RecipeDraft, describe_error

logger = logging.getLogger(__name__)

# Message posted by a finished unit to the coordination queue
UnitOutcome = namedtuple('UnitOutcome', ['dish', 'token', 'outcome'])

# Message delivered to tracker subscribers after an outcome is recorded
DishSettled = namedtuple('DishSettled', ['dish', 'succeeded'])


@dataclass(frozen=True)
class PendingBatch:
    dishes: FrozenSet[str]
    plan_ids: FrozenSet[int]
    cycle: int = 0


@dataclass
class GenerationState:
    """
    Process-wide generation state owned by one orchestrator.

    in_flight, failed and pending_batch are only changed through
    RecipeGenerationTracker.start_dish/finish_dish and the install/capture
    methods below, always while holding lock.
    """
    in_flight: Set[str] = field(default_factory=set)
    failed: Dict[str, str] = field(default_factory=dict)
    pending_batch: Set[str] = field(default_factory=set)
    batch_plan_ids: Set[int] = field(default_factory=set)
    fulfilling: bool = False
    # Bumped by every install_batch; a fill for an older cycle must not write
    cycle: int = 0
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def install_batch(self, dishes, plan_ids):
        """Replace the pending batch with a new generation cycle's dishes."""
        with self.lock:
            self.pending_batch = set(dishes)
            self.batch_plan_ids = set(plan_ids)
            self.cycle += 1

    def capture_batch(self):
        """
        Take the pending batch and clear it in one critical section.

        Also marks a fulfillment run as active; the caller must reset
        `fulfilling` when the run ends.
        """
        with self.lock:
            batch = PendingBatch(
                frozenset(self.pending_batch), frozenset(self.batch_plan_ids), self.cycle
            )
            self.pending_batch = set()
            self.batch_plan_ids = set()
            self.fulfilling = True
            return batch


class RecipeGenerationTracker:
    """
    Starts one generation unit per dish and records each outcome exactly once.

    Args:
        state: shared GenerationState
        client: ContentGenerationClient used by the units
        executor: pool the units run on
        outbox: queue the units post UnitOutcome messages to
        servings: callable returning the serving count for new units
        deadline: seconds after which an in-flight unit is forced to fail
    """

    def __init__(self, state, client, executor, outbox, servings=lambda: 2,
                 deadline=180, clock=time.monotonic):
        self.state = state
        self.client = client
        self.executor = executor
        self.outbox = outbox
        self.servings = servings
        self.deadline = deadline
        self.clock = clock
        self._listeners = []
        self._tokens = {}
        self._targets = {}
        self._started_at = {}
        self._counter = itertools.count(1)

    def subscribe(self, callback):
        """Register a callable receiving a DishSettled message after every outcome."""
        self._listeners.append(callback)

    def is_in_flight(self, dish):
        with self.state.lock:
            return dish in self.state.in_flight

    def error_for(self, dish):
        with self.state.lock:
            return self.state.failed.get(dish)

    def start_dish(self, dish, plan):
        """
        Start generating the recipe for a dish of a plan.

        No-op when the dish is already in flight (the plan is added to the
        unit's targets instead) or the plan already has a recipe for it.

        Returns:
            True if a new unit was started
        """
        servings = self.servings()
        with self.state.lock:
            if dish in self.state.in_flight:
                self._targets[dish].add(plan.id)
                logger.info("Recipe for %s already generating, joined by plan %s", dish, plan.id)
                return False
            if plan.recipe_for(dish) is not None:
                return False

            token = next(self._counter)
            self.state.in_flight.add(dish)
            self.state.failed.pop(dish, None)
            self._tokens[dish] = token
            self._targets[dish] = {plan.id}
            self._started_at[dish] = self.clock()

        logger.info("Recipe generation started: %s", dish)
        try:
            self.executor.submit(self._run_unit, dish, token, servings)
        except RuntimeError as e:
            # Pool already shut down
            self.outbox.put(UnitOutcome(dish, token, ModelUnavailable(str(e))))
        return True

    def _run_unit(self, dish, token, servings):
        try:
            outcome = self.client.generate_recipe(dish, servings)
        except GenerationError as e:
            outcome = e
        except Exception as e:
            logger.exception("Unexpected failure generating %s", dish)
            outcome = ModelUnavailable(str(e))
        self.outbox.put(UnitOutcome(dish, token, outcome))

    def finish_dish(self, dish, outcome, token=None):
        """
        Record the outcome of a unit and take the dish out of flight.

        Outcomes for a dish that is not in flight, or from an attempt that
        was already forced out, are ignored.

        Returns:
            True if the outcome was recorded
        """
        with self.state.lock:
            if dish not in self.state.in_flight:
                return False
            if token is not None and self._tokens.get(dish) != token:
                logger.info("Ignoring late outcome for %s (attempt %s)", dish, token)
                return False

            if isinstance(outcome, RecipeDraft):
                try:
                    self._persist(outcome, self._targets.get(dish, set()))
                except PersistenceFailure as e:
                    outcome = e

            if isinstance(outcome, RecipeDraft):
                self.state.failed.pop(dish, None)
                succeeded = True
                logger.info("Recipe generated and saved: %s", dish)
            else:
                self.state.failed[dish] = describe_error(outcome)
                succeeded = False
                logger.warning("Recipe generation failed: %s (%s)", dish, self.state.failed[dish])

            self.state.in_flight.discard(dish)
            self._tokens.pop(dish, None)
            self._targets.pop(dish, None)
            self._started_at.pop(dish, None)

        event = DishSettled(dish, succeeded)
        for callback in list(self._listeners):
            callback(event)
        return True

    def expire_abandoned(self, now=None):
        """
        Force a timeout outcome for units in flight longer than the deadline.

        Returns:
            List of dish names that were forced out
        """
        if now is None:
            now = self.clock()
        with self.state.lock:
            overdue = [(dish, self._tokens[dish]) for dish, started in self._started_at.items()
                       if now - started > self.deadline]
        for dish, token in overdue:
            self.finish_dish(dish, GenerationTimeout('Recipe generation did not finish in time.'), token)
        return [dish for dish, _ in overdue]

    def _persist(self, draft, plan_ids):
        """Attach the recipe to every target plan that still exists and lacks it."""
        if not plan_ids:
            return
        try:
            plans = MealPlan.query.filter(MealPlan.id.in_(plan_ids)).all()
            for plan in plans:
                if plan.recipe_for(draft.dish_name) is not None:
                    continue
                plan.recipes.append(Recipe(
                    dish_name=draft.dish_name,
                    steps=list(draft.steps),
                    cooking_time=draft.cooking_time,
                    ingredients=[
                        RecipeIngredient(position=i, name=line.name, amount=line.amount)
                        for i, line in enumerate(draft.ingredients)
                    ],
                ))
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Saving recipe %s failed: %s", draft.dish_name, e)
            raise PersistenceFailure(f'Saving the recipe for {draft.dish_name} failed.')
