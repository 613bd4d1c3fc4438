"""
Batch Settlement Detector

Decides, exactly once per batch, that every dish of the pending batch
has reached a terminal outcome, and hands the batch to fulfillment.
"""

import logging

from models import Recipe

logger = logging.getLogger(__name__)


class BatchSettlementDetector:
    """
    Single subscriber of the tracker's DishSettled messages.

    Always reads the current pending batch from the shared state, so a
    late outcome from a superseded batch can only ever be checked against
    the batch that replaced it.
    """

    def __init__(self, state, tracker, handoff=None):
        self.state = state
        self.tracker = tracker
        self.handoff = handoff
        tracker.subscribe(self.on_dish_settled)

    def persisted_dishes(self, dishes, plan_ids):
        """Dish names among `dishes` that have a saved recipe on one of `plan_ids`."""
        if not dishes or not plan_ids:
            return set()
        rows = (Recipe.query
                .with_entities(Recipe.dish_name)
                .filter(Recipe.meal_plan_id.in_(plan_ids), Recipe.dish_name.in_(dishes))
                .all())
        return {row[0] for row in rows}

    def is_settled(self):
        """True when the pending batch is non-empty and every dish is saved or failed."""
        with self.state.lock:
            pending = set(self.state.pending_batch)
            if not pending:
                return False
            if pending & self.state.in_flight:
                return False
            unresolved = pending - set(self.state.failed)
            if not unresolved:
                return True
            return unresolved <= self.persisted_dishes(unresolved, self.state.batch_plan_ids)

    def evaluate(self):
        """
        Capture and clear the pending batch if it has settled.

        Returns:
            The captured PendingBatch, or None (no side effects in that case)
        """
        with self.state.lock:
            if self.state.fulfilling or not self.is_settled():
                return None
            batch = self.state.capture_batch()
        logger.info("Batch settled: %d dishes", len(batch.dishes))
        return batch

    def on_dish_settled(self, event):
        batch = self.evaluate()
        if batch is not None and self.handoff is not None:
            self.handoff(batch)
