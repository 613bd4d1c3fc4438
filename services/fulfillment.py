"""
Shopping Fulfillment Service

Turns the recipes of a settled batch into shopping list entries for
whatever is not already in the fridge or on the list.
"""

import logging
import threading

from sqlalchemy.exc import SQLAlchemyError

from constants import MAX_AMOUNT_LABEL_LENGTH, MAX_LENGTHS, normalize_category
from models import db, ShoppingEntry
from .errors import GenerationError, PersistenceFailure, FulfillmentError
from .parsing import dish_slot_map

logger = logging.getLogger(__name__)


def _name_key(name):
    return (name or '').strip().casefold()


def collect_ingredients(dish_names, resolved_recipes):
    """
    Collect (name, amount, dish) tuples for the dishes that have a recipe.

    Dishes without a recipe (generation failed) contribute nothing.
    """
    collected = []
    for dish in sorted(dish_names):
        recipe = resolved_recipes.get(dish)
        if recipe is None:
            continue
        for ingredient in recipe.ingredients:
            name = (ingredient.name or '').strip()
            if not name:
                continue
            collected.append((name, (ingredient.amount or '').strip(), dish))
    return collected


def build_source_label(sources, dish_slots):
    """Format source dishes as "dish (slot), dish (slot)"."""
    labels = []
    for dish in sources:
        slot = dish_slots.get(dish)
        labels.append(f"{dish} ({slot})" if slot else dish)
    return ', '.join(labels)[:MAX_LENGTHS['source_label']]


def valid_amount_label(amount):
    """Return the amount if it is short enough to be a real amount, else None."""
    amount = (amount or '').strip()
    if not amount or len(amount) > MAX_AMOUNT_LABEL_LENGTH:
        return None
    return amount


def clear_auto_added(entries, commit=True):
    """
    Delete every entry that was added by the automatic fill.

    Manual entries (no source_label) are kept. Calling this again is a no-op.

    Returns:
        Number of entries deleted
    """
    removed = 0
    for entry in entries:
        if entry.source_label is not None:
            db.session.delete(entry)
            removed += 1
    if commit and removed:
        db.session.commit()
    return removed


class ShoppingFulfillmentEngine:
    """
    Consolidates batch ingredients and writes net-new shopping entries.

    Args:
        client: ContentGenerationClient used for consolidation
        lock: lock serializing database writes with the rest of the planner
        merge: default consolidation mode (True = merge, False = categorize)
    """

    def __init__(self, client, lock=None, merge=False):
        self.client = client
        self.lock = lock or threading.RLock()
        self.merge = merge

    def plan_entries(self, consolidated, inventory_snapshot, shopping_snapshot, dish_slots):
        """
        Build unsaved ShoppingEntry objects for consolidated ingredients.

        Names already in inventory or on the shopping list are dropped
        (case-insensitive exact match); repeated names are folded into one entry.
        """
        have = {_name_key(item.name) for item in inventory_snapshot}
        have |= {_name_key(entry.name) for entry in shopping_snapshot}

        folded = {}
        for item in consolidated:
            key = _name_key(item.name)
            if not key or key in have:
                continue
            amount = (item.combined_amount or '').strip()
            if key in folded:
                current = folded[key]
                if amount:
                    current['amounts'].append(amount)
                current['sources'].extend(s for s in item.sources if s not in current['sources'])
                continue
            folded[key] = {
                'name': item.name.strip(),
                'amounts': [amount] if amount else [],
                'sources': list(dict.fromkeys(item.sources)),
                'category': normalize_category(item.category),
            }

        entries = []
        for item in folded.values():
            entries.append(ShoppingEntry(
                name=item['name'],
                category=item['category'],
                count=1,
                checked=False,
                source_label=build_source_label(item['sources'], dish_slots),
                amount_label=valid_amount_label(' + '.join(item['amounts'])),
            ))
        return entries

    def fulfill(self, dish_names, resolved_recipes, inventory_snapshot, shopping_snapshot,
                meal_plans=(), merge=None, replacing=(), is_current=None):
        """
        Add the missing ingredients of a batch to the shopping list.

        Args:
            dish_names: dishes of the settled batch
            resolved_recipes: dish name -> recipe (missing or None for failed dishes)
            inventory_snapshot: current InventoryItem rows
            shopping_snapshot: current ShoppingEntry rows to deduplicate against
            meal_plans: plans the dishes came from, for the source labels
            merge: consolidation mode override
            replacing: entries to delete in the same transaction as the inserts
            is_current: callable checked under the lock right before writing;
                when it returns False the run was superseded and nothing is written

        Returns:
            Number of entries inserted, or None if the run was superseded

        Raises:
            FulfillmentError: consolidation or saving failed; nothing was written
        """
        ingredients = collect_ingredients(dish_names, resolved_recipes)
        if ingredients:
            use_merge = self.merge if merge is None else merge
            try:
                consolidated = self.client.consolidate_ingredients(ingredients, merge=use_merge)
            except GenerationError as e:
                logger.error("Ingredient consolidation failed: %s", e.message)
                raise FulfillmentError(e)
            entries = self.plan_entries(
                consolidated, inventory_snapshot, shopping_snapshot, dish_slot_map(meal_plans)
            )
        else:
            logger.info("No ingredients to consolidate for %d dishes", len(dish_names))
            entries = []

        if not entries and not replacing:
            return 0

        with self.lock:
            if is_current is not None and not is_current():
                logger.info("Plan was regenerated during the shopping fill, dropping %d entries",
                            len(entries))
                return None
            try:
                for entry in replacing:
                    db.session.delete(entry)
                db.session.add_all(entries)
                db.session.commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error("Saving shopping entries failed: %s", e)
                raise FulfillmentError(PersistenceFailure('Saving the shopping list failed.'))

        logger.info("Added %d shopping entries from %d ingredients", len(entries), len(ingredients))
        return len(entries)
