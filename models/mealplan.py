"""
Meal Plan Models

Contains the MealPlan model for per-slot meal planning and the
MealHistory model for meals that were actually eaten.
"""

from constants import MENU_SEPARATOR
from .base import db


class MealPlan(db.Model):
    """One meal slot's dish assignment for a specific date."""
    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.DateTime, nullable=False, index=True)
    meal_slot = db.Column(db.String(20), nullable=False)  # 'breakfast', 'lunch', 'dinner'
    menu_text = db.Column(db.String(500), nullable=False)  # dish names joined by MENU_SEPARATOR
    status = db.Column(db.String(20), default='planned', nullable=False)
    recipes = db.relationship(
        'Recipe', backref='meal_plan', lazy=True,
        cascade='all, delete-orphan', order_by='Recipe.id'
    )

    @property
    def dishes(self):
        """Dish names of the menu, trimmed and without empties."""
        return [d.strip() for d in (self.menu_text or '').split(MENU_SEPARATOR) if d.strip()]

    def recipe_for(self, dish_name):
        for recipe in self.recipes:
            if recipe.dish_name == dish_name:
                return recipe
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'date': self.date.isoformat(),
            'meal_slot': self.meal_slot,
            'menu_text': self.menu_text,
            'status': self.status,
            'dishes': self.dishes,
        }


class MealHistory(db.Model):
    """A meal that was eaten; fed back into plan generation."""
    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.DateTime, nullable=False, index=True)
    menu_text = db.Column(db.String(500), nullable=False)
    meal_slot = db.Column(db.String(20), nullable=False)
