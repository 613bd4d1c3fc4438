"""
Models Package

Exports all database models and the db instance for use throughout the application.
"""

from .base import db

from .mealplan import MealPlan, MealHistory
from .recipe import Recipe, RecipeIngredient
from .inventory import InventoryItem
from .shopping import ShoppingEntry
from .settings import Settings

__all__ = [
    'db',
    'MealPlan',
    'MealHistory',
    'Recipe',
    'RecipeIngredient',
    'InventoryItem',
    'ShoppingEntry',
    'Settings',
]
