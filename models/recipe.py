"""
Recipe Models

Contains the Recipe and RecipeIngredient models. A Recipe belongs to
exactly one MealPlan and is deleted with it.
"""

from .base import db


class Recipe(db.Model):
    """Generated recipe for one dish of a meal plan."""
    __table_args__ = (
        db.UniqueConstraint('meal_plan_id', 'dish_name', name='uq_recipe_plan_dish'),
    )

    id = db.Column(db.Integer, primary_key=True)
    meal_plan_id = db.Column(
        db.Integer, db.ForeignKey('meal_plan.id', ondelete='CASCADE'), nullable=False, index=True
    )
    dish_name = db.Column(db.String(200), nullable=False, index=True)
    steps = db.Column(db.JSON, nullable=False, default=list)
    cooking_time = db.Column(db.String(50), default='')
    ingredients = db.relationship(
        'RecipeIngredient', backref='recipe', lazy=True,
        cascade='all, delete-orphan', order_by='RecipeIngredient.position'
    )

    def to_dict(self):
        return {
            'id': self.id,
            'dish_name': self.dish_name,
            'ingredients': [{'name': i.name, 'amount': i.amount} for i in self.ingredients],
            'steps': list(self.steps or []),
            'cooking_time': self.cooking_time,
        }


class RecipeIngredient(db.Model):
    """Ingredient line of a recipe, kept in generated order."""
    id = db.Column(db.Integer, primary_key=True)
    recipe_id = db.Column(
        db.Integer, db.ForeignKey('recipe.id', ondelete='CASCADE'), nullable=False, index=True
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    name = db.Column(db.String(200), nullable=False)
    amount = db.Column(db.String(100), default='')
