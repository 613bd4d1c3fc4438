"""
Validation Constants

Field limits and value ranges for persisted and generated data.
"""

# Maximum field lengths
MAX_LENGTHS = {
    'dish_name': 200,
    'menu_text': 500,
    'ingredient_name': 200,
    'ingredient_amount': 100,
    'step': 2000,
    'cooking_time': 50,
    'category': 50,
    'source_label': 500,
}

# Generated amounts longer than this are treated as malformed and not shown
MAX_AMOUNT_LABEL_LENGTH = 20

# Serving count accepted by the recipe prompt
MIN_SERVINGS = 1
MAX_SERVINGS = 8
