from .meals import (
    MEAL_SLOTS, SLOT_HOURS, GENERATION_MODES,
    DEFAULT_GENERATION_MODE, MENU_SEPARATOR, HISTORY_PROMPT_LIMIT
)
from .categories import (
    FOOD_CATEGORIES, CATEGORY_ALIASES, DEFAULT_CATEGORY,
    PROMPT_CATEGORY_LABELS, normalize_category
)
from .validation import (
    MAX_LENGTHS, MAX_AMOUNT_LABEL_LENGTH, MIN_SERVINGS, MAX_SERVINGS
)
