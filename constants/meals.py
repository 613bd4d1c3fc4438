"""
Meal Constants

Meal slots and generation modes used by the planner.
"""

# Meal slots in the order they are eaten
MEAL_SLOTS = ('breakfast', 'lunch', 'dinner')

# Hour of day each slot's plan is stored at
SLOT_HOURS = {
    'breakfast': 8,
    'lunch': 12,
    'dinner': 19,
}

# Generation modes -> scheduled local hour
# morning: today's breakfast, lunch and dinner
# evening: tonight's dinner plus tomorrow's breakfast and lunch
GENERATION_MODES = {
    'morning': 5,
    'evening': 17,
}

DEFAULT_GENERATION_MODE = 'morning'

# Separator between dish names inside a menu string
MENU_SEPARATOR = '・'

# Most recent history rows passed to the plan prompt
HISTORY_PROMPT_LIMIT = 21
