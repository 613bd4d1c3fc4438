# Utility modules for the meal planner
from .sanitizer import sanitize_text, sanitize_name, sanitize_steps
