"""
Parsing Service

Functions for splitting menu strings into dishes and for recovering
structured data from generated text.
"""

import json
import re

from constants import MENU_SEPARATOR
from .errors import MalformedOutput

_FENCE = re.compile(r'```(.*?)```', re.DOTALL)
_decoder = json.JSONDecoder()


def split_menu(menu_text, separator=MENU_SEPARATOR):
    """Split a composite menu string into trimmed, non-empty dish names."""
    if not menu_text:
        return []
    return [dish.strip() for dish in menu_text.split(separator) if dish.strip()]


def dishes_for_plans(plans):
    """
    Union of the dish names of every plan, in first-seen order.

    Returns a list so callers keep a stable order; use set() for membership.
    """
    seen = []
    for plan in plans:
        for dish in split_menu(plan.menu_text):
            if dish not in seen:
                seen.append(dish)
    return seen


def dish_slot_map(plans):
    """Map each dish name to the meal slot of the plan it appears in."""
    mapping = {}
    for plan in plans:
        for dish in split_menu(plan.menu_text):
            mapping[dish] = plan.meal_slot
    return mapping


def strip_code_fence(text):
    """Remove a surrounding ```json ... ``` (or bare ```) fence if present."""
    match = _FENCE.search(text)
    if not match:
        return text
    inner = match.group(1)
    # Drop the language tag after the opening fence
    if inner[:4].lower() == 'json':
        inner = inner[4:]
    return inner.strip()


def extract_structured(text):
    """
    Recover a JSON object or array from generated text.

    Strips code fences, skips any prose before the first '{' or '[',
    and parses the value that starts there (trailing text is ignored).

    Raises:
        MalformedOutput: if no JSON value can be parsed
    """
    if text is None:
        raise MalformedOutput()

    cleaned = strip_code_fence(text.strip())

    starts = [i for i in (cleaned.find('{'), cleaned.find('[')) if i >= 0]
    if not starts:
        raise MalformedOutput()

    try:
        value, _ = _decoder.raw_decode(cleaned[min(starts):])
    except ValueError:
        raise MalformedOutput()
    return value
