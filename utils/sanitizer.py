"""
Generated Text Sanitization Module

Cleans text returned by the generation service before it is stored.
Names are compared case-insensitively later, so they are normalized
here (whitespace collapsed, control characters removed) but never
escaped or otherwise rewritten.
"""

import re

_CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f-\x9f]')


def sanitize_text(text, max_length=10000):
    """
    Sanitize free text by stripping it and removing control characters.

    Args:
        text: The text to sanitize (can be None)
        max_length: Maximum allowed length (default 10000)

    Returns:
        Sanitized string, truncated if necessary
    """
    if text is None:
        return ''

    if not isinstance(text, str):
        text = str(text)

    text = _CONTROL_CHARS.sub('', text).strip()

    if len(text) > max_length:
        text = text[:max_length]

    return text


def sanitize_name(name, max_length=200):
    """
    Sanitize a dish or ingredient name.

    Args:
        name: The name to sanitize
        max_length: Maximum allowed length (default 200)

    Returns:
        Single-line name, empty string if nothing is left
    """
    name = sanitize_text(name, max_length=max_length * 2)

    # Collapse multiple spaces (including full-width)
    name = re.sub(r'[\s　]+', ' ', name).strip()

    return name[:max_length]


def sanitize_steps(steps, max_length=2000):
    """Sanitize a list of recipe steps, dropping empty ones."""
    if not steps:
        return []
    if isinstance(steps, str):
        steps = [steps]
    cleaned = []
    for step in steps:
        step = sanitize_text(step, max_length=max_length)
        if step:
            cleaned.append(step)
    return cleaned
