"""
User Settings

Typed view over the Settings key/value table. The planner core only
reads these; update_settings() exists for the HTTP surface and tests.
"""

from dataclasses import dataclass, asdict, fields
from typing import Any, Dict

from constants import GENERATION_MODES, DEFAULT_GENERATION_MODE, MIN_SERVINGS, MAX_SERVINGS
from models import db, Settings


@dataclass
class AppSettings:
    """User settings with their defaults."""

    generation_mode: str = DEFAULT_GENERATION_MODE
    auto_fill_enabled: bool = True
    servings_count: int = 2
    expiry_warning_days: int = 7
    show_expired_items: bool = True
    auto_delete_matched_scan_items: bool = True
    notifications_granted: bool = False


def _parse(kind, raw):
    if kind is bool:
        return str(raw).strip().lower() in ('1', 'true', 'yes', 'on')
    if kind is int:
        return int(raw)
    return str(raw)


def _validate(name, value):
    """Return the value coerced into range, or raise ValueError."""
    if name == 'generation_mode':
        if value not in GENERATION_MODES:
            raise ValueError(f'Unknown generation mode: {value}')
        return value
    if name == 'servings_count':
        return max(MIN_SERVINGS, min(MAX_SERVINGS, int(value)))
    if name == 'expiry_warning_days':
        value = int(value)
        if value <= 0:
            raise ValueError('expiry_warning_days must be positive')
        return value
    return value


def load_settings() -> AppSettings:
    """
    Load settings from the database, falling back to defaults.

    Unparseable or out-of-range stored values are ignored.
    """
    settings = AppSettings()
    stored = Settings.as_dict()

    for f in fields(AppSettings):
        if f.name not in stored or stored[f.name] is None:
            continue
        kind = type(getattr(settings, f.name))
        try:
            setattr(settings, f.name, _validate(f.name, _parse(kind, stored[f.name])))
        except (TypeError, ValueError):
            continue

    return settings


def update_settings(**kwargs) -> Dict[str, Any]:
    """
    Update specific settings.

    Args:
        **kwargs: Setting fields to update; unknown names are ignored

    Returns:
        Dict with the updated field names and the resulting settings

    Raises:
        ValueError: if a value is invalid (nothing is written)
    """
    defaults = AppSettings()
    valid_fields = {f.name for f in fields(AppSettings)}

    updates = {}
    for key, value in kwargs.items():
        if key not in valid_fields or value is None:
            continue
        kind = type(getattr(defaults, key))
        updates[key] = _validate(key, _parse(kind, value) if not isinstance(value, kind) else value)

    for key, value in updates.items():
        row = Settings.query.filter_by(key=key).first()
        stored = str(value).lower() if isinstance(value, bool) else str(value)
        if row is None:
            db.session.add(Settings(key=key, value=stored))
        else:
            row.value = stored
    if updates:
        db.session.commit()

    return {'updated_fields': sorted(updates), 'settings': asdict(load_settings())}
