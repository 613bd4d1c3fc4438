"""
Tests for user settings and the inventory queries that depend on them.
"""

from datetime import date

import pytest

from models import db, InventoryItem, Settings
from services.inventory import expiring_items, inventory_snapshot
from services.settings import AppSettings, load_settings, update_settings


def test_defaults(ctx):
    settings = load_settings()
    assert settings == AppSettings()
    assert settings.generation_mode == 'morning'
    assert settings.auto_fill_enabled is True
    assert settings.servings_count == 2
    assert settings.expiry_warning_days == 7
    assert settings.notifications_granted is False


def test_update_and_reload(ctx):
    result = update_settings(generation_mode='evening', auto_fill_enabled='false', unknown='x')
    assert result['updated_fields'] == ['auto_fill_enabled', 'generation_mode']

    settings = load_settings()
    assert settings.generation_mode == 'evening'
    assert settings.auto_fill_enabled is False


def test_servings_are_clamped(ctx):
    update_settings(servings_count=20)
    assert load_settings().servings_count == 8
    update_settings(servings_count=0)
    assert load_settings().servings_count == 1


@pytest.mark.parametrize('field,value', [
    ('generation_mode', 'midnight'),
    ('expiry_warning_days', 0),
    ('servings_count', 'many'),
])
def test_invalid_values_are_rejected(ctx, field, value):
    with pytest.raises(ValueError):
        update_settings(**{field: value})
    assert Settings.query.count() == 0


def test_bad_stored_value_falls_back_to_default(ctx):
    db.session.add(Settings(key='servings_count', value='lots'))
    db.session.add(Settings(key='generation_mode', value='noon'))
    db.session.commit()

    settings = load_settings()
    assert settings.servings_count == 2
    assert settings.generation_mode == 'morning'


class TestExpiringItems:

    @pytest.fixture
    def stock(self, ctx):
        db.session.add_all([
            InventoryItem(name='牛乳', category='dairy', expiry=date(2026, 10, 17), count=1),
            InventoryItem(name='卵', category='egg', expiry=date(2026, 10, 21), count=6),
            InventoryItem(name='豆腐', category='other', expiry=date(2026, 10, 26), count=1),
            InventoryItem(name='味噌', category='seasoning', expiry=date(2026, 12, 1), count=1),
            InventoryItem(name='米', category='grain', expiry=None, count=1),
        ])
        db.session.commit()

    def test_within_warning_window(self, stock):
        names = [i.name for i in expiring_items(load_settings(), date(2026, 10, 19))]
        assert names == ['牛乳', '卵', '豆腐']

    def test_hide_expired(self, stock):
        update_settings(show_expired_items=False, expiry_warning_days=3)
        names = [i.name for i in expiring_items(load_settings(), date(2026, 10, 19))]
        assert names == ['卵']

    def test_snapshot_order(self, stock):
        assert [i.name for i in inventory_snapshot()] == ['牛乳', '卵', '豆腐', '味噌', '米']
