"""
Tests for the shopping fulfillment engine.
"""

from types import SimpleNamespace

import pytest

from models import db, ShoppingEntry
from services.errors import FulfillmentError, MalformedOutput
from services.fulfillment import (
    ShoppingFulfillmentEngine, build_source_label, clear_auto_added,
    collect_ingredients, valid_amount_label,
)
from services.generation import ConsolidatedIngredient


def recipe(*ingredients):
    return SimpleNamespace(ingredients=[SimpleNamespace(name=n, amount=a) for n, a in ingredients])


def plan(slot, menu):
    return SimpleNamespace(meal_slot=slot, menu_text=menu)


@pytest.fixture
def engine(fake_client):
    return ShoppingFulfillmentEngine(fake_client)


class TestHelpers:

    def test_collect_skips_dishes_without_recipe(self):
        resolved = {'唐揚げ': recipe(('鶏もも肉', '300g'), ('  ', '1'))}
        collected = collect_ingredients({'唐揚げ', '味噌汁'}, resolved)
        assert collected == [('鶏もも肉', '300g', '唐揚げ')]

    def test_source_label_format(self):
        slots = {'カレー': 'dinner', 'サラダ': 'lunch'}
        assert build_source_label(['カレー', 'サラダ'], slots) == 'カレー (dinner), サラダ (lunch)'
        assert build_source_label(['謎の料理'], slots) == '謎の料理'

    def test_amount_label_limit(self):
        assert valid_amount_label('300g') == '300g'
        assert valid_amount_label('a' * 20) == 'a' * 20
        assert valid_amount_label('a' * 21) is None
        assert valid_amount_label('   ') is None

    def test_plan_entries_drop_items_on_hand(self, engine):
        consolidated = [
            ConsolidatedIngredient('牛乳', '200ml', ['グラタン'], '乳製品'),
            ConsolidatedIngredient('Butter', '10g', ['グラタン'], 'dairy'),
            ConsolidatedIngredient('玉ねぎ', '1個', ['グラタン'], '野菜'),
        ]
        inventory = [SimpleNamespace(name='牛乳')]
        shopping = [SimpleNamespace(name='butter')]
        entries = engine.plan_entries(consolidated, inventory, shopping, {'グラタン': 'dinner'})

        assert [e.name for e in entries] == ['玉ねぎ']
        entry = entries[0]
        assert entry.category == 'vegetables'
        assert entry.source_label == 'グラタン (dinner)'
        assert entry.amount_label == '1個'
        assert entry.checked is False

    def test_plan_entries_fold_duplicate_names(self, engine):
        consolidated = [
            ConsolidatedIngredient('醤油', '大さじ1', ['唐揚げ'], '調味料'),
            ConsolidatedIngredient('しょうゆ', '', ['煮物'], '調味料'),
            ConsolidatedIngredient('醤油', '小さじ2', ['煮物'], 'unknown'),
        ]
        slots = {'唐揚げ': 'dinner', '煮物': 'lunch'}
        entries = engine.plan_entries(consolidated, [], [], slots)

        names = [e.name for e in entries]
        assert names == ['醤油', 'しょうゆ']
        soy = entries[0]
        assert soy.amount_label == '大さじ1 + 小さじ2'
        assert soy.source_label == '唐揚げ (dinner), 煮物 (lunch)'
        assert soy.category == 'seasoning'

    def test_overlong_combined_amount_is_omitted(self, engine):
        consolidated = [ConsolidatedIngredient('米', 'x' * 40, ['ご飯'], '主食')]
        entries = engine.plan_entries(consolidated, [], [], {})
        assert entries[0].amount_label is None
        assert entries[0].category == 'grain'


class TestFulfill:

    def test_inventory_match_creates_no_entry(self, ctx, engine):
        resolved = {'グラタン': recipe(('牛乳', '200ml'), ('マカロニ', '100g'))}
        inventory = [SimpleNamespace(name='牛乳')]
        added = engine.fulfill({'グラタン'}, resolved, inventory, [],
                               meal_plans=[plan('dinner', 'グラタン')])

        assert added == 1
        assert [e.name for e in ShoppingEntry.query.all()] == ['マカロニ']

    def test_case_insensitive_match(self, ctx, engine):
        resolved = {'Pasta': recipe(('MILK', '1 cup'))}
        assert engine.fulfill({'Pasta'}, resolved, [SimpleNamespace(name='milk')], []) == 0

    def test_only_successful_dishes_contribute(self, ctx, engine, fake_client):
        resolved = {'唐揚げ': recipe(('鶏もも肉', '300g'))}
        engine.fulfill({'唐揚げ', '味噌汁'}, resolved, [], [])

        ingredients, merge = fake_client.consolidate_calls[0]
        assert ingredients == [('鶏もも肉', '300g', '唐揚げ')]
        assert merge is False

    def test_no_ingredients_skips_consolidation(self, ctx, engine, fake_client):
        assert engine.fulfill({'味噌汁'}, {}, [], []) == 0
        assert fake_client.consolidate_calls == []

    def test_merge_mode_override(self, ctx, engine, fake_client):
        engine.fulfill({'唐揚げ'}, {'唐揚げ': recipe(('鶏もも肉', '300g'))}, [], [], merge=True)
        assert fake_client.consolidate_calls[0][1] is True

    def test_consolidation_failure_writes_nothing(self, ctx, engine, fake_client):
        manual = ShoppingEntry(name='卵', category='egg', count=1)
        auto = ShoppingEntry(name='豚肉', category='meat', count=1, source_label='生姜焼き (dinner)')
        db.session.add_all([manual, auto])
        db.session.commit()

        fake_client.consolidation = MalformedOutput()
        with pytest.raises(FulfillmentError) as excinfo:
            engine.fulfill({'唐揚げ'}, {'唐揚げ': recipe(('鶏もも肉', '300g'))}, [], [manual],
                           replacing=[auto])

        assert isinstance(excinfo.value.cause, MalformedOutput)
        assert sorted(e.name for e in ShoppingEntry.query.all()) == ['卵', '豚肉']

    def test_replacing_entries_are_swapped_in_one_step(self, ctx, engine):
        auto = ShoppingEntry(name='豚肉', category='meat', count=1, source_label='生姜焼き (dinner)')
        db.session.add(auto)
        db.session.commit()

        engine.fulfill({'唐揚げ'}, {'唐揚げ': recipe(('鶏もも肉', '300g'))}, [], [],
                       meal_plans=[plan('dinner', '唐揚げ')], replacing=[auto])

        entries = ShoppingEntry.query.all()
        assert [(e.name, e.source_label) for e in entries] == [('鶏もも肉', '唐揚げ (dinner)')]

    def test_empty_batch_still_removes_replaced_entries(self, ctx, engine, fake_client):
        manual = ShoppingEntry(name='卵', category='egg', count=1)
        auto = ShoppingEntry(name='豚肉', category='meat', count=1, source_label='生姜焼き (dinner)')
        db.session.add_all([manual, auto])
        db.session.commit()

        assert engine.fulfill(set(), {}, [], [manual], replacing=[auto]) == 0
        assert fake_client.consolidate_calls == []
        assert [e.name for e in ShoppingEntry.query.all()] == ['卵']

    def test_stale_run_writes_nothing(self, ctx, engine):
        auto = ShoppingEntry(name='豚肉', category='meat', count=1, source_label='生姜焼き (dinner)')
        db.session.add(auto)
        db.session.commit()

        added = engine.fulfill({'唐揚げ'}, {'唐揚げ': recipe(('鶏もも肉', '300g'))}, [], [],
                               replacing=[auto], is_current=lambda: False)
        assert added is None
        assert [e.name for e in ShoppingEntry.query.all()] == ['豚肉']


class TestClearAutoAdded:

    def test_clear_is_idempotent_and_keeps_manual_entries(self, ctx):
        db.session.add_all([
            ShoppingEntry(name='卵', category='egg', count=1),
            ShoppingEntry(name='豚肉', category='meat', count=1, source_label='生姜焼き (dinner)'),
            ShoppingEntry(name='キャベツ', category='vegetables', count=1, source_label='生姜焼き (dinner)'),
        ])
        db.session.commit()

        assert clear_auto_added(ShoppingEntry.query.all()) == 2
        after_once = sorted(e.name for e in ShoppingEntry.query.all())
        assert clear_auto_added(ShoppingEntry.query.all()) == 0
        after_twice = sorted(e.name for e in ShoppingEntry.query.all())
        assert after_once == after_twice == ['卵']
