"""
Shared fixtures for the meal planner tests.

The app runs against a temporary SQLite file with a scripted generation
client, so no test touches the network.
"""

import threading
import time
from datetime import datetime

import pytest

from app import create_app
from models import db
from services.errors import MalformedOutput
from services.generation import (
    ContentGenerationClient, ConsolidatedIngredient, DailyMenu, IngredientLine, RecipeDraft
)
from services.notifications import Notifier

NOW = datetime(2026, 10, 19, 9, 30)


def make_recipe(dish, ingredients=None):
    if ingredients is None:
        ingredients = [(f'{dish}の具', '100g'), ('醤油', '大さじ1')]
    return RecipeDraft(
        dish_name=dish,
        ingredients=[IngredientLine(name, amount) for name, amount in ingredients],
        steps=[f'{dish}を作る', '盛り付ける'],
        cooking_time='約15分',
    )


def categorize(ingredients):
    return [
        ConsolidatedIngredient(
            name=name, combined_amount=amount, sources=[dish],
            category='調味料' if name == '醤油' else '野菜',
        )
        for name, amount, dish in ingredients
    ]


class FakeGenerationClient(ContentGenerationClient):
    """
    Scripted generation client.

    menus: DailyMenu results (or exceptions) returned in order
    recipes: dish -> RecipeDraft or exception (default: make_recipe)
    consolidation: None (categorize), an exception, or a callable
    """

    def __init__(self):
        super().__init__(model='fake', timeout=1, client=object())
        self.menus = []
        self.recipes = {}
        self.consolidation = None
        self.menu_gate = None
        self.recipe_calls = []
        self.consolidate_calls = []
        self._gates = {}
        self._lock = threading.Lock()

    def generate(self, context):
        raise AssertionError('fake client must not reach the network')

    def block(self, dish):
        gate = threading.Event()
        self._gates[dish] = gate
        return gate

    def release_all(self):
        for gate in self._gates.values():
            gate.set()
        if self.menu_gate is not None:
            self.menu_gate.set()

    def add_menu(self, breakfast, lunch, dinner, reason='在庫を使い切る献立です'):
        self.menus.append(DailyMenu(breakfast=breakfast, lunch=lunch, dinner=dinner, reason=reason))

    def generate_daily_menu(self, mode, inventory, history, today):
        if self.menu_gate is not None:
            self.menu_gate.wait(10)
        if not self.menus:
            raise MalformedOutput()
        result = self.menus.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def generate_recipe(self, dish_name, servings=2):
        with self._lock:
            self.recipe_calls.append((dish_name, servings))
        gate = self._gates.get(dish_name)
        if gate is not None:
            gate.wait(10)
        result = self.recipes.get(dish_name)
        if result is None:
            return make_recipe(dish_name)
        if isinstance(result, Exception):
            raise result
        return result

    def consolidate_ingredients(self, ingredients, merge=False):
        with self._lock:
            self.consolidate_calls.append((list(ingredients), merge))
        if isinstance(self.consolidation, Exception):
            raise self.consolidation
        if callable(self.consolidation):
            return self.consolidation(ingredients)
        return categorize(ingredients)


class RecordingNotifier(Notifier):
    def __init__(self):
        self.messages = []

    def notify(self, title, body):
        self.messages.append((title, body))
        return True


def _wait_for(predicate, timeout=5, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def wait_for():
    return _wait_for


@pytest.fixture
def fake_client():
    return FakeGenerationClient()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(tmp_path, fake_client, notifier):
    app = create_app(
        'testing',
        client=fake_client,
        notifier=notifier,
        config_overrides={'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'planner.db'}"},
    )
    app.extensions['planner'].clock = lambda: NOW
    yield app
    fake_client.release_all()
    app.extensions['planner'].shutdown()
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield


@pytest.fixture
def planner(app):
    return app.extensions['planner']


@pytest.fixture
def client(app):
    return app.test_client()
