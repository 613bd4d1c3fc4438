import logging
import sqlite3
import threading
from dataclasses import asdict
from datetime import date

import click
from flask import Flask, current_app, jsonify, request
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine

from config import get_config
from constants import GENERATION_MODES, MAX_LENGTHS, normalize_category
from models import db, MealPlan, InventoryItem, ShoppingEntry
from services import (
    GenerationError, PersistenceFailure, FulfillmentError,
    build_client, build_notifier, clear_auto_added, expiring_items,
    load_settings, update_settings, MealPlanOrchestrator, LocalScheduler,
)
from utils.sanitizer import sanitize_name

logger = logging.getLogger(__name__)


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    # Recipe rows rely on ON DELETE CASCADE
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def safe_int(value, default=1, min_val=None, max_val=None):
    """Safely parse an integer value with optional bounds."""
    try:
        result = int(value) if value else default
        if min_val is not None:
            result = max(min_val, result)
        if max_val is not None:
            result = min(max_val, result)
        return result
    except (ValueError, TypeError):
        return default


def safe_date(value):
    """Parse an ISO date string, None when empty or invalid."""
    try:
        return date.fromisoformat(value) if value else None
    except (ValueError, TypeError):
        return None


def get_planner():
    return current_app.extensions['planner']


def error_response(message, status):
    return jsonify({'error': message}), status


def create_app(env=None, client=None, notifier=None, config_overrides=None, start_coordinator=True):
    """
    Build the Flask app with its planner.

    Args:
        env: config name ('development', 'production', 'testing')
        client: ContentGenerationClient to use instead of the OpenAI-backed one
        notifier: Notifier to use instead of the configured one
        config_overrides: dict applied on top of the config class
        start_coordinator: start the coordination thread right away
    """
    app = Flask(__name__)
    app.config.from_object(get_config(env))
    if config_overrides:
        app.config.update(config_overrides)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s',
    )

    db.init_app(app)
    Migrate(app, db)
    with app.app_context():
        db.create_all()

    planner = MealPlanOrchestrator(
        app,
        client or build_client(app.config),
        notifier or build_notifier(app.config),
        workers=app.config['RECIPE_WORKERS'],
        unit_deadline=app.config['RECIPE_UNIT_DEADLINE'],
        sweep_interval=app.config['SETTLEMENT_SWEEP_INTERVAL'],
        merge_ingredients=app.config['SHOPPING_MERGE_INGREDIENTS'],
    )
    app.extensions['planner'] = planner
    if start_coordinator:
        planner.start()

    register_error_handlers(app)
    register_routes(app)
    register_commands(app)
    return app


def register_error_handlers(app):
    @app.errorhandler(GenerationError)
    def handle_generation_error(e):
        return error_response(e.message, 502)

    @app.errorhandler(FulfillmentError)
    def handle_fulfillment_error(e):
        return error_response(e.message, 502)

    @app.errorhandler(PersistenceFailure)
    def handle_persistence_failure(e):
        return error_response(e.message, 500)

    @app.errorhandler(ValueError)
    def handle_value_error(e):
        return error_response(str(e), 400)

    @app.errorhandler(404)
    def handle_not_found(e):
        return error_response('Not found', 404)


def plan_payload(planner, plan):
    data = plan.to_dict()
    data['recipes'] = {
        dish: planner.recipe_status(plan, dish) for dish in plan.dishes
    }
    errors = {dish: planner.tracker.error_for(dish) for dish in plan.dishes}
    data['errors'] = {dish: msg for dish, msg in errors.items() if msg}
    return data


def register_routes(app):

    # ============================================
    # ROUTES - MEAL PLAN
    # ============================================

    @app.route('/mealplan')
    def meal_plan():
        planner = get_planner()
        mode = request.args.get('mode') or None
        if mode is not None and mode not in GENERATION_MODES:
            raise ValueError(f'Unknown generation mode: {mode}')
        plans = planner.window_plans(mode)
        return jsonify({
            'plans': [plan_payload(planner, p) for p in plans],
            'needs_generation': planner.needs_generation(mode),
        })

    @app.route('/mealplan/generate', methods=['POST'])
    def meal_plan_generate():
        data = request.get_json(silent=True) or {}
        result = get_planner().generate_plan(mode=data.get('mode') or None)
        return jsonify({
            'mode': result.mode,
            'plans': [p.to_dict() for p in result.plans],
            'reason': result.reason,
            'dishes': result.dishes,
        }), 201

    @app.route('/mealplan/<int:id>')
    def meal_plan_view(id):
        plan = MealPlan.query.get_or_404(id)
        data = plan_payload(get_planner(), plan)
        data['recipe_details'] = [r.to_dict() for r in plan.recipes]
        return jsonify(data)

    @app.route('/mealplan/<int:id>/complete', methods=['POST'])
    def meal_plan_complete(id):
        plan = MealPlan.query.get_or_404(id)
        get_planner().complete_plan(plan)
        return jsonify(plan.to_dict())

    @app.route('/mealplan/<int:id>/edit', methods=['POST'])
    def meal_plan_edit(id):
        plan = MealPlan.query.get_or_404(id)
        data = request.get_json(silent=True) or {}
        changed = get_planner().rename_plan(plan, data.get('menu_text', ''))
        return jsonify({'changed': changed, 'plan': plan.to_dict()})

    @app.route('/mealplan/<int:id>/delete', methods=['POST'])
    def meal_plan_delete(id):
        plan = MealPlan.query.get_or_404(id)
        get_planner().delete_plan(plan)
        return jsonify({'deleted': id})

    @app.route('/mealplan/<int:id>/recipe', methods=['POST'])
    def meal_plan_recipe(id):
        plan = MealPlan.query.get_or_404(id)
        data = request.get_json(silent=True) or {}
        dish = (data.get('dish') or '').strip()
        started = get_planner().request_recipe(plan, dish)
        return jsonify({'started': started, 'status': get_planner().recipe_status(plan, dish)}), 202

    # ============================================
    # ROUTES - SHOPPING LIST
    # ============================================

    @app.route('/shopping')
    def shopping_list():
        items = ShoppingEntry.query.order_by(
            ShoppingEntry.checked, ShoppingEntry.category, ShoppingEntry.name
        ).all()
        return jsonify({'items': [item.to_dict() for item in items]})

    @app.route('/shopping/add', methods=['POST'])
    def shopping_add():
        data = request.get_json(silent=True) or {}
        name = sanitize_name(data.get('name'), MAX_LENGTHS['ingredient_name'])
        if not name:
            raise ValueError('Name is required')
        item = ShoppingEntry(
            name=name,
            category=normalize_category(data.get('category')),
            count=safe_int(data.get('count'), default=1, min_val=1),
            checked=False,
        )
        with get_planner().state.lock:
            db.session.add(item)
            db.session.commit()
        return jsonify(item.to_dict()), 201

    @app.route('/shopping/check/<int:id>', methods=['POST'])
    def shopping_check(id):
        item = ShoppingEntry.query.get_or_404(id)
        with get_planner().state.lock:
            item.checked = not item.checked
            db.session.commit()
        return jsonify(item.to_dict())

    @app.route('/shopping/clear-auto', methods=['POST'])
    def shopping_clear_auto():
        with get_planner().state.lock:
            removed = clear_auto_added(ShoppingEntry.query.all())
        return jsonify({'removed': removed})

    @app.route('/shopping/fill', methods=['POST'])
    def shopping_fill():
        data = request.get_json(silent=True) or {}
        merge = data.get('merge')
        added = get_planner().fill_shopping_list(
            mode=data.get('mode') or None, merge=None if merge is None else bool(merge)
        )
        return jsonify({'added': added})

    # ============================================
    # ROUTES - INVENTORY
    # ============================================

    @app.route('/inventory')
    def inventory_list():
        items = InventoryItem.query.order_by(InventoryItem.expiry, InventoryItem.name).all()
        expiring = expiring_items(load_settings(), date.today())
        return jsonify({
            'items': [inventory_payload(i) for i in items],
            'expiring': [inventory_payload(i) for i in expiring],
        })

    @app.route('/inventory/add', methods=['POST'])
    def inventory_add():
        data = request.get_json(silent=True) or {}
        name = sanitize_name(data.get('name'), MAX_LENGTHS['ingredient_name'])
        if not name:
            raise ValueError('Name is required')
        item = InventoryItem(
            name=name,
            category=normalize_category(data.get('category')),
            expiry=safe_date(data.get('expiry')),
            count=safe_int(data.get('count'), default=1, min_val=0),
        )
        with get_planner().state.lock:
            db.session.add(item)
            db.session.commit()
        return jsonify(inventory_payload(item)), 201

    @app.route('/inventory/<int:id>/delete', methods=['POST'])
    def inventory_delete(id):
        item = InventoryItem.query.get_or_404(id)
        with get_planner().state.lock:
            db.session.delete(item)
            db.session.commit()
        return jsonify({'deleted': id})

    # ============================================
    # ROUTES - SETTINGS
    # ============================================

    @app.route('/settings', methods=['GET', 'POST'])
    def settings():
        if request.method == 'POST':
            data = request.get_json(silent=True) or {}
            with get_planner().state.lock:
                return jsonify(update_settings(**data))
        return jsonify(asdict(load_settings()))


def inventory_payload(item):
    return {
        'id': item.id,
        'name': item.name,
        'category': item.category,
        'expiry': item.expiry.isoformat() if item.expiry else None,
        'count': item.count,
    }


def register_commands(app):

    @app.cli.command('generate-plan')
    @click.option('--mode', type=click.Choice(sorted(GENERATION_MODES)), default=None)
    @click.option('--wait/--no-wait', default=True, help='Wait for recipes and the shopping fill.')
    def generate_plan_command(mode, wait):
        """Generate the meal plan for the current window."""
        planner = get_planner()
        try:
            result = planner.generate_plan(mode=mode)
        except (GenerationError, PersistenceFailure) as e:
            raise click.ClickException(e.message)
        for plan in result.plans:
            click.echo(f"{plan.date:%Y-%m-%d %H:%M} {plan.meal_slot}: {plan.menu_text}")
        if result.reason:
            click.echo(result.reason)
        if wait and not planner.wait_until_idle(timeout=app.config['RECIPE_UNIT_DEADLINE'] * 2):
            click.echo('Recipe generation is still running.', err=True)

    @app.cli.command('run-scheduler')
    def run_scheduler_command():
        """Run scheduled plan generation until interrupted."""
        scheduler = LocalScheduler(
            app, get_planner(), expiration=app.config['SCHEDULER_EXPIRATION']
        )
        stop = threading.Event()
        try:
            scheduler.run_forever(stop)
        except KeyboardInterrupt:
            stop.set()
            click.echo('Scheduler stopped.')


if __name__ == '__main__':
    app = create_app()
    # host='0.0.0.0' allows access from other devices on the network
    app.run(debug=True, host='0.0.0.0', port=5000, use_reloader=False)
